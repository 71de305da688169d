"""
Custom exception classes for error categorization in the itinerary stream.
"""


class TripStreamError(Exception):
    """Base exception for all tripstream errors."""

    def __init__(self, message: str, context: dict = None):
        """
        Initialize exception with message and optional context.

        Args:
            message: Error message
            context: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class TransientError(TripStreamError):
    """
    Exception for transient errors that should be retried.

    Examples:
        - Generator timeouts
        - Dropped stream connections
        - Temporary model unavailability
    """
    pass


class PermanentError(TripStreamError):
    """
    Exception for permanent errors that should not be retried.

    Examples:
        - Missing model credentials
        - Malformed stream payloads
        - Exhausted generation budgets
    """
    pass


# Generation errors

class DayGenerationError(TransientError):
    """A single day could not be generated. The session continues."""

    def __init__(self, message: str, day_index: int = None, context: dict = None):
        """
        Initialize day generation error.

        Args:
            message: Error message
            day_index: 0-based index of the failed day
            context: Additional error context
        """
        super().__init__(message, context)
        self.day_index = day_index


class GenerationTimeoutError(DayGenerationError):
    """Exception for a day generator call that exceeded its timeout."""
    pass


class GeneratorUnavailableError(PermanentError):
    """The upstream generator cannot produce any output. Fatal for a session."""
    pass


class GenerationBudgetExceeded(PermanentError):
    """The per-session generator call budget has been used up."""

    def __init__(self, message: str, limit: int = None, context: dict = None):
        super().__init__(message, context)
        self.limit = limit


# Transport errors

class StreamConnectionError(TransientError):
    """Exception for a stream connection that failed or dropped."""
    pass


class ChannelClosedError(TripStreamError):
    """Raised when sending to, or waiting on, a closed event channel."""
    pass


class MalformedEventError(PermanentError):
    """Exception for stream frames that cannot be decoded into an event."""

    def __init__(self, message: str, event_type: str = None, validation_errors: list = None, context: dict = None):
        """
        Initialize malformed event error.

        Args:
            message: Error message
            event_type: SSE event name of the offending frame
            validation_errors: List of specific validation errors
            context: Additional error context
        """
        super().__init__(message, context)
        self.event_type = event_type
        self.validation_errors = validation_errors or []


class TripNotFoundError(PermanentError):
    """Exception for lookups of unknown trip identifiers."""
    pass
