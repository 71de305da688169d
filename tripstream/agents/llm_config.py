"""
LLM provider configuration with fallback support.

This module manages the chat models behind the default day generator
(OpenAI GPT-4o-mini and AWS Bedrock Nova Pro) with automatic fallback logic
when the preferred provider fails.
"""

from langchain_aws import ChatBedrock
from langchain_openai import ChatOpenAI
from typing import Any, Optional
import logging
import boto3

from ..utils.config import Settings, settings as default_settings
from ..utils.exceptions import GeneratorUnavailableError

logger = logging.getLogger(__name__)

# Error fragments that mean the Bedrock account cannot use the model at all
BEDROCK_ACCESS_ERRORS = (
    "ResourceNotFoundException",
    "AccessDeniedException",
    "ValidationException",
    "use case details",
    "not been submitted",
)


class LLMProvider:
    """
    Manages LLM providers with fallback logic.

    Models are created lazily on first use so importing the package never
    touches cloud credentials.
    """

    def __init__(self, config: Optional[Settings] = None):
        """Initialize provider slots."""
        self.config = config or default_settings
        self.openai_model = None
        self.bedrock_model = None
        self._initialized = False

    def _initialize_models(self):
        """Initialize OpenAI and Bedrock models."""
        self._initialized = True

        try:
            bedrock_kwargs = {
                "model_id": self.config.bedrock_model_id,
                "region_name": self.config.aws_region,
                "model_kwargs": {"temperature": 0.7, "max_tokens": 4096},
            }
            if self.config.aws_profile:
                # Explicit session for machines with several AWS accounts
                logger.info(f"Creating boto3 session with profile: {self.config.aws_profile}")
                session = boto3.Session(profile_name=self.config.aws_profile)
                bedrock_kwargs["client"] = session.client(
                    service_name="bedrock-runtime",
                    region_name=self.config.aws_region,
                )
            self.bedrock_model = ChatBedrock(**bedrock_kwargs)
            logger.info("Initialized AWS Bedrock Nova Pro")
        except Exception as e:
            logger.warning(f"Failed to initialize Bedrock: {e}")

        if self.config.openai_api_key:
            try:
                self.openai_model = ChatOpenAI(
                    model=self.config.openai_model,
                    temperature=0.7,
                    api_key=self.config.openai_api_key,
                    model_kwargs={"response_format": {"type": "json_object"}},
                )
                logger.info(f"Initialized OpenAI {self.config.openai_model}")
            except Exception as e:
                logger.warning(f"Failed to initialize OpenAI: {e}")
        else:
            logger.warning("OPENAI_API_KEY not found, OpenAI unavailable")

    def _ordered_models(self):
        if not self._initialized:
            self._initialize_models()
        order = [self.openai_model, self.bedrock_model]
        if not self.config.use_openai_primary:
            order.reverse()
        return [model for model in order if model is not None]

    async def ainvoke_with_fallback(self, messages, **kwargs) -> Any:
        """
        Invoke the preferred model, falling back to the other one on error.

        Bedrock access errors switch to the fallback immediately; any other
        error is re-raised once both providers have been tried.
        """
        models = self._ordered_models()
        if not models:
            raise GeneratorUnavailableError("No LLM provider available")

        primary, fallbacks = models[0], models[1:]
        try:
            return await primary.ainvoke(messages, **kwargs)
        except Exception as e:
            error_str = str(e)
            logger.error(f"Primary LLM failed: {error_str}")
            if not fallbacks:
                raise
            if primary is self.bedrock_model and not any(k in error_str for k in BEDROCK_ACCESS_ERRORS):
                raise
            logger.warning("Switching to fallback LLM")
            return await fallbacks[0].ainvoke(messages, **kwargs)


# Global instance
llm_provider = LLMProvider()
