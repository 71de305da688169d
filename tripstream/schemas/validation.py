"""
Pydantic schemas produced by the Director and consumed by the refinement loop.
"""
from typing import List, Literal
from pydantic import ConfigDict, Field

from .trip import CamelModel


Verdict = Literal["APPROVED", "REJECTED", "WARNING"]


class ValidationReport(CamelModel):
    """Outcome of one Director invocation. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    iteration: int = Field(..., ge=1)
    status: Verdict
    budget_verified: bool
    logistics_verified: bool
    flagged_days: List[int] = Field(default_factory=list, description="1-based day numbers")
    logs: List[str] = Field(default_factory=list)
    budget_issues: List[str] = Field(default_factory=list)
    logistics_issues: List[str] = Field(default_factory=list)
    feedback: str = ""

    @property
    def approved(self) -> bool:
        return self.status == "APPROVED" or (self.status == "WARNING" and not self.flagged_days)


class RefinementRequest(CamelModel):
    """Which days to regenerate and why. Discarded after use."""
    model_config = ConfigDict(frozen=True)

    iteration: int
    days_to_refine: List[int] = Field(default_factory=list, description="1-based day numbers")
    budget_issues: List[str] = Field(default_factory=list)
    logistics_issues: List[str] = Field(default_factory=list)
    feedback: str = ""

    def prompt(self) -> str:
        """Instruction block handed to the day generator."""
        lines = [
            f"--- REFINEMENT REQUIRED (Attempt {self.iteration}) ---",
            "",
            self.feedback,
            "",
            f"Days requiring changes: {', '.join(str(d) for d in self.days_to_refine)}",
            "",
            "INSTRUCTIONS:",
            "1. Fix the issues identified above for the flagged days ONLY.",
            "2. Keep all other days unchanged.",
            "3. Ensure costs are realistic and times are feasible.",
        ]
        return "\n".join(lines)


class ValidationMetadata(CamelModel):
    """Validation summary carried by the ``done`` event."""
    budget_verified: bool
    logistics_verified: bool
    total_iterations: int
    refined_days: List[int] = Field(default_factory=list)
    logs: List[str] = Field(default_factory=list)
