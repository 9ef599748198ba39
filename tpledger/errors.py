"""
errors.py — exception types and the standard HTTP error envelope.

Exceptions:
  - ThinCapInputError        computation impossible (missing financials, unparseable AY)
  - ProjectionParameterError caller misuse of the projection / simulation API

Both subclass ValueError so main.py's ValueError handler surfaces them as
422 VALIDATION_ERROR without route-level try/except.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ThinCapInputError(ValueError):
    """Input makes a Section 94B computation impossible (not a soft validation issue)."""

    def __init__(self, message: str, field: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.field = field
        self.code = code


class ProjectionParameterError(ValueError):
    """Projection or simulation called with parameters that have no sensible default."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


# ---------------------------------------------------------------------------
# Error response models: used by main.py exception handlers (cross-cutting)
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single field-level validation error."""
    model_config = ConfigDict(extra="forbid")

    field: Optional[str] = None   # Dot-notation field path, e.g. "financials.depreciation"
    issue: str                     # Human-readable description of the problem


class ErrorBody(BaseModel):
    """Error envelope body."""
    model_config = ConfigDict(extra="forbid")

    code: str                                      # VALIDATION_ERROR, NOT_FOUND, etc.
    message: str                                   # High-level error description
    details: List[ErrorDetail] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """
    Standard error response format for all tpledger endpoints.

    Structure: {"error": {"code": "...", "message": "...", "details": [...]}}
    """
    model_config = ConfigDict(extra="forbid")

    error: ErrorBody


__all__ = [
    "ThinCapInputError",
    "ProjectionParameterError",
    "ErrorDetail",
    "ErrorBody",
    "ErrorResponse",
]
