"""
Pydantic schemas for gateway responses.
"""

from pydantic import BaseModel, Field


OBJECT_ID_PATTERN = r"^[A-Za-z0-9_]{1,32}$"


class MessageResponse(BaseModel):
    """Body of upload confirmations and of every error response."""

    message: str = Field(..., description="Human-readable outcome")


class StatusResponse(BaseModel):
    """Body of the liveness and readiness probes."""

    status: str = Field(..., description="'ok', 'ready' or 'unavailable'")


class ErrorResponse(BaseModel):
    """Body of every error response."""

    message: str = Field(..., description="Human-readable error message")
    code: int = Field(..., description="HTTP status code of the response")
