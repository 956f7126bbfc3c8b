"""Error envelope returned by the API."""

from enum import Enum

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    API_ERROR = "API_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    NOT_FOUND = "NOT_FOUND"


class AppError(BaseModel):
    """Error details attached to unsuccessful responses."""

    code: ErrorCode = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Technical error message")
    user_message: str = Field(..., description="Message safe to show to users")
