"""Common Pydantic schemas."""
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Optional

from pydantic import AfterValidator, BaseModel, Field
from pydantic.alias_generators import to_camel

# bcrypt only hashes the first 72 bytes and recent releases refuse longer input
MAX_PASSWORD_BYTES = 72


def _check_password_length(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must not exceed {MAX_PASSWORD_BYTES} bytes")
    return value


Password = Annotated[str, AfterValidator(_check_password_length)]


class BaseSchema(BaseModel):
    """Base schema with common configuration.

    Fields are exposed in camelCase on the wire (``motDePasse``,
    ``accessToken``) and accepted in either form on input.
    """

    model_config = {
        "from_attributes": True,
        "validate_assignment": True,
        "populate_by_name": True,
        "alias_generator": to_camel,
    }


class ErrorResponse(BaseModel):
    """Error response schema."""

    message: str = Field(..., description="Error message")
    error_code: str = Field(..., description="Stable machine-readable error code")
    details: Dict[str, Any] = Field(default_factory=dict, description="Error details")
    timestamp: float = Field(..., description="Epoch seconds")


class MessageResponse(BaseSchema):
    """Plain confirmation message."""

    message: str = Field(..., description="Confirmation message")


class HealthResponse(BaseSchema):
    """Health check response."""

    status: str = Field(..., description="Overall health status")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = Field(..., description="Application version")
    services: Dict[str, str] = Field(
        default_factory=dict,
        description="Service health statuses"
    )
    environment: Optional[str] = Field(None, description="Deployment environment")
