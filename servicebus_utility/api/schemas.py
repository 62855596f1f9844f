"""
Request and response schemas for the Service Bus endpoints.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field


class PublishRequest(BaseModel):
    """Body accepted by the publish endpoints."""

    payload: str = Field(..., description="Message text")
    tags: List[str] = Field(default_factory=list, description="Free-form tags sent with the text")


class PublishResponse(BaseModel):
    """Result of a publish call."""

    success: bool = Field(..., description="Whether the message was handed to the broker")
    message: str = Field(..., description="Response message")


class ErrorResponse(BaseModel):
    """Error body returned by the global exception handlers."""

    success: bool = False
    message: str
    error_type: str
    detail: Optional[Any] = None
