"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation and sanitizing
- Response models for API responses
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from chatroom.models import MessageKind
from chatroom.utils import clean_text


# =============================================================================
# Pydantic Request Models
# =============================================================================

class ParticipantCreate(BaseModel):
    """
    Body of POST /participants.

    The name is sanitized before use; a name that is empty once markup
    and whitespace are removed is rejected.
    """
    name: str = Field(..., min_length=1, max_length=100, description="Display name")

    @field_validator("name")
    @classmethod
    def sanitize_name(cls, v: str) -> str:
        cleaned = clean_text(v)
        if not cleaned:
            raise ValueError("name must not be empty")
        return cleaned

    model_config = {
        "json_schema_extra": {"examples": [{"name": "Ana"}]}
    }


class MessageCreate(BaseModel):
    """
    Body of POST /messages and PUT /messages/{id}.

    Validates:
    - to, text: non-empty after sanitizing, text at most 4096 characters
    - kind: "message" or "private_message" ("type" is accepted as an alias);
      status events are created by the server only
    """
    to: str = Field(..., min_length=1, max_length=100, description="Recipient name or broadcast target")
    text: str = Field(..., min_length=1, max_length=4096, description="Message content")
    kind: MessageKind = Field(
        ...,
        validation_alias=AliasChoices("kind", "type"),
        description="message or private_message",
    )

    @field_validator("to", "text")
    @classmethod
    def sanitize(cls, v: str, info) -> str:
        cleaned = clean_text(v)
        if not cleaned:
            raise ValueError(f"{info.field_name} must not be empty")
        return cleaned

    @field_validator("kind")
    @classmethod
    def reject_status(cls, v: MessageKind) -> MessageKind:
        if v == MessageKind.STATUS:
            raise ValueError("kind must be 'message' or 'private_message'")
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"to": "Todos", "text": "hi", "kind": "message"}
            ]
        }
    }


# =============================================================================
# Pydantic Response Models
# =============================================================================

class StatusResponse(BaseModel):
    status: str = Field(default="ok", description="Operation status")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class ParticipantResponse(BaseModel):
    name: str = Field(..., description="Participant name")
    last_seen: int = Field(
        ...,
        serialization_alias="lastSeen",
        description="Last heartbeat, ms since epoch",
    )

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
    }


class MessageResponse(BaseModel):
    """
    A single chat message.
    Maps database fields to API response format.
    """
    id: str = Field(..., description="Unique message identifier")
    from_name: str = Field(
        ...,
        alias="from",
        serialization_alias="from",
        description="Sender name"
    )
    to_name: str = Field(
        ...,
        alias="to",
        serialization_alias="to",
        description="Recipient name or broadcast target"
    )
    text: str = Field(..., description="Message content")
    kind: MessageKind = Field(..., description="message, private_message or status")
    time: str = Field(..., description="Creation time, HH:MM:SS")

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,  # Allow creating from ORM objects
    }


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
