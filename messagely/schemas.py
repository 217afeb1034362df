"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data
- Response models for API responses

Request fields are optional on purpose: blank or missing values are
rejected by the user directory and message ledger with a 400.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# Pydantic Request Models
# =============================================================================

class RegisterRequest(BaseModel):
    """Body of POST /register."""
    username: Optional[str] = Field(None, description="Unique username")
    password: Optional[str] = Field(None, description="Plaintext password")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    phone: Optional[str] = Field(None, description="Phone number")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "username": "alice",
                    "password": "Secret1",
                    "first_name": "Alice",
                    "last_name": "Anderson",
                    "phone": "555-1000",
                }
            ]
        }
    }


class LoginRequest(BaseModel):
    """Body of POST /login."""
    username: Optional[str] = None
    password: Optional[str] = None


class MessageCreateRequest(BaseModel):
    """Body of POST /messages. The sender is always the caller."""
    to_username: Optional[str] = Field(None, description="Recipient username")
    body: Optional[str] = Field(None, max_length=4096, description="Message text")


# =============================================================================
# Pydantic Response Models
# =============================================================================

class TokenResponse(BaseModel):
    token: str = Field(..., description="Bearer token")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class UserProfile(BaseModel):
    """Public view of a user, also used for message counterparties."""
    username: str
    first_name: str
    last_name: str
    phone: str


class UserDetail(UserProfile):
    joined_at: datetime
    last_login_at: datetime


class UsersListResponse(BaseModel):
    users: list[UserProfile] = Field(default_factory=list)


class UserResponse(BaseModel):
    user: UserDetail


class SentMessage(BaseModel):
    """Item of GET /users/{username}/from."""
    id: int
    to_user: UserProfile
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None


class ReceivedMessage(BaseModel):
    """Item of GET /users/{username}/to."""
    id: int
    from_user: UserProfile
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None


class SentMessagesResponse(BaseModel):
    messages: list[SentMessage] = Field(default_factory=list)


class ReceivedMessagesResponse(BaseModel):
    messages: list[ReceivedMessage] = Field(default_factory=list)


class NewMessage(BaseModel):
    id: int
    from_username: str
    to_username: str
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None


class NewMessageResponse(BaseModel):
    message: NewMessage


class MessageDetail(BaseModel):
    """A message with both parties expanded."""
    id: int
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None
    from_user: UserProfile
    to_user: UserProfile


class MessageDetailResponse(BaseModel):
    message: MessageDetail


class ReadReceipt(BaseModel):
    id: int
    read_at: datetime


class ReadReceiptResponse(BaseModel):
    message: ReadReceipt


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
