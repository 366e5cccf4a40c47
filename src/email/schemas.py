"""Pydantic schemas for the email system.

Request/Response models for:
- Sending emails
- Email event configuration (which automated emails are enabled)
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class EmailRecipient(BaseModel):
    """Email recipient with optional name."""

    email: EmailStr = Field(..., description="Recipient email address")
    name: str | None = Field(None, description="Recipient display name")


class SendEmailRequest(BaseModel):
    """Request to send an email."""

    to: list[EmailRecipient] = Field(
        ..., min_length=1, max_length=50, description="Recipients (max 50)"
    )
    subject: str = Field(..., min_length=1, max_length=998, description="Email subject")
    body_html: str = Field(..., min_length=1, description="HTML body content")
    body_text: str | None = Field(None, description="Plain text body (fallback)")
    reply_to: EmailStr | None = Field(None, description="Reply-to address")


class SendEmailResponse(BaseModel):
    """Outcome of a single send."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(..., description="Whether the email was sent successfully")
    message_id: str | None = Field(None, description="Gmail message ID")
    thread_id: str | None = Field(None, description="Gmail thread ID")
    error: str | None = Field(None, description="Error message if failed")


class EmailStatusResponse(BaseModel):
    enabled: bool = Field(..., description="Whether email service is enabled")
    configured: bool = Field(..., description="Whether email service is configured")
    sender_address: str | None = Field(None, description="Configured sender address")


# ==============================================================================
# Event Configuration
# ==============================================================================


class EmailEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_key: str
    name: str
    description: str | None = None
    subject: str | None = None
    is_active: bool
    updated_at: datetime | None = None


class UpdateEmailEventRequest(BaseModel):
    """Partial update of an email event; omitted fields are kept."""

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=1000)
    subject: str | None = Field(None, min_length=1, max_length=998)
    is_active: bool | None = None
