"""Email module: Gmail API transport and event-driven training emails.

Note: Routers are imported directly in main.py to avoid circular imports.
"""

from .events import BatchTally, EmailEventService, send_in_batches
from .models import EmailEventKey, EmailEventType
from .schemas import EmailRecipient, SendEmailRequest, SendEmailResponse
from .service import EmailService


__all__ = [
    "BatchTally",
    "EmailEventKey",
    "EmailEventService",
    "EmailEventType",
    "EmailRecipient",
    "EmailService",
    "SendEmailRequest",
    "SendEmailResponse",
    "send_in_batches",
]
