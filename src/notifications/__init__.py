"""Notifications module for user notifications.

Provides:
- In-app notifications for new lessons, assignments and certificates
- Notification listing and pagination
- Mark as read functionality
- Unread count tracking

Note: Router is imported directly in main.py to avoid circular imports.
"""

from src.notifications.models import (
    NOTIFICATIONS_TABLES_CQL,
    Notification,
    NotificationType,
)
from src.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
)
from src.notifications.service import NotificationService


__all__ = [
    "NOTIFICATIONS_TABLES_CQL",
    "Notification",
    "NotificationListResponse",
    "NotificationResponse",
    "NotificationService",
    "NotificationType",
]
