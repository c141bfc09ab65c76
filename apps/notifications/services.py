"""
Notification Services for the IT Support Desk

- NotificationDispatcher: in-app notification rows and their read lifecycle
- queue_ticket_event: after-commit submission of ticket fan-out to Django-Q2
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from django.conf import settings
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone
from django_q.tasks import async_task

from apps.common.constants import DEFAULT_NOTIFICATION_LIMIT, NOTIFICATION_TASK_TIMEOUT_SECONDS

from .models import Notification

logger = logging.getLogger(__name__)

TICKET_EVENT_TASK = "apps.notifications.tasks.dispatch_ticket_event"


class NotificationDispatcher:
    """Creates notifications and manages their read/unread state"""

    def notify(
        self,
        user_id: int,
        notification_type: str,
        title: str,
        message: str,
        ticket_id: int | None = None,
    ) -> Notification:
        notification = Notification.objects.create(
            user_id=user_id,
            ticket_id=ticket_id,
            notification_type=notification_type,
            title=title,
            message=message,
        )
        logger.info(f"✅ [Notifications] {notification_type} -> user {user_id}")
        return notification

    def notify_many(  # noqa: PLR0913
        self,
        user_ids: Iterable[int],
        notification_type: str,
        title: str,
        message: str,
        ticket_id: int | None = None,
    ) -> int:
        """Fan-out to many recipients as one bulk insert"""
        recipients = list(dict.fromkeys(user_ids))
        if not recipients:
            return 0

        created = Notification.objects.bulk_create(
            [
                Notification(
                    user_id=user_id,
                    ticket_id=ticket_id,
                    notification_type=notification_type,
                    title=title,
                    message=message,
                )
                for user_id in recipients
            ]
        )
        logger.info(f"✅ [Notifications] {notification_type} fanned out to {len(created)} recipients")
        return len(created)

    def get_notifications(
        self, user_id: int, unread_only: bool = False, limit: int = DEFAULT_NOTIFICATION_LIMIT
    ) -> QuerySet[Notification]:
        """Most recent first, with the ticket joined for its number"""
        queryset = Notification.objects.select_related("ticket").filter(user_id=user_id)
        if unread_only:
            queryset = queryset.filter(is_read=False)
        return queryset.order_by("-created_at", "-id")[:limit]

    def get_unread(self, user_id: int, limit: int = DEFAULT_NOTIFICATION_LIMIT) -> QuerySet[Notification]:
        return self.get_notifications(user_id, unread_only=True, limit=limit)

    def get_unread_count(self, user_id: int) -> int:
        return Notification.objects.filter(user_id=user_id, is_read=False).count()

    def mark_read(self, notification_id: int, user_id: int) -> bool:
        """
        Mark one of the user's notifications as read.

        Returns False when the notification is already read, missing, or owned
        by someone else; the three cases are indistinguishable to the caller.
        """
        updated = Notification.objects.filter(id=notification_id, user_id=user_id, is_read=False).update(
            is_read=True, read_at=timezone.now()
        )
        return updated > 0

    def mark_all_read(self, user_id: int) -> int:
        """Idempotent - returns how many notifications changed"""
        return Notification.objects.filter(user_id=user_id, is_read=False).update(
            is_read=True, read_at=timezone.now()
        )

    def delete(self, notification_id: int, user_id: int) -> bool:
        deleted, _ = Notification.objects.filter(id=notification_id, user_id=user_id).delete()
        return deleted > 0


def queue_ticket_event(event: str, ticket_id: int, **context: Any) -> None:
    """
    Submit ticket notification fan-out to the task queue once the current
    transaction commits. Nothing is queued if the transaction rolls back.

    Submission failures are logged and swallowed: notifications are best-effort.
    """

    def _submit() -> None:
        try:
            async_task(
                TICKET_EVENT_TASK,
                event,
                ticket_id,
                context,
                timeout=getattr(settings, "TICKET_NOTIFICATION_TASK_TIMEOUT", NOTIFICATION_TASK_TIMEOUT_SECONDS),
            )
            logger.info(f"📨 [Notifications] Queued {event} for ticket {ticket_id}")
        except Exception:
            logger.exception(f"🔥 [Notifications] Could not queue {event} for ticket {ticket_id}")

    transaction.on_commit(_submit)
