"""
Audit services for the IT Support Desk
Centralized audit logging of ticket lifecycle changes.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.contrib.auth import get_user_model
from django.contrib.contenttypes.models import ContentType
from django.utils import timezone

from .models import AuditEvent

if TYPE_CHECKING:
    from apps.tickets.models import Ticket
    from apps.users.models import User
else:
    User = get_user_model()

logger = logging.getLogger(__name__)


class AuditJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for audit metadata.

    Handles UUIDs, datetimes, Decimals (kept as strings to preserve precision)
    and model instances.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, uuid.UUID):
            return str(obj)
        elif isinstance(obj, datetime):
            return obj.isoformat()
        elif isinstance(obj, Decimal):
            return str(obj)
        elif hasattr(obj, "pk"):  # Django model instance
            return f"{obj.__class__.__name__}(pk={obj.pk})"

        return super().default(obj)


def serialize_metadata(metadata: dict[str, Any] | None) -> dict[str, Any]:
    """Round-trip metadata through AuditJSONEncoder so it is safe for JSONField storage"""
    if not metadata:
        return {}

    try:
        return json.loads(json.dumps(metadata, cls=AuditJSONEncoder, ensure_ascii=False))  # type: ignore[no-any-return]
    except (TypeError, ValueError) as e:
        logger.error(f"🔥 [Audit] Failed to serialize metadata: {e}")
        return {
            "serialization_error": str(e),
            "original_keys": list(metadata.keys()),
            "timestamp": timezone.now().isoformat(),
        }


@dataclass
class AuditContext:
    """Parameter object for audit event context information"""

    user: User | None = None
    user_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    actor_type: str = "user"


@dataclass
class AuditEventData:
    """Parameter object for audit event data"""

    event_type: str
    content_object: Any | None = None  # Any Django model instance
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    description: str = ""


class AuditService:
    """Centralized audit logging service"""

    @staticmethod
    def log_event(event_data: AuditEventData, context: AuditContext | None = None) -> AuditEvent:
        """
        🔐 Log an audit event.

        Runs inside the caller's transaction; failures are logged and re-raised
        so the business operation rolls back with its audit record.
        """
        if context is None:
            context = AuditContext()

        user_id = context.user.pk if context.user is not None else context.user_id

        try:
            if event_data.content_object is not None:
                content_type = ContentType.objects.get_for_model(event_data.content_object)
                object_id = str(event_data.content_object.pk)
            else:
                content_type = ContentType.objects.get_for_model(User)
                object_id = str(user_id or "")

            audit_event = AuditEvent.objects.create(
                user_id=user_id,
                actor_type=context.actor_type,
                action=event_data.event_type,
                category=context.metadata.get("category", "business_operation"),
                severity=context.metadata.get("severity", "low"),
                content_type=content_type,
                object_id=object_id,
                old_values=serialize_metadata(event_data.old_values),
                new_values=serialize_metadata(event_data.new_values),
                description=event_data.description,
                metadata=serialize_metadata(context.metadata),
            )

            logger.info(f"✅ [Audit] {event_data.event_type} event logged for user {user_id or 'System'}")
            return audit_event

        except Exception as e:
            logger.error(f"🔥 [Audit] Failed to log event {event_data.event_type}: {e}")
            raise

    @staticmethod
    def log_simple_event(  # noqa: PLR0913
        event_type: str,
        *,
        user_id: int | None = None,
        content_object: Any | None = None,
        description: str = "",
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        actor_type: str = "user",
    ) -> AuditEvent:
        """🔐 Simplified audit logging helper"""
        event_data = AuditEventData(
            event_type=event_type,
            content_object=content_object,
            description=description,
            old_values=old_values,
            new_values=new_values,
        )
        context = AuditContext(user_id=user_id, actor_type=actor_type, metadata=metadata or {})
        return AuditService.log_event(event_data, context)


class TicketsAuditService:
    """
    🎫 Ticket lifecycle audit helpers.

    One method per lifecycle operation so the recorded values stay uniform.
    """

    @staticmethod
    def log_ticket_created(ticket: Ticket, user_id: int, submitted: dict[str, Any]) -> AuditEvent:
        return AuditService.log_simple_event(
            "ticket_created",
            user_id=user_id,
            content_object=ticket,
            description=f"Ticket {ticket.ticket_number} created",
            new_values=submitted,
        )

    @staticmethod
    def log_ticket_assigned(
        ticket: Ticket, user_id: int, old_provider_id: int | None, new_provider_id: int
    ) -> AuditEvent:
        return AuditService.log_simple_event(
            "ticket_assigned",
            user_id=user_id,
            content_object=ticket,
            description=f"Ticket {ticket.ticket_number} assigned",
            old_values={"provider_id": old_provider_id},
            new_values={"provider_id": new_provider_id},
            actor_type="admin",
        )

    @staticmethod
    def log_status_updated(ticket: Ticket, user_id: int, old_status: str, new_status: str) -> AuditEvent:
        return AuditService.log_simple_event(
            "ticket_status_updated",
            user_id=user_id,
            content_object=ticket,
            description=f"Ticket {ticket.ticket_number}: {old_status} -> {new_status}",
            old_values={"status": old_status},
            new_values={"status": new_status},
        )

    @staticmethod
    def log_ticket_rated(ticket: Ticket, user_id: int, provider_id: int, score: int) -> AuditEvent:
        return AuditService.log_simple_event(
            "ticket_rated",
            user_id=user_id,
            content_object=ticket,
            description=f"Ticket {ticket.ticket_number} rated {score}/5",
            new_values={"provider_id": provider_id, "score": score},
        )
