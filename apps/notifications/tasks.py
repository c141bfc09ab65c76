"""
Ticket notification background tasks.

Django-Q2 tasks that fan a committed ticket lifecycle event out to in-app
notifications and emails. Everything here is best-effort: failures are
logged and reported in the task result, never raised back to the queue.
"""

from __future__ import annotations

import logging
from typing import Any

from django.db import DatabaseError

from apps.tickets.models import Ticket
from apps.users.models import ServiceProvider
from apps.users.services import DirectoryService

from .emails import TicketEmailService
from .models import Notification
from .services import NotificationDispatcher

logger = logging.getLogger(__name__)

EVENT_TICKET_CREATED = "ticket_created"
EVENT_TICKET_ASSIGNED = "ticket_assigned"
EVENT_TICKET_STATUS_CHANGED = "ticket_status_changed"
EVENT_TICKET_COMMENTED = "ticket_commented"

STATUS_CHANGE_MESSAGES: dict[str, str] = {
    Ticket.STATUS_ASSIGNED: "Your ticket has been assigned to a service provider",
    Ticket.STATUS_IN_PROGRESS: "Work has started on your ticket",
    Ticket.STATUS_RESOLVED: "Your ticket has been resolved",
    Ticket.STATUS_CLOSED: "Your ticket has been closed",
}


def status_change_message(status: str) -> str:
    """Employee-facing sentence for a status; unknown statuses get a generic one"""
    return STATUS_CHANGE_MESSAGES.get(status, f"Your ticket status has been updated to {status}")


def _load_ticket(ticket_id: int) -> Ticket | None:
    return (
        Ticket.objects.select_related(
            "employee__user",
            "device_type",
            "assigned_provider__user",
        )
        .filter(pk=ticket_id)
        .first()
    )


class TicketEventFanout:
    """Turns one lifecycle event into notifications and emails"""

    def __init__(
        self,
        dispatcher: NotificationDispatcher | None = None,
        emails: TicketEmailService | None = None,
        directory: DirectoryService | None = None,
    ) -> None:
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.emails = emails or TicketEmailService()
        self.directory = directory or DirectoryService()
        self.notifications = 0
        self.emails_sent = 0

    def _email(self, sent: bool) -> None:
        if sent:
            self.emails_sent += 1

    def ticket_created(self, ticket: Ticket, context: dict[str, Any]) -> None:
        self.notifications += self.dispatcher.notify_many(
            self.directory.get_active_admin_ids(),
            Notification.TYPE_NEW_TICKET,
            "New Ticket Submitted",
            f"A new ticket #{ticket.ticket_number} has been submitted and requires assignment",
            ticket_id=ticket.id,
        )
        employee = ticket.employee
        self._email(
            self.emails.send_ticket_created(
                ticket_number=ticket.ticket_number,
                employee_email=employee.user.email,
                employee_name=employee.full_name,
                device_type=ticket.device_type.type_name,
                priority=ticket.priority,
            )
        )

    def ticket_assigned(self, ticket: Ticket, context: dict[str, Any]) -> None:
        """Notify the provider named by the event, not whoever holds the ticket now"""
        provider = ticket.assigned_provider
        provider_id = context.get("provider_id")
        if provider_id is not None and provider_id != ticket.assigned_provider_id:
            provider = ServiceProvider.objects.select_related("user").filter(pk=provider_id).first()
        employee = ticket.employee
        if provider is None:
            logger.warning(f"⚠️ [Notifications] Ticket {ticket.ticket_number} has no provider, skipping assignment")
            return

        self.dispatcher.notify(
            provider.user_id,
            Notification.TYPE_TICKET_ASSIGNED,
            "New Ticket Assigned",
            f"You have been assigned to ticket #{ticket.ticket_number}",
            ticket_id=ticket.id,
        )
        self.dispatcher.notify(
            employee.user_id,
            Notification.TYPE_STATUS_CHANGE,
            "Ticket Status Updated",
            f"Ticket #{ticket.ticket_number}: {status_change_message(Ticket.STATUS_ASSIGNED)}",
            ticket_id=ticket.id,
        )
        self.notifications += 2

        self._email(
            self.emails.send_ticket_assigned(
                ticket_number=ticket.ticket_number,
                employee_email=employee.user.email,
                employee_name=employee.full_name,
                provider_name=provider.provider_name,
            )
        )
        self._email(
            self.emails.send_provider_new_ticket(
                ticket_number=ticket.ticket_number,
                provider_email=provider.user.email,
                provider_name=provider.provider_name,
                employee_name=employee.full_name,
                device_type=ticket.device_type.type_name,
                priority=ticket.priority,
            )
        )

    def ticket_status_changed(self, ticket: Ticket, context: dict[str, Any]) -> None:
        new_status = context.get("new_status", ticket.status)
        employee = ticket.employee
        self.dispatcher.notify(
            employee.user_id,
            Notification.TYPE_STATUS_CHANGE,
            "Ticket Status Updated",
            f"Ticket #{ticket.ticket_number}: {status_change_message(new_status)}",
            ticket_id=ticket.id,
        )
        self.notifications += 1

        self._email(
            self.emails.send_status_changed(
                ticket_number=ticket.ticket_number,
                employee_email=employee.user.email,
                employee_name=employee.full_name,
                old_status=context.get("old_status", ""),
                new_status=new_status,
                comment=context.get("comment"),
            )
        )

    def ticket_commented(self, ticket: Ticket, context: dict[str, Any]) -> None:
        """Notify the other party: employee <-> assigned provider"""
        author_id = context.get("author_user_id")
        employee = ticket.employee
        provider = ticket.assigned_provider

        if author_id == employee.user_id:
            if provider is None:
                logger.info(f"ℹ️ [Notifications] No provider on {ticket.ticket_number}, comment not fanned out")
                return
            recipient_user = provider.user
            recipient_name = provider.provider_name
            commenter_name = employee.full_name
        else:
            recipient_user = employee.user
            recipient_name = employee.full_name
            commenter_name = provider.provider_name if provider is not None else "IT Support"

        self.dispatcher.notify(
            recipient_user.id,
            Notification.TYPE_NEW_COMMENT,
            "New Comment",
            f"New comment on ticket #{ticket.ticket_number}",
            ticket_id=ticket.id,
        )
        self.notifications += 1

        self._email(
            self.emails.send_new_comment(
                ticket_number=ticket.ticket_number,
                recipient_email=recipient_user.email,
                recipient_name=recipient_name,
                commenter_name=commenter_name,
                comment=context.get("comment", ""),
            )
        )


EVENT_HANDLERS = {
    EVENT_TICKET_CREATED: TicketEventFanout.ticket_created,
    EVENT_TICKET_ASSIGNED: TicketEventFanout.ticket_assigned,
    EVENT_TICKET_STATUS_CHANGED: TicketEventFanout.ticket_status_changed,
    EVENT_TICKET_COMMENTED: TicketEventFanout.ticket_commented,
}


def dispatch_ticket_event(event: str, ticket_id: int, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Fan a committed ticket event out to its recipients.

    Returns:
        Dictionary with the outcome, suitable for the Django-Q2 result store
    """
    logger.info(f"🔄 [Notifications] Dispatching {event} for ticket {ticket_id}")

    handler = EVENT_HANDLERS.get(event)
    if handler is None:
        logger.error(f"🔥 [Notifications] Unknown ticket event: {event}")
        return {"success": False, "event": event, "error": "unknown_event"}

    fanout = TicketEventFanout()
    try:
        ticket = _load_ticket(ticket_id)
        if ticket is None:
            logger.warning(f"⚠️ [Notifications] Ticket {ticket_id} no longer exists, skipping {event}")
            return {"success": False, "event": event, "error": "ticket_not_found"}

        handler(fanout, ticket, context or {})
    except DatabaseError as e:
        logger.exception(f"🔥 [Notifications] Failed to dispatch {event} for ticket {ticket_id}: {e}")
        return {
            "success": False,
            "event": event,
            "error": "storage_error",
            "notifications": fanout.notifications,
            "emails": fanout.emails_sent,
        }

    logger.info(
        f"✅ [Notifications] {event} for ticket {ticket_id}: "
        f"{fanout.notifications} notifications, {fanout.emails_sent} emails"
    )
    return {
        "success": True,
        "event": event,
        "notifications": fanout.notifications,
        "emails": fanout.emails_sent,
    }
