"""
Ticket email notifications.

Templated HTML + plain-text emails sent through Django's mail transport.
Delivery is best-effort: failures are logged and reported as False, never raised.
"""

from __future__ import annotations

import logging
import smtplib
from typing import Any

from django.conf import settings
from django.core.mail import EmailMultiAlternatives, get_connection
from django.template import TemplateDoesNotExist, TemplateSyntaxError
from django.template.loader import render_to_string
from django.utils import timezone
from django.utils.html import strip_tags

from apps.common.constants import EMAIL_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

STATUS_HEADLINES: dict[str, str] = {
    "in_progress": "🔄 Work has started on your ticket.",
    "resolved": "✅ Your issue has been resolved!",
    "closed": "📋 Your ticket has been closed.",
}

PRIORITY_COLORS: dict[str, str] = {
    "low": "#3b82f6",
    "medium": "#f59e0b",
    "high": "#ef4444",
    "critical": "#dc2626",
}


def humanize_status(status: str) -> str:
    return status.replace("_", " ").capitalize()


class TicketEmailService:
    """📧 Ticket lifecycle emails"""

    def __init__(self, enabled: bool | None = None, from_email: str | None = None) -> None:
        self.enabled = (
            getattr(settings, "TICKET_EMAIL_NOTIFICATIONS_ENABLED", False) if enabled is None else enabled
        )
        self.from_email = from_email or settings.DEFAULT_FROM_EMAIL
        self.brand_name = getattr(settings, "TICKET_EMAIL_BRAND_NAME", "IT Support")

    def send(self, to_email: str, subject: str, template_name: str, context: dict[str, Any]) -> bool:
        """Render `template_name` and deliver it to one recipient"""
        if not self.enabled:
            logger.info(f"📧 [Email] Notifications disabled, skipping '{subject}' to {to_email}")
            return True

        if not to_email:
            logger.warning(f"⚠️ [Email] No recipient address for '{subject}'")
            return False

        try:
            html_body = render_to_string(
                template_name,
                {
                    **context,
                    "subject": subject,
                    "brand_name": self.brand_name,
                    "year": timezone.now().year,
                },
            )
            connection = get_connection(timeout=getattr(settings, "EMAIL_TIMEOUT", None) or EMAIL_TIMEOUT_SECONDS)
            message = EmailMultiAlternatives(
                subject=subject,
                body=strip_tags(html_body),
                from_email=self.from_email,
                to=[to_email],
                connection=connection,
            )
            message.attach_alternative(html_body, "text/html")
            message.send()
        except (TemplateDoesNotExist, TemplateSyntaxError, smtplib.SMTPException, OSError) as e:
            logger.error(f"🔥 [Email] Failed to send '{subject}' to {to_email}: {e}")
            return False

        logger.info(f"✅ [Email] Sent '{subject}' to {to_email}")
        return True

    def send_ticket_created(
        self, *, ticket_number: str, employee_email: str, employee_name: str, device_type: str, priority: str
    ) -> bool:
        return self.send(
            employee_email,
            f"Ticket Created - #{ticket_number}",
            "notifications/emails/ticket_created.html",
            {
                "ticket_number": ticket_number,
                "employee_name": employee_name,
                "device_type": device_type,
                "priority": priority.capitalize(),
            },
        )

    def send_ticket_assigned(
        self, *, ticket_number: str, employee_email: str, employee_name: str, provider_name: str
    ) -> bool:
        return self.send(
            employee_email,
            f"Ticket Assigned - #{ticket_number}",
            "notifications/emails/ticket_assigned.html",
            {
                "ticket_number": ticket_number,
                "employee_name": employee_name,
                "provider_name": provider_name,
            },
        )

    def send_provider_new_ticket(  # noqa: PLR0913
        self,
        *,
        ticket_number: str,
        provider_email: str,
        provider_name: str,
        employee_name: str,
        device_type: str,
        priority: str,
    ) -> bool:
        return self.send(
            provider_email,
            f"New Ticket Assigned - #{ticket_number}",
            "notifications/emails/provider_new_ticket.html",
            {
                "ticket_number": ticket_number,
                "provider_name": provider_name,
                "employee_name": employee_name,
                "device_type": device_type,
                "priority": priority.upper(),
                "priority_color": PRIORITY_COLORS.get(priority, "#666"),
            },
        )

    def send_status_changed(  # noqa: PLR0913
        self,
        *,
        ticket_number: str,
        employee_email: str,
        employee_name: str,
        old_status: str,
        new_status: str,
        comment: str | None = None,
    ) -> bool:
        return self.send(
            employee_email,
            f"Ticket Updated - #{ticket_number}",
            "notifications/emails/status_changed.html",
            {
                "ticket_number": ticket_number,
                "employee_name": employee_name,
                "headline": STATUS_HEADLINES.get(new_status, "Your ticket status has been updated."),
                "old_status": humanize_status(old_status),
                "new_status": humanize_status(new_status),
                "comment": comment,
                "ask_for_rating": new_status == "resolved",
            },
        )

    def send_new_comment(
        self, *, ticket_number: str, recipient_email: str, recipient_name: str, commenter_name: str, comment: str
    ) -> bool:
        return self.send(
            recipient_email,
            f"New Comment on Ticket #{ticket_number}",
            "notifications/emails/new_comment.html",
            {
                "ticket_number": ticket_number,
                "recipient_name": recipient_name,
                "commenter_name": commenter_name,
                "comment": comment,
            },
        )
