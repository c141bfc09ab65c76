"""
Per-ticket history (the `ticket_updates` table).

Entries are written inside the lifecycle transaction; a failed write
propagates and rolls the whole operation back.
"""

from __future__ import annotations

import logging

from .models import Ticket, TicketUpdate

logger = logging.getLogger(__name__)


class TicketAuditTrail:
    """Append-only ticket history"""

    def append(  # noqa: PLR0913
        self,
        ticket: Ticket,
        user_id: int,
        update_type: str,
        message: str,
        old_value: str | None = None,
        new_value: str | None = None,
    ) -> TicketUpdate:
        if update_type not in dict(TicketUpdate.UPDATE_TYPE_CHOICES):
            raise ValueError(f"Unknown ticket update type: {update_type}")

        entry = TicketUpdate.objects.create(
            ticket=ticket,
            user_id=user_id,
            update_type=update_type,
            message=message,
            old_value=old_value,
            new_value=new_value,
        )
        logger.debug(f"[Ticket Trail] {update_type} appended to {ticket.ticket_number}")
        return entry
