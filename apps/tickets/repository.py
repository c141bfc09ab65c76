"""
Ticket persistence for the IT Support Desk.

TicketStore is the only place that builds ticket querysets. Every read that
crosses into employee, department, device type or provider rows is a single
joined fetch; collections (attachments, history) come from one prefetch each.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from django.db.models import Count, Prefetch, Q, QuerySet

from apps.common.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from apps.users.models import Employee, ServiceProvider, User

from .models import DeviceType, Ticket, TicketAttachment, TicketRating, TicketUpdate

logger = logging.getLogger(__name__)

_LIST_RELATED = (
    "employee",
    "employee__user",
    "department",
    "device_type",
    "assigned_provider",
)


@dataclass(frozen=True)
class TicketFilters:
    """AND-combined listing filters; empty values are ignored"""

    employee_id: int | None = None
    provider_id: int | None = None
    status: str | None = None
    priority: str | None = None
    search: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TicketFilters:
        data = data or {}
        search = (data.get("search") or "").strip()
        return cls(
            employee_id=data.get("employee_id") or None,
            provider_id=data.get("provider_id") or None,
            status=data.get("status") or None,
            priority=data.get("priority") or None,
            search=search or None,
        )


class TicketStore:
    """CRUD and filtered query access to ticket rows"""

    # ===============================================================================
    # READS
    # ===============================================================================

    def base_queryset(self) -> QuerySet[Ticket]:
        return Ticket.objects.select_related(*_LIST_RELATED)

    def get_by_id(self, ticket_id: int) -> Ticket | None:
        """
        Ticket enriched with attachments, chronological history and rating.

        A ticket without attachments, history or rating yields empty
        collections and `get_rating() is None`.
        """
        return (
            self.base_queryset()
            .select_related("assigned_provider__user", "rating")
            .prefetch_related(
                Prefetch("attachments", queryset=TicketAttachment.objects.order_by("uploaded_at", "id")),
                Prefetch(
                    "updates",
                    queryset=TicketUpdate.objects.select_related(
                        "user", "user__employee_profile", "user__provider_profile"
                    ).order_by("created_at", "id"),
                ),
            )
            .filter(pk=ticket_id)
            .first()
        )

    def get(self, ticket_id: int) -> Ticket | None:
        return self.base_queryset().filter(pk=ticket_id).first()

    def get_for_update(self, ticket_id: int) -> Ticket | None:
        """Lock the ticket row for the rest of the transaction"""
        return (
            Ticket.objects.select_for_update(of=("self",))
            .select_related("employee", "employee__user", "assigned_provider", "assigned_provider__user")
            .filter(pk=ticket_id)
            .first()
        )

    def filtered(self, filters: TicketFilters) -> QuerySet[Ticket]:
        queryset = self.base_queryset()

        if filters.employee_id:
            queryset = queryset.filter(employee_id=filters.employee_id)
        if filters.provider_id:
            queryset = queryset.filter(assigned_provider_id=filters.provider_id)
        if filters.status:
            queryset = queryset.filter(status=filters.status)
        if filters.priority:
            queryset = queryset.filter(priority=filters.priority)
        if filters.search:
            term = filters.search
            queryset = queryset.filter(
                Q(ticket_number__icontains=term)
                | Q(issue_description__icontains=term)
                | Q(employee__first_name__icontains=term)
                | Q(employee__last_name__icontains=term)
            )
        return queryset

    def query(self, filters: TicketFilters, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0) -> list[Ticket]:
        """One page of tickets, most recent first"""
        limit = max(1, min(int(limit), MAX_PAGE_SIZE))
        offset = max(0, int(offset))
        return list(self.filtered(filters).order_by("-created_at", "-id")[offset : offset + limit])

    def count(self, filters: TicketFilters) -> int:
        return self.filtered(filters).count()

    def statistics(self, employee_id: int | None = None, provider_id: int | None = None) -> dict[str, Any]:
        """Totals grouped by status and by priority"""
        queryset = Ticket.objects.all()
        if employee_id:
            queryset = queryset.filter(employee_id=employee_id)
        if provider_id:
            queryset = queryset.filter(assigned_provider_id=provider_id)

        by_status = {
            row["status"]: row["count"]
            for row in queryset.order_by().values("status").annotate(count=Count("id"))
        }
        by_priority = {
            row["priority"]: row["count"]
            for row in queryset.order_by().values("priority").annotate(count=Count("id"))
        }
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_priority": by_priority,
        }

    def ticket_number_exists(self, ticket_number: str) -> bool:
        return Ticket.objects.filter(ticket_number=ticket_number).exists()

    def rating_exists(self, ticket_id: int) -> bool:
        return TicketRating.objects.filter(ticket_id=ticket_id).exists()

    # ===============================================================================
    # REFERENCE LOOKUPS
    # ===============================================================================

    def get_employee(self, employee_id: int) -> Employee | None:
        return Employee.objects.select_related("user", "department").filter(pk=employee_id).first()

    def get_provider(self, provider_id: int) -> ServiceProvider | None:
        return ServiceProvider.objects.select_related("user").filter(pk=provider_id).first()

    def user_exists(self, user_id: int) -> bool:
        return User.objects.filter(pk=user_id, is_active=True).exists()

    def get_device_type(self, device_type_id: int) -> DeviceType | None:
        return DeviceType.objects.filter(pk=device_type_id).first()

    def get_device_types(self) -> QuerySet[DeviceType]:
        return DeviceType.objects.order_by("type_name")

    # ===============================================================================
    # WRITES
    # ===============================================================================

    def insert(self, **fields: Any) -> Ticket:
        ticket = Ticket.objects.create(**fields)
        logger.debug(f"[Ticket Store] Inserted ticket {ticket.pk} ({ticket.ticket_number})")
        return ticket

    def add_attachment(
        self, ticket: Ticket, *, file_name: str, stored_path: str, mime_type: str, size_bytes: int
    ) -> TicketAttachment:
        return TicketAttachment.objects.create(
            ticket=ticket,
            file_name=file_name,
            stored_path=stored_path,
            mime_type=mime_type,
            size_bytes=size_bytes,
        )

    def update_status(self, ticket: Ticket, status: str, now: datetime) -> Ticket:
        """
        Move the ticket to `status`.

        resolved_at and closed_at are stamped on first entry only and never cleared.
        """
        ticket.status = status
        update_fields = ["status", "updated_at"]
        if status == Ticket.STATUS_RESOLVED and ticket.resolved_at is None:
            ticket.resolved_at = now
            update_fields.append("resolved_at")
        elif status == Ticket.STATUS_CLOSED and ticket.closed_at is None:
            ticket.closed_at = now
            update_fields.append("closed_at")
        ticket.save(update_fields=update_fields)
        return ticket

    def assign_provider(self, ticket: Ticket, provider: ServiceProvider, now: datetime) -> Ticket:
        ticket.assigned_provider = provider
        ticket.status = Ticket.STATUS_ASSIGNED
        ticket.assigned_at = now
        ticket.save(update_fields=["assigned_provider", "status", "assigned_at", "updated_at"])
        return ticket

    def insert_rating(
        self, ticket: Ticket, *, employee_id: int, provider: ServiceProvider, score: int, feedback: str | None
    ) -> TicketRating:
        rating = TicketRating.objects.create(
            ticket=ticket,
            employee_id=employee_id,
            provider=provider,
            score=score,
            feedback=feedback,
        )
        logger.debug(f"[Ticket Store] Rated ticket {ticket.ticket_number}: {score}")
        return rating
