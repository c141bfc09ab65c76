"""
Ticket lifecycle service layer.

TicketLifecycleService runs every ticket mutation (create, assign, status
change, comment, rating) as one atomic unit: input validation, row writes,
the per-ticket history entry and the system audit event either all commit
or all roll back. Notifications are scheduled only after a successful commit.

TicketQueryService is the read-only surface used for listings, detail pages
and dashboard statistics.
"""

from __future__ import annotations

import logging
import math
import secrets
import string
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any, TypeVar

from django.core.files.uploadedfile import UploadedFile
from django.db import DatabaseError, OperationalError, transaction
from django.utils import timezone

from apps.audit.services import TicketsAuditService
from apps.common.constants import (
    ASSIGNABLE_STATUSES,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    RATEABLE_STATUSES,
    TICKET_NUMBER_MAX_ATTEMPTS,
    TICKET_NUMBER_PREFIX,
    TICKET_NUMBER_RANDOM_LENGTH,
)
from apps.common.types import AuthorizationError, BusinessError, Err, NotificationScheduler, Ok, Result
from apps.notifications.services import queue_ticket_event
from apps.notifications.tasks import (
    EVENT_TICKET_ASSIGNED,
    EVENT_TICKET_COMMENTED,
    EVENT_TICKET_CREATED,
    EVENT_TICKET_STATUS_CHANGED,
)

from .audit_trail import TicketAuditTrail
from .exceptions import (
    DuplicateRatingError,
    InvalidFileError,
    InvalidRatingError,
    InvalidStatusError,
    NotFoundError,
    OperationTimeoutError,
    StorageError,
    TicketValidationError,
    TooManyFilesError,
)
from .models import Ticket, TicketUpdate
from .ratings import RatingAggregator
from .repository import TicketFilters, TicketStore
from .security import AttachmentValidator, sniff_mime_type
from .serializers import (
    CommentInputSerializer,
    DeviceTypeSerializer,
    RatingInputSerializer,
    TicketCreateSerializer,
    TicketDetailSerializer,
    TicketListSerializer,
    first_error_message,
)
from .storage import AttachmentStorage, DjangoAttachmentStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")

TICKET_NUMBER_ALPHABET = string.digits + string.ascii_uppercase

# Targets accepted by update_status; `pending` is only ever the initial state
STATUS_UPDATE_TARGETS = (
    Ticket.STATUS_ASSIGNED,
    Ticket.STATUS_IN_PROGRESS,
    Ticket.STATUS_RESOLVED,
    Ticket.STATUS_CLOSED,
)

_TIMEOUT_MARKERS = (
    "timeout",
    "timed out",
    "canceling statement",
    "lock wait",
    "database is locked",
)


def is_timeout_error(error: OperationalError) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _TIMEOUT_MARKERS)


def map_database_error(operation: str, error: DatabaseError) -> BusinessError:
    """Log the infrastructure failure in full and return a sanitized domain error"""
    if isinstance(error, OperationalError) and is_timeout_error(error):
        logger.exception(f"🔥 [Tickets] {operation} timed out")
        return OperationTimeoutError()
    logger.exception(f"🔥 [Tickets] {operation} failed with a storage error")
    return StorageError()


def run_atomic(operation: str, func: Callable[[], T]) -> Result[T, BusinessError]:
    """
    Run `func` in one transaction and convert its outcome to a Result.

    Domain errors raised inside roll the transaction back and come back as
    Err(error); database errors are logged and come back sanitized.
    """
    try:
        with transaction.atomic():
            value = func()
    except BusinessError as e:
        logger.warning(f"⚠️ [Tickets] {operation} rejected: {e.message}")
        return Err(e)
    except DatabaseError as e:
        return Err(map_database_error(operation, e))
    return Ok(value)


class TicketLifecycleService:
    """
    🎫 Ticket state machine: pending -> assigned -> in_progress -> resolved -> closed.

    Collaborators are injected so tests can substitute fakes; see
    `get_ticket_lifecycle_service()` for the production wiring.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: TicketStore | None = None,
        trail: TicketAuditTrail | None = None,
        validator: AttachmentValidator | None = None,
        aggregator: RatingAggregator | None = None,
        storage: AttachmentStorage | None = None,
        scheduler: NotificationScheduler | None = None,
        audit: type[TicketsAuditService] | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self.store = store or TicketStore()
        self.trail = trail or TicketAuditTrail()
        self.validator = validator or AttachmentValidator()
        self.aggregator = aggregator or RatingAggregator()
        self.storage = storage or DjangoAttachmentStorage()
        self.scheduler = scheduler or queue_ticket_event
        self.audit = audit or TicketsAuditService
        self.clock = clock

    # ===============================================================================
    # HELPERS
    # ===============================================================================

    def _notify(self, event: str, ticket_id: int, **context: Any) -> None:
        """Hand the event to the scheduler; a failure never fails the operation"""
        try:
            self.scheduler(event, ticket_id, **context)
        except Exception:
            logger.exception(f"🔥 [Tickets] Could not schedule {event} notifications for ticket {ticket_id}")

    def generate_ticket_number(self) -> str:
        """TKT-YYYYMMDD-XXXX with four random base36 characters"""
        date_part = self.clock().strftime("%Y%m%d")
        for _attempt in range(TICKET_NUMBER_MAX_ATTEMPTS):
            random_part = "".join(secrets.choice(TICKET_NUMBER_ALPHABET) for _ in range(TICKET_NUMBER_RANDOM_LENGTH))
            ticket_number = f"{TICKET_NUMBER_PREFIX}-{date_part}-{random_part}"
            if not self.store.ticket_number_exists(ticket_number):
                return ticket_number
        logger.error(f"🔥 [Tickets] No free ticket number after {TICKET_NUMBER_MAX_ATTEMPTS} attempts")
        raise StorageError()

    def _locked_ticket(self, ticket_id: int) -> Ticket:
        ticket = self.store.get_for_update(ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found")
        return ticket

    def _require_user(self, user_id: int) -> None:
        if not self.store.user_exists(user_id):
            raise NotFoundError("User not found")

    # ===============================================================================
    # CREATE
    # ===============================================================================

    def create(
        self,
        employee_id: int,
        data: dict[str, Any],
        attachments: Sequence[UploadedFile] | None = None,
    ) -> Result[dict[str, Any], BusinessError]:
        """
        Submit a new ticket for an employee.

        The department is copied from the employee record at this instant.
        Returns Ok({"ticket_id", "ticket_number"}).
        """
        serializer = TicketCreateSerializer(data=data)
        if not serializer.is_valid():
            error = TicketValidationError(first_error_message(serializer.errors))
            logger.warning(f"⚠️ [Tickets] Ticket creation rejected: {error.message}")
            return Err(error)
        validated = serializer.validated_data

        validation = self.validator.validate(attachments)
        if validation.too_many_files:
            return Err(TooManyFilesError(validation.errors[0]))
        if not validation.is_valid:
            return Err(InvalidFileError(validation.errors))

        def _create() -> Ticket:
            employee = self.store.get_employee(employee_id)
            if employee is None:
                raise NotFoundError("Employee not found")
            device_type = self.store.get_device_type(validated["device_type_id"])
            if device_type is None:
                raise NotFoundError("Device type not found")

            ticket = self.store.insert(
                ticket_number=self.generate_ticket_number(),
                employee=employee,
                department_id=employee.department_id,
                device_type=device_type,
                device_name=validated["device_name"],
                issue_description=validated["issue_description"],
                priority=validated["priority"],
                status=Ticket.STATUS_PENDING,
            )

            for uploaded_file in validation.accepted:
                self.store.add_attachment(
                    ticket,
                    file_name=uploaded_file.name,
                    stored_path=self.storage.save(ticket.id, uploaded_file),
                    mime_type=sniff_mime_type(uploaded_file),
                    size_bytes=uploaded_file.size,
                )

            self.trail.append(ticket, employee.user_id, TicketUpdate.TYPE_COMMENT, "Ticket created")
            self.audit.log_ticket_created(
                ticket,
                employee.user_id,
                {
                    "device_type_id": device_type.id,
                    "device_name": ticket.device_name,
                    "priority": ticket.priority,
                    "department_id": ticket.department_id,
                    "attachments": len(validation.accepted),
                },
            )
            return ticket

        result = run_atomic("Ticket creation", _create)
        if result.is_err():
            return result

        ticket = result.unwrap()
        logger.info(f"✅ [Tickets] Created {ticket.ticket_number} for employee {employee_id}")
        self._notify(EVENT_TICKET_CREATED, ticket.id)
        return Ok({"ticket_id": ticket.id, "ticket_number": ticket.ticket_number})

    # ===============================================================================
    # ASSIGN
    # ===============================================================================

    def assign(self, ticket_id: int, provider_id: int, acting_admin_id: int) -> Result[dict[str, Any], BusinessError]:
        """
        Assign (or re-assign) a provider.

        Allowed while the ticket is pending, assigned or in progress.
        """

        def _assign() -> Ticket:
            ticket = self._locked_ticket(ticket_id)
            if ticket.status not in ASSIGNABLE_STATUSES:
                raise InvalidStatusError(f"A {ticket.status} ticket cannot be reassigned")
            provider = self.store.get_provider(provider_id)
            if provider is None:
                raise NotFoundError("Service provider not found")
            self._require_user(acting_admin_id)

            old_provider_id = ticket.assigned_provider_id
            old_status = ticket.status
            self.store.assign_provider(ticket, provider, self.clock())
            self.trail.append(
                ticket,
                acting_admin_id,
                TicketUpdate.TYPE_ASSIGNMENT,
                "Ticket assigned to service provider",
                old_value=old_status,
                new_value=Ticket.STATUS_ASSIGNED,
            )
            self.audit.log_ticket_assigned(ticket, acting_admin_id, old_provider_id, provider.id)
            return ticket

        result = run_atomic("Ticket assignment", _assign)
        if result.is_err():
            return result

        ticket = result.unwrap()
        logger.info(f"✅ [Tickets] {ticket.ticket_number} assigned to provider {provider_id}")
        self._notify(EVENT_TICKET_ASSIGNED, ticket.id, provider_id=provider_id)
        return Ok({"ticket_id": ticket.id, "status": ticket.status, "provider_id": provider_id})

    # ===============================================================================
    # STATUS
    # ===============================================================================

    def update_status(
        self, ticket_id: int, status: str, acting_user_id: int, comment: str | None = None
    ) -> Result[dict[str, Any], BusinessError]:
        """
        Move an assigned ticket to a new status.

        resolved_at / closed_at are stamped on first entry and never cleared.
        """
        if status not in STATUS_UPDATE_TARGETS:
            logger.warning(f"⚠️ [Tickets] Rejected status {status!r} for ticket {ticket_id}")
            return Err(InvalidStatusError(f"Invalid status: {status}"))
        comment = (comment or "").strip() or None

        def _update() -> tuple[Ticket, str]:
            ticket = self._locked_ticket(ticket_id)
            if ticket.assigned_provider_id is None:
                raise InvalidStatusError("Ticket must be assigned before its status can change")
            self._require_user(acting_user_id)

            old_status = ticket.status
            self.store.update_status(ticket, status, self.clock())
            self.trail.append(
                ticket,
                acting_user_id,
                TicketUpdate.TYPE_STATUS_CHANGE,
                comment or f"Status changed from {old_status} to {status}",
                old_value=old_status,
                new_value=status,
            )
            self.audit.log_status_updated(ticket, acting_user_id, old_status, status)
            return ticket, old_status

        result = run_atomic("Ticket status update", _update)
        if result.is_err():
            return result

        ticket, old_status = result.unwrap()
        logger.info(f"✅ [Tickets] {ticket.ticket_number}: {old_status} -> {status}")
        self._notify(EVENT_TICKET_STATUS_CHANGED, ticket.id, old_status=old_status, new_status=status, comment=comment)
        return Ok({"ticket_id": ticket.id, "old_status": old_status, "status": status})

    # ===============================================================================
    # COMMENT
    # ===============================================================================

    def add_comment(
        self, ticket_id: int, user_id: int, comment: str, notify: bool = False
    ) -> Result[dict[str, Any], BusinessError]:
        """Append a comment; with `notify` the other party hears about it after commit"""
        serializer = CommentInputSerializer(data={"comment": comment})
        if not serializer.is_valid():
            return Err(TicketValidationError(first_error_message(serializer.errors)))
        text = serializer.validated_data["comment"]

        def _comment() -> TicketUpdate:
            ticket = self.store.get(ticket_id)
            if ticket is None:
                raise NotFoundError("Ticket not found")
            self._require_user(user_id)
            return self.trail.append(ticket, user_id, TicketUpdate.TYPE_COMMENT, text)

        result = run_atomic("Ticket comment", _comment)
        if result.is_err():
            return result

        entry = result.unwrap()
        if notify:
            self._notify(EVENT_TICKET_COMMENTED, ticket_id, author_user_id=user_id, comment=text)
        return Ok({"ticket_id": ticket_id, "update_id": entry.id})

    # ===============================================================================
    # RATING
    # ===============================================================================

    def submit_rating(  # noqa: PLR0913
        self,
        ticket_id: int,
        employee_id: int,
        provider_id: int,
        score: Any,
        feedback: str | None = None,
    ) -> Result[dict[str, Any], BusinessError]:
        """
        Rate the provider's work on a resolved or closed ticket.

        The provider aggregate is recomputed in the same transaction.
        """
        serializer = RatingInputSerializer(data={"score": score, "feedback": feedback})
        if not serializer.is_valid():
            logger.warning(f"⚠️ [Tickets] Rejected rating {score!r} for ticket {ticket_id}")
            return Err(InvalidRatingError("Rating must be an integer between 1 and 5"))
        validated = serializer.validated_data

        def _rate() -> dict[str, Any]:
            ticket = self._locked_ticket(ticket_id)
            if ticket.employee_id != employee_id:
                raise AuthorizationError("Only the employee who opened the ticket can rate it")
            if ticket.status not in RATEABLE_STATUSES:
                raise InvalidStatusError("Only resolved or closed tickets can be rated")
            provider = self.store.get_provider(provider_id)
            if provider is None:
                raise NotFoundError("Service provider not found")
            if ticket.assigned_provider_id != provider.id:
                raise TicketValidationError("provider_id: Provider is not assigned to this ticket")
            if self.store.rating_exists(ticket.id):
                raise DuplicateRatingError("This ticket has already been rated")

            rating = self.store.insert_rating(
                ticket,
                employee_id=employee_id,
                provider=provider,
                score=validated["score"],
                feedback=validated.get("feedback"),
            )
            provider = self.aggregator.recompute(provider.id)
            self.audit.log_ticket_rated(ticket, ticket.employee.user_id, provider.id, rating.score)
            return {
                "rating_id": rating.id,
                "rating_average": provider.rating_average,
                "total_ratings": provider.total_ratings,
            }

        return run_atomic("Ticket rating", _rate)


def get_ticket_lifecycle_service() -> TicketLifecycleService:
    """Production wiring: settings-driven policy, default storage, Django-Q2 fan-out"""
    return TicketLifecycleService()


class TicketQueryService:
    """📊 Read-only ticket queries for listings, detail views and dashboards"""

    def __init__(self, store: TicketStore | None = None) -> None:
        self.store = store or TicketStore()

    def list_tickets(
        self,
        filters: TicketFilters | dict[str, Any] | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Result[dict[str, Any], BusinessError]:
        if not isinstance(filters, TicketFilters):
            filters = TicketFilters.from_dict(filters)
        try:
            page = max(1, int(page))
            page_size = max(1, min(int(page_size), MAX_PAGE_SIZE))
        except (TypeError, ValueError):
            return Err(TicketValidationError("page: Page and page size must be whole numbers"))

        try:
            total = self.store.count(filters)
            tickets = self.store.query(filters, limit=page_size, offset=(page - 1) * page_size)
        except DatabaseError as e:
            return Err(map_database_error("Ticket listing", e))

        return Ok(
            {
                "items": TicketListSerializer(tickets, many=True).data,
                "pagination": {
                    "page": page,
                    "page_size": page_size,
                    "total": total,
                    "pages": math.ceil(total / page_size) if total else 0,
                },
            }
        )

    def get_ticket(self, ticket_id: int) -> Result[dict[str, Any], BusinessError]:
        try:
            ticket = self.store.get_by_id(ticket_id)
        except DatabaseError as e:
            return Err(map_database_error("Ticket lookup", e))
        if ticket is None:
            return Err(NotFoundError("Ticket not found"))
        return Ok(TicketDetailSerializer(ticket).data)

    def get_statistics(
        self, filters: TicketFilters | dict[str, Any] | None = None
    ) -> Result[dict[str, Any], BusinessError]:
        """Totals by status and priority, scoped to an employee or provider"""
        if not isinstance(filters, TicketFilters):
            filters = TicketFilters.from_dict(filters)
        try:
            return Ok(self.store.statistics(employee_id=filters.employee_id, provider_id=filters.provider_id))
        except DatabaseError as e:
            return Err(map_database_error("Ticket statistics", e))

    def get_device_types(self) -> list[dict[str, Any]]:
        return list(DeviceTypeSerializer(self.store.get_device_types(), many=True).data)
