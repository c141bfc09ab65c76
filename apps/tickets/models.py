"""
Support ticket models for the IT Support Desk
Employee-raised IT requests, their attachments, history and ratings.
"""

from typing import Any, ClassVar

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.common.constants import RATING_MAX_SCORE, RATING_MIN_SCORE


class DeviceType(models.Model):
    """Kind of device a ticket is raised about (laptop, printer, ...)"""

    type_name = models.CharField(max_length=100, unique=True, verbose_name=_('Device Type'))
    description = models.TextField(blank=True, verbose_name=_('Description'))

    class Meta:
        db_table = 'device_types'
        verbose_name = _('Device Type')
        verbose_name_plural = _('Device Types')
        ordering: ClassVar[list[str]] = ['type_name']

    def __str__(self) -> str:
        return self.type_name


class Ticket(models.Model):
    """IT support request"""

    STATUS_PENDING = 'pending'
    STATUS_ASSIGNED = 'assigned'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_RESOLVED = 'resolved'
    STATUS_CLOSED = 'closed'

    STATUS_CHOICES: ClassVar[list[tuple[str, Any]]] = [
        (STATUS_PENDING, _('Pending')),
        (STATUS_ASSIGNED, _('Assigned')),
        (STATUS_IN_PROGRESS, _('In Progress')),
        (STATUS_RESOLVED, _('Resolved')),
        (STATUS_CLOSED, _('Closed')),
    ]

    PRIORITY_CHOICES: ClassVar[list[tuple[str, Any]]] = [
        ('low', _('Low')),
        ('medium', _('Medium')),
        ('high', _('High')),
        ('critical', _('Critical')),
    ]

    # Ticket identification
    ticket_number = models.CharField(
        max_length=20,
        unique=True,
        verbose_name=_('Ticket Number')
    )

    # Requester
    employee = models.ForeignKey(
        'users.Employee',
        on_delete=models.PROTECT,
        related_name='tickets',
        verbose_name=_('Employee')
    )
    # Copy of the employee's department when the ticket was opened
    department = models.ForeignKey(
        'users.Department',
        on_delete=models.PROTECT,
        related_name='tickets',
        verbose_name=_('Department')
    )

    # Issue
    device_type = models.ForeignKey(
        DeviceType,
        on_delete=models.PROTECT,
        related_name='tickets',
        verbose_name=_('Device Type')
    )
    device_name = models.CharField(max_length=200, verbose_name=_('Device Name'))
    issue_description = models.TextField(verbose_name=_('Issue Description'))

    priority = models.CharField(
        max_length=20,
        choices=PRIORITY_CHOICES,
        default='medium',
        verbose_name=_('Priority')
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        verbose_name=_('Status')
    )

    # Assignment
    assigned_provider = models.ForeignKey(
        'users.ServiceProvider',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='assigned_tickets',
        verbose_name=_('Assigned Provider')
    )

    # Lifecycle timestamps
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_('Created At'))
    assigned_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Assigned At'))
    resolved_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Resolved At'))
    closed_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Closed At'))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_('Updated At'))

    class Meta:
        db_table = 'tickets'
        verbose_name = _('Support Ticket')
        verbose_name_plural = _('Support Tickets')
        ordering: ClassVar[list[str]] = ['-created_at']
        indexes: ClassVar[list[models.Index]] = [
            models.Index(fields=['employee', 'status'], name='idx_tickets_employee_status'),
            models.Index(fields=['assigned_provider', 'status'], name='idx_tickets_provider_status'),
            models.Index(fields=['status', 'priority'], name='idx_tickets_status_priority'),
            models.Index(fields=['created_at'], name='idx_tickets_created'),
        ]

    def __str__(self) -> str:
        return f"#{self.ticket_number}: {self.device_name}"

    @classmethod
    def valid_priorities(cls) -> set[str]:
        return {value for value, _label in cls.PRIORITY_CHOICES}

    def get_rating(self) -> 'TicketRating | None':
        """Rating for this ticket or None - never raises"""
        try:
            return self.rating
        except TicketRating.DoesNotExist:
            return None


class TicketAttachment(models.Model):
    """File attached when the ticket was opened - immutable afterwards"""

    ticket = models.ForeignKey(
        Ticket,
        on_delete=models.CASCADE,
        related_name='attachments',
        verbose_name=_('Ticket')
    )
    file_name = models.CharField(max_length=255, verbose_name=_('Filename'))
    stored_path = models.CharField(max_length=500, verbose_name=_('Stored Path'))
    mime_type = models.CharField(max_length=100, verbose_name=_('Content Type'))
    size_bytes = models.PositiveIntegerField(verbose_name=_('File Size'))
    uploaded_at = models.DateTimeField(auto_now_add=True, verbose_name=_('Uploaded At'))

    class Meta:
        db_table = 'ticket_attachments'
        verbose_name = _('Ticket Attachment')
        verbose_name_plural = _('Ticket Attachments')
        ordering: ClassVar[list[str]] = ['uploaded_at', 'id']

    def __str__(self) -> str:
        return f"{self.file_name} - {self.ticket.ticket_number}"

    def get_file_size_display(self) -> str:
        """Human readable file size"""
        size: float = float(self.size_bytes)
        for unit in ['B', 'KB', 'MB', 'GB']:
            if size < 1024.0:
                return f"{size:.1f} {unit}"
            size /= 1024.0
        return f"{size:.1f} TB"


class TicketUpdate(models.Model):
    """Append-only history entry for a ticket"""

    TYPE_COMMENT = 'comment'
    TYPE_ASSIGNMENT = 'assignment'
    TYPE_STATUS_CHANGE = 'status_change'

    UPDATE_TYPE_CHOICES: ClassVar[list[tuple[str, Any]]] = [
        (TYPE_COMMENT, _('Comment')),
        (TYPE_ASSIGNMENT, _('Assignment')),
        (TYPE_STATUS_CHANGE, _('Status Change')),
    ]

    ticket = models.ForeignKey(
        Ticket,
        on_delete=models.CASCADE,
        related_name='updates',
        verbose_name=_('Ticket')
    )
    user = models.ForeignKey(
        'users.User',
        on_delete=models.PROTECT,
        related_name='ticket_updates',
        verbose_name=_('Author')
    )
    update_type = models.CharField(
        max_length=20,
        choices=UPDATE_TYPE_CHOICES,
        verbose_name=_('Update Type')
    )
    message = models.TextField(verbose_name=_('Message'))
    old_value = models.CharField(max_length=50, null=True, blank=True, verbose_name=_('Old Value'))
    new_value = models.CharField(max_length=50, null=True, blank=True, verbose_name=_('New Value'))
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_('Created At'))

    class Meta:
        db_table = 'ticket_updates'
        verbose_name = _('Ticket Update')
        verbose_name_plural = _('Ticket Updates')
        # id breaks ties between entries written in the same instant
        ordering: ClassVar[list[str]] = ['created_at', 'id']
        indexes: ClassVar[list[models.Index]] = [
            models.Index(fields=['ticket', 'created_at'], name='idx_ticket_updates_ticket'),
        ]

    def __str__(self) -> str:
        return f"{self.get_update_type_display()} on {self.ticket.ticket_number}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.pk is not None:
            raise ValueError("Ticket updates are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args: Any, **kwargs: Any) -> tuple[int, dict[str, int]]:
        raise ValueError("Ticket updates are append-only")


class TicketRating(models.Model):
    """Employee's rating of the provider's work on a ticket - one per ticket"""

    ticket = models.OneToOneField(
        Ticket,
        on_delete=models.CASCADE,
        related_name='rating',
        verbose_name=_('Ticket')
    )
    employee = models.ForeignKey(
        'users.Employee',
        on_delete=models.PROTECT,
        related_name='ratings_given',
        verbose_name=_('Employee')
    )
    provider = models.ForeignKey(
        'users.ServiceProvider',
        on_delete=models.PROTECT,
        related_name='ratings',
        verbose_name=_('Provider')
    )
    score = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(RATING_MIN_SCORE), MaxValueValidator(RATING_MAX_SCORE)],
        verbose_name=_('Rating (1-5)')
    )
    feedback = models.TextField(null=True, blank=True, verbose_name=_('Feedback'))
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_('Created At'))

    class Meta:
        db_table = 'ticket_ratings'
        verbose_name = _('Ticket Rating')
        verbose_name_plural = _('Ticket Ratings')
        ordering: ClassVar[list[str]] = ['-created_at']
        indexes: ClassVar[list[models.Index]] = [
            models.Index(fields=['provider'], name='idx_ticket_ratings_provider'),
        ]

    def __str__(self) -> str:
        return f"{self.score}/5 for {self.ticket.ticket_number}"
