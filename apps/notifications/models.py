"""
In-app notification models for the IT Support Desk.
"""

from __future__ import annotations

from typing import ClassVar

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class Notification(models.Model):
    """
    Message addressed to one user, optionally about a ticket.

    The ticket link is a weak reference: deleting a ticket clears it instead
    of being blocked by notifications.
    """

    TYPE_NEW_TICKET = 'new_ticket'
    TYPE_TICKET_ASSIGNED = 'ticket_assigned'
    TYPE_STATUS_CHANGE = 'ticket_status_change'
    TYPE_NEW_COMMENT = 'new_comment'

    TYPE_CHOICES: ClassVar[list[tuple[str, str]]] = [
        (TYPE_NEW_TICKET, _('New Ticket')),
        (TYPE_TICKET_ASSIGNED, _('Ticket Assigned')),
        (TYPE_STATUS_CHANGE, _('Ticket Status Change')),
        (TYPE_NEW_COMMENT, _('New Comment')),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
        verbose_name=_('Recipient'),
    )
    ticket = models.ForeignKey(
        'tickets.Ticket',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notifications',
        verbose_name=_('Ticket'),
    )
    notification_type = models.CharField(max_length=30, choices=TYPE_CHOICES, verbose_name=_('Type'))
    title = models.CharField(max_length=200, verbose_name=_('Title'))
    message = models.TextField(verbose_name=_('Message'))

    is_read = models.BooleanField(default=False, verbose_name=_('Read'))
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_('Created At'))
    read_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Read At'))

    class Meta:
        db_table = 'notifications'
        verbose_name = _('Notification')
        verbose_name_plural = _('Notifications')
        ordering: ClassVar[list[str]] = ['-created_at', '-id']
        indexes: ClassVar[list[models.Index]] = [
            models.Index(fields=['user', 'is_read'], name='idx_notifications_unread'),
            models.Index(fields=['user', '-created_at'], name='idx_notifications_recent'),
        ]

    def __str__(self) -> str:
        return f"{self.title} -> {self.user_id}"
