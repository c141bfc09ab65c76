"""
Audit models for tracking system changes.
"""

from __future__ import annotations

import uuid
from typing import Any, ClassVar

from django.conf import settings
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.db import models


class AuditEvent(models.Model):
    """Immutable audit log for all system changes."""

    CATEGORY_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        ("business_operation", "Business Operation"),
        ("account_management", "Account Management"),
        ("system_admin", "System Administration"),
        ("security_event", "Security Event"),
    )

    SEVERITY_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        ("low", "Low"),
        ("medium", "Medium"),
        ("high", "High"),
        ("critical", "Critical"),
    )

    ACTION_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        ("create", "Create"),
        ("update", "Update"),
        ("delete", "Delete"),
        # ======================================================================
        # SUPPORT TICKET EVENTS
        # ======================================================================
        ("ticket_created", "Ticket Created"),
        ("ticket_assigned", "Ticket Assigned"),
        ("ticket_status_updated", "Ticket Status Updated"),
        ("ticket_rated", "Ticket Rated"),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    # Actor
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_events",
    )
    actor_type = models.CharField(max_length=20, default="user")

    # Event
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    category = models.CharField(max_length=30, choices=CATEGORY_CHOICES, default="business_operation")
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES, default="low")

    # Target
    content_type = models.ForeignKey(ContentType, on_delete=models.CASCADE)
    object_id = models.CharField(max_length=64)
    content_object = GenericForeignKey("content_type", "object_id")

    old_values = models.JSONField(default=dict, blank=True)
    new_values = models.JSONField(default=dict, blank=True)
    description = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "audit_event"
        verbose_name = "Audit Event"
        verbose_name_plural = "Audit Events"
        ordering: ClassVar[list[str]] = ["-timestamp"]
        indexes: ClassVar[list[models.Index]] = [
            models.Index(fields=["content_type", "object_id"], name="idx_audit_target"),
            models.Index(fields=["action", "-timestamp"], name="idx_audit_action"),
            models.Index(fields=["user", "-timestamp"], name="idx_audit_user"),
        ]

    def __str__(self) -> str:
        actor = self.user.email if self.user else "System"
        return f"{self.action} by {actor} at {self.timestamp}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValueError("Audit events are immutable")
        super().save(*args, **kwargs)
