"""
Ticket serializers for the IT Support Desk
DRF serializers for lifecycle input validation and read-side output.
"""

from __future__ import annotations

from typing import Any

from rest_framework import serializers

from apps.common.constants import DEFAULT_TICKET_PRIORITY, RATING_MAX_SCORE, RATING_MIN_SCORE

from .models import DeviceType, Ticket, TicketAttachment, TicketRating, TicketUpdate

# Input Serializers for Lifecycle Operations


class TicketCreateSerializer(serializers.Serializer):
    """Ticket submission - priority falls back to the default instead of failing"""

    device_type_id = serializers.IntegerField(min_value=1)
    device_name = serializers.CharField(max_length=200)
    issue_description = serializers.CharField()
    # Any JSON value; anything but a known priority name becomes the default
    priority = serializers.JSONField(required=False, allow_null=True)

    def validate_priority(self, value: Any) -> str:
        if not isinstance(value, str):
            return DEFAULT_TICKET_PRIORITY
        value = value.strip().lower()
        return value if value in Ticket.valid_priorities() else DEFAULT_TICKET_PRIORITY

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        attrs.setdefault("priority", DEFAULT_TICKET_PRIORITY)
        return attrs


class CommentInputSerializer(serializers.Serializer):
    comment = serializers.CharField()


class RatingInputSerializer(serializers.Serializer):
    """Scores must be real integers - booleans and numeric strings are refused"""

    score = serializers.IntegerField(min_value=RATING_MIN_SCORE, max_value=RATING_MAX_SCORE)
    feedback = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def to_internal_value(self, data: Any) -> Any:
        score = data.get("score") if hasattr(data, "get") else None
        if isinstance(score, bool) or not isinstance(score, int):
            raise serializers.ValidationError({"score": ["Rating must be an integer between 1 and 5"]})
        return super().to_internal_value(data)

    def validate_feedback(self, value: str | None) -> str | None:
        return value or None


def first_error_message(errors: Any) -> str:
    """Flatten DRF `serializer.errors` into a single 'field: message' string"""
    if isinstance(errors, dict):
        for field_name, field_errors in errors.items():
            message = first_error_message(field_errors)
            if field_name == "non_field_errors":
                return message
            return f"{field_name}: {message}"
    if isinstance(errors, list | tuple) and errors:
        return first_error_message(errors[0])
    return str(errors)


# Output Serializers


class DeviceTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeviceType
        fields = ["id", "type_name", "description"]


class TicketAttachmentSerializer(serializers.ModelSerializer):
    file_size_display = serializers.CharField(source="get_file_size_display", read_only=True)

    class Meta:
        model = TicketAttachment
        fields = ["id", "file_name", "stored_path", "mime_type", "size_bytes", "file_size_display", "uploaded_at"]


class TicketUpdateSerializer(serializers.ModelSerializer):
    """History entry with its author's display name"""

    author_name = serializers.CharField(source="user.get_display_name", read_only=True)
    author_type = serializers.CharField(source="user.user_type", read_only=True)

    class Meta:
        model = TicketUpdate
        fields = ["id", "update_type", "message", "old_value", "new_value", "author_name", "author_type", "created_at"]


class TicketRatingSerializer(serializers.ModelSerializer):
    class Meta:
        model = TicketRating
        fields = ["id", "score", "feedback", "provider", "created_at"]


class TicketListSerializer(serializers.ModelSerializer):
    """Slim ticket info for listings"""

    status_display = serializers.CharField(source="get_status_display", read_only=True)
    priority_display = serializers.CharField(source="get_priority_display", read_only=True)
    employee_name = serializers.CharField(source="employee.full_name", read_only=True)
    department_name = serializers.CharField(source="department.name", read_only=True)
    device_type_name = serializers.CharField(source="device_type.type_name", read_only=True)
    provider_name = serializers.SerializerMethodField()

    class Meta:
        model = Ticket
        fields = [
            "id", "ticket_number", "status", "status_display", "priority", "priority_display",
            "employee_name", "department_name", "device_type_name", "device_name",
            "provider_name", "created_at", "updated_at",
        ]

    def get_provider_name(self, obj: Ticket) -> str | None:
        return obj.assigned_provider.provider_name if obj.assigned_provider else None


class TicketDetailSerializer(TicketListSerializer):
    """Full ticket with attachments, history and rating"""

    attachments = TicketAttachmentSerializer(many=True, read_only=True)
    updates = TicketUpdateSerializer(many=True, read_only=True)
    rating = serializers.SerializerMethodField()

    class Meta(TicketListSerializer.Meta):
        fields = [
            *TicketListSerializer.Meta.fields,
            "issue_description", "employee", "assigned_provider",
            "assigned_at", "resolved_at", "closed_at",
            "attachments", "updates", "rating",
        ]

    def get_rating(self, obj: Ticket) -> dict[str, Any] | None:
        rating = obj.get_rating()
        return TicketRatingSerializer(rating).data if rating is not None else None
