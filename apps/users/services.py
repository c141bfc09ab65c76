"""
Directory services for the IT Support Desk
Read-only lookups over accounts, departments and service provider capacity.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from django.db.models import Count, F, Q, QuerySet

from apps.common.constants import PROVIDER_ACTIVE_STATUSES

from .models import Department, ServiceProvider, User

logger = logging.getLogger(__name__)


class DirectoryService:
    """
    Lookups the ticket core and its callers use to find the right people.

    All provider listings are annotated with `current_assignments`, the
    number of tickets currently assigned to or being worked on by the provider.
    """

    @staticmethod
    def _providers_with_load() -> QuerySet[ServiceProvider]:
        return (
            ServiceProvider.objects.select_related("user")
            .filter(user__is_active=True)
            .annotate(
                current_assignments=Count(
                    "assigned_tickets",
                    filter=Q(assigned_tickets__status__in=PROVIDER_ACTIVE_STATUSES),
                )
            )
        )

    @classmethod
    def get_all_service_providers(cls) -> QuerySet[ServiceProvider]:
        """All active providers, alphabetical"""
        return cls._providers_with_load().order_by("provider_name")

    @classmethod
    def get_available_service_providers(cls) -> QuerySet[ServiceProvider]:
        """
        Providers that can take another ticket.

        Least loaded first, best rated first among equals.
        """
        return (
            cls._providers_with_load()
            .filter(is_available=True, current_assignments__lt=F("max_concurrent_tickets"))
            .order_by("current_assignments", F("rating_average").desc(nulls_last=True), "provider_name")
        )

    @staticmethod
    def get_departments_by_category() -> dict[str, list[Department]]:
        grouped: dict[str, list[Department]] = defaultdict(list)
        for department in Department.objects.all():
            grouped[department.category].append(department)
        return dict(grouped)

    @staticmethod
    def get_active_admin_ids() -> list[int]:
        """Recipients of the new ticket fan-out"""
        return list(
            User.objects.filter(user_type=User.USER_TYPE_ADMIN, is_active=True)
            .order_by("id")
            .values_list("id", flat=True)
        )
