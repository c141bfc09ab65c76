"""
Provider rating aggregate.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction
from django.db.models import Avg, Count

from apps.users.models import ServiceProvider

from .models import TicketRating

logger = logging.getLogger(__name__)

_AVERAGE_QUANTUM = Decimal("0.01")


class RatingAggregator:
    """
    Recomputes a provider's `rating_average` and `total_ratings` from every
    rating on record. Never adjusts incrementally, so concurrent submissions
    and later corrections cannot make the aggregate drift.
    """

    def recompute(self, provider_id: int) -> ServiceProvider:
        with transaction.atomic():
            # Lock the provider row so concurrent recomputes serialize
            provider = ServiceProvider.objects.select_for_update().get(pk=provider_id)

            aggregate = TicketRating.objects.filter(provider_id=provider_id).aggregate(
                average=Avg("score"),
                total=Count("id"),
            )
            total = aggregate["total"] or 0
            average = aggregate["average"]

            provider.total_ratings = total
            provider.rating_average = (
                Decimal(str(average)).quantize(_AVERAGE_QUANTUM, rounding=ROUND_HALF_UP) if total else None
            )
            provider.save(update_fields=["rating_average", "total_ratings"])

        logger.info(
            f"✅ [Ratings] Provider {provider.provider_name}: average={provider.rating_average} total={total}"
        )
        return provider
