"""
Read-side refund queries for back-office screens.

- get_refund_history: Latest refunds, optionally for one branch, paged
- get_refund_detail: One refund with its items, customer, sale and branch
- get_refund_stats: Totals per period, broken down by method and status
- get_refund_analytics: Daily, method, status and top-reason breakdowns
- get_pending_refunds_count: Refunds still waiting to complete
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db.models import Count, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from core.helpers import validate_uuid
from core.services import BaseService, ServiceResult

from refunds.models import Refund
from refunds.state_machines import RefundStatus

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from django.db.models import QuerySet


DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200

STATS_PERIODS = ("today", "week", "month")
ANALYTICS_PERIODS = ("week", "month")
TOP_REASONS = 5

# Blank reasons are grouped under this label in analytics
UNSPECIFIED_REASON = "unspecified"

PENDING_STATUSES = (RefundStatus.PROCESSING, RefundStatus.PARTIALLY_FAILED)


@dataclass
class RefundStats:
    """Aggregated refund figures for one period."""

    period: str
    total_refunds: int = 0
    total_amount: Decimal = Decimal("0.00")
    pending_refunds: int = 0
    by_method: dict[str, int] = field(default_factory=dict)
    by_status: dict[str, int] = field(default_factory=dict)


@dataclass
class RefundAnalytics:
    """
    Refund breakdowns for a period.

    Every list holds ``{"<key>": ..., "count": int, "amount": Decimal}``
    rows: daily is ordered by date, top_reasons by count (at most
    TOP_REASONS), the others by key.
    """

    period: str
    daily: list[dict] = field(default_factory=list)
    by_method: list[dict] = field(default_factory=list)
    by_status: list[dict] = field(default_factory=list)
    top_reasons: list[dict] = field(default_factory=list)


class RefundQueryService(BaseService):
    """Refund history, details and statistics."""

    @classmethod
    def get_refund_history(
        cls,
        branch_id: uuid.UUID | str | None = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> ServiceResult[list[Refund]]:
        """
        Return refunds newest first by processed_at.

        ``limit`` is clamped to 1..MAX_HISTORY_LIMIT; ``offset`` skips that
        many refunds for paging.
        """
        if branch_id and not validate_uuid(branch_id):
            return ServiceResult.failure("Invalid branch id", "VALIDATION_ERROR")

        limit = max(1, min(int(limit), MAX_HISTORY_LIMIT))
        offset = max(0, int(offset))
        queryset = cls._with_relations(Refund.objects.all()).order_by("-processed_at")
        if branch_id:
            queryset = queryset.filter(branch_id=branch_id)

        return ServiceResult.success(list(queryset[offset : offset + limit]))

    @classmethod
    def get_refund_detail(cls, refund_id: uuid.UUID | str) -> ServiceResult[Refund]:
        """Return one refund with everything a detail screen shows."""
        if not validate_uuid(refund_id):
            return ServiceResult.failure("Invalid refund id", "VALIDATION_ERROR")

        refund = (
            cls._with_relations(Refund.objects.select_related("original_sale"))
            .prefetch_related("items__product", "items__variant")
            .filter(pk=refund_id)
            .first()
        )
        if refund is None:
            return ServiceResult.failure("Refund not found", "REFUND_NOT_FOUND")
        return ServiceResult.success(refund)

    @classmethod
    def get_refund_stats(
        cls,
        branch_id: uuid.UUID | str | None = None,
        period: str = "today",
    ) -> ServiceResult[RefundStats]:
        """
        Aggregate refunds processed in ``period``.

        Periods:
            today: since local midnight
            week: the last 7 days
            month: the last 30 days

        ``pending_refunds`` counts every open refund, whatever its age.
        """
        if period not in STATS_PERIODS:
            return ServiceResult.failure(
                f"Unknown period '{period}'. Use one of: {', '.join(STATS_PERIODS)}",
                "INVALID_PERIOD",
            )
        if branch_id and not validate_uuid(branch_id):
            return ServiceResult.failure("Invalid branch id", "VALIDATION_ERROR")

        queryset = cls._in_period(period, branch_id)
        totals = queryset.aggregate(count=Count("id"), amount=Sum("amount"))
        stats = RefundStats(
            period=period,
            total_refunds=totals["count"] or 0,
            total_amount=totals["amount"] or Decimal("0.00"),
            pending_refunds=cls.get_pending_refunds_count(branch_id).data,
        )
        for row in queryset.order_by().values("method").annotate(count=Count("id")):
            stats.by_method[row["method"]] = row["count"]
        for row in queryset.order_by().values("status").annotate(count=Count("id")):
            stats.by_status[row["status"]] = row["count"]

        return ServiceResult.success(stats)

    @classmethod
    def get_refund_analytics(
        cls,
        branch_id: uuid.UUID | str | None = None,
        period: str = "week",
    ) -> ServiceResult[RefundAnalytics]:
        """Break down refunds of the last 7 (week) or 30 (month) days."""
        if period not in ANALYTICS_PERIODS:
            return ServiceResult.failure(
                f"Unknown period '{period}'. Use one of: {', '.join(ANALYTICS_PERIODS)}",
                "INVALID_PERIOD",
            )
        if branch_id and not validate_uuid(branch_id):
            return ServiceResult.failure("Invalid branch id", "VALIDATION_ERROR")

        queryset = cls._in_period(period, branch_id).order_by()
        analytics = RefundAnalytics(period=period)

        daily = (
            queryset.annotate(date=TruncDate("processed_at"))
            .values("date")
            .annotate(count=Count("id"), amount=Sum("amount"))
            .order_by("date")
        )
        analytics.daily = [
            {"date": row["date"], "count": row["count"], "amount": row["amount"]}
            for row in daily
        ]
        analytics.by_method = cls._breakdown(queryset, "method")
        analytics.by_status = cls._breakdown(queryset, "status")

        reasons: dict[str, dict] = {}
        for row in cls._breakdown(queryset, "reason"):
            reason = row["reason"].strip() or UNSPECIFIED_REASON
            entry = reasons.setdefault(
                reason, {"reason": reason, "count": 0, "amount": Decimal("0.00")}
            )
            entry["count"] += row["count"]
            entry["amount"] += row["amount"]
        analytics.top_reasons = sorted(
            reasons.values(), key=lambda row: (-row["count"], row["reason"])
        )[:TOP_REASONS]

        return ServiceResult.success(analytics)

    @classmethod
    def get_pending_refunds_count(
        cls, branch_id: uuid.UUID | str | None = None
    ) -> ServiceResult[int]:
        """Count refunds that are processing or waiting for a resume."""
        if branch_id and not validate_uuid(branch_id):
            return ServiceResult.failure("Invalid branch id", "VALIDATION_ERROR")

        queryset = Refund.objects.filter(status__in=PENDING_STATUSES)
        if branch_id:
            queryset = queryset.filter(branch_id=branch_id)
        return ServiceResult.success(queryset.count())

    @staticmethod
    def period_start(period: str) -> datetime:
        now = timezone.now()
        if period == "week":
            return now - timedelta(days=7)
        if period == "month":
            return now - timedelta(days=30)
        return timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)

    # ==========================================================================
    # Internals
    # ==========================================================================

    @staticmethod
    def _with_relations(queryset: QuerySet[Refund]) -> QuerySet[Refund]:
        return queryset.select_related(
            "customer", "branch", "sale_item__product", "sale_item__variant"
        ).prefetch_related("items")

    @classmethod
    def _in_period(
        cls, period: str, branch_id: uuid.UUID | str | None
    ) -> QuerySet[Refund]:
        queryset = Refund.objects.filter(processed_at__gte=cls.period_start(period))
        if branch_id:
            queryset = queryset.filter(branch_id=branch_id)
        return queryset

    @staticmethod
    def _breakdown(queryset: QuerySet[Refund], key: str) -> list[dict]:
        rows = (
            queryset.values(key)
            .annotate(count=Count("id"), amount=Sum("amount"))
            .order_by(key)
        )
        return [
            {key: row[key], "count": row["count"], "amount": row["amount"]}
            for row in rows
        ]


__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "MAX_HISTORY_LIMIT",
    "RefundAnalytics",
    "RefundQueryService",
    "RefundStats",
]
