"""
Tests for refund history, detail, statistics and analytics queries.
"""

from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from freezegun import freeze_time

from pos.tests.factories import BranchFactory, CustomerFactory, SaleItemFactory
from refunds.services.queries import RefundQueryService
from refunds.state_machines import RefundMethod, RefundStatus
from refunds.tests.factories import RefundFactory, RefundItemFactory

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=dt_timezone.utc)


def at(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


class TestRefundHistory:
    def test_newest_first(self, db):
        old = RefundFactory(processed_at=at(2026, 3, 1))
        new = RefundFactory(processed_at=at(2026, 3, 10))

        result = RefundQueryService.get_refund_history()

        assert result.success is True
        assert result.data == [new, old]

    def test_filter_by_branch(self, db):
        branch = BranchFactory()
        mine = RefundFactory(sale_item=SaleItemFactory(sale__branch=branch))
        RefundFactory()

        result = RefundQueryService.get_refund_history(branch_id=branch.id)

        assert result.data == [mine]

    def test_limit(self, db):
        RefundFactory.create_batch(3)

        assert len(RefundQueryService.get_refund_history(limit=2).data) == 2

    def test_offset_pages_through_history(self, db):
        refunds = [RefundFactory(processed_at=at(2026, 3, day)) for day in (1, 2, 3)]

        page = RefundQueryService.get_refund_history(limit=2, offset=2).data

        assert page == [refunds[0]]

    def test_offset_past_end(self, db):
        RefundFactory()

        assert RefundQueryService.get_refund_history(offset=5).data == []

    @pytest.mark.parametrize("limit", [0, -5])
    def test_limit_clamped_to_at_least_one(self, db, limit):
        RefundFactory.create_batch(2)

        assert len(RefundQueryService.get_refund_history(limit=limit).data) == 1

    def test_limit_clamped_to_maximum(self, db, monkeypatch):
        monkeypatch.setattr("refunds.services.queries.MAX_HISTORY_LIMIT", 2)
        RefundFactory.create_batch(3)

        assert len(RefundQueryService.get_refund_history(limit=500).data) == 2

    def test_items_prefetched(self, db, django_assert_num_queries):
        RefundItemFactory.create_batch(2)

        with django_assert_num_queries(2):
            refunds = RefundQueryService.get_refund_history().data
            assert all(len(refund.items.all()) == 1 for refund in refunds)

    def test_invalid_branch_id(self, db):
        result = RefundQueryService.get_refund_history(branch_id="branch-1")

        assert result.success is False
        assert result.error_code == "VALIDATION_ERROR"


@freeze_time(NOW)
class TestRefundStats:
    @pytest.fixture
    def refunds(self, db):
        return {
            "today": RefundFactory(
                processed_at=at(2026, 3, 15, 1),
                amount=Decimal("100.00"),
                method=RefundMethod.CASH,
                status=RefundStatus.COMPLETED,
            ),
            "this_week": RefundFactory(
                processed_at=at(2026, 3, 12),
                amount=Decimal("50.00"),
                method=RefundMethod.ACCOUNT,
                status=RefundStatus.COMPLETED,
            ),
            "this_month": RefundFactory(
                processed_at=at(2026, 2, 20),
                amount=Decimal("25.00"),
                method=RefundMethod.CASH,
                status=RefundStatus.PARTIALLY_FAILED,
            ),
            "older": RefundFactory(
                processed_at=at(2026, 1, 1),
                amount=Decimal("999.00"),
            ),
        }

    def test_today(self, refunds):
        stats = RefundQueryService.get_refund_stats(period="today").data

        assert stats.period == "today"
        assert stats.total_refunds == 1
        assert stats.total_amount == Decimal("100.00")
        assert stats.by_method == {"cash": 1}
        assert stats.by_status == {"completed": 1}
        assert stats.pending_refunds == 2

    def test_week(self, refunds):
        stats = RefundQueryService.get_refund_stats(period="week").data

        assert stats.total_refunds == 2
        assert stats.total_amount == Decimal("150.00")
        assert stats.by_method == {"cash": 1, "account": 1}

    def test_month(self, refunds):
        stats = RefundQueryService.get_refund_stats(period="month").data

        assert stats.total_refunds == 3
        assert stats.total_amount == Decimal("175.00")
        assert stats.by_status == {"completed": 2, "partially_failed": 1}

    def test_filter_by_branch(self, refunds):
        branch_id = refunds["today"].branch_id

        stats = RefundQueryService.get_refund_stats(branch_id=branch_id, period="month").data

        assert stats.total_refunds == 1

    def test_no_refunds(self, db):
        stats = RefundQueryService.get_refund_stats().data

        assert stats.total_refunds == 0
        assert stats.total_amount == Decimal("0.00")
        assert stats.by_method == {}

    def test_unknown_period(self, db):
        result = RefundQueryService.get_refund_stats(period="year")

        assert result.success is False
        assert result.error_code == "INVALID_PERIOD"

    def test_invalid_branch_id(self, db):
        result = RefundQueryService.get_refund_stats(branch_id="branch-1")

        assert result.error_code == "VALIDATION_ERROR"


class TestRefundDetail:
    def test_returns_refund_with_relations(self, db, django_assert_num_queries):
        customer = CustomerFactory(account_balance=Decimal("75.00"))
        item = RefundItemFactory(
            refund__sale_item=SaleItemFactory(with_variant=True),
            refund__customer=customer,
        )

        # refund with joins, items, products, variants
        with django_assert_num_queries(4):
            refund = RefundQueryService.get_refund_detail(item.refund_id).data
            assert refund.customer.account_balance == Decimal("75.00")
            assert refund.original_sale.sale_number
            assert refund.branch.name
            assert [i.variant.sku for i in refund.items.all()] == [item.variant.sku]

    def test_accepts_string_id(self, db):
        refund = RefundFactory()

        result = RefundQueryService.get_refund_detail(str(refund.id))

        assert result.data == refund

    def test_not_found(self, db):
        result = RefundQueryService.get_refund_detail("00000000-0000-0000-0000-000000000000")

        assert result.success is False
        assert result.error_code == "REFUND_NOT_FOUND"

    def test_invalid_id(self, db):
        result = RefundQueryService.get_refund_detail("refund-1")

        assert result.error_code == "VALIDATION_ERROR"


class TestPendingRefundsCount:
    def test_counts_processing_and_partially_failed(self, db):
        RefundFactory(status=RefundStatus.PROCESSING)
        RefundFactory(status=RefundStatus.PARTIALLY_FAILED)
        RefundFactory(status=RefundStatus.COMPLETED)

        assert RefundQueryService.get_pending_refunds_count().data == 2

    def test_filter_by_branch(self, db):
        mine = RefundFactory(status=RefundStatus.PARTIALLY_FAILED)
        RefundFactory(status=RefundStatus.PARTIALLY_FAILED)

        result = RefundQueryService.get_pending_refunds_count(branch_id=mine.branch_id)

        assert result.data == 1

    def test_invalid_branch_id(self, db):
        result = RefundQueryService.get_pending_refunds_count(branch_id="branch-1")

        assert result.error_code == "VALIDATION_ERROR"


@freeze_time(NOW)
class TestRefundAnalytics:
    @pytest.fixture
    def refunds(self, db):
        branch = BranchFactory()

        def refund(day, amount, method=RefundMethod.CASH, reason="Damaged", **kwargs):
            return RefundFactory(
                sale_item=SaleItemFactory(sale__branch=branch),
                processed_at=at(2026, 3, day, 10),
                amount=Decimal(amount),
                method=method,
                reason=reason,
                status=kwargs.pop("status", RefundStatus.COMPLETED),
                **kwargs,
            )

        return [
            refund(14, "10.00"),
            refund(14, "20.00", method=RefundMethod.ACCOUNT, reason="Wrong size"),
            refund(12, "5.00", reason=""),
            refund(10, "7.50", reason="   ", status=RefundStatus.PARTIALLY_FAILED),
            refund(1, "100.00"),
        ]

    def test_daily(self, refunds):
        analytics = RefundQueryService.get_refund_analytics(period="week").data

        assert analytics.period == "week"
        assert analytics.daily == [
            {"date": date(2026, 3, 10), "count": 1, "amount": Decimal("7.50")},
            {"date": date(2026, 3, 12), "count": 1, "amount": Decimal("5.00")},
            {"date": date(2026, 3, 14), "count": 2, "amount": Decimal("30.00")},
        ]

    def test_method_and_status_breakdowns(self, refunds):
        analytics = RefundQueryService.get_refund_analytics(period="week").data

        assert analytics.by_method == [
            {"method": "account", "count": 1, "amount": Decimal("20.00")},
            {"method": "cash", "count": 3, "amount": Decimal("22.50")},
        ]
        assert analytics.by_status == [
            {"status": "completed", "count": 3, "amount": Decimal("35.00")},
            {"status": "partially_failed", "count": 1, "amount": Decimal("7.50")},
        ]

    def test_top_reasons_group_blank_reasons(self, refunds):
        analytics = RefundQueryService.get_refund_analytics(period="week").data

        assert analytics.top_reasons == [
            {"reason": "unspecified", "count": 2, "amount": Decimal("12.50")},
            {"reason": "Damaged", "count": 1, "amount": Decimal("10.00")},
            {"reason": "Wrong size", "count": 1, "amount": Decimal("20.00")},
        ]

    def test_top_reasons_limited(self, db, monkeypatch):
        monkeypatch.setattr("refunds.services.queries.TOP_REASONS", 2)
        for reason in ("a", "b", "b", "c", "c", "c"):
            RefundFactory(processed_at=at(2026, 3, 14), reason=reason)

        analytics = RefundQueryService.get_refund_analytics().data

        assert [row["reason"] for row in analytics.top_reasons] == ["c", "b"]

    def test_month(self, refunds):
        analytics = RefundQueryService.get_refund_analytics(period="month").data

        assert sum(row["count"] for row in analytics.daily) == 5

    def test_filter_by_branch(self, refunds):
        RefundFactory(processed_at=at(2026, 3, 14))

        analytics = RefundQueryService.get_refund_analytics(
            branch_id=refunds[0].branch_id
        ).data

        assert sum(row["count"] for row in analytics.by_method) == 4

    def test_no_refunds(self, db):
        analytics = RefundQueryService.get_refund_analytics().data

        assert analytics.daily == []
        assert analytics.top_reasons == []

    @pytest.mark.parametrize("period", ["today", "year"])
    def test_unknown_period(self, db, period):
        result = RefundQueryService.get_refund_analytics(period=period)

        assert result.success is False
        assert result.error_code == "INVALID_PERIOD"

    def test_invalid_branch_id(self, db):
        result = RefundQueryService.get_refund_analytics(branch_id="branch-1")

        assert result.error_code == "VALIDATION_ERROR"
