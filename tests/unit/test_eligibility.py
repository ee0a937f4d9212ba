"""Warranty and return eligibility."""

from datetime import date, datetime, timedelta, timezone

import pytest

from repairdesk.config import ServiceType, WarrantyStatus
from repairdesk.tickets.domain import EligibilityEvaluator, LifecyclePolicy


POLICY = LifecyclePolicy(warranty_months=24, return_window_days=15)


class TestReturnWindow:
    def test_exactly_window_days_is_eligible(self):
        result = EligibilityEvaluator.evaluate(
            date(2025, 6, 1), ServiceType.RETURN, date(2025, 6, 16), POLICY
        )
        assert result == WarrantyStatus.ELIGIBLE_FOR_RETURN

    def test_one_day_past_window_is_expired(self):
        result = EligibilityEvaluator.evaluate(
            date(2025, 6, 1), ServiceType.RETURN, date(2025, 6, 17), POLICY
        )
        assert result == WarrantyStatus.RETURN_PERIOD_EXPIRED

    def test_same_day_purchase_is_eligible(self):
        now = datetime(2025, 6, 1, 23, 59, tzinfo=timezone.utc)
        result = EligibilityEvaluator.evaluate(date(2025, 6, 1), ServiceType.RETURN, now, POLICY)
        assert result == WarrantyStatus.ELIGIBLE_FOR_RETURN

    def test_exactly_window_hours_is_eligible(self):
        now = datetime(2025, 6, 1, tzinfo=timezone.utc) + timedelta(hours=15 * 24)
        assert EligibilityEvaluator.days_since_purchase(date(2025, 6, 1), now) == 15
        result = EligibilityEvaluator.evaluate(date(2025, 6, 1), ServiceType.RETURN, now, POLICY)
        assert result == WarrantyStatus.ELIGIBLE_FOR_RETURN

    def test_one_second_past_window_is_expired(self):
        now = datetime(2025, 6, 1, tzinfo=timezone.utc) + timedelta(hours=15 * 24, seconds=1)
        assert EligibilityEvaluator.days_since_purchase(date(2025, 6, 1), now) == 16
        result = EligibilityEvaluator.evaluate(date(2025, 6, 1), ServiceType.RETURN, now, POLICY)
        assert result == WarrantyStatus.RETURN_PERIOD_EXPIRED

    def test_partial_day_rounds_up(self):
        now = datetime(2025, 6, 16, 10, 0, tzinfo=timezone.utc)
        assert EligibilityEvaluator.days_since_purchase(date(2025, 6, 1), now) == 16

    def test_naive_now_is_read_as_utc(self):
        now = datetime(2025, 6, 16, 0, 0)
        assert EligibilityEvaluator.days_since_purchase(date(2025, 6, 1), now) == 15

    def test_custom_window(self):
        policy = LifecyclePolicy(return_window_days=30)
        result = EligibilityEvaluator.evaluate(
            date(2025, 5, 1), ServiceType.RETURN, date(2025, 5, 21), policy
        )
        assert result == WarrantyStatus.ELIGIBLE_FOR_RETURN


class TestRepairWarranty:
    def test_exactly_warranty_months_is_under_warranty(self):
        result = EligibilityEvaluator.evaluate(
            date(2023, 6, 28), ServiceType.REPAIR, date(2025, 6, 2), POLICY
        )
        assert result == WarrantyStatus.UNDER_WARRANTY

    def test_one_month_past_warranty_is_out(self):
        result = EligibilityEvaluator.evaluate(
            date(2023, 5, 1), ServiceType.REPAIR, date(2025, 6, 30), POLICY
        )
        assert result == WarrantyStatus.OUT_OF_WARRANTY

    def test_thirty_months_is_out_of_warranty(self):
        result = EligibilityEvaluator.evaluate(
            date(2022, 12, 15), ServiceType.REPAIR, date(2025, 6, 15), POLICY
        )
        assert result == WarrantyStatus.OUT_OF_WARRANTY

    @pytest.mark.parametrize(
        "purchase,now,months",
        [
            (date(2025, 1, 31), date(2025, 2, 1), 1),
            (date(2024, 12, 1), date(2025, 1, 31), 1),
            (date(2023, 6, 15), date(2025, 6, 15), 24),
            (date(2025, 6, 1), date(2025, 6, 30), 0),
        ],
    )
    def test_months_ignore_day_of_month(self, purchase, now, months):
        assert EligibilityEvaluator.months_since_purchase(purchase, now) == months


class TestLifecyclePolicy:
    def test_defaults(self):
        policy = LifecyclePolicy()
        assert policy.warranty_months == 24
        assert policy.return_window_days == 15
        assert policy.capacity_limit == 5
        assert policy.general_pool_specialty == "Other"

    def test_is_immutable(self):
        with pytest.raises(Exception):
            POLICY.warranty_months = 12

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            LifecyclePolicy(capacity_limit=0)
