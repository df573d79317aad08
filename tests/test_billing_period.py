"""Tests for billing period derivation."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from services.billing_period import (
    SOURCE_CALENDAR_MONTH,
    SOURCE_SUBSCRIPTION,
    derive_billing_period,
)
from services.subscription_snapshot import SubscriptionSnapshot


def _epoch(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp())


NOW = datetime(2024, 10, 15, 12, 0, 0)


def _active(plan_id="growth", start=(2024, 10, 10), end=(2024, 11, 10), status="active"):
    return SubscriptionSnapshot(
        status=status,
        plan_id=plan_id,
        current_period_start=_epoch(*start),
        current_period_end=_epoch(*end),
        customer_id="cus_1",
    )


class TestDeriveBillingPeriod:

    def test_active_subscription_covering_now_supplies_period_and_tier(self, catalog):
        period = derive_billing_period(NOW, _active(), lambda: "plus", catalog)

        assert period.period_start == datetime(2024, 10, 10)
        assert period.period_end == datetime(2024, 11, 10)
        assert period.tier == "growth"
        assert period.pages_limit == 500
        assert period.source == SOURCE_SUBSCRIPTION

    def test_trialing_counts_as_active(self, catalog):
        period = derive_billing_period(NOW, _active(status="trialing"), None, catalog)
        assert period.source == SOURCE_SUBSCRIPTION

    def test_active_subscription_without_plan_uses_default_tier(self, catalog):
        period = derive_billing_period(NOW, _active(plan_id=None), lambda: "growth", catalog)
        assert period.tier == "starter"
        assert period.pages_limit == 100

    def test_inactive_subscription_falls_back_to_profile_tier(self, catalog):
        snapshot = SubscriptionSnapshot(status="canceled", plan_id="growth")
        period = derive_billing_period(NOW, snapshot, lambda: "plus", catalog)

        assert period.period_start == datetime(2024, 10, 1)
        assert period.period_end == datetime(2024, 10, 31, 23, 59, 59, 999999)
        assert period.tier == "plus"
        assert period.pages_limit == 250
        assert period.source == SOURCE_CALENDAR_MONTH

    def test_no_subscription_and_no_profile_uses_default_tier(self, catalog):
        period = derive_billing_period(NOW, SubscriptionSnapshot.none(), lambda: None, catalog)
        assert period.tier == "starter"
        assert period.pages_limit == 100

    def test_active_subscription_not_covering_now_keeps_plan_tier(self, catalog):
        stale = _active(start=(2024, 8, 10), end=(2024, 9, 10))
        lookup = MagicMock(return_value="plus")

        period = derive_billing_period(NOW, stale, lookup, catalog)

        assert period.source == SOURCE_CALENDAR_MONTH
        assert period.period_start == datetime(2024, 10, 1)
        assert period.tier == "growth"
        lookup.assert_not_called()

    def test_active_subscription_missing_period_uses_calendar_month(self, catalog):
        snapshot = SubscriptionSnapshot(status="active", plan_id="growth")
        period = derive_billing_period(NOW, snapshot, None, catalog)

        assert period.source == SOURCE_CALENDAR_MONTH
        assert period.pages_limit == 500

    def test_subscription_bounds_are_inclusive(self, catalog):
        snapshot = _active()
        at_end = datetime(2024, 11, 10)
        period = derive_billing_period(at_end, snapshot, None, catalog)
        assert period.source == SOURCE_SUBSCRIPTION

        just_after = at_end + timedelta(microseconds=1)
        period = derive_billing_period(just_after, snapshot, None, catalog)
        assert period.source == SOURCE_CALENDAR_MONTH
        assert period.period_start == datetime(2024, 11, 1)

    def test_unknown_tier_gets_default_allowance(self, catalog):
        period = derive_billing_period(NOW, SubscriptionSnapshot.none(), lambda: "enterprise", catalog)
        assert period.tier == "enterprise"
        assert period.pages_limit == 100

    def test_failing_membership_lookup_defaults_silently(self, catalog):
        lookup = MagicMock(side_effect=RuntimeError("profiles offline"))
        period = derive_billing_period(NOW, SubscriptionSnapshot.none(), lookup, catalog)
        assert period.tier == "starter"

    @pytest.mark.parametrize(
        "now, expected_start, expected_end",
        [
            (
                datetime(2024, 2, 29, 23, 59, 59, 999999),
                datetime(2024, 2, 1),
                datetime(2024, 2, 29, 23, 59, 59, 999999),
            ),
            (
                datetime(2023, 12, 31, 23, 59, 59),
                datetime(2023, 12, 1),
                datetime(2023, 12, 31, 23, 59, 59, 999999),
            ),
            (
                datetime(2024, 3, 1),
                datetime(2024, 3, 1),
                datetime(2024, 3, 31, 23, 59, 59, 999999),
            ),
        ],
    )
    def test_calendar_month_edges(self, catalog, now, expected_start, expected_end):
        period = derive_billing_period(now, SubscriptionSnapshot.none(), None, catalog)
        assert period.period_start == expected_start
        assert period.period_end == expected_end

    def test_aware_now_is_normalised_to_utc(self, catalog):
        # 2024-11-01 01:00 in UTC+3 is still October in UTC
        aware = datetime(2024, 11, 1, 1, 0, tzinfo=timezone(timedelta(hours=3)))
        period = derive_billing_period(aware, SubscriptionSnapshot.none(), None, catalog)
        assert period.period_start == datetime(2024, 10, 1)

    def test_differences_lists_only_changed_fields(self, catalog):
        period = derive_billing_period(NOW, _active(), None, catalog)
        usage = MagicMock(
            billing_period_start=datetime(2024, 10, 10),
            billing_period_end=datetime(2024, 10, 31),
            pages_limit=500,
        )

        assert period.differences(usage) == {"billing_period_end": datetime(2024, 11, 10)}
        assert not period.matches(usage)
