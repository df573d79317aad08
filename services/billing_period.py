"""Derivation of the authoritative billing period for a user."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from period_utils import calendar_month_bounds, from_epoch_seconds, to_naive_utc
from services.plan_catalog import PlanCatalog
from services.subscription_snapshot import SubscriptionSnapshot

logger = logging.getLogger(__name__)

SOURCE_SUBSCRIPTION = "subscription"
SOURCE_CALENDAR_MONTH = "calendar_month"


@dataclass(frozen=True)
class BillingPeriod:
    """Authoritative window and allowance for one user at one instant."""
    period_start: datetime
    period_end: datetime
    tier: str
    pages_limit: int
    source: str

    def differences(self, usage) -> Dict[str, object]:
        """Fields of ``usage`` that disagree with this period, mapped to their new values."""
        changes: Dict[str, object] = {}
        if usage.billing_period_start != self.period_start:
            changes["billing_period_start"] = self.period_start
        if usage.billing_period_end != self.period_end:
            changes["billing_period_end"] = self.period_end
        if usage.pages_limit != self.pages_limit:
            changes["pages_limit"] = self.pages_limit
        return changes

    def matches(self, usage) -> bool:
        return not self.differences(usage)


def _subscription_window(snapshot: SubscriptionSnapshot, now: datetime):
    if not snapshot.is_active or not snapshot.has_period:
        return None
    start = from_epoch_seconds(snapshot.current_period_start)
    end = from_epoch_seconds(snapshot.current_period_end)
    if start <= now <= end:
        return start, end
    return None


def _lookup_membership(membership_lookup: Optional[Callable[[], Optional[str]]]) -> Optional[str]:
    if membership_lookup is None:
        return None
    try:
        return membership_lookup()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Membership lookup failed, using default tier: %s", exc)
        return None


def derive_billing_period(
    now: datetime,
    snapshot: SubscriptionSnapshot,
    membership_lookup: Optional[Callable[[], Optional[str]]],
    catalog: PlanCatalog,
) -> BillingPeriod:
    """
    Resolve the billing window, tier and page limit in force at ``now``.

    Precedence:
        1. An active/trialing subscription whose period covers ``now`` supplies
           the window and its plan supplies the tier.
        2. Otherwise the window is the UTC calendar month of ``now``. The tier
           comes from an active subscription's plan if there is one, then from
           the profile membership, then the default tier.

    The page limit is the allowance of the resolved tier, or the default
    tier's allowance when the tier is not in the catalog.

    Args:
        now: Reference instant; aware values are converted to naive UTC
        snapshot: Subscription snapshot already fetched for the user
        membership_lookup: Zero-argument callable returning the profile tier;
            only called when the subscription cannot supply one
        catalog: Plan catalog used for allowances
    """
    now = to_naive_utc(now)

    window = _subscription_window(snapshot, now)
    if window is not None:
        period_start, period_end = window
        source = SOURCE_SUBSCRIPTION
    else:
        period_start, period_end = calendar_month_bounds(now)
        source = SOURCE_CALENDAR_MONTH

    if snapshot.is_active:
        tier = snapshot.plan_id or catalog.default_tier
    else:
        tier = _lookup_membership(membership_lookup) or catalog.default_tier

    if not catalog.is_known(tier):
        logger.warning("Unknown tier '%s', applying the %s allowance", tier, catalog.default_tier)

    return BillingPeriod(
        period_start=period_start,
        period_end=period_end,
        tier=tier,
        pages_limit=catalog.get_page_allowance(tier),
        source=source,
    )
