"""Page usage reconciliation and quota enforcement."""

import logging
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Callable, ContextManager, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from db_session import get_db
from models.crud import get_profile
from models.profile import Profile
from models.usage_crud import (
    create_usage,
    find_usage_covering,
    find_usage_for_calendar_month,
    get_usage_by_id,
    increment_pages_processed,
    update_usage_fields,
)
from models.user_usage import UserUsage
from period_utils import to_naive_utc, utc_now
from services.billing_period import BillingPeriod, derive_billing_period
from services.plan_catalog import PlanCatalog, build_plan_catalog
from services.subscription_snapshot import RedisSubscriptionSource
from services.usage_errors import (
    PageLimitExceeded,
    ReconciliationFailed,
    SnapshotUnavailable,
    UsageError,
    UsageRecordNotFound,
    UsageUnavailable,
)

logger = logging.getLogger(__name__)

# Reported as "remaining" while the quota bypass is on
BYPASS_REMAINING_PAGES = 1_000_000_000


@dataclass
class QuotaCheck:
    """Outcome of a quota check."""
    has_quota: bool
    remaining: int
    usage: Optional[UserUsage]
    bypassed: bool = False


class UsageService:
    """
    Keeps each user's usage record aligned with the authoritative billing
    period and gates page consumption against its limit.

    Collaborators:
        snapshot_source: object with ``get_snapshot(user_id, customer_id=None)``
            raising SnapshotUnavailable on failure
        catalog: plan catalog for page allowances
        get_db_fn: context manager factory yielding a SQLAlchemy session
        clock: returns the current instant as naive UTC
    """

    def __init__(
        self,
        snapshot_source,
        catalog: PlanCatalog,
        *,
        get_db_fn: Callable[[], ContextManager[Session]] = get_db,
        quota_bypass: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._snapshot_source = snapshot_source
        self._catalog = catalog
        self._get_db = get_db_fn
        self._quota_bypass = quota_bypass
        self._clock = clock

    @property
    def catalog(self) -> PlanCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Period derivation
    # ------------------------------------------------------------------
    def _load_profile(self, db: Session, user_id: str) -> Optional[Profile]:
        try:
            return get_profile(db, user_id)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning(f"Profile lookup failed for user {user_id}: {exc}")
            return None

    def derive_period(self, db: Session, user_id: str, reference: datetime) -> BillingPeriod:
        """Fetch the subscription snapshot and derive the period in force at ``reference``."""
        profile = self._load_profile(db, user_id)
        customer_hint = profile.stripe_customer_id if profile else None

        try:
            snapshot = self._snapshot_source.get_snapshot(user_id, customer_id=customer_hint)
        except SnapshotUnavailable:
            raise
        except Exception as exc:  # noqa: BLE001
            raise SnapshotUnavailable(
                f"Subscription snapshot fetch failed for user {user_id}: {exc}", user_id=user_id
            ) from exc

        return derive_billing_period(
            reference,
            snapshot,
            lambda: profile.membership if profile else None,
            self._catalog,
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def _apply_period(self, db: Session, user_id: str, period: BillingPeriod) -> UserUsage:
        usage = find_usage_for_calendar_month(db, user_id, period.period_start)

        if usage is None:
            try:
                usage = create_usage(
                    db, user_id, period.period_start, period.period_end, period.pages_limit
                )
            except IntegrityError:
                db.rollback()
                usage = find_usage_for_calendar_month(db, user_id, period.period_start)
                if usage is None:
                    raise
                logger.info(f"Usage record for user {user_id} was created concurrently")
            else:
                logger.info(
                    f"Created usage record for user {user_id}: "
                    f"{period.period_start} - {period.period_end}, limit={period.pages_limit}"
                )
                return usage

        changes = period.differences(usage)
        if not changes:
            return usage

        updated = update_usage_fields(db, usage.id, changes)
        if updated is None:
            raise UsageRecordNotFound(
                f"Usage record {usage.id} disappeared during reconciliation", user_id=user_id
            )

        logger.info(
            f"Reconciled usage record {updated.id} for user {user_id}: "
            f"{', '.join(sorted(changes))} (tier={period.tier}, source={period.source})"
        )
        if updated.pages_processed > updated.pages_limit:
            logger.warning(
                f"User {user_id} is over the new limit: "
                f"{updated.pages_processed}/{updated.pages_limit} pages"
            )
        return updated

    def reconcile(self, user_id: str, reference_date: Optional[datetime] = None) -> UserUsage:
        """
        Find or create the usage record for the period in force at
        ``reference_date`` and align its bounds and limit, keeping the counter.

        Raises:
            ReconciliationFailed: the snapshot is unavailable and no stored
                record can answer instead
        """
        reference = to_naive_utc(reference_date) if reference_date else self._clock()

        with self._get_db() as db:
            try:
                period = self.derive_period(db, user_id, reference)
            except SnapshotUnavailable as exc:
                fallback = find_usage_covering(db, user_id, reference) or \
                    find_usage_for_calendar_month(db, user_id, reference)
                if fallback is None:
                    raise ReconciliationFailed(
                        f"Cannot reconcile usage for user {user_id}: {exc}", user_id=user_id
                    ) from exc
                logger.warning(
                    f"Snapshot unavailable for user {user_id}, keeping usage record {fallback.id}"
                )
                return fallback

            return self._apply_period(db, user_id, period)

    # ------------------------------------------------------------------
    # Current usage
    # ------------------------------------------------------------------
    def get_current(self, user_id: str) -> UserUsage:
        """
        Get the usage record covering now, reconciling it first if it
        disagrees with the authoritative period.

        Raises:
            UsageUnavailable: the snapshot is unavailable and nothing covers now
        """
        now = self._clock()

        with self._get_db() as db:
            usage = find_usage_covering(db, user_id, now)

            try:
                period = self.derive_period(db, user_id, now)
            except SnapshotUnavailable as exc:
                if usage is not None:
                    logger.warning(
                        f"Degraded usage answer for user {user_id}: snapshot unavailable, "
                        f"returning stored record {usage.id}"
                    )
                    return usage
                raise UsageUnavailable(
                    f"No usage record covers now for user {user_id} and the "
                    f"billing period cannot be derived: {exc}",
                    user_id=user_id,
                ) from exc

            if usage is not None and period.matches(usage):
                return usage

            return self._apply_period(db, user_id, period)

    # ------------------------------------------------------------------
    # Quota gate and increment
    # ------------------------------------------------------------------
    def check_quota(self, user_id: str, requested_pages: int = 1) -> QuotaCheck:
        """Check whether ``requested_pages`` fit in the user's remaining allowance."""
        if requested_pages < 0:
            raise ValueError("requested_pages must not be negative")

        if self._quota_bypass:
            try:
                usage = self.get_current(user_id)
            except UsageError as exc:
                logger.warning(f"Quota bypass: usage for user {user_id} unavailable: {exc}")
                usage = None
            return QuotaCheck(
                has_quota=True,
                remaining=BYPASS_REMAINING_PAGES,
                usage=usage,
                bypassed=True,
            )

        usage = self.get_current(user_id)
        remaining = usage.pages_limit - usage.pages_processed
        has_quota = remaining >= requested_pages
        if not has_quota:
            logger.info(
                f"Quota exceeded for user {user_id}: "
                f"{remaining} pages remaining, {requested_pages} required"
            )
        return QuotaCheck(has_quota=has_quota, remaining=remaining, usage=usage)

    def increment(self, user_id: str, count: int = 1) -> UserUsage:
        """
        Add ``count`` processed pages to the current usage record.

        Raises:
            PageLimitExceeded: the new total would exceed the limit; nothing is written
            UsageRecordNotFound: the period rolled over meanwhile; retry
        """
        if count <= 0:
            raise ValueError("count must be positive")

        usage = self.get_current(user_id)
        if usage.pages_processed + count > usage.pages_limit:
            raise PageLimitExceeded(user_id, count, usage.pages_processed, usage.pages_limit)

        now = self._clock()
        with self._get_db() as db:
            if increment_pages_processed(db, usage.id, count, now):
                updated = get_usage_by_id(db, usage.id)
                logger.info(
                    f"User {user_id} processed {count} pages "
                    f"({updated.pages_processed}/{updated.pages_limit})"
                )
                return updated

            current = get_usage_by_id(db, usage.id)
            if current is not None and current.covers(now) \
                    and current.pages_processed + count > current.pages_limit:
                raise PageLimitExceeded(
                    user_id, count, current.pages_processed, current.pages_limit
                )
            raise UsageRecordNotFound(
                f"Usage record {usage.id} no longer covers the current period", user_id=user_id
            )


@lru_cache(maxsize=1)
def get_usage_service() -> UsageService:
    """Returns the shared service built from application settings."""
    settings = get_settings()
    return UsageService(
        RedisSubscriptionSource(redis_url=settings.REDIS_URL),
        build_plan_catalog(settings),
        quota_bypass=settings.USAGE_QUOTA_BYPASS,
    )


def get_current_usage(user_id: str) -> UserUsage:
    return get_usage_service().get_current(user_id)


def reconcile_usage(user_id: str, reference_date: Optional[datetime] = None) -> UserUsage:
    return get_usage_service().reconcile(user_id, reference_date)


def check_quota(user_id: str, requested_pages: int = 1) -> QuotaCheck:
    return get_usage_service().check_quota(user_id, requested_pages)


def increment_pages(user_id: str, count: int = 1) -> UserUsage:
    return get_usage_service().increment(user_id, count)
