"""CRUD operations for the page usage ledger."""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Query, Session

from period_utils import calendar_month_bounds, utc_now
from .user_usage import UserUsage

# Fields the reconciler may rewrite. The counter is only ever touched by
# increment_pages_processed.
RECONCILABLE_FIELDS = frozenset(
    {"billing_period_start", "billing_period_end", "pages_limit"}
)


def _newest_first(query: Query) -> Query:
    return query.order_by(
        UserUsage.billing_period_start.desc(),
        UserUsage.updated_at.desc(),
    )


# ==================== LOOKUPS ====================

def get_usage_by_id(db: Session, usage_id: str) -> Optional[UserUsage]:
    """Load a usage record, bypassing any stale identity-map copy."""
    return db.get(UserUsage, usage_id, populate_existing=True)


def find_usage_covering(db: Session, user_id: str, moment: datetime) -> Optional[UserUsage]:
    """Get the usage record whose billing period contains ``moment``."""
    query = db.query(UserUsage).filter(
        UserUsage.user_id == user_id,
        UserUsage.billing_period_start <= moment,
        UserUsage.billing_period_end >= moment,
    )
    return _newest_first(query).first()


def find_usage_for_calendar_month(
    db: Session, user_id: str, reference_date: datetime
) -> Optional[UserUsage]:
    """Get the usage record whose period starts in the calendar month of ``reference_date``."""
    month_start, month_end = calendar_month_bounds(reference_date)
    query = db.query(UserUsage).filter(
        UserUsage.user_id == user_id,
        UserUsage.billing_period_start >= month_start,
        UserUsage.billing_period_start <= month_end,
    )
    return _newest_first(query).first()


# ==================== WRITES ====================

def create_usage(
    db: Session,
    user_id: str,
    period_start: datetime,
    period_end: datetime,
    pages_limit: int,
) -> UserUsage:
    """Insert a fresh usage record with an empty counter."""
    now = utc_now()
    usage = UserUsage(
        user_id=user_id,
        billing_period_start=period_start,
        billing_period_end=period_end,
        pages_processed=0,
        pages_limit=pages_limit,
        created_at=now,
        updated_at=now,
    )
    db.add(usage)
    db.commit()
    db.refresh(usage)
    return usage


def update_usage_fields(
    db: Session, usage_id: str, fields: Dict[str, Any]
) -> Optional[UserUsage]:
    """Rewrite period bounds and/or limit of a record.

    Returns the updated record, or None if no record has ``usage_id``.
    Raises ValueError for fields outside RECONCILABLE_FIELDS.
    """
    illegal = set(fields) - RECONCILABLE_FIELDS
    if illegal:
        raise ValueError(f"Fields cannot be reconciled: {', '.join(sorted(illegal))}")

    values = {getattr(UserUsage, name): value for name, value in fields.items()}
    values[UserUsage.updated_at] = utc_now()

    updated = (
        db.query(UserUsage)
        .filter(UserUsage.id == usage_id)
        .update(values, synchronize_session=False)
    )
    db.commit()
    if not updated:
        return None
    return get_usage_by_id(db, usage_id)


def increment_pages_processed(
    db: Session, usage_id: str, count: int, moment: datetime
) -> int:
    """Atomically add ``count`` pages to a record.

    The update only applies while the record still covers ``moment`` and the
    new total stays within ``pages_limit``. Returns the number of rows updated.
    """
    updated = (
        db.query(UserUsage)
        .filter(
            UserUsage.id == usage_id,
            UserUsage.billing_period_start <= moment,
            UserUsage.billing_period_end >= moment,
            UserUsage.pages_processed + count <= UserUsage.pages_limit,
        )
        .update(
            {
                UserUsage.pages_processed: UserUsage.pages_processed + count,
                UserUsage.updated_at: utc_now(),
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return updated
