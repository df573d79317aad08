"""Tests for the usage ledger CRUD layer."""

from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from models.user_usage import UserUsage
from models.usage_crud import (
    create_usage,
    find_usage_covering,
    find_usage_for_calendar_month,
    get_usage_by_id,
    increment_pages_processed,
    update_usage_fields,
)

OCT_START = datetime(2024, 10, 1)
OCT_END = datetime(2024, 10, 31, 23, 59, 59, 999999)


@pytest.fixture
def db(sqlite_session_factory):
    session = sqlite_session_factory()
    try:
        yield session
    finally:
        session.close()


def test_create_usage_starts_with_empty_counter(db):
    usage = create_usage(db, "user-1", OCT_START, OCT_END, 100)

    assert usage.id
    assert usage.pages_processed == 0
    assert usage.pages_limit == 100
    assert usage.created_at is not None


def test_duplicate_period_start_is_rejected(db):
    create_usage(db, "user-1", OCT_START, OCT_END, 100)
    with pytest.raises(IntegrityError):
        create_usage(db, "user-1", OCT_START, OCT_END, 250)
    db.rollback()


def test_find_usage_covering_respects_inclusive_bounds(db):
    usage = create_usage(db, "user-1", OCT_START, OCT_END, 100)

    assert find_usage_covering(db, "user-1", OCT_START).id == usage.id
    assert find_usage_covering(db, "user-1", OCT_END).id == usage.id
    assert find_usage_covering(db, "user-1", datetime(2024, 11, 1)) is None
    assert find_usage_covering(db, "user-2", datetime(2024, 10, 5)) is None


def test_find_usage_covering_prefers_latest_start(db):
    create_usage(db, "user-1", OCT_START, OCT_END, 100)
    newer = create_usage(db, "user-1", datetime(2024, 10, 10), datetime(2024, 11, 10), 500)

    assert find_usage_covering(db, "user-1", datetime(2024, 10, 15)).id == newer.id


def test_find_usage_for_calendar_month_matches_period_start(db):
    usage = create_usage(db, "user-1", datetime(2024, 10, 10), datetime(2024, 11, 10), 500)

    assert find_usage_for_calendar_month(db, "user-1", datetime(2024, 10, 31)).id == usage.id
    # The period reaches into November, but it started in October
    assert find_usage_for_calendar_month(db, "user-1", datetime(2024, 11, 5)) is None


def test_update_usage_fields_rewrites_period_and_limit(db):
    usage = create_usage(db, "user-1", OCT_START, OCT_END, 100)

    updated = update_usage_fields(db, usage.id, {"pages_limit": 500})

    assert updated.pages_limit == 500
    assert updated.billing_period_start == OCT_START
    assert updated.updated_at >= usage.updated_at


def test_update_usage_fields_refuses_counter(db):
    usage = create_usage(db, "user-1", OCT_START, OCT_END, 100)

    with pytest.raises(ValueError, match="pages_processed"):
        update_usage_fields(db, usage.id, {"pages_processed": 0})


def test_update_usage_fields_unknown_id_returns_none(db):
    assert update_usage_fields(db, "missing", {"pages_limit": 10}) is None


def test_increment_pages_processed_applies_within_limit(db):
    usage = create_usage(db, "user-1", OCT_START, OCT_END, 10)

    assert increment_pages_processed(db, usage.id, 4, datetime(2024, 10, 15)) == 1
    assert get_usage_by_id(db, usage.id).pages_processed == 4


def test_increment_pages_processed_stops_at_limit(db):
    usage = create_usage(db, "user-1", OCT_START, OCT_END, 10)
    increment_pages_processed(db, usage.id, 9, datetime(2024, 10, 15))

    assert increment_pages_processed(db, usage.id, 2, datetime(2024, 10, 15)) == 0
    assert increment_pages_processed(db, usage.id, 1, datetime(2024, 10, 15)) == 1
    assert get_usage_by_id(db, usage.id).pages_processed == 10


def test_increment_pages_processed_outside_period_matches_nothing(db):
    usage = create_usage(db, "user-1", OCT_START, OCT_END, 10)

    assert increment_pages_processed(db, usage.id, 1, datetime(2024, 11, 1)) == 0
    assert get_usage_by_id(db, usage.id).pages_processed == 0


def test_user_usage_helpers():
    usage = UserUsage(
        id="abc",
        user_id="user-1",
        billing_period_start=OCT_START,
        billing_period_end=OCT_END,
        pages_processed=30,
        pages_limit=100,
    )

    assert usage.covers(datetime(2024, 10, 20))
    assert not usage.covers(datetime(2024, 9, 30))
    assert usage.remaining_pages == 70
    assert usage.to_dict()["billing_period_start"] == "2024-10-01T00:00:00"
