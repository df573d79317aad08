import os
import sys
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from models.base import Base
from services.plan_catalog import PLAN_CONFIG, PlanCatalog
from services.subscription_snapshot import SubscriptionSnapshot
from services.usage_service import UsageService


class FrozenClock:
    """Clock returning a fixed instant that tests can move."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def sqlite_session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    testing_session = sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    try:
        yield testing_session
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def get_test_db(sqlite_session_factory):
    @contextmanager
    def _get_db():
        db = sqlite_session_factory()
        try:
            yield db
        finally:
            db.close()

    return _get_db


@pytest.fixture
def catalog() -> PlanCatalog:
    """Catalog with a 100-page starter plan and a 500-page growth plan."""
    plans = dict(PLAN_CONFIG)
    plans["starter"] = replace(plans["starter"], page_quota=100)
    plans["growth"] = replace(plans["growth"], page_quota=500)
    return PlanCatalog(plans, default_tier="starter")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 10, 15, 12, 0, 0))


@pytest.fixture
def snapshot_source():
    source = MagicMock()
    source.get_snapshot.return_value = SubscriptionSnapshot.none()
    return source


@pytest.fixture
def usage_service(snapshot_source, catalog, get_test_db, clock) -> UsageService:
    return UsageService(
        snapshot_source,
        catalog,
        get_db_fn=get_test_db,
        clock=clock,
    )
