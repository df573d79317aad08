"""Per-period page usage ledger."""

import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String

from period_utils import utc_now
from .base import Base


def _new_usage_id() -> str:
    return str(uuid.uuid4())


class UserUsage(Base):
    __tablename__ = "user_usage"

    id = Column(String(36), primary_key=True, default=_new_usage_id)
    user_id = Column(String, nullable=False, index=True)

    # Inclusive bounds, naive UTC
    billing_period_start = Column(DateTime, nullable=False)
    billing_period_end = Column(DateTime, nullable=False)

    # Counters
    pages_processed = Column(Integer, default=0, nullable=False)
    pages_limit = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("ix_user_usage_user_period_start", "user_id", "billing_period_start", unique=True),
        CheckConstraint("pages_processed >= 0", name="ck_user_usage_pages_non_negative"),
        CheckConstraint(
            "billing_period_start <= billing_period_end", name="ck_user_usage_period_order"
        ),
    )

    def covers(self, moment: datetime) -> bool:
        """Check if the record accounts for ``moment``."""
        return self.billing_period_start <= moment <= self.billing_period_end

    @property
    def remaining_pages(self) -> int:
        return self.pages_limit - self.pages_processed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "billing_period_start": self.billing_period_start.isoformat(),
            "billing_period_end": self.billing_period_end.isoformat(),
            "pages_processed": self.pages_processed,
            "pages_limit": self.pages_limit,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<UserUsage {self.id} user={self.user_id} "
            f"{self.pages_processed}/{self.pages_limit}>"
        )
