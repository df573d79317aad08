from sqlalchemy import Column, DateTime, Index, String

from period_utils import utc_now
from .base import Base


class Profile(Base):
    __tablename__ = "profiles"

    user_id = Column(String, primary_key=True)
    membership = Column(String, default="starter", nullable=False)

    # Billing provider references, written by the subscription sync
    stripe_customer_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("ix_profile_stripe_customer", "stripe_customer_id"),
    )
