"""
Subscription snapshots read from the billing KV store.

The subscription sync writes two keys per customer:
    stripe:user:{user_id}           -> customer id
    stripe:customer:{customer_id}   -> JSON subscription payload
"""
import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

import redis

from services.usage_errors import SnapshotUnavailable

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = frozenset({"active", "trialing"})


def user_to_customer_key(user_id: str) -> str:
    return f"stripe:user:{user_id}"


def customer_data_key(customer_id: str) -> str:
    return f"stripe:customer:{customer_id}"


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """Point-in-time view of a customer's subscription."""
    status: str = "none"
    plan_id: Optional[str] = None
    current_period_start: Optional[int] = None  # epoch seconds
    current_period_end: Optional[int] = None  # epoch seconds
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    cancel_at_period_end: bool = False

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def has_period(self) -> bool:
        return self.current_period_start is not None and self.current_period_end is not None

    @classmethod
    def none(cls, customer_id: Optional[str] = None) -> "SubscriptionSnapshot":
        return cls(status="none", customer_id=customer_id)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SubscriptionSnapshot":
        """Build a snapshot from the camelCase KV payload."""
        return cls(
            status=str(payload.get("status") or "none"),
            plan_id=payload.get("planId") or None,
            current_period_start=_optional_int(payload.get("currentPeriodStart")),
            current_period_end=_optional_int(payload.get("currentPeriodEnd")),
            customer_id=payload.get("customerId") or None,
            subscription_id=payload.get("subscriptionId") or None,
            cancel_at_period_end=bool(payload.get("cancelAtPeriodEnd", False)),
        )


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


class RedisSubscriptionSource:
    """Reads subscription snapshots from Redis."""

    def __init__(self, client: Optional[redis.Redis] = None, redis_url: Optional[str] = None):
        if client is None:
            redis_url = redis_url or "redis://localhost:6379"
            client = redis.from_url(redis_url, decode_responses=True)
            logger.info(f"RedisSubscriptionSource initialized with URL: {redis_url}")
        self.redis = client

    def get_snapshot(self, user_id: str, customer_id: Optional[str] = None) -> SubscriptionSnapshot:
        """
        Fetch the subscription snapshot for a user.

        Args:
            user_id: User identifier
            customer_id: Customer id known from the user's profile, used when
                the user -> customer mapping is missing from the store

        Returns:
            The snapshot; status "none" when the user has no subscription data

        Raises:
            SnapshotUnavailable: the store failed or returned an unreadable payload
        """
        try:
            mapped_customer = self.redis.get(user_to_customer_key(user_id))
            customer = mapped_customer or customer_id
            if not customer:
                return SubscriptionSnapshot.none()

            raw_payload = self.redis.get(customer_data_key(customer))
            if not raw_payload:
                logger.debug(f"No subscription data stored for customer {customer}")
                return SubscriptionSnapshot.none(customer_id=customer)

            payload = json.loads(raw_payload)
            if not isinstance(payload, dict):
                raise ValueError("subscription payload is not an object")
            snapshot = SubscriptionSnapshot.from_payload(payload)
        except redis.RedisError as e:
            raise SnapshotUnavailable(
                f"Subscription store unavailable for user {user_id}: {e}", user_id=user_id
            ) from e
        except (TypeError, ValueError) as e:
            raise SnapshotUnavailable(
                f"Unreadable subscription payload for user {user_id}: {e}", user_id=user_id
            ) from e

        if snapshot.customer_id is None:
            snapshot = replace(snapshot, customer_id=customer)
        return snapshot

    def health_check(self) -> bool:
        """
        Check if Redis connection is healthy

        Returns:
            True if Redis is accessible
        """
        try:
            self.redis.ping()
            return True
        except redis.RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
