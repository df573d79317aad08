"""Subscription plans and their page allowances."""

from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from config import Settings, get_settings

DEFAULT_TIER = "starter"


@dataclass(frozen=True)
class PlanConfig:
    """Limits configuration for each plan."""
    plan_id: str
    name: str
    description: str
    price_monthly: float  # USD, 0 for free
    page_quota: int  # pages per billing period
    batch_processing: bool
    batch_processing_limit: int  # max documents per batch job
    support_level: str
    data_retention_days: int
    stripe_price_id: Optional[str] = None


PLAN_CONFIG: Dict[str, PlanConfig] = {
    "starter": PlanConfig(
        plan_id="starter",
        name="Starter",
        description="Individuals exploring document extraction",
        price_monthly=0.0,
        page_quota=25,
        batch_processing=False,
        batch_processing_limit=1,
        support_level="community",
        data_retention_days=30,
    ),
    "plus": PlanConfig(
        plan_id="plus",
        name="Plus",
        description="Professionals with regular extraction needs",
        price_monthly=9.99,
        page_quota=250,
        batch_processing=True,
        batch_processing_limit=25,
        support_level="email",
        data_retention_days=90,
    ),
    "growth": PlanConfig(
        plan_id="growth",
        name="Growth",
        description="Businesses and power users with higher volume",
        price_monthly=19.99,
        page_quota=500,
        batch_processing=True,
        batch_processing_limit=100,
        support_level="priority",
        data_retention_days=365,
    ),
}


class PlanCatalog:
    """Lookup of plans by tier name, with a default tier as universal fallback."""

    def __init__(self, plans: Dict[str, PlanConfig], default_tier: str = DEFAULT_TIER):
        if default_tier not in plans:
            raise ValueError(f"Default tier '{default_tier}' is not a known plan")
        self._plans = dict(plans)
        self.default_tier = default_tier

    def is_known(self, tier: Optional[str]) -> bool:
        return tier in self._plans

    def get_plan(self, tier: Optional[str]) -> PlanConfig:
        return self._plans.get(tier or "", self._plans[self.default_tier])

    def get_page_allowance(self, tier: Optional[str]) -> int:
        return self.get_plan(tier).page_quota

    def get_plan_by_stripe_price_id(self, price_id: str) -> Optional[PlanConfig]:
        for plan in self._plans.values():
            if plan.stripe_price_id and plan.stripe_price_id == price_id:
                return plan
        return None

    def has_reached_quota(self, pages_processed: int, tier: Optional[str]) -> bool:
        return pages_processed >= self.get_page_allowance(tier)

    def is_batch_size_allowed(self, batch_size: int, tier: Optional[str]) -> bool:
        plan = self.get_plan(tier)
        if not plan.batch_processing:
            return batch_size <= 1
        return batch_size <= plan.batch_processing_limit

    def plans(self) -> List[PlanConfig]:
        return list(self._plans.values())


def build_plan_catalog(settings: Optional[Settings] = None) -> PlanCatalog:
    """Build the catalog, applying quota and price overrides from settings."""
    settings = settings or get_settings()
    plans = {}
    for tier, plan in PLAN_CONFIG.items():
        plans[tier] = replace(
            plan,
            page_quota=settings.PLAN_PAGE_QUOTAS.get(tier, plan.page_quota),
            stripe_price_id=settings.PLAN_STRIPE_PRICE_IDS.get(tier, plan.stripe_price_id),
        )
    return PlanCatalog(plans, default_tier=settings.DEFAULT_TIER)
