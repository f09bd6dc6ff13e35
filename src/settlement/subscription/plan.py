"""SubscriptionPlan — a seller fee tier offered by the platform."""

from protean.fields import Boolean, Integer, String
from protean.utils.globals import current_domain

from settlement.domain import settlement

_PLAN_NAMES = {
    "basic": "Basic",
    "pro": "Pro",
    "premium": "Premium",
}


@settlement.aggregate
class SubscriptionPlan:
    name = String(required=True, max_length=50)
    fee_bps = Integer(default=0, min_value=0)
    price_cents = Integer(default=0, min_value=0)
    duration_days = Integer(default=30, min_value=0)
    is_active = Boolean(default=True)

    @property
    def fee_pct(self) -> float:
        return (self.fee_bps or 0) / 100


def normalize_plan_name(plan_key: str) -> str:
    """Map a processor plan key (``BASIC``, ``pro``...) to the stored plan name."""
    key = plan_key.strip().lower()
    return _PLAN_NAMES.get(key, key.capitalize())


def find_plan(plan_key: str) -> SubscriptionPlan | None:
    """Find an active plan by name, falling back to the lowercase plan id."""
    if not plan_key:
        return None

    repo = current_domain.repository_for(SubscriptionPlan)
    candidates = repo._dao.query.filter(name=normalize_plan_name(plan_key)).all().items
    plan = next((p for p in candidates if p.is_active), None)
    if plan is not None:
        return plan

    return repo._dao.query.filter(id=plan_key.lower()).all().first


def plan_by_id(plan_id) -> SubscriptionPlan | None:
    if not plan_id:
        return None
    return current_domain.repository_for(SubscriptionPlan)._dao.query.filter(id=str(plan_id)).all().first
