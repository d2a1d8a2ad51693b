"""
Plan-based entitlement configuration.

Single source of truth for the entitlement bundle attached to each plan,
and for mapping Stripe price IDs onto plans.
"""
import logging
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from app.schemas.subscription import EntitlementBundle, Plan

logger = logging.getLogger(__name__)

# Price ID -> plan. Built once from configuration and passed around explicitly.
PriceTable = Mapping[str, Plan]

# Entitlements per plan (counters always start at 0)
PLAN_ENTITLEMENTS: Dict[Plan, EntitlementBundle] = {
    Plan.FREE: EntitlementBundle(
        contact_view_quota=5,
        profile_boosts=0,
        unlimited_chat=False,
        featured_placement=False,
        advanced_filters=False,
        video_call=False,
        priority_support=False,
    ),
    Plan.BASIC: EntitlementBundle(
        contact_view_quota=25,
        profile_boosts=1,
        unlimited_chat=False,
        featured_placement=False,
        advanced_filters=True,
        video_call=False,
        priority_support=False,
    ),
    Plan.PREMIUM: EntitlementBundle(
        contact_view_quota=100,
        profile_boosts=5,
        unlimited_chat=True,
        featured_placement=True,
        advanced_filters=True,
        video_call=True,
        priority_support=False,
    ),
    Plan.ELITE: EntitlementBundle(
        contact_view_quota=999,
        profile_boosts=20,
        unlimited_chat=True,
        featured_placement=True,
        advanced_filters=True,
        video_call=True,
        priority_support=True,
    ),
}


def entitlements_for(plan: Plan) -> EntitlementBundle:
    """
    Get the entitlement bundle for a plan.

    Args:
        plan: Plan (free, basic, premium, elite)

    Returns:
        Fresh bundle with usage counters at 0
    """
    return PLAN_ENTITLEMENTS[Plan(plan)]


def build_price_table(
    basic: Optional[str] = None,
    premium: Optional[str] = None,
    elite: Optional[str] = None,
    extra: Optional[Mapping[str, Plan]] = None,
) -> PriceTable:
    """Build an immutable price ID -> plan table, skipping unset price IDs."""
    table: Dict[str, Plan] = {}

    for price_id, plan in ((basic, Plan.BASIC), (premium, Plan.PREMIUM), (elite, Plan.ELITE)):
        if price_id:
            table[price_id] = plan

    if extra:
        for price_id, plan in extra.items():
            if price_id:
                table[price_id] = Plan(plan)

    return MappingProxyType(table)


def resolve_plan(price_id: Optional[str], price_table: PriceTable) -> Plan:
    """
    Get plan from Stripe price ID.

    Unknown or missing price IDs fall back to free. The fallback is logged
    because it usually means the price table is out of date.
    """
    plan = price_table.get(price_id) if price_id else None
    if plan is None:
        logger.warning(f"Unknown price_id={price_id!r}, defaulting plan to free")
        return Plan.FREE
    return plan
