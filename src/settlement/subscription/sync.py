"""Subscription Sync — mirrors processor subscriptions onto seller fee tiers.

Writes are upserts keyed by the seller's user id, so replaying any of these
events leaves the profile in the same state.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean.utils.globals import current_domain

from settlement.affiliate.business_subscription import BusinessSubscription, business_subscription_for
from settlement.config import Policies
from settlement.ledger.idempotency import find_order_for_session
from settlement.member.seller import SellerProfile, seller_profile_for
from settlement.order.numbering import get_number_generator
from settlement.order.order import Order
from settlement.processor.port import PaymentProcessor
from settlement.subscription.plan import find_plan
from settlement.webhook.events import CheckoutSessionPayload, SubscriptionPayload

logger = structlog.get_logger(__name__)


def _metadata_int(metadata: dict, key: str) -> int:
    try:
        return int(metadata.get(key) or 0)
    except ValueError:
        return 0


def _open_business_subscription(session: CheckoutSessionPayload, user_id: str, plan, policies: Policies) -> None:
    if not session.subscription or not session.customer:
        return
    try:
        if business_subscription_for(session.subscription) is not None:
            return
        current_domain.repository_for(BusinessSubscription).add(
            BusinessSubscription.open(
                user_id=user_id,
                plan_id=plan.id,
                processor_subscription_id=session.subscription,
                window_days=policies.affiliate.attribution_window_days,
                attribution_id=session.metadata.get("attribution_id") or None,
                promo_code_id=session.metadata.get("promo_code_id") or None,
                final_price_cents=_metadata_int(session.metadata, "final_price_cents") or plan.price_cents,
            )
        )
        logger.info("Business subscription opened", user_id=user_id, subscription_id=session.subscription)
    except Exception as e:
        logger.error("Failed to open business subscription", user_id=user_id, error=str(e))


def _record_subscription_order(session: CheckoutSessionPayload, user_id: str, plan) -> None:
    amount_cents = session.amount_total or plan.price_cents or 0
    if amount_cents <= 0:
        return
    try:
        if find_order_for_session(session.id) is not None:
            return
        registration = " (registration)" if session.metadata.get("isRegistration") == "true" else ""
        order = Order.for_subscription(
            order_number=get_number_generator().subscription_order_number(),
            buyer_id=user_id,
            session_id=session.id,
            total_amount_cents=amount_cents,
            notes=f"Subscription payment: {plan.name}{registration}",
        )
        current_domain.repository_for(Order).add(order)
        logger.info("Subscription order recorded", user_id=user_id, amount_cents=amount_cents)
    except Exception as e:
        logger.error("Failed to record subscription order", user_id=user_id, error=str(e))


def apply_checkout_subscription(
    session: CheckoutSessionPayload,
    processor: PaymentProcessor,
    policies: Policies,
) -> bool:
    """A seller paid for a plan at checkout. Returns True when a plan was assigned."""
    plan_key = session.metadata.get("plan")
    user_id = session.metadata.get("userId")
    if not plan_key or not user_id:
        logger.warning("Subscription checkout without plan or user", session_id=session.id)
        return False

    profile = seller_profile_for(user_id)
    if profile is None:
        logger.error("Seller profile not found for subscription checkout", user_id=user_id)
        return False

    plan = find_plan(plan_key)
    if plan is None:
        logger.error("Subscription plan not found", plan=plan_key)
        return False

    period_end = None
    if session.subscription:
        snapshot = processor.retrieve_subscription(session.subscription)
        period_end = snapshot.current_period_end if snapshot else None

    valid_until = period_end or datetime.now(UTC) + timedelta(days=plan.duration_days or 0)
    profile.assign_subscription(
        plan.id,
        valid_until,
        processor_subscription_id=session.subscription,
        processor_customer_id=session.customer,
    )
    current_domain.repository_for(SellerProfile).add(profile)
    logger.info("Subscription assigned", user_id=user_id, plan=plan.name)

    _open_business_subscription(session, user_id, plan, policies)
    _record_subscription_order(session, user_id, plan)
    return True


def apply_subscription_update(subscription: SubscriptionPayload, policies: Policies) -> bool:
    user_id = subscription.user_id
    if not user_id:
        return False

    profile = seller_profile_for(user_id)
    if profile is None:
        logger.warning("Seller profile not found for subscription update", user_id=user_id)
        return False

    if subscription.status != "active":
        profile.clear_subscription()
        current_domain.repository_for(SellerProfile).add(profile)
        logger.info("Subscription cleared", user_id=user_id, status=subscription.status)
        return True

    plan = None
    plan_key = policies.plan_prices.plan_for_price(subscription.price_id)
    if plan_key:
        plan = find_plan(plan_key)

    valid_until = profile.subscription_valid_until
    if subscription.current_period_end:
        valid_until = datetime.fromtimestamp(subscription.current_period_end, tz=UTC)

    profile.assign_subscription(
        plan.id if plan else profile.subscription_id,
        valid_until,
        processor_subscription_id=subscription.id,
        processor_customer_id=subscription.customer,
    )
    current_domain.repository_for(SellerProfile).add(profile)
    logger.info("Subscription updated", user_id=user_id, status=subscription.status)
    return True


def apply_subscription_deleted(subscription: SubscriptionPayload) -> bool:
    user_id = subscription.user_id
    if not user_id:
        return False

    profile = seller_profile_for(user_id)
    if profile is None:
        logger.warning("Seller profile not found for subscription cancellation", user_id=user_id)
        return False

    profile.clear_subscription()
    current_domain.repository_for(SellerProfile).add(profile)
    logger.info("Subscription cancelled", user_id=user_id)
    return True
