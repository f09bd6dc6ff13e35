"""Shared BDD fixtures and step definitions for checkout settlement."""

import json

import pytest
from pytest_bdd import given, parsers
from settlement.webhook.pipeline import handle_event


@pytest.fixture()
def deliver_event(processor, carrier, policies):
    """Send a processor event through the pipeline with the fake adapters."""

    def _deliver(event):
        return handle_event(event, processor=processor, policies=policies)

    return _deliver


@pytest.fixture()
def pay_checkout(deliver_event):
    """Complete a one-line checkout session; returns the event and its acknowledgment."""

    def _pay(session_id, product_id, quantity, price_cents, delivery_mode, event_id="evt_1"):
        event = {
            "id": event_id,
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": session_id,
                    "mode": "payment",
                    "amount_total": quantity * price_cents,
                    "payment_intent": f"pi_{session_id}",
                    "metadata": {
                        "buyerId": "buyer-1",
                        "deliveryMode": delivery_mode,
                        "items": json.dumps(
                            [{"productId": product_id, "quantity": quantity, "priceCents": price_cents}]
                        ),
                    },
                }
            },
        }
        return event, deliver_event(event)

    return _pay


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a buyer "{user_id}" with a complete postal address'))
def _buyer(make_member, user_id):
    make_member(user_id)


@given(parsers.cfparse('a seller "{user_id}" with payout account "{account}"'))
def _seller(make_member, user_id, account):
    make_member(user_id, payout_account_id=account)


@given(parsers.cfparse('product "{product_id}" from "{seller_id}" with {stock:d} in stock'))
def _product(make_product, product_id, seller_id, stock):
    make_product(product_id, seller_id, stock=stock)


@given(
    parsers.cfparse(
        'checkout session "{session_id}" was paid for {quantity:d} of "{product_id}" '
        'at {price_cents:d} cents for "{delivery_mode}"'
    ),
    target_fixture="checkout",
)
def _paid_checkout(pay_checkout, session_id, quantity, product_id, price_cents, delivery_mode):
    event, _ = pay_checkout(session_id, product_id, quantity, price_cents, delivery_mode)
    return event
