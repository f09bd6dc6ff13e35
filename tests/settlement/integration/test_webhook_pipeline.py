"""End-to-end processing of processor events through ``handle_event``."""

import json
import threading

import pytest
from protean import current_domain

from settlement.affiliate.affiliate import Affiliate, Attribution, AttributionType
from settlement.affiliate.commission import CommissionEntry, commission_for
from settlement.dispatch.delivery_order import delivery_orders_for
from settlement.ledger.idempotency import IdempotencyKey, find_order_for_session, has_processed
from settlement.ledger.processed_event import ProcessedEvent
from settlement.member.courier import CourierProfile
from settlement.member.seller import SellerProfile, seller_profile_for
from settlement.payout.escrow import EscrowStatus, escrows_for_order
from settlement.payout.payout import Payout, PayoutReversal
from settlement.processor.port import ChargeSnapshot
from settlement.shipping.label import ShippingLabel
from settlement.stock.product import Product
from settlement.subscription.plan import SubscriptionPlan
from settlement.webhook import pipeline
from settlement.webhook.pipeline import handle_event


def _all(aggregate_cls):
    return current_domain.repository_for(aggregate_cls)._dao.query.all().items


def checkout_event(event_id="evt_1", session_id="cs_1", delivery_mode="PICKUP", quantity=2, **metadata):
    fields = {
        "buyerId": "buyer-1",
        "deliveryMode": delivery_mode,
        "items": json.dumps([{"productId": "prod-1", "quantity": quantity, "priceCents": 500, "sellerId": "seller-1"}]),
    }
    fields.update(metadata)
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "mode": "payment",
                "amount_total": 500 * quantity,
                "payment_intent": "pi_1",
                "metadata": fields,
            }
        },
    }


def event(event_id, event_type, obj):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


@pytest.fixture()
def catalog(make_member, make_product):
    make_member("buyer-1")
    make_member("seller-1", payout_account_id="acct_seller_1", latitude=52.3600, longitude=4.8852)
    make_product("prod-1", "seller-1", stock=10)


@pytest.mark.usefixtures("catalog")
class TestPickupCheckout:
    def test_order_stock_and_payout(self, processor, policies, push):
        ack = handle_event(checkout_event(), processor=processor, policies=policies)

        assert ack.status_code == 200
        assert ack.message == "ok"
        order = find_order_for_session("cs_1")
        assert order is not None
        assert order.payment_reference == "pi_1"
        assert current_domain.repository_for(Product).get("prod-1").stock == 8

        transfers = processor.transfers()
        assert len(transfers) == 1
        assert transfers[0]["amount_cents"] == 880
        assert has_processed(IdempotencyKey.event("evt_1"))

        assert {m["user_id"] for m in push.sent_messages} == {"buyer-1", "seller-1"}

    def test_redelivered_event_is_a_duplicate(self, processor, policies):
        handle_event(checkout_event(), processor=processor, policies=policies)
        ack = handle_event(checkout_event(), processor=processor, policies=policies)

        assert ack.status_code == 200
        assert ack.message == "duplicate"
        assert len(processor.transfers()) == 1
        assert current_domain.repository_for(Product).get("prod-1").stock == 8

    def test_new_event_for_a_settled_session_is_a_duplicate(self, processor, policies):
        handle_event(checkout_event(), processor=processor, policies=policies)
        ack = handle_event(checkout_event(event_id="evt_2"), processor=processor, policies=policies)

        assert ack.message == "duplicate"
        assert len(processor.transfers()) == 1

    def test_oversell_is_terminal(self, processor, policies):
        ack = handle_event(checkout_event(quantity=11), processor=processor, policies=policies)

        assert ack.status_code == 400
        assert ack.message.endswith("(non-retriable)")
        assert find_order_for_session("cs_1") is None
        assert current_domain.repository_for(Product).get("prod-1").stock == 10
        assert not has_processed(IdempotencyKey.event("evt_1"))

    def test_missing_buyer_is_terminal(self, processor, policies):
        ack = handle_event(checkout_event(buyerId=""), processor=processor, policies=policies)
        assert ack.status_code == 400
        assert processor.transfers() == []

    def test_empty_cart_is_terminal(self, processor, policies):
        ack = handle_event(checkout_event(items="[]"), processor=processor, policies=policies)
        assert ack.status_code == 400

    def test_compact_cart_encoding(self, processor, policies):
        ack = handle_event(
            checkout_event(items="", items_compact_0="prod-1|1|500|seller-1"),
            processor=processor,
            policies=policies,
        )
        assert ack.status_code == 200
        assert current_domain.repository_for(Product).get("prod-1").stock == 9


@pytest.mark.usefixtures("catalog")
class TestFailureHandling:
    def test_transient_failure_asks_for_redelivery(self, processor, policies, monkeypatch):
        def refuse(session):
            raise ConnectionError("connection refused")

        monkeypatch.setattr(pipeline, "place_order_for_session", refuse)

        ack = handle_event(checkout_event(), processor=processor, policies=policies)

        assert ack.status_code == 500
        assert ack.message.endswith("(retriable)")
        assert not has_processed(IdempotencyKey.event("evt_1"))

    def test_redelivery_after_transient_failure_settles(self, processor, policies, monkeypatch):
        original = pipeline.place_order_for_session

        def refuse(session):
            raise ConnectionError("connection refused")

        monkeypatch.setattr(pipeline, "place_order_for_session", refuse)
        handle_event(checkout_event(), processor=processor, policies=policies)
        monkeypatch.setattr(pipeline, "place_order_for_session", original)

        ack = handle_event(checkout_event(), processor=processor, policies=policies)

        assert ack.status_code == 200
        assert len(processor.transfers()) == 1

    def test_failing_post_commit_task_does_not_stop_the_rest(self, processor, policies, monkeypatch):
        def explode(placed, ctx):
            raise RuntimeError("notification backend down")

        tasks = [(name, explode if name == "notifications" else task) for name, task in pipeline.POST_COMMIT_TASKS]
        monkeypatch.setattr(pipeline, "POST_COMMIT_TASKS", tasks)

        ack = handle_event(checkout_event(), processor=processor, policies=policies)

        assert ack.status_code == 200
        assert len(processor.transfers()) == 1

    def test_malformed_envelope(self, processor, policies):
        ack = handle_event({"type": "checkout.session.completed"}, processor=processor, policies=policies)
        assert ack.status_code == 400

    def test_malformed_payload(self, processor, policies):
        ack = handle_event(
            event("evt_bad", "checkout.session.completed", {"mode": "payment"}),
            processor=processor,
            policies=policies,
        )
        assert ack.status_code == 400
        assert not has_processed(IdempotencyKey.event("evt_bad"))

    def test_unhandled_type_is_ignored(self, processor, policies):
        ack = handle_event(event("evt_x", "customer.created", {"id": "cus_1"}), processor=processor, policies=policies)
        assert ack.status_code == 200
        assert ack.message == "ignored"


@pytest.mark.usefixtures("catalog")
class TestShippingCheckout:
    def test_payout_is_escrowed_and_one_label_issued(self, processor, carrier, policies):
        ack = handle_event(checkout_event(delivery_mode="SHIPPING"), processor=processor, policies=policies)

        assert ack.status_code == 200
        order = find_order_for_session("cs_1")
        assert order.payment_held
        assert processor.transfers() == []

        escrows = escrows_for_order(order.id)
        assert len(escrows) == 1
        assert escrows[0].amount_cents == 880
        assert escrows[0].current_status == EscrowStatus.HELD.value
        assert _all(Payout)[0].provider_ref is None

        assert len(_all(ShippingLabel)) == 1

    def test_redelivery_issues_no_second_label(self, processor, carrier, policies):
        handle_event(checkout_event(delivery_mode="SHIPPING"), processor=processor, policies=policies)
        handle_event(checkout_event(event_id="evt_2", delivery_mode="SHIPPING"), processor=processor, policies=policies)

        assert len(_all(ShippingLabel)) == 1
        assert len(carrier.requests) == 1


@pytest.mark.usefixtures("catalog")
class TestDeliveryCheckout:
    def test_couriers_are_alerted(self, make_member, processor, policies, push):
        make_member("courier-1", latitude=52.3676, longitude=4.9041)
        current_domain.repository_for(CourierProfile).add(CourierProfile(user_id="courier-1"))

        ack = handle_event(
            checkout_event(
                delivery_mode="LOCAL_DELIVERY",
                coordinates=json.dumps({"lat": 52.3731, "lng": 4.8922}),
                deliveryFeeCents="300",
            ),
            processor=processor,
            policies=policies,
        )

        assert ack.status_code == 200
        order = find_order_for_session("cs_1")
        assert order.delivery_mode == "DELIVERY"
        delivery_orders = delivery_orders_for(order.id)
        assert len(delivery_orders) == 1
        assert delivery_orders[0].delivery_fee_cents == 300
        assert "courier-1" in {m["user_id"] for m in push.sent_messages}


@pytest.fixture()
def business_seller(make_member):
    make_member("seller-1")
    repo = current_domain.repository_for(SubscriptionPlan)
    repo.add(SubscriptionPlan(name="Pro", fee_bps=800, price_cents=2900))
    repo.add(SubscriptionPlan(name="Basic", fee_bps=1000, price_cents=900))
    current_domain.repository_for(SellerProfile).add(SellerProfile(user_id="seller-1"))

    affiliate = Affiliate(user_id="aff-user-1")
    current_domain.repository_for(Affiliate).add(affiliate)
    attribution = Attribution.start(
        "seller-1", affiliate.id, window_days=365, kind=AttributionType.BUSINESS_SIGNUP.value
    )
    current_domain.repository_for(Attribution).add(attribution)
    return attribution


def _subscribe(processor, policies, attribution):
    return handle_event(
        event(
            "evt_sub",
            "checkout.session.completed",
            {
                "id": "cs_sub",
                "mode": "subscription",
                "amount_total": 2900,
                "subscription": "sub_1",
                "customer": {"id": "cus_1", "object": "customer"},
                "metadata": {"plan": "PRO", "userId": "seller-1", "attribution_id": str(attribution.id)},
            },
        ),
        processor=processor,
        policies=policies,
    )


class TestSubscriptionEvents:
    def test_checkout_assigns_plan(self, business_seller, processor, policies):
        ack = _subscribe(processor, policies, business_seller)

        assert ack.status_code == 200
        profile = seller_profile_for("seller-1")
        assert profile.subscription_id is not None
        assert profile.processor_customer_id == "cus_1"

    def test_update_and_deletion(self, business_seller, processor, policies):
        _subscribe(processor, policies, business_seller)
        subscription = {
            "id": "sub_1",
            "status": "active",
            "metadata": {"userId": "seller-1"},
            "items": {"data": [{"price": {"id": "price_basic"}}]},
        }

        handle_event(event("evt_upd", "customer.subscription.updated", subscription), processor=processor, policies=policies)
        basic = next(p for p in _all(SubscriptionPlan) if p.name == "Basic")
        assert str(seller_profile_for("seller-1").subscription_id) == str(basic.id)

        handle_event(
            event("evt_del", "customer.subscription.deleted", {**subscription, "status": "canceled"}),
            processor=processor,
            policies=policies,
        )
        assert seller_profile_for("seller-1").subscription_id is None

    def _pay_invoice(self, processor, policies, attribution):
        _subscribe(processor, policies, attribution)
        handle_event(
            event("evt_inv", "invoice.paid", {"id": "in_1", "subscription": {"id": "sub_1"}, "amount_paid": 2900}),
            processor=processor,
            policies=policies,
        )
        return commission_for("in_1")

    def test_invoice_earns_commission(self, business_seller, processor, policies):
        entry = self._pay_invoice(processor, policies, business_seller)
        assert entry.amount_cents == 1450

    def test_refund_reverses_proportionally(self, business_seller, processor, policies):
        entry = self._pay_invoice(processor, policies, business_seller)

        handle_event(
            event("evt_ref", "charge.refunded", {"id": "ch_1", "invoice": "in_1", "amount": 2900, "amount_refunded": 1000}),
            processor=processor,
            policies=policies,
        )

        assert commission_for(f"ch_1_{entry.id}").amount_cents == -500
        assert len(_all(CommissionEntry)) == 2

    def test_dispute_reverses_through_the_charge(self, business_seller, processor, policies):
        entry = self._pay_invoice(processor, policies, business_seller)
        processor.add_charge(ChargeSnapshot(id="ch_2", amount=2900, invoice_id="in_1"))

        handle_event(
            event("evt_dsp", "charge.dispute.created", {"id": "dp_1", "charge": "ch_2", "amount": 2900}),
            processor=processor,
            policies=policies,
        )

        assert commission_for(f"dp_1_{entry.id}").amount_cents == -1450


@pytest.mark.usefixtures("catalog")
class TestTransferEvents:
    @pytest.fixture()
    def transfer_id(self, processor, policies):
        handle_event(checkout_event(), processor=processor, policies=policies)
        return _all(Payout)[0].provider_ref

    def test_created_notifies_the_seller(self, transfer_id, processor, policies, push):
        push.sent_messages.clear()

        ack = handle_event(
            event("evt_tr", "transfer.created", {"id": transfer_id, "amount": 880, "destination": "acct_seller_1"}),
            processor=processor,
            policies=policies,
        )

        assert ack.status_code == 200
        assert push.sent_messages[0]["title"] == "Payout on its way"

    def test_reversal_recorded_once(self, transfer_id, processor, policies):
        reversal = {"id": "trr_1", "transfer": transfer_id, "amount": 880}

        handle_event(event("evt_rev", "transfer.reversed", reversal), processor=processor, policies=policies)
        handle_event(event("evt_rev_2", "transfer.reversed", reversal), processor=processor, policies=policies)

        assert len(_all(PayoutReversal)) == 1

    def test_update_and_balance_are_acknowledged(self, transfer_id, processor, policies):
        updated = handle_event(event("evt_upd", "transfer.updated", {"id": transfer_id}), processor=processor, policies=policies)
        balance = handle_event(
            event("evt_bal", "balance.available", {"available": [{"amount": 880, "currency": "eur"}]}),
            processor=processor,
            policies=policies,
        )
        assert updated.status_code == 200
        assert balance.status_code == 200


class TestConcurrentDelivery:
    """Two copies of one event racing through the event gate."""

    def _balance_event(self):
        return event("evt_dup", "balance.available", {"available": [{"amount": 880, "currency": "eur"}]})

    def test_copy_that_loses_the_mark_is_a_duplicate(self, processor, policies, monkeypatch):
        # Both copies see the event as new, as they would when arriving together
        monkeypatch.setattr(pipeline, "has_processed", lambda key: False)

        first = handle_event(self._balance_event(), processor=processor, policies=policies)
        second = handle_event(self._balance_event(), processor=processor, policies=policies)

        assert (first.status_code, first.message) == (200, "ok")
        assert (second.status_code, second.message) == (200, "duplicate")
        assert len(_all(ProcessedEvent)) == 1

    def test_simultaneous_copies_are_both_acknowledged(self, processor, policies, monkeypatch):
        from settlement.domain import settlement

        barrier = threading.Barrier(2)
        original = pipeline.has_processed

        def gate_then_wait(key):
            seen = original(key)
            barrier.wait(timeout=5)
            return seen

        monkeypatch.setattr(pipeline, "has_processed", gate_then_wait)
        results = []

        def deliver():
            with settlement.domain_context():
                try:
                    ack = handle_event(self._balance_event(), processor=processor, policies=policies)
                    results.append((ack.status_code, ack.message))
                except Exception as exc:
                    results.append(exc)

        threads = [threading.Thread(target=deliver) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert sorted(results) == [(200, "duplicate"), (200, "ok")]
        assert has_processed(IdempotencyKey.event("evt_dup"))
        assert len(_all(ProcessedEvent)) == 1
