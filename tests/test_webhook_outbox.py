"""Tests for webhook subscriptions and outbox enqueueing."""

import json

import pytest
from sqlmodel import Session

from conftest import MERCHANT, OTHER_MERCHANT, PAYMENT_ID, count_rows
from gateway_indexer.core.errors import InvalidSubscriptionError
from gateway_indexer.models.webhook import DeliveryStatus, WebhookDelivery, WebhookSubscription
from gateway_indexer.services.projector import WebhookTrigger
from gateway_indexer.services.webhook_outbox import (
    deactivate_subscription,
    enqueue_deliveries,
    get_delivery_stats,
    list_deliveries,
    list_subscriptions,
    register_subscription,
)


def _trigger(merchant=MERCHANT):
    return WebhookTrigger(
        event_type="payment.created",
        merchant_address=merchant,
        payment_id=PAYMENT_ID,
        data={"paymentId": PAYMENT_ID, "merchant": merchant, "amount": "100", "status": "pending"},
    )


class TestRegisterSubscription:
    def test_returns_secret_once(self, test_session):
        subscription, secret = register_subscription(test_session, MERCHANT, "https://shop.example/hooks")

        assert subscription.id is not None
        assert subscription.is_active is True
        assert len(secret) == 64
        assert not hasattr(subscription, "secret")
        assert test_session.get(WebhookSubscription, subscription.id).secret == secret

    def test_address_is_checksummed(self, test_session):
        subscription, _ = register_subscription(test_session, MERCHANT.lower(), "https://shop.example/hooks")
        assert subscription.merchant_address == MERCHANT

    @pytest.mark.parametrize("url", ["ftp://shop.example/hooks", "shop.example/hooks", "https://", ""])
    def test_invalid_url_rejected(self, test_session, url):
        with pytest.raises(InvalidSubscriptionError):
            register_subscription(test_session, MERCHANT, url)

    def test_invalid_address_rejected(self, test_session):
        with pytest.raises(InvalidSubscriptionError):
            register_subscription(test_session, "0x1234", "https://shop.example/hooks")

    def test_list_hides_secret(self, test_session):
        register_subscription(test_session, MERCHANT, "https://a.example/hooks")
        register_subscription(test_session, MERCHANT, "https://b.example/hooks")
        register_subscription(test_session, OTHER_MERCHANT, "https://c.example/hooks")

        subscriptions = list_subscriptions(test_session, MERCHANT)

        assert [s.url for s in subscriptions] == ["https://a.example/hooks", "https://b.example/hooks"]
        assert all("secret" not in s.model_dump() for s in subscriptions)

    def test_list_accepts_any_address_case(self, test_session):
        register_subscription(test_session, MERCHANT, "https://a.example/hooks")

        assert len(list_subscriptions(test_session, MERCHANT.lower())) == 1
        assert list_subscriptions(test_session, "not-an-address") == []

    def test_deactivate(self, test_session):
        subscription, _ = register_subscription(test_session, MERCHANT, "https://shop.example/hooks")

        result = deactivate_subscription(test_session, subscription.id)

        assert result.is_active is False

    def test_deactivate_unknown(self, test_session):
        assert deactivate_subscription(test_session, 999) is None


class TestEnqueueDeliveries:
    def test_one_delivery_per_active_subscription(self, test_engine, make_subscription):
        first = make_subscription(url="https://a.example/hooks")
        second = make_subscription(url="https://b.example/hooks")
        make_subscription(url="https://c.example/hooks", is_active=False)
        make_subscription(merchant_address=OTHER_MERCHANT)

        with Session(test_engine) as session:
            deliveries = enqueue_deliveries(session, _trigger())
            session.commit()
            assert sorted(d.subscription_id for d in deliveries) == [first, second]

        assert count_rows(test_engine, WebhookDelivery) == 2

    def test_new_delivery_is_due_immediately(self, test_engine, make_subscription):
        make_subscription()

        with Session(test_engine) as session:
            (delivery,) = enqueue_deliveries(session, _trigger())
            session.commit()
            session.refresh(delivery)

            assert delivery.status == DeliveryStatus.PENDING
            assert delivery.attempts == 0
            assert delivery.next_retry_at is None
            assert delivery.event_type == "payment.created"
            assert json.loads(delivery.payload)["amount"] == "100"

    def test_no_subscriptions_no_deliveries(self, test_session):
        assert enqueue_deliveries(test_session, _trigger()) == []

    def test_not_committed_by_enqueue(self, test_engine, make_subscription):
        make_subscription()

        with Session(test_engine) as session:
            enqueue_deliveries(session, _trigger())
            session.rollback()

        assert count_rows(test_engine, WebhookDelivery) == 0


class TestDeliveryQueries:
    def test_history_newest_first(self, test_engine, make_subscription):
        subscription_id = make_subscription()
        with Session(test_engine) as session:
            enqueue_deliveries(session, _trigger())
            enqueue_deliveries(session, _trigger())
            session.commit()

            history = list_deliveries(session, subscription_id)

        assert len(history) == 2
        assert history[0].id > history[1].id

    def test_stats_count_every_status(self, test_engine, make_subscription):
        subscription_id = make_subscription()
        with Session(test_engine) as session:
            for status in (DeliveryStatus.PENDING, DeliveryStatus.PENDING, DeliveryStatus.FAILED):
                session.add(
                    WebhookDelivery(
                        subscription_id=subscription_id,
                        payment_id=PAYMENT_ID,
                        event_type="payment.created",
                        payload="{}",
                        status=status,
                    )
                )
            session.commit()

            assert get_delivery_stats(session) == {"pending": 2, "success": 0, "failed": 1}
