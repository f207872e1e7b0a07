import json

import pytest

from app.core.config import settings
from app.core.exceptions import InvalidWebhookError, WebhookPayloadMissingError
from app.models.payment_models import ConnectAccount
from app.services.payments import WebhookProcessor, stripe_client


def _event(event_type: str, obj: dict | None = None, event_id: str = "evt_test_1") -> str:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": obj or {"id": "obj_1", "object": "unknown"}},
        }
    )


@pytest.fixture
def processor(db_session):
    return WebhookProcessor(db_session, stripe_client)


def test_unknown_event_type_is_acknowledged(processor, sign_webhook):
    payload = _event("customer.subscription.trial_will_end")
    signature = sign_webhook(payload, settings.STRIPE_WEBHOOK_SECRET)
    assert processor.handle(payload.encode(), signature) == {"received": True}


def test_tampered_payload_is_rejected(processor, sign_webhook):
    payload = _event("payment_intent.succeeded")
    signature = sign_webhook(payload, settings.STRIPE_WEBHOOK_SECRET)
    tampered = payload.replace("evt_test_1", "evt_forged")

    with pytest.raises(InvalidWebhookError):
        processor.handle(tampered.encode(), signature)


def test_wrong_secret_is_rejected(processor, sign_webhook):
    payload = _event("payment_intent.succeeded")
    with pytest.raises(InvalidWebhookError):
        processor.handle(payload.encode(), sign_webhook(payload, "whsec_other"))


def test_missing_signature_and_body(processor):
    with pytest.raises(WebhookPayloadMissingError) as exc_info:
        processor.handle(b'{"id": "evt"}', None)
    assert exc_info.value.details == {"missing": "signature"}

    with pytest.raises(WebhookPayloadMissingError):
        processor.handle(b"", "t=1,v1=abc")


def test_duplicate_delivery_dispatched_once(processor, sign_webhook):
    seen = []
    processor.register_handler("payment_intent.succeeded", lambda event, tenant_id: seen.append(event))
    payload = _event("payment_intent.succeeded", {"id": "pi_1", "object": "payment_intent", "amount": 5000})
    signature = sign_webhook(payload, settings.STRIPE_WEBHOOK_SECRET)

    processor.handle(payload.encode(), signature)
    processor.handle(payload.encode(), signature)

    assert len(seen) == 1


def test_failing_handler_is_not_recorded(processor, sign_webhook):
    calls = []

    def flaky(event, tenant_id):
        calls.append(event)
        if len(calls) == 1:
            raise RuntimeError("downstream unavailable")

    processor.register_handler("payment_intent.payment_failed", flaky)
    payload = _event("payment_intent.payment_failed")
    signature = sign_webhook(payload, settings.STRIPE_WEBHOOK_SECRET)

    with pytest.raises(RuntimeError):
        processor.handle(payload.encode(), signature)
    assert processor.handle(payload.encode(), signature) == {"received": True}
    assert len(calls) == 2


def test_checkout_completed_reaches_listeners(processor, sign_webhook):
    sessions = []
    processor.add_checkout_listener(sessions.append)
    payload = _event("checkout.session.completed", {"id": "cs_1", "object": "checkout.session", "customer": "cus_1"})

    processor.handle(payload.encode(), sign_webhook(payload, settings.STRIPE_WEBHOOK_SECRET))

    assert len(sessions) == 1


def test_account_updated_refreshes_connect_flags(processor, sign_webhook, make_business, db_session):
    business = make_business()
    db_session.add(ConnectAccount(business_id=business.id, remote_account_id="acct_live_1"))
    db_session.commit()
    payload = _event(
        "account.updated",
        {
            "id": "acct_live_1",
            "object": "account",
            "type": "express",
            "country": "US",
            "charges_enabled": True,
            "details_submitted": True,
            "payouts_enabled": True,
        },
    )

    processor.handle(payload.encode(), sign_webhook(payload, settings.STRIPE_WEBHOOK_SECRET))

    account = db_session.query(ConnectAccount).filter_by(remote_account_id="acct_live_1").one()
    assert account.is_complete is True
    assert account.payouts_enabled is True


def test_tenant_webhook_secret_takes_precedence(processor, sign_webhook, make_business, db_session):
    business = make_business()
    business.webhook_secret = "whsec_tenant_a"
    db_session.commit()
    payload = _event("payment_intent.succeeded")

    tenant_signature = sign_webhook(payload, "whsec_tenant_a")
    assert processor.handle(payload.encode(), tenant_signature, tenant_id="tenant-a") == {"received": True}

    platform_signature = sign_webhook(_event("payment_intent.succeeded", event_id="evt_2"), settings.STRIPE_WEBHOOK_SECRET)
    with pytest.raises(InvalidWebhookError):
        processor.handle(
            _event("payment_intent.succeeded", event_id="evt_2").encode(), platform_signature, tenant_id="tenant-a"
        )


@pytest.fixture
def two_gyms(make_business, db_session):
    gym_a = make_business(tenant_id="tenant-a", name="Iron Temple Gym")
    gym_a.webhook_secret = "whsec_tenant_a"
    gym_b = make_business(tenant_id="tenant-b", name="Harbor Fitness")
    db_session.add(ConnectAccount(business_id=gym_a.id, remote_account_id="acct_gym_a"))
    db_session.add(ConnectAccount(business_id=gym_b.id, remote_account_id="acct_gym_b"))
    db_session.commit()
    return gym_a, gym_b


def _account_updated(account_id: str, event_id: str) -> str:
    return _event(
        "account.updated",
        {"id": account_id, "object": "account", "charges_enabled": True, "details_submitted": True},
        event_id=event_id,
    )


def test_tenant_secret_cannot_update_another_tenants_account(processor, sign_webhook, two_gyms, db_session):
    payload = _account_updated("acct_gym_b", "evt_cross_1")

    result = processor.handle(payload.encode(), sign_webhook(payload, "whsec_tenant_a"), tenant_id="tenant-a")

    assert result == {"received": True}
    account = db_session.query(ConnectAccount).filter_by(remote_account_id="acct_gym_b").one()
    assert account.is_complete is False

    # The genuine platform delivery of the same event id is still applied
    processor.handle(payload.encode(), sign_webhook(payload, settings.STRIPE_WEBHOOK_SECRET))
    db_session.refresh(account)
    assert account.is_complete is True


def test_tenant_secret_updates_own_account(processor, sign_webhook, two_gyms, db_session):
    payload = _account_updated("acct_gym_a", "evt_own_1")

    processor.handle(payload.encode(), sign_webhook(payload, "whsec_tenant_a"), tenant_id="tenant-a")

    account = db_session.query(ConnectAccount).filter_by(remote_account_id="acct_gym_a").one()
    assert account.is_complete is True


def test_tenant_scoped_checkout_reaches_listeners_only_for_that_tenant(processor, sign_webhook, two_gyms):
    sessions = []
    processor.add_checkout_listener(sessions.append)
    foreign = _event(
        "checkout.session.completed",
        {"id": "cs_b", "object": "checkout.session", "metadata": {"tenant_id": "tenant-b"}},
        event_id="evt_cs_b",
    )
    own = _event(
        "checkout.session.completed",
        {"id": "cs_a", "object": "checkout.session", "metadata": {"tenant_id": "tenant-a"}},
        event_id="evt_cs_a",
    )

    processor.handle(foreign.encode(), sign_webhook(foreign, "whsec_tenant_a"), tenant_id="tenant-a")
    processor.handle(own.encode(), sign_webhook(own, "whsec_tenant_a"), tenant_id="tenant-a")

    assert [session["id"] for session in sessions] == ["cs_a"]


def test_platform_secret_dispatches_without_tenant_scope(processor, sign_webhook, two_gyms):
    scopes = []
    processor.register_handler("payment_intent.succeeded", lambda event, tenant_id: scopes.append(tenant_id))
    payload = _event("payment_intent.succeeded", {"id": "pi_9", "object": "payment_intent"}, event_id="evt_pi_9")

    processor.handle(payload.encode(), sign_webhook(payload, settings.STRIPE_WEBHOOK_SECRET), tenant_id="tenant-b")

    assert scopes == [None]
