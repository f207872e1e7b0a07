import pytest
import stripe

from app.core.exceptions import InvalidPaymentRequestError, RemoteUnavailableError
from app.models.payment_models import ConnectAccount
from app.models.schemas import CreatePaymentIntentParams
from app.services.payments import PaysafePaymentAdapter, StripePaymentAdapter, paysafe_client, stripe_client
from app.services.payments.adapters.paysafe_adapter import normalize_paysafe_status


@pytest.fixture
def stripe_adapter():
    return StripePaymentAdapter(stripe_client)


@pytest.fixture
def paysafe_adapter(paysafe_session):
    return PaysafePaymentAdapter(paysafe_client)


@pytest.fixture
def gym(make_user, make_business):
    owner = make_user(email="owner@irontemple.test")
    return make_business(owner=owner)


def _connect(db_session, fake_stripe, business, complete: bool, cached_complete: bool | None = None):
    remote = fake_stripe.Account.create(type="express", country="US")
    remote.details_submitted = complete
    remote.charges_enabled = complete
    cached = complete if cached_complete is None else cached_complete
    db_session.add(
        ConnectAccount(
            business_id=business.id,
            remote_account_id=remote.id,
            details_submitted=cached,
            charges_enabled=cached,
        )
    )
    db_session.commit()
    return remote.id


def _params(**overrides) -> CreatePaymentIntentParams:
    values = {
        "amount_cents": 5000,
        "customer_id": "cus_test",
        "payment_method_id": "pm_visa",
        "tenant_id": "tenant-a",
    }
    values.update(overrides)
    return CreatePaymentIntentParams(**values)


# ----------------------------------------------------------------- Stripe
def test_stripe_customer_resolution_is_idempotent(stripe_adapter, make_user, fake_stripe):
    user = make_user()
    first = stripe_adapter.create_or_get_customer(user, tenant_id="tenant-a")
    second = stripe_adapter.create_or_get_customer(user, tenant_id="tenant-a")

    assert first.customer_id == second.customer_id
    assert first.customer_id.startswith("cus_")
    assert fake_stripe.count("Customer.create") == 1


def test_fee_routed_to_complete_connect_account(stripe_adapter, gym, fake_stripe, db_session):
    account_id = _connect(db_session, fake_stripe, gym, complete=True, cached_complete=False)

    result = stripe_adapter.create_payment_intent(_params(application_fee_amount=500))

    intent = fake_stripe.intents[-1]
    assert intent["application_fee_amount"] == 500
    assert intent["on_behalf_of"] == account_id
    assert intent["transfer_data"] == {"destination": account_id}
    assert result.status == "succeeded"
    assert result.metadata["connected_account"] == account_id


def test_no_fee_for_incomplete_connect_account(stripe_adapter, gym, fake_stripe, db_session):
    _connect(db_session, fake_stripe, gym, complete=False)

    stripe_adapter.create_payment_intent(_params(application_fee_amount=500))

    intent = fake_stripe.intents[-1]
    assert "application_fee_amount" not in intent
    assert "on_behalf_of" not in intent
    assert "transfer_data" not in intent


def test_no_fee_without_connect_account(stripe_adapter, gym, fake_stripe):
    stripe_adapter.create_payment_intent(_params(application_fee_amount=500))
    assert "application_fee_amount" not in fake_stripe.intents[-1]


def test_zero_fee_keeps_charge_on_platform(stripe_adapter, gym, fake_stripe, db_session):
    _connect(db_session, fake_stripe, gym, complete=True)
    stripe_adapter.create_payment_intent(_params(application_fee_amount=0))
    assert "on_behalf_of" not in fake_stripe.intents[-1]


def test_cached_flags_used_when_reconcile_fails(stripe_adapter, gym, fake_stripe, db_session):
    account_id = _connect(db_session, fake_stripe, gym, complete=True)
    fake_stripe.failures["Account.retrieve"] = stripe.APIConnectionError("timeout")

    stripe_adapter.create_payment_intent(_params(application_fee_amount=250))

    assert fake_stripe.intents[-1]["on_behalf_of"] == account_id


def test_fee_must_be_smaller_than_amount(stripe_adapter, fake_stripe):
    with pytest.raises(InvalidPaymentRequestError):
        stripe_adapter.create_payment_intent(_params(amount_cents=500, application_fee_amount=500))
    assert fake_stripe.intents == []


def test_intent_defaults_and_idempotency_key(stripe_adapter, fake_stripe):
    stripe_adapter.create_payment_intent(_params(idempotency_key="invoice-42", tenant_id=None))

    intent = fake_stripe.intents[-1]
    assert intent["currency"] == "usd"
    assert intent["confirm"] is True
    assert intent["idempotency_key"] == "invoice-42"
    assert intent["customer"] == "cus_test"
    assert intent["payment_method"] == "pm_visa"


def test_stripe_status_passthrough(stripe_adapter, fake_stripe):
    fake_stripe.intent_status = "requires_action"
    assert stripe_adapter.create_payment_intent(_params()).status == "requires_action"


def test_stripe_intent_failure_is_remote_unavailable(stripe_adapter, fake_stripe):
    fake_stripe.failures["PaymentIntent.create"] = stripe.APIConnectionError("connection reset")
    with pytest.raises(RemoteUnavailableError) as exc_info:
        stripe_adapter.create_payment_intent(_params())
    assert exc_info.value.message == "Failed to create payment intent: connection reset"


def test_stripe_card_info(stripe_adapter, fake_stripe):
    fake_stripe.add_card("pm_visa")
    info = stripe_adapter.get_card_info_from_payment_method("pm_visa")
    assert (info.brand, info.last4, info.exp_month) == ("visa", "4242", 12)


def test_stripe_card_info_never_raises(stripe_adapter, fake_stripe):
    fake_stripe.failures["PaymentMethod.retrieve"] = stripe.APIConnectionError("timeout")
    assert stripe_adapter.get_card_info_from_payment_method("pm_visa") is None


def test_stripe_attach_payment_method(stripe_adapter, fake_stripe):
    fake_stripe.add_card("pm_visa")
    stripe_adapter.attach_payment_method("cus_test", "pm_visa", set_as_default=False)
    assert fake_stripe.payment_methods["pm_visa"].customer == "cus_test"
    assert fake_stripe.count("Customer.modify") == 0


# ---------------------------------------------------------------- Paysafe
def test_paysafe_placeholder_customer(paysafe_adapter, make_user, paysafe_session):
    user = make_user()
    result = paysafe_adapter.create_or_get_customer(user, tenant_id="tenant-a")
    assert result.customer_id == f"paysafe-tenant-a-{user.id}"
    assert paysafe_adapter.create_or_get_customer(user).customer_id == f"paysafe-platform-{user.id}"
    assert paysafe_session.posts == []


def test_paysafe_completed_maps_to_succeeded(paysafe_adapter, paysafe_session):
    result = paysafe_adapter.create_payment_intent(
        _params(payment_method_id="SUT_token", description="Monthly membership", application_fee_amount=300)
    )

    assert result.status == "succeeded"
    assert result.id == "pay_test_1"
    post = paysafe_session.posts[0]
    assert post["url"].endswith("/paymenthub/v1/payments")
    body = post["json"]
    assert body["amount"] == 5000
    assert body["currencyCode"] == "USD"
    assert body["paymentHandleToken"] == "SUT_token"
    assert body["settleWithAuth"] is True
    assert body["merchantRefNum"].startswith("gym-")
    assert body["description"] == "Monthly membership"
    assert "applicationFee" not in body


def test_paysafe_uses_caller_reference(paysafe_adapter, paysafe_session):
    paysafe_adapter.create_payment_intent(_params(idempotency_key="invoice-42"))
    assert paysafe_session.posts[0]["json"]["merchantRefNum"] == "invoice-42"


def test_paysafe_error_is_remote_unavailable(paysafe_adapter, paysafe_session):
    paysafe_session.respond(402, {"error": {"code": "3022", "message": "The card has been declined."}})
    with pytest.raises(RemoteUnavailableError) as exc_info:
        paysafe_adapter.create_payment_intent(_params())
    assert exc_info.value.remote_message == "The card has been declined."
    assert exc_info.value.details["provider"] == "paysafe"


def test_paysafe_error_body_with_success_status(paysafe_adapter, paysafe_session):
    paysafe_session.respond(
        200,
        {"id": "pay_declined", "status": "FAILED", "error": {"code": "3009", "message": "Your request has been declined."}},
    )
    with pytest.raises(RemoteUnavailableError) as exc_info:
        paysafe_adapter.create_payment_intent(_params())
    assert exc_info.value.remote_message == "Your request has been declined."


def test_paysafe_has_no_card_details(paysafe_adapter):
    assert paysafe_adapter.get_card_info_from_payment_method("SUT_token") is None
    assert paysafe_adapter.attach_payment_method("paysafe-tenant-a-1", "SUT_token", True) is None


@pytest.mark.parametrize(
    "native, canonical",
    [
        ("COMPLETED", "succeeded"),
        ("PENDING", "processing"),
        ("RECEIVED", "processing"),
        ("FAILED", "failed"),
        ("ERROR", "failed"),
        ("CANCELLED", "canceled"),
        ("SOMETHING_NEW", "processing"),
    ],
)
def test_paysafe_status_normalization(native, canonical):
    assert normalize_paysafe_status(native) == canonical
