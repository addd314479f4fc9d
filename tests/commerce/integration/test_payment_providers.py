"""Provider adapter tests against canned HTTP responses."""

import json

import httpx
import pytest
import stripe

from commerce.config import MobilePaySettings, Settings, StripeSettings
from commerce.errors import ProviderUnavailable
from commerce.payments.providers.mobilepay import ACCESS_TOKEN_PATH, PAYMENTS_PATH, MobilePayProvider
from commerce.payments.providers.port import ChargeRequest, ChargeStatus, PaymentMethod, ProviderType
from commerce.payments.providers.stripe import StripeProvider
from commerce.payments.router import build_payment_router
from commerce.shared.money import Money


class Recorder:
    """MockTransport handler answering from a route table and keeping every request."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": {"message": "no route"}})
        if callable(handler):
            return handler(request)
        return httpx.Response(handler.status_code, content=handler.content, headers=handler.headers)


class StripeStub:
    """Stands in for the stripe SDK calls, answering from a table and keeping every call."""

    def __init__(self, monkeypatch, answers):
        self.answers = answers
        self.calls = []
        for resource, method in (
            (stripe.PaymentIntent, "create"),
            (stripe.PaymentIntent, "retrieve"),
            (stripe.PaymentIntent, "capture"),
            (stripe.PaymentIntent, "cancel"),
            (stripe.Refund, "create"),
        ):
            monkeypatch.setattr(resource, method, self._answer(f"{resource.OBJECT_NAME}.{method}"))

    def _answer(self, name):
        def call(*args, **params):
            self.calls.append((name, args, params))
            answer = self.answers.get(name)
            if answer is None:
                raise stripe.InvalidRequestError("No such object", "id")
            if isinstance(answer, Exception):
                raise answer
            return stripe.StripeObject.construct_from(answer, params.get("api_key"))

        return call


@pytest.fixture()
def stripe_stub(monkeypatch):
    def _build(answers):
        stub = StripeStub(monkeypatch, answers)
        return StripeProvider(StripeSettings(enabled=True, secret_key="sk_test_123")), stub

    return _build


def _card_charge(**details):
    return ChargeRequest(
        order_id="order-1",
        amount=Money(4098, "USD"),
        method=PaymentMethod.CREDIT_CARD,
        customer_email="jane@example.com",
        details=details or {"token": "pm_card_visa"},
    )


class TestStripeCharge:
    def test_authorized_intent(self, stripe_stub):
        provider, stub = stripe_stub({"payment_intent.create": {"id": "pi_1", "status": "succeeded"}})

        result = provider.charge(_card_charge())

        assert result.status == ChargeStatus.SUCCEEDED
        assert result.transaction_id == "pi_1"
        [(_, _, params)] = stub.calls
        assert params["api_key"] == "sk_test_123"
        assert params["idempotency_key"].startswith("charge-order-1-")
        assert (params["amount"], params["currency"]) == (4098, "usd")
        assert params["metadata"]["order_id"] == "order-1"
        assert params["confirm"] is True

    def test_each_attempt_has_its_own_idempotency_key(self, stripe_stub):
        provider, stub = stripe_stub({"payment_intent.create": {"id": "pi_1", "status": "succeeded"}})

        provider.charge(_card_charge(token="pm_card_declined"))
        provider.charge(_card_charge(token="pm_card_visa"))

        first, second = (params["idempotency_key"] for _, _, params in stub.calls)
        assert first != second

    def test_requires_capture_counts_as_authorized(self, stripe_stub):
        provider, _ = stripe_stub({"payment_intent.create": {"id": "pi_1", "status": "requires_capture"}})
        assert provider.charge(_card_charge()).succeeded

    def test_three_d_secure_redirect(self, stripe_stub):
        provider, _ = stripe_stub(
            {
                "payment_intent.create": {
                    "id": "pi_1",
                    "status": "requires_action",
                    "next_action": {"redirect_to_url": {"url": "https://hooks.stripe.test/3ds"}},
                }
            }
        )
        result = provider.charge(_card_charge())
        assert result.status == ChargeStatus.REQUIRES_ACTION
        assert result.action_url == "https://hooks.stripe.test/3ds"

    def test_card_declined(self, stripe_stub):
        declined = stripe.CardError(
            "Your card was declined.",
            None,
            "card_declined",
            http_status=402,
            json_body={"error": {"message": "Your card was declined.", "payment_intent": {"id": "pi_1"}}},
        )
        provider, _ = stripe_stub({"payment_intent.create": declined})

        result = provider.charge(_card_charge())

        assert result.status == ChargeStatus.FAILED
        assert result.failure_reason == "Your card was declined."
        assert result.transaction_id == "pi_1"

    def test_missing_token_fails_without_calling_out(self, stripe_stub):
        provider, stub = stripe_stub({})
        result = provider.charge(_card_charge(card_holder="Jane"))
        assert result.status == ChargeStatus.FAILED
        assert stub.calls == []

    def test_server_error_is_unavailable(self, stripe_stub):
        provider, _ = stripe_stub({"payment_intent.create": stripe.APIError("Internal error", http_status=500)})
        with pytest.raises(ProviderUnavailable):
            provider.charge(_card_charge())

    def test_connection_failure_is_unavailable(self, stripe_stub):
        provider, _ = stripe_stub({"payment_intent.create": stripe.APIConnectionError("read timed out")})
        with pytest.raises(ProviderUnavailable) as exc:
            provider.charge(_card_charge())
        assert exc.value.provider == "stripe"


class TestStripeOperations:
    def test_capture(self, stripe_stub):
        provider, stub = stripe_stub({"payment_intent.capture": {"id": "pi_1", "status": "succeeded"}})
        result = provider.capture("pi_1", Money(2000, "USD"))
        assert result.success
        [(_, args, params)] = stub.calls
        assert args == ("pi_1",)
        assert params["amount_to_capture"] == 2000

    def test_pending_refund_is_accepted(self, stripe_stub):
        provider, stub = stripe_stub({"refund.create": {"id": "re_1", "object": "refund", "status": "pending"}})
        result = provider.refund("pi_1", Money(1000, "USD"))
        assert result.success
        assert result.transaction_id == "re_1"
        [(_, _, params)] = stub.calls
        assert (params["payment_intent"], params["amount"]) == ("pi_1", 1000)

    def test_refund_rejected_by_stripe(self, stripe_stub):
        rejected = stripe.InvalidRequestError("Refund amount exceeds charge", "amount")
        provider, _ = stripe_stub({"refund.create": rejected})
        result = provider.refund("pi_1", Money(999999, "USD"))
        assert result.success is False
        assert result.failure_reason == "Refund amount exceeds charge"

    def test_cancel_in_wrong_state(self, stripe_stub):
        provider, _ = stripe_stub({"payment_intent.cancel": {"id": "pi_1", "status": "succeeded"}})
        result = provider.cancel("pi_1")
        assert result.success is False
        assert result.failure_reason == "unexpected status: succeeded"

    def test_verify(self, stripe_stub):
        provider, _ = stripe_stub({"payment_intent.retrieve": {"id": "pi_1", "status": "succeeded"}})
        assert provider.verify("pi_1") is True

    def test_verify_unknown_intent(self, stripe_stub):
        provider, _ = stripe_stub({})
        assert provider.verify("pi_unknown") is False


def _mobilepay(routes, clock=None):
    recorder = Recorder(
        {
            ("POST", ACCESS_TOKEN_PATH): httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600}),
            **routes,
        }
    )
    settings = MobilePaySettings(
        enabled=True,
        client_id="client",
        client_secret="secret",
        subscription_key="sub",
        merchant_serial_number="123456",
        base_url="https://mobilepay.test",
    )
    kwargs = {"clock": clock} if clock else {}
    return MobilePayProvider(settings, transport=httpx.MockTransport(recorder), **kwargs), recorder


def _wallet_charge(currency="NOK"):
    return ChargeRequest(
        order_id="order-1",
        amount=Money(4098, currency),
        method=PaymentMethod.WALLET,
        details={"phone_number": "4712345678"},
    )


def _created(request):
    body = json.loads(request.content)
    return httpx.Response(201, json={"reference": body["reference"], "redirectUrl": "https://mobilepay.test/landing"})


class TestMobilePay:
    def test_charge_redirects_shopper(self):
        provider, recorder = _mobilepay({("POST", PAYMENTS_PATH): _created})

        result = provider.charge(_wallet_charge())

        assert result.status == ChargeStatus.REQUIRES_ACTION
        assert result.action_url == "https://mobilepay.test/landing"
        assert result.transaction_id.startswith("order-order-1-")
        payment_request = recorder.requests[1]
        assert payment_request.headers["Authorization"] == "Bearer tok-1"
        assert payment_request.headers["Idempotency-Key"]
        body = json.loads(payment_request.content)
        assert body["amount"] == {"currency": "NOK", "value": 4098}
        assert body["customer"] == {"phoneNumber": "4712345678"}

    def test_token_is_reused(self):
        provider, recorder = _mobilepay({("POST", PAYMENTS_PATH): _created})
        provider.charge(_wallet_charge())
        provider.charge(_wallet_charge())
        token_calls = [r for r in recorder.requests if r.url.path == ACCESS_TOKEN_PATH]
        assert len(token_calls) == 1

    def test_token_is_renewed_near_expiry(self):
        now = [0.0]
        provider, recorder = _mobilepay({("POST", PAYMENTS_PATH): _created}, clock=lambda: now[0])
        provider.charge(_wallet_charge())
        now[0] = 3600 - 299
        provider.charge(_wallet_charge())
        token_calls = [r for r in recorder.requests if r.url.path == ACCESS_TOKEN_PATH]
        assert len(token_calls) == 2

    def test_unsupported_currency(self):
        provider, recorder = _mobilepay({})
        result = provider.charge(_wallet_charge(currency="USD"))
        assert result.status == ChargeStatus.FAILED
        assert recorder.requests == []

    def test_card_method_refused(self):
        provider, _ = _mobilepay({})
        request = ChargeRequest(order_id="order-1", amount=Money(100, "NOK"), method=PaymentMethod.CREDIT_CARD)
        assert provider.charge(request).status == ChargeStatus.FAILED

    def test_rejected_payment(self):
        provider, _ = _mobilepay({("POST", PAYMENTS_PATH): httpx.Response(400, json={"title": "Invalid amount"})})
        result = provider.charge(_wallet_charge())
        assert result.status == ChargeStatus.FAILED
        assert result.failure_reason == "Invalid amount"

    def test_token_failure_is_unavailable(self):
        provider, _ = _mobilepay({("POST", ACCESS_TOKEN_PATH): httpx.Response(401, json={})})
        with pytest.raises(ProviderUnavailable):
            provider.charge(_wallet_charge())

    def test_capture_refund_cancel(self):
        ref = "order-order-1-abc"
        ok = httpx.Response(200, json={"state": "AUTHORIZED"})
        provider, recorder = _mobilepay(
            {
                ("POST", f"{PAYMENTS_PATH}/{ref}/capture"): ok,
                ("POST", f"{PAYMENTS_PATH}/{ref}/refund"): ok,
                ("POST", f"{PAYMENTS_PATH}/{ref}/cancel"): ok,
            }
        )
        assert provider.capture(ref, Money(4098, "NOK")).success
        assert provider.refund(ref, Money(1000, "NOK")).success
        assert provider.cancel(ref).success
        refund_body = json.loads(recorder.requests[2].content)
        assert refund_body == {"modificationAmount": {"currency": "NOK", "value": 1000}}

    def test_failed_modification(self):
        provider, _ = _mobilepay({})
        result = provider.capture("order-x-1", Money(100, "NOK"))
        assert result.success is False


class TestRouter:
    def test_only_enabled_providers_are_built(self):
        settings = Settings(
            enabled_providers=("mock", "stripe", "mobilepay"),
            stripe=StripeSettings(enabled=True, secret_key="sk"),
        )
        router = build_payment_router(settings)

        assert router.is_available("stripe")
        assert router.is_available("MOCK")
        assert not router.is_available("mobilepay")
        assert {info.type for info in router.list_available_providers()} == {ProviderType.MOCK, ProviderType.STRIPE}

    def test_unknown_provider(self):
        router = build_payment_router(Settings())
        assert not router.is_available("paypal")
        with pytest.raises(ProviderUnavailable):
            router.get("paypal")
