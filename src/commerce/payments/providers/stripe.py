"""Card payments through Stripe PaymentIntents, using the stripe SDK."""

import json
from uuid import uuid4

import stripe
import structlog

from commerce.config import StripeSettings
from commerce.errors import ProviderUnavailable
from commerce.payments.providers.port import (
    ChargeRequest,
    ChargeResult,
    ChargeStatus,
    OperationResult,
    PaymentMethod,
    PaymentProvider,
    ProviderInfo,
    ProviderType,
)
from commerce.shared.money import Money

logger = structlog.get_logger(__name__)

# Intent states that mean the money is at least authorized
_AUTHORIZED_STATES = ("succeeded", "requires_capture")

# Stripe could not be reached or did not answer properly; safe to retry later
_TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.APIError, stripe.RateLimitError)


def _declined_intent_id(exc: stripe.StripeError) -> str | None:
    error = (exc.json_body or {}).get("error") or {}
    return (error.get("payment_intent") or {}).get("id")


class StripeProvider(PaymentProvider):
    provider_type = ProviderType.STRIPE

    def __init__(self, settings: StripeSettings):
        self.settings = settings

    def info(self) -> ProviderInfo:
        return ProviderInfo(
            type=self.provider_type,
            name="Stripe",
            description="Pay with credit or debit card",
            methods=(PaymentMethod.CREDIT_CARD,),
            enabled=self.settings.enabled,
        )

    def _call(self, operation: str, fn, *args, **params):
        try:
            return fn(*args, api_key=self.settings.secret_key, **params)
        except _TRANSIENT_ERRORS as exc:
            logger.warning("Stripe unavailable", operation=operation, error=str(exc))
            raise ProviderUnavailable("stripe", str(exc)) from exc

    def charge(self, request: ChargeRequest) -> ChargeResult:
        if request.method != PaymentMethod.CREDIT_CARD:
            return ChargeResult(
                status=ChargeStatus.FAILED,
                provider=self.provider_type,
                failure_reason="unsupported payment method for Stripe",
            )

        token = request.details.get("token") or request.details.get("payment_method")
        if not token:
            return ChargeResult(
                status=ChargeStatus.FAILED,
                provider=self.provider_type,
                failure_reason="payment method token is required",
            )

        params = {
            "amount": request.amount.amount,
            "currency": request.amount.currency.lower(),
            "payment_method": token,
            "payment_method_types": ["card"],
            "confirm": True,
            "description": f"Order {request.order_id}",
            "metadata": {"order_id": request.order_id, "method": "card"},
        }
        if request.customer_email:
            params["receipt_email"] = request.customer_email

        # One key per attempt: a retry with another card is a new request
        idempotency_key = f"charge-{request.order_id}-{uuid4().hex}"
        try:
            intent = self._call("charge", stripe.PaymentIntent.create, idempotency_key=idempotency_key, **params)
        except stripe.StripeError as exc:
            logger.info("Stripe declined payment", order_id=request.order_id, code=exc.code)
            return ChargeResult(
                status=ChargeStatus.FAILED,
                provider=self.provider_type,
                transaction_id=_declined_intent_id(exc),
                failure_reason=exc.user_message or str(exc),
                raw_response=json.dumps(exc.json_body) if exc.json_body else None,
            )

        status = intent.get("status")
        if status in _AUTHORIZED_STATES:
            return ChargeResult(
                status=ChargeStatus.SUCCEEDED,
                provider=self.provider_type,
                transaction_id=intent["id"],
                raw_response=str(intent),
            )
        if status == "requires_action":
            redirect = ((intent.get("next_action") or {}).get("redirect_to_url") or {}).get("url")
            return ChargeResult(
                status=ChargeStatus.REQUIRES_ACTION,
                provider=self.provider_type,
                transaction_id=intent["id"],
                action_url=redirect,
                raw_response=str(intent),
            )
        return ChargeResult(
            status=ChargeStatus.FAILED,
            provider=self.provider_type,
            transaction_id=intent["id"],
            failure_reason=f"payment status: {status}",
            raw_response=str(intent),
        )

    def verify(self, transaction_id: str) -> bool:
        try:
            intent = self._call("verify", stripe.PaymentIntent.retrieve, transaction_id)
        except stripe.InvalidRequestError:
            return False
        return intent.get("status") in _AUTHORIZED_STATES

    def _operation(self, operation, expected: tuple[str, ...], transaction_id: str, fn, *args, **params):
        try:
            obj = self._call(operation, fn, *args, **params)
        except stripe.StripeError as exc:
            return OperationResult(
                success=False,
                provider=self.provider_type,
                transaction_id=transaction_id,
                failure_reason=exc.user_message or str(exc),
                raw_response=json.dumps(exc.json_body) if exc.json_body else None,
            )

        status = obj.get("status")
        if status not in expected:
            return OperationResult(
                success=False,
                provider=self.provider_type,
                transaction_id=obj.get("id") or transaction_id,
                provider_status=status,
                failure_reason=f"unexpected status: {status}",
                raw_response=str(obj),
            )
        return OperationResult(
            success=True,
            provider=self.provider_type,
            transaction_id=obj.get("id") or transaction_id,
            provider_status=status,
            raw_response=str(obj),
        )

    def capture(self, transaction_id: str, amount: Money) -> OperationResult:
        return self._operation(
            "capture",
            ("succeeded",),
            transaction_id,
            stripe.PaymentIntent.capture,
            transaction_id,
            amount_to_capture=amount.amount,
        )

    def refund(self, transaction_id: str, amount: Money) -> OperationResult:
        result = self._operation(
            "refund",
            ("succeeded", "pending"),
            transaction_id,
            stripe.Refund.create,
            payment_intent=transaction_id,
            amount=amount.amount,
        )
        if result.provider_status == "pending":
            logger.info("Stripe refund pending", payment_intent=transaction_id)
        return result

    def cancel(self, transaction_id: str) -> OperationResult:
        return self._operation("cancel", ("canceled",), transaction_id, stripe.PaymentIntent.cancel, transaction_id)
