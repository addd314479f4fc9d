"""Payment orchestration.

Provider calls happen before any unit of work is opened. Their outcome is
then written through ``RecordPaymentOutcome``, which appends the ledger row
and moves the order in one transaction. A ``ProviderUnavailable`` raised by
the provider propagates before anything is written.
"""

import json
from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from commerce.errors import InvalidState
from commerce.order.order import CANCELLABLE_STATES, REFUNDABLE_STATES, Order, OrderStatus
from commerce.payments.providers.port import ChargeRequest, ChargeStatus, PaymentMethod
from commerce.payments.recording import RecordPaymentOutcome
from commerce.payments.transaction import (
    REFUND_ID,
    TransactionStatus,
    TransactionType,
    list_transactions,
    refunded_total,
)
from commerce.shared.money import Money
from commerce.utils.locks import KeyedLock

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentOutcome:
    success: bool
    status: str
    order_status: str
    provider: str
    transaction_id: str | None = None
    action_url: str | None = None
    failure_reason: str | None = None


class PaymentService:
    def __init__(self, router, locks=None):
        self.router = router
        self.locks = locks or KeyedLock()

    def _order(self, order_id) -> Order:
        return current_domain.repository_for(Order).get(order_id)

    def _record(self, order, provider, type, status, amount: Money, **extra):
        return current_domain.process(
            RecordPaymentOutcome(
                order_id=order.id,
                provider=provider,
                transaction_type=type.value,
                transaction_status=status.value,
                amount=amount.amount,
                currency=amount.currency,
                **extra,
            ),
            asynchronous=False,
        )

    def _settled_provider(self, order):
        if not order.payment_id or not order.payment_provider:
            raise InvalidState({"payment": [f"Order {order.order_number} has no payment to act on"]})
        return self.router.get(order.payment_provider)

    def _resolve_method(self, provider, method) -> PaymentMethod:
        info = provider.info()
        if method is None:
            return info.methods[0]
        try:
            resolved = PaymentMethod(method)
        except ValueError:
            raise ValidationError({"payment_method": [f"Unknown payment method {method}"]}) from None
        if not info.supports(resolved):
            raise ValidationError({"payment_method": [f"{info.name} does not support {resolved.value}"]})
        return resolved

    # -------------------------------------------------------------------
    # Charge
    # -------------------------------------------------------------------
    def process_payment(self, order_id, provider_name, method=None, details=None) -> PaymentOutcome:
        provider = self.router.get(provider_name)
        resolved_method = self._resolve_method(provider, method)

        with self.locks.hold(f"order:{order_id}"):
            order = self._order(order_id)
            if order.status != OrderStatus.PENDING.value:
                raise InvalidState({"status": [f"Order is {order.status}; only pending orders can be paid"]})

            result = provider.charge(
                ChargeRequest(
                    order_id=str(order.id),
                    amount=order.total,
                    method=resolved_method,
                    customer_email=order.customer_email,
                    details=dict(details or {}),
                )
            )

            provider_type = provider.provider_type.value
            common = {
                "external_reference": result.transaction_id,
                "event_type": "api.charge",
                "raw_response": result.raw_response,
                "details": json.dumps({"method": resolved_method.value}),
            }
            if result.status == ChargeStatus.SUCCEEDED:
                order_status = self._record(
                    order,
                    provider_type,
                    TransactionType.AUTHORIZE,
                    TransactionStatus.SUCCESSFUL,
                    order.total,
                    payment_reference=result.transaction_id,
                    payment_method=resolved_method.value,
                    order_status=OrderStatus.PAID.value,
                    reason="Payment authorized",
                    **common,
                )
            elif result.status == ChargeStatus.REQUIRES_ACTION:
                order_status = self._record(
                    order,
                    provider_type,
                    TransactionType.AUTHORIZE,
                    TransactionStatus.PENDING,
                    order.total,
                    payment_reference=result.transaction_id,
                    payment_method=resolved_method.value,
                    action_url=result.action_url,
                    order_status=OrderStatus.PENDING_ACTION.value,
                    reason="Payment requires customer action",
                    **common,
                )
            else:
                order_status = self._record(
                    order,
                    provider_type,
                    TransactionType.AUTHORIZE,
                    TransactionStatus.FAILED,
                    order.total,
                    **common,
                )
                logger.info(
                    "Payment failed",
                    order_id=str(order.id),
                    provider=provider_type,
                    reason=result.failure_reason,
                )

        return PaymentOutcome(
            success=result.status != ChargeStatus.FAILED,
            status=result.status.value,
            order_status=order_status,
            provider=provider_type,
            transaction_id=result.transaction_id,
            action_url=result.action_url,
            failure_reason=result.failure_reason,
        )

    # -------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------
    def capture_payment(self, order_id, amount: int | None = None) -> PaymentOutcome:
        with self.locks.hold(f"order:{order_id}"):
            order = self._order(order_id)
            if order.status != OrderStatus.PAID.value:
                raise InvalidState({"status": [f"Order is {order.status}; only paid orders can be captured"]})
            provider = self._settled_provider(order)

            to_capture = Money(order.final_amount if amount is None else amount, order.currency)
            if to_capture.is_zero() or to_capture > order.total:
                raise ValidationError({"amount": ["Capture amount must be positive and at most the order total"]})

            result = provider.capture(order.payment_id, to_capture)
            order_status = self._record(
                order,
                provider.provider_type.value,
                TransactionType.CAPTURE,
                TransactionStatus.SUCCESSFUL if result.success else TransactionStatus.FAILED,
                to_capture,
                external_reference=result.transaction_id,
                event_type="api.capture",
                raw_response=result.raw_response,
                order_status=OrderStatus.CAPTURED.value if result.success else None,
                reason="Payment captured",
            )

        return self._operation_outcome(result, order_status)

    def refund_payment(self, order_id, amount: int | None = None) -> PaymentOutcome:
        with self.locks.hold(f"order:{order_id}"):
            order = self._order(order_id)
            if OrderStatus(order.status) not in REFUNDABLE_STATES:
                raise InvalidState({"status": [f"Order is {order.status} and cannot be refunded"]})
            provider = self._settled_provider(order)

            remaining = order.final_amount - refunded_total(order.id)
            to_refund = Money(remaining if amount is None else amount, order.currency)
            if to_refund.is_zero() or to_refund.amount > remaining:
                raise ValidationError(
                    {"amount": [f"Refund amount must be positive and at most {order.total.format()} minus prior refunds"]}
                )

            result = provider.refund(order.payment_id, to_refund)
            order_status = self._record(
                order,
                provider.provider_type.value,
                TransactionType.REFUND,
                TransactionStatus.SUCCESSFUL if result.success else TransactionStatus.FAILED,
                to_refund,
                external_reference=result.transaction_id,
                event_type="api.refund",
                raw_response=result.raw_response,
                details=json.dumps({REFUND_ID: result.operation_id or result.transaction_id}),
            )

        return self._operation_outcome(result, order_status)

    def cancel_payment(self, order_id) -> PaymentOutcome:
        with self.locks.hold(f"order:{order_id}"):
            order = self._order(order_id)
            if OrderStatus(order.status) not in CANCELLABLE_STATES:
                raise InvalidState({"status": [f"Order is {order.status} and cannot be cancelled"]})

            if not order.payment_id:
                # Nothing authorized at a provider; only the order moves
                order_status = self._record(
                    order,
                    order.payment_provider or "none",
                    TransactionType.CANCEL,
                    TransactionStatus.SUCCESSFUL,
                    Money.zero(order.currency),
                    event_type="api.cancel",
                    order_status=OrderStatus.CANCELLED.value,
                    reason="Cancelled before payment",
                )
                return PaymentOutcome(
                    success=True,
                    status="succeeded",
                    order_status=order_status,
                    provider=order.payment_provider or "none",
                )

            provider = self._settled_provider(order)
            result = provider.cancel(order.payment_id)
            order_status = self._record(
                order,
                provider.provider_type.value,
                TransactionType.CANCEL,
                TransactionStatus.SUCCESSFUL if result.success else TransactionStatus.FAILED,
                order.total,
                external_reference=result.transaction_id,
                event_type="api.cancel",
                raw_response=result.raw_response,
                order_status=OrderStatus.CANCELLED.value if result.success else None,
                reason="Payment cancelled",
            )

        return self._operation_outcome(result, order_status)

    def verify_payment(self, order_id) -> bool:
        order = self._order(order_id)
        return self._settled_provider(order).verify(order.payment_id)

    def transactions(self, order_id):
        self._order(order_id)
        return list_transactions(order_id)

    @staticmethod
    def _operation_outcome(result, order_status) -> PaymentOutcome:
        if not result.success:
            logger.info("Payment operation failed", provider=result.provider.value, reason=result.failure_reason)
        return PaymentOutcome(
            success=result.success,
            status="succeeded" if result.success else "failed",
            order_status=order_status,
            provider=result.provider.value,
            transaction_id=result.transaction_id,
            failure_reason=result.failure_reason,
        )
