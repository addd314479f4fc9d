"""Writing the outcome of a provider call: one ledger row plus the order
change it implies, committed together."""

import json

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.order.order import Order, OrderStatus
from commerce.payments.transaction import (
    PaymentTransaction,
    TransactionStatus,
    TransactionType,
    refunded_total,
)
from commerce.shared.money import Money

logger = structlog.get_logger(__name__)


@commerce.command(part_of="PaymentTransaction")
class RecordPaymentOutcome:
    order_id = Identifier(required=True)
    provider = String(required=True, max_length=50)
    transaction_type = String(required=True, max_length=20)
    transaction_status = String(required=True, max_length=20)
    amount = Integer(required=True, min_value=0)
    currency = String(required=True, max_length=3)
    external_reference = String(max_length=255)
    event_type = String(max_length=100)
    raw_response = Text()
    details = Text()  # JSON object
    payment_reference = String(max_length=255)
    payment_method = String(max_length=50)
    action_url = String(max_length=2000)
    order_status = String(max_length=50)
    reason = String(max_length=500)


@commerce.command_handler(part_of=PaymentTransaction)
class RecordPaymentOutcomeHandler:
    @handle(RecordPaymentOutcome)
    def record_outcome(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)
        amount = Money(command.amount, command.currency)

        row = PaymentTransaction.record(
            order_id=order.id,
            provider=command.provider,
            type=command.transaction_type,
            status=command.transaction_status,
            amount=amount,
            external_reference=command.external_reference,
            event_type=command.event_type,
            raw_response=command.raw_response,
            details=json.loads(command.details) if command.details else None,
        )

        if command.payment_reference:
            order.record_payment_reference(command.provider, command.payment_reference, command.payment_method)

        if command.action_url:
            order.require_action(command.provider, command.action_url)
        elif command.order_status:
            order.transition_to(command.order_status, reason=command.reason)

        is_refund = (
            command.transaction_type == TransactionType.REFUND.value
            and command.transaction_status == TransactionStatus.SUCCESSFUL.value
        )
        if is_refund and refunded_total(order.id, pending=[row]) >= order.final_amount:
            order.transition_to(OrderStatus.REFUNDED, reason="Refunds cover the order total")

        current_domain.repository_for(PaymentTransaction).add(row)
        order_repo.add(order)

        logger.info(
            "Payment outcome recorded",
            order_id=str(order.id),
            provider=command.provider,
            type=command.transaction_type,
            status=command.transaction_status,
            amount=amount.amount,
            order_status=order.status,
        )
        return order.status
