"""Applying a verified provider event to the ledger and the order.

One unit of work per event. The ``(provider, external_reference,
event_type)`` triple is the idempotency key: a redelivered event finds its
row already written and changes nothing.
"""

import json

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.errors import IllegalTransition
from commerce.order.order import Order
from commerce.payments.transaction import PaymentTransaction, find_transaction, refunded_total
from commerce.shared.money import Money

logger = structlog.get_logger(__name__)

DUPLICATE = "duplicate"
APPLIED = "applied"
NO_CHANGE = "no_change"
TRANSITION_REJECTED = "transition_rejected"


@commerce.command(part_of="PaymentTransaction")
class ReconcilePaymentEvent:
    order_id = Identifier(required=True)
    provider = String(required=True, max_length=50)
    event_type = String(required=True, max_length=100)
    external_reference = String(required=True, max_length=255)
    transaction_type = String(required=True, max_length=20)
    transaction_status = String(required=True, max_length=20)
    amount = Integer(default=0, min_value=0)
    currency = String(required=True, max_length=3)
    raw_response = Text()
    details = Text()  # JSON object
    target_status = String(max_length=50)
    reason = String(max_length=500)
    requires_full_refund = Boolean(default=False)
    cumulative_amount = Boolean(default=False)


@commerce.command_handler(part_of=PaymentTransaction)
class ReconcilePaymentEventHandler:
    @handle(ReconcilePaymentEvent)
    def reconcile(self, command):
        if find_transaction(command.provider, command.external_reference, command.event_type) is not None:
            logger.info(
                "Duplicate webhook delivery",
                provider=command.provider,
                reference=command.external_reference,
                event_type=command.event_type,
            )
            return DUPLICATE

        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)
        amount = Money(command.amount or 0, command.currency)
        if command.cumulative_amount:
            # Only the part of the running total not already in the ledger is new
            amount = Money(max(amount.amount - refunded_total(order.id), 0), command.currency)

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
        current_domain.repository_for(PaymentTransaction).add(row)

        outcome = self._apply_transition(order, command, row)
        if outcome == APPLIED:
            order_repo.add(order)

        logger.info(
            "Webhook reconciled",
            order_id=str(order.id),
            provider=command.provider,
            event_type=command.event_type,
            outcome=outcome,
            order_status=order.status,
        )
        return outcome

    @staticmethod
    def _apply_transition(order, command, row) -> str:
        if not command.target_status:
            return NO_CHANGE

        if command.requires_full_refund and refunded_total(order.id, pending=[row]) < order.final_amount:
            return NO_CHANGE

        try:
            changed = order.reconcile_to(command.target_status, reason=command.reason)
        except IllegalTransition as exc:
            logger.warning(
                "Webhook transition rejected",
                order_id=str(order.id),
                from_status=order.status,
                to_status=command.target_status,
                error=str(exc.messages),
            )
            return TRANSITION_REJECTED
        return APPLIED if changed else NO_CHANGE
