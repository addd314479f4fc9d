"""PaymentTransaction: append-only ledger of every provider interaction.

Rows are only ever added. Captures, refunds and cancellations are tracked
here rather than by editing order totals. ``event_type`` distinguishes API
calls (``api.charge``, ``api.refund``, ...) from webhook deliveries and is
part of the idempotency key for the latter.
"""

import json
from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.payments.events import PaymentTransactionRecorded
from commerce.shared.money import Money
from commerce.shared.time import as_utc, utc_now


class TransactionType(Enum):
    AUTHORIZE = "authorize"
    CAPTURE = "capture"
    REFUND = "refund"
    CANCEL = "cancel"


class TransactionStatus(Enum):
    SUCCESSFUL = "successful"
    FAILED = "failed"
    PENDING = "pending"


@commerce.aggregate
class PaymentTransaction:
    order_id = Identifier(required=True)
    external_reference = String(max_length=255)
    event_type = String(max_length=100)
    type = String(choices=TransactionType, required=True)
    status = String(choices=TransactionStatus, required=True)
    amount = Integer(default=0, min_value=0)
    currency = String(max_length=3, default="USD")
    provider = String(required=True, max_length=50)
    raw_response = Text()
    details = Text()  # JSON object
    created_at = DateTime()

    @classmethod
    def record(
        cls,
        order_id,
        provider,
        type,
        status,
        amount: Money,
        external_reference=None,
        event_type=None,
        raw_response=None,
        details=None,
    ):
        now = utc_now()
        transaction = cls(
            order_id=order_id,
            provider=provider,
            type=TransactionType(type).value,
            status=TransactionStatus(status).value,
            amount=amount.amount,
            currency=amount.currency,
            external_reference=external_reference,
            event_type=event_type,
            raw_response=raw_response,
            details=json.dumps(details or {}),
            created_at=now,
        )
        transaction.raise_(
            PaymentTransactionRecorded(
                transaction_id=transaction.id,
                order_id=order_id,
                provider=provider,
                external_reference=external_reference,
                event_type=event_type,
                type=transaction.type,
                status=transaction.status,
                amount=transaction.amount,
                currency=transaction.currency,
                recorded_at=now,
            )
        )
        return transaction

    @property
    def money(self) -> Money:
        return Money(self.amount or 0, self.currency)

    @property
    def details_dict(self) -> dict:
        return json.loads(self.details) if self.details else {}

    @property
    def successful(self) -> bool:
        return self.status == TransactionStatus.SUCCESSFUL.value


def list_transactions(order_id):
    repo = current_domain.repository_for(PaymentTransaction)
    rows = repo._dao.query.filter(order_id=order_id).all().items
    return sorted(rows, key=lambda t: as_utc(t.created_at))


def find_transaction(provider, external_reference, event_type):
    """The ledger row for one provider event, or None."""
    repo = current_domain.repository_for(PaymentTransaction)
    rows = (
        repo._dao.query.filter(provider=provider, external_reference=external_reference, event_type=event_type)
        .all()
        .items
    )
    return rows[0] if rows else None


REFUND_ID = "refund_id"


def refunded_total(order_id, pending=()) -> int:
    """Money already returned to the shopper, in minor units.

    The API call and the provider callback for one refund are two rows that
    share a ``refund_id`` and count once, at the larger amount. ``pending``
    adds rows written in the current unit of work.
    """
    repo = current_domain.repository_for(PaymentTransaction)
    rows = {
        row.id: row
        for row in repo._dao.query.filter(
            order_id=order_id,
            type=TransactionType.REFUND.value,
            status=TransactionStatus.SUCCESSFUL.value,
        )
        .all()
        .items
    }
    for row in pending:
        if row.type == TransactionType.REFUND.value and row.successful:
            rows[row.id] = row

    total = 0
    by_refund = {}
    for row in rows.values():
        refund_id = row.details_dict.get(REFUND_ID)
        if refund_id:
            by_refund[refund_id] = max(by_refund.get(refund_id, 0), row.amount or 0)
        else:
            total += row.amount or 0
    return total + sum(by_refund.values())
