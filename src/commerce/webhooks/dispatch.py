"""Provider event taxonomy.

``DISPATCH`` maps ``(provider, event kind)`` to a pure handler turning a
parsed event into the ledger row to write and the order transition to
attempt. Kinds missing from the table are acknowledged and ignored.
"""

from dataclasses import dataclass, field

from commerce.order.order import OrderStatus
from commerce.payments.providers.port import ProviderType
from commerce.payments.transaction import REFUND_ID, TransactionStatus, TransactionType

ORDER_REFERENCE_PREFIX = "order-"


@dataclass(frozen=True)
class ProviderEvent:
    provider: ProviderType
    kind: str
    external_reference: str | None
    order_id: str | None
    amount: int = 0
    currency: str = "USD"
    raw: dict = field(default_factory=dict)
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionDraft:
    type: TransactionType
    status: TransactionStatus
    amount: int
    currency: str
    external_reference: str
    details: dict = field(default_factory=dict)
    # amount is the running total refunded on the payment, not this refund alone
    cumulative: bool = False


@dataclass(frozen=True)
class TransitionRequest:
    target: OrderStatus
    reason: str
    # Refund events only move the order once refunds cover its total
    requires_full_refund: bool = False


def parse_wallet_reference(reference: str | None) -> str | None:
    """Order id embedded in ``order-{order_id}-{nonce}``, or None."""
    if not reference or not reference.startswith(ORDER_REFERENCE_PREFIX):
        return None
    order_id, _, nonce = reference[len(ORDER_REFERENCE_PREFIX) :].rpartition("-")
    if not order_id or not nonce:
        return None
    return order_id


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
def parse_card_event(payload: dict) -> ProviderEvent:
    obj = (payload.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}
    kind = payload.get("type") or ""

    if kind.startswith("charge."):
        reference = obj.get("payment_intent") or obj.get("id")
        if kind == "charge.refunded":
            amount = obj.get("amount_refunded") or 0
            refunds = (obj.get("refunds") or {}).get("data") or []
            refund_id = refunds[0].get("id") if refunds else None
        elif kind == "charge.captured":
            amount = obj.get("amount_captured") or obj.get("amount") or 0
        else:
            amount = obj.get("amount") or 0
    else:
        reference = obj.get("id")
        amount = obj.get("amount_received") or obj.get("amount") or 0

    details = {"event_id": payload.get("id")}
    if kind == "charge.refunded":
        details[REFUND_ID] = refund_id
    last_error = obj.get("last_payment_error") or {}
    if last_error:
        details["error_message"] = last_error.get("message")
        details["error_code"] = last_error.get("code")
    if metadata.get("method"):
        details["payment_method"] = metadata["method"]

    return ProviderEvent(
        provider=ProviderType.STRIPE,
        kind=kind,
        external_reference=reference,
        order_id=metadata.get("order_id"),
        amount=int(amount),
        currency=(obj.get("currency") or "usd").upper(),
        raw=payload,
        details={key: value for key, value in details.items() if value is not None},
    )


def _wallet_details(payload: dict) -> dict:
    details = {key: payload[key] for key in ("pspReference", "idempotencyKey", "timestamp") if key in payload}
    # The idempotency key we sent with a refund comes back on its REFUNDED event
    if (payload.get("name") or "").upper() == "REFUNDED" and payload.get("idempotencyKey"):
        details[REFUND_ID] = payload["idempotencyKey"]
    return details


def parse_wallet_event(payload: dict) -> ProviderEvent:
    reference = payload.get("reference")
    amount = payload.get("amount") or {}
    return ProviderEvent(
        provider=ProviderType.MOBILEPAY,
        kind=(payload.get("name") or "").upper(),
        external_reference=reference,
        order_id=parse_wallet_reference(reference),
        amount=int(amount.get("value") or 0),
        currency=(amount.get("currency") or "DKK").upper(),
        raw=payload,
        details=_wallet_details(payload),
    )


PARSERS = {
    ProviderType.STRIPE: parse_card_event,
    ProviderType.MOBILEPAY: parse_wallet_event,
}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------
def _draft(event: ProviderEvent, type, status, amount=None, reference=None, cumulative=False, **details):
    return TransactionDraft(
        type=type,
        status=status,
        amount=event.amount if amount is None else amount,
        currency=event.currency,
        external_reference=reference or event.external_reference,
        details={**event.details, **details},
        cumulative=cumulative,
    )


def mark_authorized(event):
    return (
        _draft(event, TransactionType.AUTHORIZE, TransactionStatus.SUCCESSFUL),
        TransitionRequest(OrderStatus.PAID, "Payment authorized"),
    )


def mark_authorization_failed(event):
    # A decline leaves the order pending so the shopper can try again
    return _draft(event, TransactionType.AUTHORIZE, TransactionStatus.FAILED), None


def mark_captured(event):
    return (
        _draft(event, TransactionType.CAPTURE, TransactionStatus.SUCCESSFUL),
        TransitionRequest(OrderStatus.CAPTURED, "Payment captured"),
    )


def mark_cancelled(event):
    return (
        _draft(event, TransactionType.CANCEL, TransactionStatus.SUCCESSFUL, amount=0),
        TransitionRequest(OrderStatus.CANCELLED, f"Payment {event.kind.lower()}"),
    )


def mark_expired(event):
    return (
        _draft(event, TransactionType.AUTHORIZE, TransactionStatus.FAILED, amount=0, reason="expired"),
        TransitionRequest(OrderStatus.CANCELLED, "Payment expired"),
    )


def mark_refunded(event):
    """Each refund is its own ledger row, keyed by the provider refund id when one is known."""
    return (
        _draft(
            event,
            TransactionType.REFUND,
            TransactionStatus.SUCCESSFUL,
            reference=event.details.get(REFUND_ID),
            cumulative=event.provider == ProviderType.STRIPE,
        ),
        TransitionRequest(OrderStatus.REFUNDED, "Payment refunded", requires_full_refund=True),
    )


DISPATCH = {
    (ProviderType.STRIPE, "payment_intent.succeeded"): mark_authorized,
    (ProviderType.STRIPE, "payment_intent.amount_capturable_updated"): mark_authorized,
    (ProviderType.STRIPE, "payment_intent.payment_failed"): mark_authorization_failed,
    (ProviderType.STRIPE, "payment_intent.canceled"): mark_cancelled,
    (ProviderType.STRIPE, "charge.captured"): mark_captured,
    (ProviderType.STRIPE, "charge.refunded"): mark_refunded,
    (ProviderType.MOBILEPAY, "AUTHORIZED"): mark_authorized,
    (ProviderType.MOBILEPAY, "CAPTURED"): mark_captured,
    (ProviderType.MOBILEPAY, "CANCELLED"): mark_cancelled,
    (ProviderType.MOBILEPAY, "ABORTED"): mark_cancelled,
    (ProviderType.MOBILEPAY, "EXPIRED"): mark_expired,
    (ProviderType.MOBILEPAY, "REFUNDED"): mark_refunded,
}


def lookup(provider: ProviderType, kind: str):
    return DISPATCH.get((provider, kind))
