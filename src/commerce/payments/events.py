"""Domain events for the PaymentTransaction ledger."""

from protean.fields import DateTime, Identifier, Integer, String

from commerce.domain import commerce


@commerce.event(part_of="PaymentTransaction")
class PaymentTransactionRecorded:
    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String(required=True)
    external_reference = String()
    event_type = String()
    type = String(required=True)
    status = String(required=True)
    amount = Integer(required=True)
    currency = String(required=True)
    recorded_at = DateTime(required=True)
