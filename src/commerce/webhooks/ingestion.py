"""Inbound provider callbacks: authenticate, parse, route, reconcile.

Only a signature failure or an unreadable body is reported back to the
provider as an error. Everything else is acknowledged so the provider does not
start retrying events we have chosen not to act on.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from commerce.order.management import find_order_by_payment_reference
from commerce.order.order import Order
from commerce.payments.providers.port import ProviderType
from commerce.utils.locks import KeyedLock
from commerce.webhooks import dispatch
from commerce.webhooks.reconciliation import ReconcilePaymentEvent
from commerce.webhooks.registration import active_secrets
from commerce.webhooks.signatures import verify_card_signature, verify_wallet_signature

logger = structlog.get_logger(__name__)

CARD_SIGNATURE_HEADER = "stripe-signature"
WALLET_SIGNATURE_HEADER = "x-mobilepay-signature"

IGNORED = "ignored"


@dataclass(frozen=True)
class WebhookResult:
    outcome: str
    event_type: str | None = None
    order_id: str | None = None


class WebhookIngestion:
    def __init__(self, settings, locks=None):
        self.settings = settings
        self.locks = locks or KeyedLock()

    @staticmethod
    def _provider(name: str) -> ProviderType:
        try:
            provider = ProviderType(name.lower())
        except ValueError:
            raise ObjectNotFoundError(f"Unknown webhook provider {name}") from None
        if provider not in dispatch.PARSERS:
            raise ObjectNotFoundError(f"Provider {name} does not send webhooks")
        return provider

    def _secrets(self, provider: ProviderType) -> list[str]:
        configured = {
            ProviderType.STRIPE: self.settings.stripe.webhook_secret,
            ProviderType.MOBILEPAY: self.settings.mobilepay.webhook_secret,
        }.get(provider)
        secrets = active_secrets(provider.value)
        if configured:
            secrets.append(configured)
        return secrets

    def _authenticate(self, provider: ProviderType, body: bytes, headers: Mapping) -> None:
        lowered = {key.lower(): value for key, value in headers.items()}
        if provider == ProviderType.STRIPE:
            verify_card_signature(
                body,
                lowered.get(CARD_SIGNATURE_HEADER),
                self._secrets(provider),
                tolerance=self.settings.stripe.signature_tolerance_seconds,
            )
        else:
            verify_wallet_signature(body, lowered.get(WALLET_SIGNATURE_HEADER), self._secrets(provider))

    def _resolve_order_id(self, event: dispatch.ProviderEvent) -> str | None:
        if event.order_id:
            try:
                return str(current_domain.repository_for(Order).get(event.order_id).id)
            except ObjectNotFoundError:
                pass
        if event.external_reference:
            try:
                return str(find_order_by_payment_reference(event.external_reference).id)
            except ObjectNotFoundError:
                pass
        return None

    def handle(self, provider_name: str, body: bytes, headers: Mapping) -> WebhookResult:
        provider = self._provider(provider_name)
        self._authenticate(provider, body, headers)

        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            raise ValidationError({"body": ["Malformed webhook payload"]}) from None
        if not isinstance(payload, dict):
            raise ValidationError({"body": ["Malformed webhook payload"]})

        event = dispatch.PARSERS[provider](payload)
        handler = dispatch.lookup(provider, event.kind)
        if handler is None:
            logger.info("Unhandled webhook event", provider=provider.value, event_type=event.kind)
            return WebhookResult(outcome=IGNORED, event_type=event.kind)

        order_id = self._resolve_order_id(event)
        if order_id is None or not event.external_reference:
            logger.warning(
                "Webhook event without a resolvable order",
                provider=provider.value,
                event_type=event.kind,
                reference=event.external_reference,
            )
            return WebhookResult(outcome=IGNORED, event_type=event.kind)

        draft, transition = handler(event)
        key = f"{provider.value}|{draft.external_reference}|{event.kind}"
        with self.locks.hold(key):
            outcome = current_domain.process(
                ReconcilePaymentEvent(
                    order_id=order_id,
                    provider=provider.value,
                    event_type=event.kind,
                    external_reference=draft.external_reference,
                    transaction_type=draft.type.value,
                    transaction_status=draft.status.value,
                    amount=draft.amount,
                    currency=draft.currency,
                    raw_response=body.decode("utf-8", errors="replace"),
                    details=json.dumps(draft.details),
                    target_status=transition.target.value if transition else None,
                    reason=transition.reason if transition else None,
                    requires_full_refund=transition.requires_full_refund if transition else False,
                    cumulative_amount=draft.cumulative,
                ),
                asynchronous=False,
            )

        return WebhookResult(outcome=outcome, event_type=event.kind, order_id=order_id)
