"""Webhook registrations: the shared secrets inbound callbacks are signed with."""

import json
import secrets

from protean import handle, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.payments.providers.port import ProviderType
from commerce.shared.time import utc_now


@commerce.aggregate
class WebhookRegistration:
    provider = String(required=True, max_length=50)
    external_id = String(max_length=255)
    url = String(required=True, max_length=2000)
    events = Text(required=True)  # JSON list of subscribed event kinds
    secret = String(required=True, max_length=255)
    is_active = Boolean(default=True)
    created_at = DateTime()

    @invariant.post
    def subscribes_to_at_least_one_event(self):
        if not self.subscribed_events:
            raise ValidationError({"events": ["A webhook must subscribe to at least one event"]})

    @property
    def subscribed_events(self) -> list[str]:
        return json.loads(self.events) if self.events else []

    def deactivate(self):
        self.is_active = False


@commerce.command(part_of="WebhookRegistration")
class RegisterWebhook:
    provider = String(required=True, max_length=50)
    url = String(required=True, max_length=2000)
    events = Text(required=True)  # JSON list
    secret = String(max_length=255)
    external_id = String(max_length=255)


@commerce.command(part_of="WebhookRegistration")
class DeactivateWebhook:
    webhook_id = Identifier(required=True)


@commerce.command_handler(part_of=WebhookRegistration)
class WebhookRegistrationHandler:
    @handle(RegisterWebhook)
    def register_webhook(self, command):
        try:
            provider = ProviderType(command.provider.lower())
        except ValueError:
            raise ValidationError({"provider": [f"Unknown payment provider {command.provider}"]}) from None

        registration = WebhookRegistration(
            provider=provider.value,
            external_id=command.external_id,
            url=command.url,
            events=command.events,
            secret=command.secret or secrets.token_hex(32),
            is_active=True,
            created_at=utc_now(),
        )
        current_domain.repository_for(WebhookRegistration).add(registration)
        return str(registration.id)

    @handle(DeactivateWebhook)
    def deactivate_webhook(self, command):
        repo = current_domain.repository_for(WebhookRegistration)
        registration = repo.get(command.webhook_id)
        registration.deactivate()
        repo.add(registration)


def active_secrets(provider: str) -> list[str]:
    repo = current_domain.repository_for(WebhookRegistration)
    rows = repo._dao.query.filter(provider=provider, is_active=True).all().items
    return [row.secret for row in rows if row.secret]
