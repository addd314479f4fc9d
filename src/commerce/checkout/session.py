"""Checkout ownership: finding a shopper's open checkout, starting one, and
folding a guest checkout into a user's checkout at login."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from commerce.checkout.checkout import Checkout, CheckoutStatus
from commerce.checkout.discounts import refresh_discount
from commerce.domain import commerce
from commerce.shared.time import as_utc

logger = structlog.get_logger(__name__)

_OPEN_STATES = (
    CheckoutStatus.ACTIVE.value,
    CheckoutStatus.ABANDONED.value,
)


def find_open_checkout(user_id=None, session_id=None):
    """The most recently touched open checkout for a user or session, or None."""
    if user_id:
        criteria = {"user_id": user_id}
    elif session_id:
        criteria = {"session_id": session_id}
    else:
        return None

    repo = current_domain.repository_for(Checkout)
    candidates = [c for c in repo._dao.query.filter(**criteria).all().items if c.status in _OPEN_STATES]
    if not candidates:
        return None
    return max(candidates, key=lambda c: as_utc(c.last_activity_at))


@commerce.command(part_of="Checkout")
class StartCheckout:
    user_id = Identifier()
    session_id = String(max_length=255)
    currency = String(max_length=3, default="USD")
    ttl_hours = Integer(default=24)


@commerce.command(part_of="Checkout")
class MergeCheckouts:
    """Attach a guest session's checkout to the user who just logged in."""

    user_id = Identifier(required=True)
    session_id = String(required=True, max_length=255)


@commerce.command_handler(part_of=Checkout)
class CheckoutSessionHandler:
    @handle(StartCheckout)
    def start_checkout(self, command):
        if not (command.user_id or command.session_id):
            raise ValidationError({"identity": ["A user or a guest session is required"]})

        existing = find_open_checkout(user_id=command.user_id, session_id=command.session_id)
        if existing is not None:
            return str(existing.id)

        checkout = Checkout.create(
            user_id=command.user_id,
            session_id=command.session_id,
            currency=command.currency or "USD",
            ttl_hours=command.ttl_hours or 24,
        )
        current_domain.repository_for(Checkout).add(checkout)
        return str(checkout.id)

    @handle(MergeCheckouts)
    def merge_checkouts(self, command):
        repo = current_domain.repository_for(Checkout)
        guest = find_open_checkout(session_id=command.session_id)
        user_checkout = find_open_checkout(user_id=command.user_id)

        if guest is None:
            return str(user_checkout.id) if user_checkout else None

        if user_checkout is None:
            guest.assign_to_user(command.user_id)
            refresh_discount(guest)
            repo.add(guest)
            logger.info("Guest checkout re-keyed to user", checkout_id=str(guest.id), user_id=command.user_id)
            return str(guest.id)

        if user_checkout.currency != guest.currency:
            raise ValidationError({"currency": ["Cannot merge checkouts in different currencies"]})

        user_checkout.absorb(guest)
        refresh_discount(user_checkout)
        repo.add(user_checkout)
        repo._dao.delete(guest)

        logger.info(
            "Guest checkout merged into user checkout",
            checkout_id=str(user_checkout.id),
            guest_checkout_id=str(guest.id),
            user_id=command.user_id,
        )
        return str(user_checkout.id)
