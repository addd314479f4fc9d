"""Idle checkout handling: abandonment and hard expiry.

Meant to be triggered periodically (cron, scheduler, or the maintenance
endpoint). Each checkout is moved by its own command so one failure does not
stop the sweep.
"""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from commerce.checkout.checkout import Checkout, CheckoutStatus
from commerce.domain import commerce


@commerce.command(part_of="Checkout")
class AbandonCheckout:
    checkout_id = Identifier(required=True)


@commerce.command(part_of="Checkout")
class ExpireCheckout:
    checkout_id = Identifier(required=True)


@commerce.command_handler(part_of=Checkout)
class CheckoutRecoveryHandler:
    @handle(AbandonCheckout)
    def abandon_checkout(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.mark_abandoned()
        repo.add(checkout)

    @handle(ExpireCheckout)
    def expire_checkout(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.mark_expired()
        repo.add(checkout)


def sweep_candidates(idle_cutoff, now):
    """Split open checkouts into (to_expire, to_abandon)."""
    repo = current_domain.repository_for(Checkout)
    to_expire, to_abandon = [], []

    for status in (CheckoutStatus.ACTIVE.value, CheckoutStatus.ABANDONED.value):
        for checkout in repo._dao.query.filter(status=status).all().items:
            if checkout.is_expired(now):
                to_expire.append(checkout)
            elif status == CheckoutStatus.ACTIVE.value and checkout.is_idle_since(idle_cutoff):
                to_abandon.append(checkout)

    return to_expire, to_abandon
