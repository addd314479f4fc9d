"""Notification collaborator.

Email composition and delivery live outside this service. Calls are
fire-and-forget: callers log failures and carry on.
"""

from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)


class Notifier(ABC):
    @abstractmethod
    def send_order_confirmation(self, order) -> None:
        """Tell the customer their order was placed."""
        ...

    @abstractmethod
    def send_order_notification(self, order) -> None:
        """Tell the shop an order was placed."""
        ...

    @abstractmethod
    def send_checkout_recovery(self, checkout) -> None:
        """Nudge a shopper about an abandoned checkout."""
        ...


class LoggingNotifier(Notifier):
    """Writes notifications to the log instead of sending them."""

    def send_order_confirmation(self, order) -> None:
        logger.info(
            "Order confirmation",
            order_number=order.order_number,
            email=order.customer_email,
            total=order.total.format(),
        )

    def send_order_notification(self, order) -> None:
        logger.info("New order notification", order_number=order.order_number, total=order.total.format())

    def send_checkout_recovery(self, checkout) -> None:
        logger.info(
            "Checkout recovery email",
            checkout_id=str(checkout.id),
            email=checkout.customer_email,
            items=len(checkout.items),
        )


def notify_safely(action: str, send, *args) -> bool:
    """Run a notification call; a failure is logged and reported as False."""
    try:
        send(*args)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Notification failed", action=action, error=str(exc))
        return False
    return True
