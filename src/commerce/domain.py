"""Commerce bounded context: checkout, orders, payments and provider webhooks.

Checkouts convert into orders at most once; orders are paid through one of
several payment providers whose asynchronous callbacks reconcile order state.
"""

from protean.domain import Domain

from commerce.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

commerce = Domain(name="commerce")
