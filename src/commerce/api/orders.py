"""FastAPI routes for shoppers' orders and payments."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from commerce.api.dependencies import get_container, get_identity, require_user
from commerce.api.schemas import OrderListResponse, OrderView, PaymentRequest, PaymentResponse, ProviderView
from commerce.checkout.checkout import Checkout
from commerce.identity import Identity
from commerce.order.management import list_orders
from commerce.order.order import Order
from commerce.wiring import Container


def load_visible_order(identity: Identity, order_id: str) -> Order:
    """The order, if this shopper may see it.

    Someone else's order is reported as missing rather than forbidden.
    """
    order = current_domain.repository_for(Order).get(order_id)
    if identity.is_admin:
        return order
    if identity.user_id and order.user_id and str(order.user_id) == identity.user_id:
        return order
    if identity.is_guest and order.is_guest and order.checkout_id:
        checkout = current_domain.repository_for(Checkout).get(order.checkout_id)
        if checkout.session_id and checkout.session_id == identity.session_id:
            return order
    raise ObjectNotFoundError(f"Order {order_id} does not exist")


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("", response_model=OrderListResponse)
async def get_orders(
    status: str | None = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(require_user),
) -> OrderListResponse:
    """The signed-in user's orders, newest first."""
    orders = list_orders(user_id=identity.user_id, status=status, offset=offset, limit=limit)
    return OrderListResponse(orders=[OrderView.of(order) for order in orders], offset=offset, limit=limit)


@order_router.get("/{order_id}", response_model=OrderView)
async def get_order(order_id: str, identity: Identity = Depends(get_identity)) -> OrderView:
    return OrderView.of(load_visible_order(identity, order_id))


@order_router.post("/{order_id}/payment", response_model=PaymentResponse)
def pay_order(
    order_id: str,
    body: PaymentRequest,
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> PaymentResponse:
    """Charge a pending order with the chosen provider.

    A declined charge is a 200 with ``success=false``; an unreachable
    provider is a 503 and the order is left untouched.
    """
    order = load_visible_order(identity, order_id)
    outcome = container.payment_service.process_payment(
        order.id, body.provider, method=body.method, details=body.details
    )
    return PaymentResponse(**asdict(outcome))


# ---------------------------------------------------------------------------
# Payment Provider Router
# ---------------------------------------------------------------------------
provider_router = APIRouter(prefix="/payment", tags=["payments"])


@provider_router.get("/providers", response_model=list[ProviderView])
async def list_providers(container: Container = Depends(get_container)) -> list[ProviderView]:
    return [
        ProviderView(
            type=info.type.value,
            name=info.name,
            description=info.description,
            methods=[method.value for method in info.methods],
            currencies=list(info.currencies),
        )
        for info in container.payment_router.list_available_providers()
    ]
