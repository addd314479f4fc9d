"""FastAPI routes for the shopper's checkout."""

from fastapi import APIRouter, Cookie, Depends

from commerce.api.dependencies import get_container, get_identity, require_user
from commerce.api.schemas import (
    AddItemRequest,
    AddressRequest,
    CheckoutView,
    CompleteCheckoutRequest,
    CustomerDetailsRequest,
    DiscountCodeRequest,
    MergeCheckoutRequest,
    MoneyView,
    OrderView,
    PaymentProviderRequest,
    ShippingMethodRequest,
    ShippingMethodView,
    UpdateItemRequest,
)
from commerce.identity import Identity
from commerce.shipping.shipping_method import list_active_shipping_methods
from commerce.wiring import Container

# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.get("", response_model=CheckoutView)
def get_checkout(
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    """Return the shopper's open checkout, starting one if needed."""
    return CheckoutView.of(container.checkout_service.get_or_start(identity))


@checkout_router.post("/items", response_model=CheckoutView)
def add_item(
    body: AddItemRequest,
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    checkout = container.checkout_service.add_item(
        identity, body.product_id, body.quantity, variant_id=body.variant_id
    )
    return CheckoutView.of(checkout)


@checkout_router.put("/items/{product_id}", response_model=CheckoutView)
def update_item(
    product_id: str,
    body: UpdateItemRequest,
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    """Change a line's quantity. Zero removes the line."""
    checkout = container.checkout_service.update_item(
        identity, product_id, body.quantity, variant_id=body.variant_id
    )
    return CheckoutView.of(checkout)


@checkout_router.delete("/items/{product_id}", response_model=CheckoutView)
def remove_item(
    product_id: str,
    variant_id: str | None = None,
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    checkout = container.checkout_service.remove_item(identity, product_id, variant_id=variant_id)
    return CheckoutView.of(checkout)


@checkout_router.delete("", response_model=CheckoutView)
def clear_checkout(
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    return CheckoutView.of(container.checkout_service.clear(identity))


@checkout_router.post("/shipping-address", response_model=CheckoutView)
def set_shipping_address(
    body: AddressRequest,
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    checkout = container.checkout_service.set_shipping_address(identity, **body.model_dump())
    return CheckoutView.of(checkout)


@checkout_router.post("/billing-address", response_model=CheckoutView)
def set_billing_address(
    body: AddressRequest,
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    checkout = container.checkout_service.set_billing_address(identity, **body.model_dump())
    return CheckoutView.of(checkout)


@checkout_router.post("/customer-details", response_model=CheckoutView)
def set_customer_details(
    body: CustomerDetailsRequest,
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    checkout = container.checkout_service.set_customer_details(
        identity, body.email, body.full_name, phone=body.phone
    )
    return CheckoutView.of(checkout)


@checkout_router.post("/shipping-method", response_model=CheckoutView)
def set_shipping_method(
    body: ShippingMethodRequest,
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    checkout = container.checkout_service.set_shipping_method(identity, body.shipping_method_id)
    return CheckoutView.of(checkout)


@checkout_router.post("/payment-provider", response_model=CheckoutView)
def set_payment_provider(
    body: PaymentProviderRequest,
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    checkout = container.checkout_service.set_payment_provider(identity, body.provider)
    return CheckoutView.of(checkout)


@checkout_router.post("/discount", response_model=CheckoutView)
def apply_discount(
    body: DiscountCodeRequest,
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    return CheckoutView.of(container.checkout_service.apply_discount(identity, body.code))


@checkout_router.delete("/discount", response_model=CheckoutView)
def remove_discount(
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> CheckoutView:
    return CheckoutView.of(container.checkout_service.remove_discount(identity))


@checkout_router.post("/complete", status_code=201, response_model=OrderView)
def complete_checkout(
    body: CompleteCheckoutRequest | None = None,
    identity: Identity = Depends(get_identity),
    container: Container = Depends(get_container),
) -> OrderView:
    """Place the order. Repeating the call returns the same order."""
    checkout_id = body.checkout_id if body else None
    order = container.checkout_service.complete(identity, checkout_id=checkout_id)
    return OrderView.of(order)


@checkout_router.post("/merge", response_model=CheckoutView)
def merge_checkout(
    body: MergeCheckoutRequest | None = None,
    identity: Identity = Depends(require_user),
    container: Container = Depends(get_container),
    checkout_session: str | None = Cookie(default=None),
) -> CheckoutView:
    """Fold the guest session's checkout into the signed-in user's."""
    session_id = (body.session_id if body else None) or checkout_session
    checkout = None
    if session_id:
        checkout = container.checkout_service.merge(identity.user_id, session_id)
    if checkout is None:
        checkout = container.checkout_service.get_or_start(identity)
    return CheckoutView.of(checkout)


# ---------------------------------------------------------------------------
# Shipping Method Router
# ---------------------------------------------------------------------------
shipping_router = APIRouter(prefix="/shipping-methods", tags=["shipping"])


@shipping_router.get("", response_model=list[ShippingMethodView])
async def list_shipping_methods() -> list[ShippingMethodView]:
    return [
        ShippingMethodView(
            id=str(method.id),
            name=method.name,
            description=method.description,
            estimated_delivery_days=method.estimated_delivery_days,
            cost=MoneyView.of(method.cost, method.currency),
            free_shipping_threshold=MoneyView.of(method.free_shipping_threshold, method.currency),
        )
        for method in list_active_shipping_methods()
    ]
