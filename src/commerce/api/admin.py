"""FastAPI routes for back-office operations. Every route requires the admin role."""

import json
from dataclasses import asdict

from fastapi import APIRouter, Depends
from protean.utils.globals import current_domain

from commerce.api.dependencies import get_container, require_admin
from commerce.api.schemas import (
    AmountRequest,
    CreateDiscountRequest,
    CreateShippingMethodRequest,
    DiscountView,
    IdResponse,
    MoneyView,
    PaymentResponse,
    RegisterWebhookRequest,
    StatusResponse,
    SweepResponse,
    TransactionView,
    UpdateDiscountRequest,
    UpdateOrderStatusRequest,
    WebhookRegistrationView,
)
from commerce.discount.management import CreateDiscount, DeactivateDiscount, UpdateDiscount, list_active_discounts
from commerce.order.management import UpdateOrderStatus
from commerce.shipping.shipping_method import CreateShippingMethod, DeactivateShippingMethod
from commerce.webhooks.registration import DeactivateWebhook, RegisterWebhook, WebhookRegistration
from commerce.wiring import Container

admin_router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _json_list(values):
    return json.dumps(values) if values is not None else None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
@admin_router.put("/orders/{order_id}/status", response_model=StatusResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> StatusResponse:
    status = current_domain.process(
        UpdateOrderStatus(order_id=order_id, status=body.status, reason=body.reason),
        asynchronous=False,
    )
    return StatusResponse(status=status)


@admin_router.post("/orders/{order_id}/capture", response_model=PaymentResponse)
def capture_payment(
    order_id: str,
    body: AmountRequest | None = None,
    container: Container = Depends(get_container),
) -> PaymentResponse:
    outcome = container.payment_service.capture_payment(order_id, amount=body.amount if body else None)
    return PaymentResponse(**asdict(outcome))


@admin_router.post("/orders/{order_id}/refund", response_model=PaymentResponse)
def refund_payment(
    order_id: str,
    body: AmountRequest | None = None,
    container: Container = Depends(get_container),
) -> PaymentResponse:
    """Refund all or part of what remains unrefunded on the order."""
    outcome = container.payment_service.refund_payment(order_id, amount=body.amount if body else None)
    return PaymentResponse(**asdict(outcome))


@admin_router.post("/orders/{order_id}/cancel", response_model=PaymentResponse)
def cancel_payment(order_id: str, container: Container = Depends(get_container)) -> PaymentResponse:
    outcome = container.payment_service.cancel_payment(order_id)
    return PaymentResponse(**asdict(outcome))


@admin_router.get("/orders/{order_id}/transactions", response_model=list[TransactionView])
def list_order_transactions(
    order_id: str, container: Container = Depends(get_container)
) -> list[TransactionView]:
    return [
        TransactionView(
            id=str(row.id),
            type=row.type,
            status=row.status,
            amount=MoneyView.of(row.amount, row.currency),
            provider=row.provider,
            external_reference=row.external_reference,
            event_type=row.event_type,
            created_at=row.created_at,
        )
        for row in container.payment_service.transactions(order_id)
    ]


# ---------------------------------------------------------------------------
# Discounts
# ---------------------------------------------------------------------------
@admin_router.get("/discounts", response_model=list[DiscountView])
async def list_discounts() -> list[DiscountView]:
    return [
        DiscountView(
            id=str(discount.id),
            code=discount.code,
            kind=discount.kind,
            method=discount.method,
            value=discount.value,
            currency=discount.currency,
            active=discount.active,
            current_usage=discount.current_usage or 0,
        )
        for discount in list_active_discounts()
    ]


@admin_router.post("/discounts", status_code=201, response_model=IdResponse)
async def create_discount(body: CreateDiscountRequest) -> IdResponse:
    command = CreateDiscount(
        code=body.code,
        description=body.description,
        kind=body.kind,
        method=body.method,
        value=body.value,
        currency=body.currency,
        min_order_value=body.min_order_value,
        max_discount_value=body.max_discount_value,
        product_ids=json.dumps(body.product_ids),
        category_ids=json.dumps(body.category_ids),
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        usage_limit=body.usage_limit,
        usage_limit_per_customer=body.usage_limit_per_customer,
    )
    return IdResponse(id=current_domain.process(command, asynchronous=False))


@admin_router.put("/discounts/{discount_id}", response_model=StatusResponse)
async def update_discount(discount_id: str, body: UpdateDiscountRequest) -> StatusResponse:
    command = UpdateDiscount(
        discount_id=discount_id,
        description=body.description,
        value=body.value,
        min_order_value=body.min_order_value,
        max_discount_value=body.max_discount_value,
        product_ids=_json_list(body.product_ids),
        category_ids=_json_list(body.category_ids),
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        usage_limit=body.usage_limit,
        usage_limit_per_customer=body.usage_limit_per_customer,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@admin_router.delete("/discounts/{discount_id}", response_model=StatusResponse)
async def deactivate_discount(discount_id: str) -> StatusResponse:
    current_domain.process(DeactivateDiscount(discount_id=discount_id), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Shipping methods
# ---------------------------------------------------------------------------
@admin_router.post("/shipping-methods", status_code=201, response_model=IdResponse)
async def create_shipping_method(body: CreateShippingMethodRequest) -> IdResponse:
    command = CreateShippingMethod(**body.model_dump())
    return IdResponse(id=current_domain.process(command, asynchronous=False))


@admin_router.delete("/shipping-methods/{shipping_method_id}", response_model=StatusResponse)
async def deactivate_shipping_method(shipping_method_id: str) -> StatusResponse:
    current_domain.process(DeactivateShippingMethod(shipping_method_id=shipping_method_id), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Webhook registrations
# ---------------------------------------------------------------------------
@admin_router.post("/webhooks", status_code=201, response_model=WebhookRegistrationView)
async def register_webhook(body: RegisterWebhookRequest) -> WebhookRegistrationView:
    """Register an endpoint with a provider. The signing secret is returned once, here."""
    webhook_id = current_domain.process(
        RegisterWebhook(
            provider=body.provider,
            url=body.url,
            events=json.dumps(body.events),
            secret=body.secret,
            external_id=body.external_id,
        ),
        asynchronous=False,
    )
    registration = current_domain.repository_for(WebhookRegistration).get(webhook_id)
    return WebhookRegistrationView(
        id=str(registration.id),
        provider=registration.provider,
        url=registration.url,
        events=registration.subscribed_events,
        secret=registration.secret,
        is_active=registration.is_active,
    )


@admin_router.delete("/webhooks/{webhook_id}", response_model=StatusResponse)
async def deactivate_webhook(webhook_id: str) -> StatusResponse:
    current_domain.process(DeactivateWebhook(webhook_id=webhook_id), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
@admin_router.post("/checkouts/sweep", response_model=SweepResponse)
def sweep_checkouts(container: Container = Depends(get_container)) -> SweepResponse:
    """Abandon idle checkouts and expire those past their deadline."""
    return SweepResponse(**asdict(container.checkout_service.sweep()))
