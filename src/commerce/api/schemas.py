"""Pydantic request/response schemas for the commerce API.

Amounts travel as integer minor units alongside a formatted display string.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from commerce.shared.money import Money

# --- Shared ---


class MoneyView(BaseModel):
    amount: int
    currency: str
    formatted: str

    @classmethod
    def of(cls, amount: int | None, currency: str) -> MoneyView:
        money = Money(amount or 0, currency)
        return cls(amount=money.amount, currency=money.currency, formatted=money.format())


class StatusResponse(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"status": "ok"}]}}

    status: str = "ok"


class IdResponse(BaseModel):
    id: str


class AddressView(BaseModel):
    street: str
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str

    @classmethod
    def of(cls, address) -> AddressView | None:
        if address is None:
            return None
        return cls(
            street=address.street,
            city=address.city,
            state=address.state,
            postal_code=address.postal_code,
            country=address.country,
        )


# --- Checkout Request Schemas ---


class AddItemRequest(BaseModel):
    model_config = {
        "json_schema_extra": {"examples": [{"product_id": "prod-001", "variant_id": None, "quantity": 2}]}
    }

    product_id: str
    variant_id: str | None = None
    quantity: int = Field(..., ge=1)


class UpdateItemRequest(BaseModel):
    variant_id: str | None = None
    quantity: int = Field(..., ge=0)


class AddressRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "street": "Nørrebrogade 1",
                    "city": "Copenhagen",
                    "postal_code": "2200",
                    "country": "DK",
                }
            ]
        }
    }

    street: str = Field(..., max_length=255)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    postal_code: str | None = Field(None, max_length=20)
    country: str = Field(..., max_length=100)


class CustomerDetailsRequest(BaseModel):
    email: str = Field(..., max_length=255)
    full_name: str = Field(..., max_length=255)
    phone: str | None = Field(None, max_length=50)


class ShippingMethodRequest(BaseModel):
    shipping_method_id: str


class PaymentProviderRequest(BaseModel):
    provider: str


class DiscountCodeRequest(BaseModel):
    code: str = Field(..., max_length=50)


class CompleteCheckoutRequest(BaseModel):
    checkout_id: str | None = None


class MergeCheckoutRequest(BaseModel):
    session_id: str | None = None


# --- Checkout Response Schemas ---


class CheckoutItemView(BaseModel):
    product_id: str
    variant_id: str | None = None
    sku: str | None = None
    name: str | None = None
    quantity: int
    unit_price: MoneyView
    line_total: MoneyView


class CheckoutView(BaseModel):
    id: str
    status: str
    user_id: str | None = None
    session_id: str | None = None
    currency: str
    items: list[CheckoutItemView]
    shipping_address: AddressView | None = None
    billing_address: AddressView | None = None
    customer_email: str | None = None
    customer_full_name: str | None = None
    customer_phone: str | None = None
    shipping_method_id: str | None = None
    shipping_method_name: str | None = None
    payment_provider: str | None = None
    discount_code: str | None = None
    subtotal: MoneyView
    shipping_cost: MoneyView
    discount_amount: MoneyView
    final_amount: MoneyView
    total_weight: float
    expires_at: datetime | None = None
    converted_order_id: str | None = None

    @classmethod
    def of(cls, checkout) -> CheckoutView:
        currency = checkout.currency
        return cls(
            id=str(checkout.id),
            status=checkout.status,
            user_id=str(checkout.user_id) if checkout.user_id else None,
            session_id=checkout.session_id,
            currency=currency,
            items=[
                CheckoutItemView(
                    product_id=str(item.product_id),
                    variant_id=str(item.variant_id) if item.variant_id else None,
                    sku=item.sku,
                    name=item.name,
                    quantity=item.quantity,
                    unit_price=MoneyView.of(item.unit_price, currency),
                    line_total=MoneyView.of(item.line_total, currency),
                )
                for item in checkout.items
            ],
            shipping_address=AddressView.of(checkout.shipping_address),
            billing_address=AddressView.of(checkout.billing_address),
            customer_email=checkout.customer_email,
            customer_full_name=checkout.customer_full_name,
            customer_phone=checkout.customer_phone,
            shipping_method_id=str(checkout.shipping_method_id) if checkout.shipping_method_id else None,
            shipping_method_name=checkout.shipping_method_name,
            payment_provider=checkout.payment_provider,
            discount_code=checkout.discount_code,
            subtotal=MoneyView.of(checkout.subtotal, currency),
            shipping_cost=MoneyView.of(checkout.shipping_cost, currency),
            discount_amount=MoneyView.of(checkout.discount_amount, currency),
            final_amount=MoneyView.of(checkout.final_amount, currency),
            total_weight=checkout.total_weight or 0.0,
            expires_at=checkout.expires_at,
            converted_order_id=str(checkout.converted_order_id) if checkout.converted_order_id else None,
        )


# --- Order Schemas ---


class OrderItemView(BaseModel):
    product_id: str
    variant_id: str | None = None
    sku: str | None = None
    name: str | None = None
    quantity: int
    unit_price: MoneyView
    line_total: MoneyView


class OrderView(BaseModel):
    id: str
    order_number: str
    status: str
    checkout_id: str | None = None
    user_id: str | None = None
    is_guest: bool
    customer_email: str | None = None
    customer_full_name: str | None = None
    currency: str
    items: list[OrderItemView]
    shipping_address: AddressView | None = None
    billing_address: AddressView | None = None
    shipping_method_name: str | None = None
    discount_code: str | None = None
    subtotal: MoneyView
    shipping_cost: MoneyView
    discount_amount: MoneyView
    final_amount: MoneyView
    payment_provider: str | None = None
    payment_method: str | None = None
    payment_id: str | None = None
    action_url: str | None = None
    created_at: datetime | None = None

    @classmethod
    def of(cls, order) -> OrderView:
        currency = order.currency
        return cls(
            id=str(order.id),
            order_number=order.order_number,
            status=order.status,
            checkout_id=str(order.checkout_id) if order.checkout_id else None,
            user_id=str(order.user_id) if order.user_id else None,
            is_guest=bool(order.is_guest),
            customer_email=order.customer_email,
            customer_full_name=order.customer_full_name,
            currency=currency,
            items=[
                OrderItemView(
                    product_id=str(item.product_id),
                    variant_id=str(item.variant_id) if item.variant_id else None,
                    sku=item.sku,
                    name=item.name,
                    quantity=item.quantity,
                    unit_price=MoneyView.of(item.unit_price, currency),
                    line_total=MoneyView.of(item.line_total, currency),
                )
                for item in order.items
            ],
            shipping_address=AddressView.of(order.shipping_address),
            billing_address=AddressView.of(order.billing_address),
            shipping_method_name=order.shipping_method_name,
            discount_code=order.discount_code,
            subtotal=MoneyView.of(order.subtotal, currency),
            shipping_cost=MoneyView.of(order.shipping_cost, currency),
            discount_amount=MoneyView.of(order.discount_amount, currency),
            final_amount=MoneyView.of(order.final_amount, currency),
            payment_provider=order.payment_provider,
            payment_method=order.payment_method,
            payment_id=order.payment_id,
            action_url=order.action_url,
            created_at=order.created_at,
        )


class OrderListResponse(BaseModel):
    orders: list[OrderView]
    offset: int
    limit: int


# --- Payment Schemas ---


class PaymentRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [{"provider": "stripe", "method": "credit_card", "details": {"token": "pm_card_visa"}}]
        }
    }

    provider: str
    method: str | None = None
    details: dict = Field(default_factory=dict)


class PaymentResponse(BaseModel):
    success: bool
    status: str
    order_status: str
    provider: str
    transaction_id: str | None = None
    action_url: str | None = None
    failure_reason: str | None = None


class ProviderView(BaseModel):
    type: str
    name: str
    description: str
    methods: list[str]
    currencies: list[str]


class TransactionView(BaseModel):
    id: str
    type: str
    status: str
    amount: MoneyView
    provider: str
    external_reference: str | None = None
    event_type: str | None = None
    created_at: datetime | None = None


# --- Admin Schemas ---


class UpdateOrderStatusRequest(BaseModel):
    status: str
    reason: str | None = Field(None, max_length=500)


class AmountRequest(BaseModel):
    amount: int | None = Field(None, ge=1)


class CreateDiscountRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [{"code": "SAVE10", "method": "percentage", "value": 10, "kind": "basket", "currency": "USD"}]
        }
    }

    code: str = Field(..., max_length=50)
    description: str | None = Field(None, max_length=255)
    kind: str = "basket"
    method: str
    value: int
    currency: str = "USD"
    min_order_value: int = Field(0, ge=0)
    max_discount_value: int = Field(0, ge=0)
    product_ids: list[str] = Field(default_factory=list)
    category_ids: list[str] = Field(default_factory=list)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    usage_limit: int = Field(0, ge=0)
    usage_limit_per_customer: int = Field(0, ge=0)


class UpdateDiscountRequest(BaseModel):
    description: str | None = Field(None, max_length=255)
    value: int | None = None
    min_order_value: int | None = Field(None, ge=0)
    max_discount_value: int | None = Field(None, ge=0)
    product_ids: list[str] | None = None
    category_ids: list[str] | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    usage_limit: int | None = Field(None, ge=0)
    usage_limit_per_customer: int | None = Field(None, ge=0)


class DiscountView(BaseModel):
    id: str
    code: str
    kind: str
    method: str
    value: int
    currency: str
    active: bool
    current_usage: int


class CreateShippingMethodRequest(BaseModel):
    name: str = Field(..., max_length=100)
    description: str | None = Field(None, max_length=255)
    estimated_delivery_days: int = Field(3, ge=0)
    cost: int = Field(..., ge=0)
    currency: str = "USD"
    free_shipping_threshold: int = Field(0, ge=0)


class ShippingMethodView(BaseModel):
    id: str
    name: str
    description: str | None = None
    estimated_delivery_days: int | None = None
    cost: MoneyView
    free_shipping_threshold: MoneyView


class RegisterWebhookRequest(BaseModel):
    provider: str
    url: str = Field(..., max_length=2000)
    events: list[str] = Field(..., min_length=1)
    secret: str | None = None
    external_id: str | None = None


class WebhookRegistrationView(BaseModel):
    id: str
    provider: str
    url: str
    events: list[str]
    secret: str
    is_active: bool


class SweepResponse(BaseModel):
    abandoned: list[str]
    expired: list[str]
    failed: list[str]
    recovery_sent: int


class WebhookAck(BaseModel):
    status: str = "ok"
    outcome: str
    event_type: str | None = None
