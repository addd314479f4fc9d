"""Addresses, customer details, shipping and payment selection on a checkout."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from commerce.checkout.checkout import Checkout
from commerce.domain import commerce
from commerce.shipping.shipping_method import ShippingMethod


@commerce.command(part_of="Checkout")
class SetShippingAddress:
    checkout_id = Identifier(required=True)
    street = String(required=True, max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=100)


@commerce.command(part_of="Checkout")
class SetBillingAddress:
    checkout_id = Identifier(required=True)
    street = String(required=True, max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=100)


@commerce.command(part_of="Checkout")
class SetCustomerDetails:
    checkout_id = Identifier(required=True)
    email = String(required=True, max_length=255)
    full_name = String(required=True, max_length=255)
    phone = String(max_length=50)


@commerce.command(part_of="Checkout")
class SetShippingMethod:
    checkout_id = Identifier(required=True)
    shipping_method_id = Identifier(required=True)


@commerce.command(part_of="Checkout")
class SetPaymentProvider:
    checkout_id = Identifier(required=True)
    provider = String(required=True, max_length=50)


@commerce.command(part_of="Checkout")
class ExtendCheckoutExpiry:
    checkout_id = Identifier(required=True)
    hours = Integer(required=True, min_value=1)


@commerce.command_handler(part_of=Checkout)
class CheckoutDetailsHandler:
    @handle(SetShippingAddress)
    def set_shipping_address(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.set_shipping_address(
            street=command.street,
            city=command.city,
            state=command.state,
            postal_code=command.postal_code,
            country=command.country,
        )
        repo.add(checkout)

    @handle(SetBillingAddress)
    def set_billing_address(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.set_billing_address(
            street=command.street,
            city=command.city,
            state=command.state,
            postal_code=command.postal_code,
            country=command.country,
        )
        repo.add(checkout)

    @handle(SetCustomerDetails)
    def set_customer_details(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.set_customer_details(email=command.email, full_name=command.full_name, phone=command.phone)
        repo.add(checkout)

    @handle(SetShippingMethod)
    def set_shipping_method(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)

        method = current_domain.repository_for(ShippingMethod).get(command.shipping_method_id)
        if not method.active:
            raise ValidationError({"shipping_method_id": ["Shipping method is not available"]})
        if method.currency != checkout.currency:
            raise ValidationError({"shipping_method_id": [f"{method.name} ships {method.currency} orders only"]})

        checkout.set_shipping_method(
            method_id=method.id,
            name=method.name,
            cost=method.cost,
            free_threshold=method.free_shipping_threshold,
        )
        repo.add(checkout)

    @handle(SetPaymentProvider)
    def set_payment_provider(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.set_payment_provider(command.provider)
        repo.add(checkout)

    @handle(ExtendCheckoutExpiry)
    def extend_expiry(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.extend_expiry(command.hours)
        repo.add(checkout)
