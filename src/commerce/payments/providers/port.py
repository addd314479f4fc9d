"""Payment provider port.

Every provider adapter implements this contract so the router and the
payment service never depend on a particular provider's API.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from commerce.shared.money import Money


class ProviderType(Enum):
    STRIPE = "stripe"
    MOBILEPAY = "mobilepay"
    MOCK = "mock"


class PaymentMethod(Enum):
    CREDIT_CARD = "credit_card"
    WALLET = "wallet"


class ChargeStatus(Enum):
    SUCCEEDED = "succeeded"
    REQUIRES_ACTION = "requires_action"
    FAILED = "failed"


@dataclass(frozen=True)
class ProviderInfo:
    """What a provider offers, as listed to shoppers."""

    type: ProviderType
    name: str
    description: str
    methods: tuple[PaymentMethod, ...]
    currencies: tuple[str, ...] = ()
    enabled: bool = True

    def supports(self, method: PaymentMethod) -> bool:
        return method in self.methods


@dataclass(frozen=True)
class ChargeRequest:
    order_id: str
    amount: Money
    method: PaymentMethod
    customer_email: str | None = None
    details: dict = field(default_factory=dict)  # card token, phone number, ...


@dataclass(frozen=True)
class ChargeResult:
    """Result of a charge attempt."""

    status: ChargeStatus
    provider: ProviderType
    transaction_id: str | None = None
    action_url: str | None = None
    failure_reason: str | None = None
    raw_response: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ChargeStatus.SUCCEEDED

    @property
    def requires_action(self) -> bool:
        return self.status == ChargeStatus.REQUIRES_ACTION


@dataclass(frozen=True)
class OperationResult:
    """Result of a capture, refund or cancel."""

    success: bool
    provider: ProviderType
    transaction_id: str | None = None
    operation_id: str | None = None  # provider id of this capture or refund
    provider_status: str | None = None
    failure_reason: str | None = None
    raw_response: str | None = None


class PaymentProvider(ABC):
    provider_type: ProviderType

    @abstractmethod
    def info(self) -> ProviderInfo: ...

    @abstractmethod
    def charge(self, request: ChargeRequest) -> ChargeResult:
        """Start a payment. Declines come back as FAILED results, not exceptions."""
        ...

    @abstractmethod
    def verify(self, transaction_id: str) -> bool:
        """True when the provider considers the payment authorized or settled."""
        ...

    @abstractmethod
    def capture(self, transaction_id: str, amount: Money) -> OperationResult: ...

    @abstractmethod
    def refund(self, transaction_id: str, amount: Money) -> OperationResult: ...

    @abstractmethod
    def cancel(self, transaction_id: str) -> OperationResult: ...
