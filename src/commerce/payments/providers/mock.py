"""Configurable in-process payment provider for development and testing.

No external calls. Tests and local runs configure the outcome up front:
settle immediately, ask for a redirect, decline, or behave as if the provider
were down.
"""

from uuid import uuid4

from commerce.errors import ProviderUnavailable
from commerce.payments.providers.port import (
    ChargeRequest,
    ChargeResult,
    ChargeStatus,
    OperationResult,
    PaymentMethod,
    PaymentProvider,
    ProviderInfo,
    ProviderType,
)
from commerce.shared.money import Money


class MockProvider(PaymentProvider):
    provider_type = ProviderType.MOCK

    def __init__(self) -> None:
        self.outcome = ChargeStatus.SUCCEEDED
        self.failure_reason = "Card declined"
        self.action_url = "https://pay.example.test/confirm"
        self.operations_succeed = True
        self.unavailable = False
        self.calls: list[dict] = []

    def configure(
        self,
        outcome: ChargeStatus | str = ChargeStatus.SUCCEEDED,
        failure_reason: str = "Card declined",
        operations_succeed: bool = True,
        unavailable: bool = False,
    ) -> None:
        self.outcome = ChargeStatus(outcome)
        self.failure_reason = failure_reason
        self.operations_succeed = operations_succeed
        self.unavailable = unavailable

    def reset(self) -> None:
        self.configure()
        self.calls.clear()

    def _record(self, method: str, **details) -> None:
        self.calls.append({"method": method, **details})
        if self.unavailable:
            raise ProviderUnavailable("mock", "simulated outage")

    def info(self) -> ProviderInfo:
        return ProviderInfo(
            type=self.provider_type,
            name="Test Payment",
            description="For testing purposes only",
            methods=(PaymentMethod.CREDIT_CARD, PaymentMethod.WALLET),
        )

    def charge(self, request: ChargeRequest) -> ChargeResult:
        self._record("charge", order_id=request.order_id, amount=request.amount, payment_method=request.method)
        transaction_id = f"mock_txn_{uuid4().hex[:12]}"

        if self.outcome == ChargeStatus.FAILED:
            return ChargeResult(
                status=ChargeStatus.FAILED,
                provider=self.provider_type,
                transaction_id=transaction_id,
                failure_reason=self.failure_reason,
            )
        if self.outcome == ChargeStatus.REQUIRES_ACTION:
            return ChargeResult(
                status=ChargeStatus.REQUIRES_ACTION,
                provider=self.provider_type,
                transaction_id=transaction_id,
                action_url=f"{self.action_url}?ref={transaction_id}",
            )
        return ChargeResult(status=ChargeStatus.SUCCEEDED, provider=self.provider_type, transaction_id=transaction_id)

    def verify(self, transaction_id: str) -> bool:
        self._record("verify", transaction_id=transaction_id)
        return self.operations_succeed

    def _operation(self, method: str, transaction_id: str, amount: Money | None = None) -> OperationResult:
        self._record(method, transaction_id=transaction_id, amount=amount)
        if not self.operations_succeed:
            return OperationResult(
                success=False,
                provider=self.provider_type,
                transaction_id=transaction_id,
                failure_reason=self.failure_reason,
            )
        return OperationResult(
            success=True,
            provider=self.provider_type,
            transaction_id=f"mock_{method}_{uuid4().hex[:12]}",
            provider_status="succeeded",
        )

    def capture(self, transaction_id: str, amount: Money) -> OperationResult:
        return self._operation("capture", transaction_id, amount)

    def refund(self, transaction_id: str, amount: Money) -> OperationResult:
        return self._operation("refund", transaction_id, amount)

    def cancel(self, transaction_id: str) -> OperationResult:
        return self._operation("cancel", transaction_id)
