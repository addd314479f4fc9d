"""Wallet payments through the MobilePay (Vipps) ePayment API.

A charge never settles immediately: the shopper is redirected to the wallet
app and the outcome arrives later by webhook. The payment reference we
generate (``order-{order_id}-{nonce}``) is what the provider reports back.
"""

import threading
import time
from uuid import uuid4

import httpx
import structlog

from commerce.config import MobilePaySettings
from commerce.errors import ProviderUnavailable
from commerce.payments.providers.http import HttpProviderClient, json_or_empty
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

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_PATH = "/accesstoken/get"
PAYMENTS_PATH = "/epayment/v1/payments"
SUPPORTED_CURRENCIES = ("NOK", "DKK", "EUR")

# Renew tokens this many seconds before the provider would reject them
_TOKEN_SAFETY_MARGIN = 300


def payment_reference(order_id) -> str:
    return f"order-{order_id}-{uuid4().hex}"


class MobilePayProvider(PaymentProvider):
    provider_type = ProviderType.MOBILEPAY

    def __init__(
        self,
        settings: MobilePaySettings,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
        clock=time.monotonic,
    ):
        self.settings = settings
        self.http = HttpProviderClient("mobilepay", settings.base_url, timeout, transport)
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    def info(self) -> ProviderInfo:
        return ProviderInfo(
            type=self.provider_type,
            name="MobilePay",
            description="Pay with the MobilePay app",
            methods=(PaymentMethod.WALLET,),
            currencies=SUPPORTED_CURRENCIES,
            enabled=self.settings.enabled,
        )

    # -------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------
    def _access_token(self) -> str:
        with self._token_lock:
            if self._token and self._clock() < self._token_expires_at:
                return self._token

            response = self.http.request(
                "POST",
                ACCESS_TOKEN_PATH,
                headers={
                    "client_id": self.settings.client_id,
                    "client_secret": self.settings.client_secret,
                    "Ocp-Apim-Subscription-Key": self.settings.subscription_key,
                    "Merchant-Serial-Number": self.settings.merchant_serial_number,
                },
            )
            payload = json_or_empty(response)
            if response.status_code != 200 or not payload.get("access_token"):
                raise ProviderUnavailable("mobilepay", f"access token request failed (HTTP {response.status_code})")

            try:
                expires_in = int(payload.get("expires_in", 0))
            except (TypeError, ValueError):
                expires_in = 0
            self._token = payload["access_token"]
            self._token_expires_at = self._clock() + max(expires_in - _TOKEN_SAFETY_MARGIN, 0)
            return self._token

    def _headers(self, idempotency_key: str | None = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Ocp-Apim-Subscription-Key": self.settings.subscription_key,
            "Merchant-Serial-Number": self.settings.merchant_serial_number,
            "Vipps-System-Name": "commerce-core",
            "Vipps-System-Version": "1.0.0",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    def charge(self, request: ChargeRequest) -> ChargeResult:
        if request.method != PaymentMethod.WALLET:
            return ChargeResult(
                status=ChargeStatus.FAILED,
                provider=self.provider_type,
                failure_reason="unsupported payment method for MobilePay, only wallet is supported",
            )
        if request.amount.currency not in SUPPORTED_CURRENCIES:
            return ChargeResult(
                status=ChargeStatus.FAILED,
                provider=self.provider_type,
                failure_reason=f"MobilePay does not accept {request.amount.currency}",
            )

        reference = payment_reference(request.order_id)
        body = {
            "amount": {"currency": request.amount.currency, "value": request.amount.amount},
            "paymentMethod": {"type": "WALLET"},
            "reference": reference,
            "returnUrl": self.settings.return_url,
            "userFlow": "WEB_REDIRECT",
            "paymentDescription": f"Order {request.order_id}",
        }
        phone = request.details.get("phone_number")
        if phone:
            body["customer"] = {"phoneNumber": phone}

        response = self.http.request("POST", PAYMENTS_PATH, json=body, headers=self._headers(uuid4().hex))
        payload = json_or_empty(response)
        if response.status_code not in (200, 201) or not payload.get("redirectUrl"):
            logger.info("MobilePay rejected payment", order_id=request.order_id, status=response.status_code)
            return ChargeResult(
                status=ChargeStatus.FAILED,
                provider=self.provider_type,
                transaction_id=reference,
                failure_reason=payload.get("title") or f"failed to create payment (HTTP {response.status_code})",
                raw_response=response.text,
            )

        return ChargeResult(
            status=ChargeStatus.REQUIRES_ACTION,
            provider=self.provider_type,
            transaction_id=payload.get("reference") or reference,
            action_url=payload["redirectUrl"],
            raw_response=response.text,
        )

    def verify(self, transaction_id: str) -> bool:
        response = self.http.request("GET", f"{PAYMENTS_PATH}/{transaction_id}", headers=self._headers())
        if response.status_code != 200:
            return False
        return json_or_empty(response).get("state") == "AUTHORIZED"

    def _modify(self, transaction_id: str, action: str, amount: Money | None) -> OperationResult:
        body = None
        if amount is not None:
            body = {"modificationAmount": {"currency": amount.currency, "value": amount.amount}}
        # Echoed back as idempotencyKey on the webhook for this modification
        operation_id = uuid4().hex
        response = self.http.request(
            "POST",
            f"{PAYMENTS_PATH}/{transaction_id}/{action}",
            json=body,
            headers=self._headers(operation_id),
        )
        payload = json_or_empty(response)
        if response.status_code != 200:
            return OperationResult(
                success=False,
                provider=self.provider_type,
                transaction_id=transaction_id,
                failure_reason=payload.get("title") or f"failed to {action} payment (HTTP {response.status_code})",
                raw_response=response.text,
            )
        return OperationResult(
            success=True,
            provider=self.provider_type,
            transaction_id=transaction_id,
            operation_id=operation_id,
            provider_status=payload.get("state"),
            raw_response=response.text,
        )

    def capture(self, transaction_id: str, amount: Money) -> OperationResult:
        return self._modify(transaction_id, "capture", amount)

    def refund(self, transaction_id: str, amount: Money) -> OperationResult:
        return self._modify(transaction_id, "refund", amount)

    def cancel(self, transaction_id: str) -> OperationResult:
        return self._modify(transaction_id, "cancel", None)
