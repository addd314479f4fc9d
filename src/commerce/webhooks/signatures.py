"""Inbound webhook authentication.

Card provider: the ``Stripe-Signature`` header is checked by the stripe SDK
against each candidate secret, including its timestamp tolerance.

Wallet provider: hex HMAC-SHA256 digest of the raw body, compared in full
against the digest computed with each candidate secret.
"""

import hashlib
import hmac

import stripe

from commerce.errors import SignatureInvalid


def verify_card_signature(body: bytes, header: str | None, secrets: list[str], tolerance: int = 300) -> None:
    if not header:
        raise SignatureInvalid("stripe", "missing signature header")
    if not secrets:
        raise SignatureInvalid("stripe", "no webhook secret configured")

    payload = body.decode("utf-8", errors="replace")
    reason = None
    for secret in secrets:
        try:
            stripe.WebhookSignature.verify_header(payload, header, secret, tolerance)
        except stripe.SignatureVerificationError as exc:
            reason = exc.user_message or str(exc)
            continue
        return
    raise SignatureInvalid("stripe", reason)


def sign_wallet_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_wallet_signature(body: bytes, signature: str | None, secrets: list[str]) -> None:
    if not signature:
        raise SignatureInvalid("mobilepay", "missing signature header")
    if not secrets:
        raise SignatureInvalid("mobilepay", "no webhook secret configured")

    for secret in secrets:
        if hmac.compare_digest(sign_wallet_payload(body, secret), signature.strip().lower()):
            return
    raise SignatureInvalid("mobilepay")
