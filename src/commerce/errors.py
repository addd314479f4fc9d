"""Error taxonomy for the commerce domain.

State-machine and conversion conflicts are ``ValidationError`` subclasses so
they carry the usual ``{field: [messages]}`` payload. Unknown ids surface as
Protean's ``ObjectNotFoundError``.
"""

from protean.exceptions import ValidationError


class InvalidState(ValidationError):
    """Operation is not legal in the aggregate's current state."""


class IllegalTransition(ValidationError):
    """Requested state transition is not in the declared transition table."""


class StalePricing(ValidationError):
    """A line's price changed since it was added; the shopper must refresh."""


class InsufficientStock(ValidationError):
    """The catalog cannot cover the requested quantity."""


class ProviderUnavailable(Exception):
    """A payment provider (or rate feed) timed out, failed transport or answered 5xx.

    Retryable: nothing was written and the order keeps its prior state.
    """

    def __init__(self, provider: str, reason: str = "") -> None:
        self.provider = provider
        self.reason = reason
        message = f"payment provider {provider} not available"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SignatureInvalid(Exception):
    """An inbound webhook failed authentication."""

    def __init__(self, provider: str, reason: str = "signature mismatch") -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"Invalid {provider} webhook signature: {reason}")
