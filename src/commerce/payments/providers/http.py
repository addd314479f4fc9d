"""Shared HTTP plumbing for provider adapters.

Timeouts, transport failures and 5xx answers all mean the provider could not
be reached; they become ``ProviderUnavailable`` so callers can retry. Any
other status is returned to the adapter, which maps it to a business result.
"""

import httpx
import structlog

from commerce.errors import ProviderUnavailable

logger = structlog.get_logger(__name__)


class HttpProviderClient:
    def __init__(self, provider: str, base_url: str, timeout: float, transport: httpx.BaseTransport | None = None):
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                response = client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Provider timed out", provider=self.provider, path=path)
            raise ProviderUnavailable(self.provider, "timeout") from exc
        except httpx.RequestError as exc:
            logger.warning("Provider transport error", provider=self.provider, path=path, error=str(exc))
            raise ProviderUnavailable(self.provider, str(exc)) from exc

        if response.status_code >= 500:
            logger.warning("Provider server error", provider=self.provider, path=path, status=response.status_code)
            raise ProviderUnavailable(self.provider, f"HTTP {response.status_code}")
        return response


def json_or_empty(response: httpx.Response) -> dict:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}
