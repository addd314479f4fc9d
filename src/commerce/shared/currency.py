"""Exchange rates and currency conversion.

The converter keeps the most recent rate table in memory for a bounded time.
Readers use the current immutable snapshot without locking; a missing or
stale snapshot is refreshed synchronously, one refresher at a time.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from types import MappingProxyType

import httpx
import structlog

from commerce.errors import ProviderUnavailable
from commerce.shared.money import Money, UnsupportedCurrency

logger = structlog.get_logger(__name__)

# USD-based reference table used when no live feed is configured
REFERENCE_RATES = {
    "USD": Decimal("1.0"),
    "EUR": Decimal("0.85"),
    "GBP": Decimal("0.75"),
    "JPY": Decimal("110.0"),
    "CAD": Decimal("1.25"),
    "AUD": Decimal("1.35"),
    "CHF": Decimal("0.92"),
    "CNY": Decimal("6.45"),
    "INR": Decimal("74.5"),
    "BRL": Decimal("5.2"),
    "SEK": Decimal("8.6"),
    "NOK": Decimal("8.8"),
    "DKK": Decimal("6.3"),
}


class ExchangeRateFeed(ABC):
    """Source of the latest rates relative to a base currency."""

    @abstractmethod
    def fetch_latest_rates(self, base_currency: str) -> dict[str, Decimal]: ...


class StaticExchangeRateFeed(ExchangeRateFeed):
    """Fixed rate table, rebased on request."""

    def __init__(self, rates: dict[str, Decimal] | None = None) -> None:
        self.rates = dict(rates or REFERENCE_RATES)
        self.fetch_count = 0

    def fetch_latest_rates(self, base_currency: str) -> dict[str, Decimal]:
        self.fetch_count += 1
        base = base_currency.upper()
        if base not in self.rates:
            raise UnsupportedCurrency(base)
        base_rate = self.rates[base]
        return {code: rate / base_rate for code, rate in self.rates.items()}


class HttpExchangeRateFeed(ExchangeRateFeed):
    """JSON rate feed answering ``GET {url}?base=XXX`` with ``{"rates": {...}}``."""

    def __init__(self, url: str, timeout: float = 10.0, transport: httpx.BaseTransport | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def fetch_latest_rates(self, base_currency: str) -> dict[str, Decimal]:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(self.url, params={"base": base_currency.upper()})
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderUnavailable("exchange-rates", str(exc)) from exc

        try:
            return {code.upper(): Decimal(str(rate)) for code, rate in payload["rates"].items()}
        except (KeyError, AttributeError, InvalidOperation) as exc:
            raise ProviderUnavailable("exchange-rates", "malformed rate payload") from exc


@dataclass(frozen=True)
class _RateSnapshot:
    base: str
    rates: MappingProxyType
    fetched_at: float


class CurrencyConverter:
    """Cached cross-rate conversion between supported currencies."""

    def __init__(
        self,
        feed: ExchangeRateFeed,
        base_currency: str = "USD",
        ttl_seconds: int = 3600,
        clock=time.monotonic,
    ) -> None:
        self._feed = feed
        self._base = base_currency.upper()
        self._ttl = ttl_seconds
        self._clock = clock
        self._snapshot: _RateSnapshot | None = None
        self._refresh_lock = threading.Lock()

    def _is_fresh(self, snapshot: _RateSnapshot | None) -> bool:
        return snapshot is not None and bool(snapshot.rates) and self._clock() - snapshot.fetched_at < self._ttl

    def _current(self) -> _RateSnapshot:
        snapshot = self._snapshot
        if self._is_fresh(snapshot):
            return snapshot

        with self._refresh_lock:
            # Another thread may have refreshed while we waited
            snapshot = self._snapshot
            if self._is_fresh(snapshot):
                return snapshot

            rates = self._feed.fetch_latest_rates(self._base)
            snapshot = _RateSnapshot(
                base=self._base,
                rates=MappingProxyType(dict(rates)),
                fetched_at=self._clock(),
            )
            self._snapshot = snapshot
            logger.info("Exchange rates refreshed", base=self._base, currencies=len(rates))
            return snapshot

    def refresh(self) -> None:
        """Drop the cached table so the next read fetches a new one."""
        self._snapshot = None

    def rates(self) -> dict[str, Decimal]:
        return dict(self._current().rates)

    def rate(self, from_currency: str, to_currency: str) -> Decimal:
        source, target = from_currency.upper(), to_currency.upper()
        if source == target:
            return Decimal(1)

        rates = self._current().rates
        if source not in rates:
            raise UnsupportedCurrency(source)
        if target not in rates:
            raise UnsupportedCurrency(target)
        return rates[target] / rates[source]

    def convert(self, money: Money, to_currency: str) -> Money:
        if money.currency == to_currency.upper():
            return money
        return money.convert(to_currency, self.rate(money.currency, to_currency))
