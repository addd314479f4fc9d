"""HTTP exchange rate feed tests against canned responses."""

from decimal import Decimal

import httpx
import pytest

from commerce.errors import ProviderUnavailable
from commerce.shared.currency import CurrencyConverter, HttpExchangeRateFeed
from commerce.shared.money import Money

URL = "https://rates.example.test/latest"


def _feed(handler):
    return HttpExchangeRateFeed(URL, timeout=1.0, transport=httpx.MockTransport(handler))


class TestHttpExchangeRateFeed:
    def test_fetch(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"base": "USD", "rates": {"usd": 1, "eur": "0.9", "jpy": 150.5}})

        rates = _feed(handler).fetch_latest_rates("usd")

        assert rates == {"USD": Decimal("1"), "EUR": Decimal("0.9"), "JPY": Decimal("150.5")}
        assert seen[0].url.params["base"] == "USD"

    def test_server_error(self):
        with pytest.raises(ProviderUnavailable):
            _feed(lambda request: httpx.Response(502)).fetch_latest_rates("USD")

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderUnavailable):
            _feed(handler).fetch_latest_rates("USD")

    def test_malformed_payload(self):
        with pytest.raises(ProviderUnavailable):
            _feed(lambda request: httpx.Response(200, json={"quotes": []})).fetch_latest_rates("USD")

    def test_converter_over_http_feed(self):
        feed = _feed(lambda request: httpx.Response(200, json={"rates": {"USD": 1, "EUR": 0.85}}))
        converter = CurrencyConverter(feed, base_currency="USD")
        assert converter.convert(Money(850, "EUR"), "USD") == Money(1000, "USD")
