import httpx
import pytest
from pydantic import ValidationError

from stockdesk.services.currency import (
    CurrencyConversionRequest,
    ExchangeRateFetchError,
    ExchangeRateNotFoundError,
    InvalidAmountError,
    parse_rates,
)

from .conftest import FALLBACK, PRIMARY, USD_RATES, FakeClock, json_handler, make_currency_service


def _request(amount, from_currency, to_currency):
    return CurrencyConversionRequest(
        amount=amount, from_currency=from_currency, to_currency=to_currency
    )


def test_convert_uses_primary_api(currency_service, rate_calls):
    response = currency_service.convert(_request(100, "usd", "eur"))

    assert response.from_currency == "USD"
    assert response.to_currency == "EUR"
    assert response.exchange_rate == 0.92
    assert response.converted_amount == pytest.approx(92.0)
    assert response.amount == 100
    assert rate_calls == [f"{PRIMARY}/usd.json"]


def test_convert_same_currency_skips_network(currency_service, rate_calls):
    response = currency_service.convert(_request(42.5, "BRL", "brl"))

    assert response.exchange_rate == 1.0
    assert response.converted_amount == 42.5
    assert rate_calls == []


def test_convert_rejects_negative_amount(currency_service, rate_calls):
    with pytest.raises(InvalidAmountError, match="amount must be positive"):
        currency_service.convert(_request(-1, "USD", "EUR"))
    assert rate_calls == []


def test_conversion_request_requires_currency_codes():
    with pytest.raises(ValidationError):
        _request(1, "", "EUR")


def test_rates_are_cached_until_expiry(rate_calls):
    clock = FakeClock()
    service = make_currency_service(
        json_handler({f"{PRIMARY}/usd.json": USD_RATES}, rate_calls), clock=clock, cache_ttl=60
    )

    service.convert(_request(1, "USD", "EUR"))
    service.convert(_request(1, "USD", "BRL"))
    assert len(rate_calls) == 1

    clock.now += 60
    service.convert(_request(1, "USD", "EUR"))
    assert len(rate_calls) == 2


def test_clear_cache_forces_refetch(currency_service, rate_calls):
    currency_service.convert(_request(1, "USD", "EUR"))
    currency_service.clear_cache()
    currency_service.convert(_request(1, "USD", "EUR"))

    assert len(rate_calls) == 2


def test_fallback_used_when_primary_fails(rate_calls):
    service = make_currency_service(
        json_handler({f"{FALLBACK}/usd.json": USD_RATES}, rate_calls)
    )

    response = service.convert(_request(10, "USD", "JPY"))

    assert response.exchange_rate == 150.0
    assert rate_calls == [f"{PRIMARY}/usd.json", f"{FALLBACK}/usd.json"]


def test_fallback_used_on_transport_error():
    def handler(request):
        if request.url.host == "primary.test":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=USD_RATES)

    service = make_currency_service(handler)

    assert service.convert(_request(1, "USD", "EUR")).exchange_rate == 0.92


def test_both_apis_failing_raises():
    service = make_currency_service(lambda request: httpx.Response(503))

    with pytest.raises(ExchangeRateFetchError, match="both APIs"):
        service.convert(_request(1, "USD", "EUR"))


def test_invalid_json_and_empty_payload_fall_through():
    def handler(request):
        if request.url.host == "primary.test":
            return httpx.Response(200, content=b"<html>oops</html>")
        return httpx.Response(200, json={"date": "2025-01-01"})

    service = make_currency_service(handler)

    with pytest.raises(ExchangeRateFetchError, match="no exchange rates found"):
        service.get_exchange_rates("USD")


def test_unknown_target_currency_raises(currency_service, rate_calls):
    with pytest.raises(ExchangeRateNotFoundError, match="USD to XYZ"):
        currency_service.convert(_request(1, "USD", "XYZ"))

    # a cached table without the target is refetched once
    with pytest.raises(ExchangeRateNotFoundError):
        currency_service.convert(_request(1, "USD", "XYZ"))
    assert len(rate_calls) == 2


def test_get_exchange_rates_returns_upper_case_codes(currency_service, rate_calls):
    response = currency_service.get_exchange_rates("usd")
    again = currency_service.get_exchange_rates("USD")

    assert response.base == "USD"
    assert response.rates == {"EUR": 0.92, "BRL": 5.1, "JPY": 150.0}
    assert len(response.date) == 10
    assert again.rates == response.rates
    assert len(rate_calls) == 1


def test_supported_currencies(currency_service):
    currencies = currency_service.get_supported_currencies().currencies

    codes = [c.code for c in currencies]
    assert codes[:3] == ["BRL", "USD", "EUR"]
    assert len(codes) == 10
    assert all(c.symbol and c.name for c in currencies)


def test_parse_rates_ignores_date_and_non_numeric_values():
    payload = {"date": "2025-01-01", "eur": {"usd": 1.08, "gbp": "0.85", "btc": True, "jpy": 160}}

    assert parse_rates(payload) == {"USD": 1.08, "JPY": 160.0}
    assert parse_rates(["not", "a", "dict"]) == {}
