"""Currency conversion backed by a public exchange-rate API."""

import threading
import time
from datetime import date, datetime, timezone
from typing import Callable, Dict, Optional, Tuple

import httpx
from loguru import logger
from pydantic import Field

from ..storage.models import CamelModel

PRIMARY_API_URL = "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest/v1/currencies"
FALLBACK_API_URL = "https://latest.currency-api.pages.dev/v1/currencies"

DEFAULT_CACHE_TTL = 30 * 60.0
DEFAULT_HTTP_TIMEOUT = 10.0


class CurrencyError(Exception):
    """Base class for currency service failures."""


class InvalidAmountError(CurrencyError, ValueError):
    """Raised for amounts that cannot be converted."""


class ExchangeRateFetchError(CurrencyError):
    """Raised when neither rate endpoint returned usable data."""


class ExchangeRateNotFoundError(CurrencyError, LookupError):
    """Raised when the API has no rate for the requested pair."""


class CurrencyInfo(CamelModel):
    code: str
    symbol: str
    name: str


class SupportedCurrenciesResponse(CamelModel):
    currencies: list[CurrencyInfo]


class CurrencyConversionRequest(CamelModel):
    amount: float
    from_currency: str = Field(min_length=1)
    to_currency: str = Field(min_length=1)


class CurrencyConversionResponse(CamelModel):
    amount: float
    from_currency: str
    to_currency: str
    converted_amount: float
    exchange_rate: float
    conversion_date: datetime


class CurrencyRatesResponse(CamelModel):
    date: str
    base: str
    rates: Dict[str, float]


SUPPORTED_CURRENCIES = [
    CurrencyInfo(code="BRL", symbol="R$", name="Brazilian Real"),
    CurrencyInfo(code="USD", symbol="$", name="US Dollar"),
    CurrencyInfo(code="EUR", symbol="€", name="Euro"),
    CurrencyInfo(code="GBP", symbol="£", name="British Pound"),
    CurrencyInfo(code="JPY", symbol="¥", name="Japanese Yen"),
    CurrencyInfo(code="CAD", symbol="C$", name="Canadian Dollar"),
    CurrencyInfo(code="AUD", symbol="A$", name="Australian Dollar"),
    CurrencyInfo(code="CHF", symbol="CHF", name="Swiss Franc"),
    CurrencyInfo(code="CNY", symbol="¥", name="Chinese Yuan"),
    CurrencyInfo(code="INR", symbol="₹", name="Indian Rupee"),
]


class CurrencyService:
    """Converts amounts between currencies.

    Rates are fetched per base currency, first from the primary endpoint
    and then from the fallback, and kept in memory for ``cache_ttl``
    seconds. The cache is shared between threads.
    """

    def __init__(
        self,
        primary_url: str = PRIMARY_API_URL,
        fallback_url: str = FALLBACK_API_URL,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
        client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize currency service.

        Args:
            primary_url: Base URL of the preferred rates endpoint
            fallback_url: Base URL used when the primary fails
            cache_ttl: Seconds a fetched rate table stays valid
            http_timeout: Timeout for each HTTP request in seconds
            client: Pre-configured HTTP client, mainly for tests
            clock: Monotonic time source used for cache expiry
        """
        self.primary_url = primary_url.rstrip("/")
        self.fallback_url = fallback_url.rstrip("/")
        self.cache_ttl = cache_ttl
        self.client = client or httpx.Client(timeout=http_timeout, follow_redirects=True)
        self._clock = clock
        self._cache: Dict[str, Tuple[Dict[str, float], float]] = {}
        self._lock = threading.Lock()

    def close(self):
        self.client.close()

    def convert(self, request: CurrencyConversionRequest) -> CurrencyConversionResponse:
        """Convert an amount using the current exchange rate."""
        logger.info(
            f"Converting {request.amount:.2f} {request.from_currency} to {request.to_currency}"
        )

        if request.amount < 0:
            raise InvalidAmountError("amount must be positive")

        from_currency = request.from_currency.strip().upper()
        to_currency = request.to_currency.strip().upper()

        rate = self._get_exchange_rate(from_currency, to_currency)
        converted_amount = request.amount * rate

        logger.info(
            f"Conversion successful: {request.amount:.2f} {from_currency} = "
            f"{converted_amount:.2f} {to_currency} (rate: {rate:.6f})"
        )

        return CurrencyConversionResponse(
            amount=request.amount,
            from_currency=from_currency,
            to_currency=to_currency,
            converted_amount=converted_amount,
            exchange_rate=rate,
            conversion_date=datetime.now(timezone.utc),
        )

    def get_exchange_rates(self, base_currency: str) -> CurrencyRatesResponse:
        """Get every rate known for a base currency."""
        base_currency = base_currency.strip().upper()
        logger.info(f"Getting all exchange rates for {base_currency}")

        rates = self._get_cached_rates(base_currency)
        if rates is None:
            rates = self._fetch_exchange_rates(base_currency)
            self._save_rates(base_currency, rates)

        return CurrencyRatesResponse(
            date=date.today().isoformat(),
            base=base_currency,
            rates=rates,
        )

    def get_supported_currencies(self) -> SupportedCurrenciesResponse:
        return SupportedCurrenciesResponse(currencies=list(SUPPORTED_CURRENCIES))

    def clear_cache(self):
        with self._lock:
            self._cache.clear()
        logger.info("Currency exchange rates cache cleared")

    def _get_exchange_rate(self, from_currency: str, to_currency: str) -> float:
        if from_currency == to_currency:
            return 1.0

        rates = self._get_cached_rates(from_currency)
        if rates is not None and to_currency in rates:
            return rates[to_currency]

        rates = self._fetch_exchange_rates(from_currency)
        self._save_rates(from_currency, rates)

        if to_currency not in rates:
            raise ExchangeRateNotFoundError(
                f"exchange rate not found for {from_currency} to {to_currency}"
            )
        return rates[to_currency]

    def _get_cached_rates(self, base_currency: str) -> Optional[Dict[str, float]]:
        with self._lock:
            entry = self._cache.get(base_currency)
            if entry is None:
                return None

            rates, expires_at = entry
            if self._clock() >= expires_at:
                return None

        logger.debug(f"Using cached rates for {base_currency}")
        return dict(rates)

    def _save_rates(self, base_currency: str, rates: Dict[str, float]):
        with self._lock:
            self._cache[base_currency] = (dict(rates), self._clock() + self.cache_ttl)
        logger.debug(f"Cached rates for {base_currency} for {self.cache_ttl:.0f}s")

    def _fetch_exchange_rates(self, base_currency: str) -> Dict[str, float]:
        base = base_currency.lower()

        try:
            rates = self._fetch_from_url(f"{self.primary_url}/{base}.json")
        except ExchangeRateFetchError as primary_error:
            logger.warning(
                f"Primary API failed for {base}: {primary_error}, trying fallback"
            )
            try:
                rates = self._fetch_from_url(f"{self.fallback_url}/{base}.json")
            except ExchangeRateFetchError as e:
                logger.error(f"Both APIs failed for {base}: {e}")
                raise ExchangeRateFetchError(
                    f"failed to fetch exchange rates from both APIs: {e}"
                ) from e

        logger.info(f"Successfully fetched exchange rates for {base}")
        return rates

    def _fetch_from_url(self, url: str) -> Dict[str, float]:
        logger.debug(f"Fetching exchange rates from: {url}")

        try:
            response = self.client.get(url)
        except httpx.HTTPError as e:
            raise ExchangeRateFetchError(f"HTTP request failed: {e}") from e

        if response.status_code != 200:
            raise ExchangeRateFetchError(f"API returned status code: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ExchangeRateFetchError(f"failed to parse JSON response: {e}") from e

        rates = parse_rates(payload)
        if not rates:
            raise ExchangeRateFetchError("no exchange rates found in API response")
        return rates


def parse_rates(payload) -> Dict[str, float]:
    """Extract ``{CODE: rate}`` from an API document.

    The API nests rates under the lower-cased base code next to a
    ``date`` field, e.g. ``{"date": "...", "usd": {"eur": 0.92}}``.
    """
    rates: Dict[str, float] = {}
    if not isinstance(payload, dict):
        return rates

    for key, value in payload.items():
        if key == "date" or not isinstance(value, dict):
            continue
        for currency, rate in value.items():
            if isinstance(rate, (int, float)) and not isinstance(rate, bool):
                rates[currency.upper()] = float(rate)
    return rates
