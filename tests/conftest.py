import httpx
import pytest

from stockdesk.app import DesktopApp
from stockdesk.services.currency import CurrencyService
from stockdesk.storage import Database
from stockdesk.utils.config import Config, DatabaseConfig

PRIMARY = "https://primary.test/v1/currencies"
FALLBACK = "https://fallback.test/v1/currencies"

USD_RATES = {"date": "2025-01-01", "usd": {"eur": 0.92, "brl": 5.1, "jpy": 150}}


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_currency_service(handler, clock=None, cache_ttl=1800.0) -> CurrencyService:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return CurrencyService(
        primary_url=PRIMARY,
        fallback_url=FALLBACK,
        cache_ttl=cache_ttl,
        client=client,
        clock=clock or FakeClock(),
    )


def json_handler(payloads, calls=None, status=200):
    """Serve ``payloads[url]`` as JSON; unknown URLs get a 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if calls is not None:
            calls.append(url)
        if url in payloads:
            return httpx.Response(status, json=payloads[url])
        return httpx.Response(404, json={"error": "not found"})

    return handler


@pytest.fixture
def db():
    database = Database("sqlite:///:memory:")
    yield database
    database.close()


@pytest.fixture
def rate_calls():
    return []


@pytest.fixture
def currency_service(rate_calls):
    service = make_currency_service(json_handler({f"{PRIMARY}/usd.json": USD_RATES}, rate_calls))
    yield service
    service.close()


@pytest.fixture
def app_config():
    return Config(database=DatabaseConfig(url="sqlite:///:memory:", init_retry_delay=0))


@pytest.fixture
def desktop_app(app_config, currency_service):
    application = DesktopApp(app_config, currency_service=currency_service)
    assert application.startup()
    yield application
    application.shutdown()


@pytest.fixture
def log_records():
    """Collect loguru records emitted during the test."""
    from loguru import logger

    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)
