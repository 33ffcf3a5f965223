"""Exchange rate API HTTP client for USD -> VES market rates"""

import math
import re
from typing import Any, Optional

import httpx

from ledgerflow.config import settings
from ledgerflow.domain.exceptions import RateUnavailableError
from ledgerflow.domain.models import MarketRates
from ledgerflow.infrastructure.observability.metrics import rate_fetch_latency_histogram
from ledgerflow.utils.date_utils import utc_now_iso

_INDEX_PART = re.compile(r"^\[(\d+)\]$")

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "LedgerFlow/1.0",
}


def extract_value_from_path(data: Any, path: str) -> Any:
    """
    Walk a decoded JSON document along a dotted path.

    Parts written as [n] index into lists, e.g. "[0].promedio".
    Returns None as soon as a step is missing.
    """
    current = data
    for part in path.split("."):
        match = _INDEX_PART.match(part)
        if match:
            index = int(match.group(1))
            if not isinstance(current, list) or index >= len(current):
                return None
            current = current[index]
        elif isinstance(current, dict):
            current = current.get(part)
        else:
            return None

        if current is None:
            return None

    return current


def _as_rate(value: Any, label: str) -> float:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        raise RateUnavailableError(f"Invalid {label} rate from rate source: {value!r}") from None
    if not math.isfinite(rate) or rate <= 0:
        raise RateUnavailableError(f"Invalid {label} rate from rate source: {value!r}")
    return rate


class RateClient:
    """Client for the external USD/VES rate source"""

    def __init__(
        self,
        api_url: str | None = None,
        timeout: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url or settings.rate_api_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def get_market_rates(self) -> MarketRates:
        """
        Fetch current BCV and parallel USD -> VES rates.

        Raises:
            RateUnavailableError: On timeout, HTTP errors, or missing/invalid rates
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                with rate_fetch_latency_histogram.time():
                    response = await client.get(self.api_url, headers=DEFAULT_HEADERS)
                response.raise_for_status()
                data = response.json()

                bcv = extract_value_from_path(data, settings.rate_api_bcv_path)
                parallel = extract_value_from_path(data, settings.rate_api_parallel_path)

                return MarketRates(
                    usd_to_ves_bcv=_as_rate(bcv, "BCV"),
                    usd_to_ves_parallel=_as_rate(parallel, "parallel"),
                    last_updated=utc_now_iso(),
                    source_bcv=settings.rate_api_name,
                    source_parallel=settings.rate_api_name,
                )

            except httpx.TimeoutException as e:
                raise RateUnavailableError(f"Rate API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise RateUnavailableError(f"Rate API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise RateUnavailableError(f"Rate API unreachable: {e}") from e
            except ValueError as e:
                raise RateUnavailableError(f"Invalid response from rate API: {e}") from e
