from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import lru_cache

import httpx

from vendorflow.core.config import get_settings

logger = logging.getLogger(__name__)


class ExchangeRateUnavailableError(RuntimeError):
    """Raised when no rate could be fetched for a currency pair."""


@dataclass(frozen=True)
class ExchangeRateQuote:
    rate: float
    from_currency: str
    to_currency: str
    fetched_at: datetime
    cached: bool


class ExchangeRateService:
    """Frankfurter client with an in-process cache per currency pair."""

    def __init__(
        self,
        *,
        api_url: str,
        ttl_seconds: int,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.api_url = api_url
        self.ttl_seconds = ttl_seconds
        self._transport = transport
        self._clock = clock
        self._cache: dict[tuple[str, str], tuple[float, float]] = {}

    async def get_rate(self, from_currency: str, to_currency: str) -> ExchangeRateQuote:
        source = (from_currency or "").strip().upper()
        target = (to_currency or "").strip().upper()
        now = self._clock()
        if not source or not target:
            raise ExchangeRateUnavailableError("Both currencies are required.")
        if source == target:
            return ExchangeRateQuote(1.0, source, target, _as_datetime(now), cached=False)

        cached = self._cache.get((source, target))
        if cached is not None and now - cached[1] < self.ttl_seconds:
            return ExchangeRateQuote(cached[0], source, target, _as_datetime(cached[1]), cached=True)

        timeout = httpx.Timeout(15.0, connect=5.0)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.get(self.api_url, params={"from": source, "to": target})
                response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Exchange rate fetch failed for %s->%s: %s", source, target, exc)
            raise ExchangeRateUnavailableError(f"Failed to fetch exchange rate: {exc}") from exc
        except ValueError as exc:
            raise ExchangeRateUnavailableError("Exchange rate service returned invalid JSON.") from exc

        rates = payload.get("rates") if isinstance(payload, dict) else None
        rate = rates.get(target) if isinstance(rates, dict) else None
        if not isinstance(rate, (int, float)) or rate <= 0:
            raise ExchangeRateUnavailableError(f"No rate for {target} in response.")

        self._cache[(source, target)] = (float(rate), now)
        return ExchangeRateQuote(float(rate), source, target, _as_datetime(now), cached=False)

    async def get_rate_or_default(self, from_currency: str, to_currency: str) -> float:
        """Rate for the pair, or 1.0 when it cannot be fetched."""
        try:
            quote = await self.get_rate(from_currency, to_currency)
        except ExchangeRateUnavailableError:
            logger.info("Using 1:1 rate for %s->%s", from_currency, to_currency)
            return 1.0
        return quote.rate

    def clear(self) -> None:
        self._cache.clear()


def _as_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=UTC)


@lru_cache
def get_exchange_rate_service() -> ExchangeRateService:
    settings = get_settings()
    return ExchangeRateService(
        api_url=settings.exchange_rate_api_url,
        ttl_seconds=settings.exchange_rate_cache_ttl_seconds,
    )
