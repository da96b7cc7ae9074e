"""Candle sources for the polling cycle.

``BinanceCandleSource`` reads public klines over HTTP. ``SimulatedCandleSource`` emits a
noisy random walk per symbol so the service can run offline (``DATA_SOURCE=simulated``).
"""
import logging
import random
import time
from typing import Dict, List, Optional, Protocol

import httpx

from models import Candle

logger = logging.getLogger(__name__)

INTERVAL_MS = {
    "1m": 60_000,
    "3m": 180_000,
    "5m": 300_000,
    "15m": 900_000,
    "30m": 1_800_000,
    "1h": 3_600_000,
    "2h": 7_200_000,
    "4h": 14_400_000,
    "6h": 21_600_000,
    "12h": 43_200_000,
    "1d": 86_400_000,
}

# Kline row columns
CLOSE_COL = 4
CLOSE_TIME_COL = 6


class MarketDataError(RuntimeError):
    """Candles could not be fetched or parsed."""


class CandleSource(Protocol):
    async def fetch_candles(self, symbol: str, interval: str, limit: int = 100) -> List[Candle]:
        ...

    async def aclose(self) -> None:
        ...


def parse_klines(rows) -> List[Candle]:
    try:
        return [Candle(close_price=float(row[CLOSE_COL]), close_time=int(row[CLOSE_TIME_COL])) for row in rows]
    except (TypeError, ValueError, IndexError) as e:
        raise MarketDataError(f"malformed kline payload: {e}") from e


class BinanceCandleSource:
    def __init__(self, base_url: str = "https://api.binance.com", timeout: float = 10.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def fetch_candles(self, symbol: str, interval: str, limit: int = 100) -> List[Candle]:
        params = {"symbol": symbol, "interval": interval, "limit": limit}
        try:
            r = await self._get_client().get("/api/v3/klines", params=params)
            r.raise_for_status()
            rows = r.json()
        except httpx.HTTPError as e:
            raise MarketDataError(f"{symbol} {interval}: {e}") from e
        except ValueError as e:
            raise MarketDataError(f"{symbol} {interval}: invalid JSON") from e
        if not isinstance(rows, list):
            raise MarketDataError(f"{symbol} {interval}: unexpected payload {type(rows).__name__}")
        return parse_klines(rows)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class SimulatedCandleSource:
    """Random-walk closes, one candle per interval, aligned to interval boundaries."""

    def __init__(self, base_price: float = 100.0, jitter: float = 0.6, seed: Optional[int] = None,
                 clock=time.time):
        self.base_price = base_price
        self.jitter = jitter
        self.clock = clock
        self._rng = random.Random(seed)
        self._drift: Dict[str, float] = {}

    async def fetch_candles(self, symbol: str, interval: str, limit: int = 100) -> List[Candle]:
        if interval not in INTERVAL_MS:
            raise MarketDataError(f"unsupported interval {interval}")
        step = INTERVAL_MS[interval]
        now_ms = int(self.clock() * 1000)
        last_close = (now_ms // step + 1) * step - 1
        drift = self._drift.setdefault(symbol, self._rng.uniform(-0.002, 0.002))

        price = self.base_price
        candles = []
        for i in range(limit):
            shock = self._rng.gauss(0.0, self.jitter)
            price = max(0.01, price * (1.0 + drift) + shock)
            candles.append(Candle(close_price=round(price, 6), close_time=last_close - (limit - 1 - i) * step))
        return candles

    async def aclose(self) -> None:
        return None


def build_source(settings) -> CandleSource:
    if settings.data_source == "simulated":
        logger.info("Using simulated candle source")
        return SimulatedCandleSource()
    return BinanceCandleSource(base_url=settings.binance_base_url, timeout=settings.http_timeout_s)
