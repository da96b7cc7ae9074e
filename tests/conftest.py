"""Shared fakes: scripted candle source, recording channel, manual clock."""

from typing import Dict, List, Optional, Tuple

import pytest

from engine import MomentumEngine
from indicators import Curvature, InsufficientData, MomentumReading, PipelineConfig
from market_data import MarketDataError
from models import Candle, DeliveryReceipt
from notifier import Recipient, RecipientDirectory
from terrain import TerrainConfig


class ManualClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedSource:
    """Candle source whose closes are tagged so ``analyze`` can look up a scripted reading."""

    def __init__(self):
        self.readings: Dict[float, MomentumReading] = {}
        self.tags: Dict[Tuple[str, str], float] = {}
        self.candle_time: Dict[Tuple[str, str], int] = {}
        self.failing: set = set()
        self.short: set = set()
        self.calls: List[Tuple[str, str, int]] = []
        self.closed = False

    def set(self, symbol: str, interval: str, tangent: float, curvature: Curvature = Curvature.NEUTRAL,
            momentum: float = 50.0, price: float = 100.0, candle_time: Optional[int] = None) -> None:
        key = (symbol, interval)
        tag = self.tags.setdefault(key, float(len(self.tags) + 1))
        self.readings[tag] = MomentumReading(momentum=momentum, tangent=tangent, curvature=curvature, price=price)
        if candle_time is not None:
            self.candle_time[key] = candle_time
        else:
            self.candle_time.setdefault(key, 1_000)

    async def fetch_candles(self, symbol: str, interval: str, limit: int = 100) -> List[Candle]:
        self.calls.append((symbol, interval, limit))
        key = (symbol, interval)
        if key in self.failing:
            raise MarketDataError(f"{symbol} {interval}: connection refused")
        count = 10 if key in self.short else 60
        tag = self.tags.get(key, 0.0)
        return [Candle(close_price=tag, close_time=self.candle_time.get(key, 1_000)) for _ in range(count)]

    def analyze(self, closes) -> MomentumReading:
        if len(closes) < 50:
            raise InsufficientData("short")
        if closes[-1] not in self.readings:
            return MomentumReading(momentum=50.0, tangent=0.0, curvature=Curvature.NEUTRAL, price=100.0)
        return self.readings[closes[-1]]

    async def aclose(self) -> None:
        self.closed = True


class RecordingChannel:
    def __init__(self, fail_for: Tuple[str, ...] = ()):
        self.sent: List[Tuple[str, List[str]]] = []
        self.edits: List[Tuple[DeliveryReceipt, str]] = []
        self.fail_for = set(fail_for)
        self._next_id = 1
        self.closed = False

    async def send(self, text, recipients):
        receipts = []
        for r in recipients:
            if r.chat_id in self.fail_for:
                continue
            receipts.append(DeliveryReceipt(r.chat_id, self._next_id, r.thread_id))
            self._next_id += 1
        self.sent.append((text, [r.chat_id for r in recipients]))
        return receipts

    async def edit(self, receipt, text):
        self.edits.append((receipt, text))
        return receipt.recipient_id not in self.fail_for

    async def aclose(self) -> None:
        self.closed = True


async def _no_sleep(_seconds):
    return None


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def source():
    return ScriptedSource()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def directory():
    return RecipientDirectory([Recipient("100"), Recipient("200")])


@pytest.fixture
def make_engine(source, channel, directory, clock):
    def _make(symbols=("BTCUSDT", "ETHUSDT", "SOLUSDT", "ADAUSDT"), intervals=("1h",), real_pipeline=False, **kwargs):
        return MomentumEngine(
            source=source,
            channel=channel,
            directory=directory,
            symbols=symbols,
            intervals=intervals,
            pipeline=PipelineConfig(),
            terrain=TerrainConfig(),
            request_delay_s=0.0,
            check_interval_s=kwargs.pop("check_interval_s", 60.0),
            clock=clock,
            sleep=kwargs.pop("sleep", _no_sleep),
            analyze=None if real_pipeline else source.analyze,
            **kwargs,
        )

    return _make
