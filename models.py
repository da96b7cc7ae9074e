# models.py
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel

from mood import MarketMood
from terrain import ConsolidationState, TerrainTracker

SymbolKey = Tuple[str, str]  # (symbol, interval)


# One closed candle as supplied by the market data source
@dataclass(frozen=True)
class Candle:
    close_price: float
    close_time: int  # epoch milliseconds


@dataclass(frozen=True)
class DeliveryReceipt:
    recipient_id: str
    message_id: int
    thread_id: Optional[int] = None


# Latest snapshot for one (symbol, interval); replaced wholesale every cycle
@dataclass(frozen=True)
class SymbolState:
    symbol: str
    interval: str
    regime: str
    regime_text: str
    regime_emoji: str
    weight: int
    price: float
    momentum: float
    tangent: float
    curvature: str
    last_dispatched_signal: Optional[str] = None
    last_candle_time: Optional[int] = None
    updated_at: Optional[float] = None


@dataclass
class AlertHistoryEntry:
    time: str
    symbol: str
    interval: str
    signal: str
    regime_text: str
    momentum: float
    tangent: float
    message: str
    id: str
    dispatch_receipts: List[DeliveryReceipt] = field(default_factory=list)
    annotation: Optional[str] = None


def utc_iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class AlertGate:
    """Suppresses re-firing the same signal for the same candle of a (symbol, interval)."""

    def __init__(self):
        self._last: Dict[SymbolKey, Tuple[str, int]] = {}

    def check(self, symbol: str, interval: str, signal: Optional[str], candle_time: int) -> Optional[str]:
        if signal is None:
            return None
        key = (symbol, interval)
        if self._last.get(key) == (signal, candle_time):
            return None
        self._last[key] = (signal, candle_time)
        return signal

    def last(self, symbol: str, interval: str) -> Tuple[Optional[str], Optional[int]]:
        return self._last.get((symbol, interval), (None, None))


class EngineState:
    """All mutable monitor state. Written only by the polling cycle; readers only read."""

    def __init__(self, terrain_window_s: float = 3600.0, history_size: int = 20):
        self.symbol_states: Dict[SymbolKey, SymbolState] = {}
        self.gate = AlertGate()
        self.terrain = TerrainTracker(window_s=terrain_window_s)
        self.consolidation = ConsolidationState()
        # Newest first; appendleft evicts the oldest on overflow
        self.history: Deque[AlertHistoryEntry] = deque(maxlen=history_size)
        self.mood = MarketMood()
        self.cycle_count = 0
        self.last_cycle_started_at: Optional[float] = None
        self.last_cycle_finished_at: Optional[float] = None

    def record_alert(self, entry: AlertHistoryEntry) -> None:
        self.history.appendleft(entry)

    def find_alert(self, alert_id: str) -> Optional[AlertHistoryEntry]:
        for entry in self.history:
            if entry.id == alert_id:
                return entry
        return None

    def annotate_alert(self, alert_id: str, note: str) -> Optional[AlertHistoryEntry]:
        entry = self.find_alert(alert_id)
        if entry is not None:
            entry.annotation = note
        return entry


# --- API response models ---

class SymbolStateResponse(BaseModel):
    symbol: str
    interval: str
    regime: str
    regime_text: str
    regime_emoji: str
    weight: int
    price: float
    momentum: float
    tangent: float
    curvature: Literal["UP", "DOWN", "NEUTRAL"]
    last_dispatched_signal: Optional[Literal["LONG", "SHORT"]] = None
    last_candle_time: Optional[int] = None
    updated_at: Optional[float] = None

    @classmethod
    def from_state(cls, state: SymbolState) -> "SymbolStateResponse":
        return cls(**asdict(state))


class ReceiptResponse(BaseModel):
    recipient_id: str
    message_id: int


class AlertHistoryResponse(BaseModel):
    id: str
    time: str
    symbol: str
    interval: str
    signal: Literal["LONG", "SHORT"]
    regime_text: str
    momentum: float
    tangent: float
    annotation: Optional[str] = None
    receipts: List[ReceiptResponse] = []

    @classmethod
    def from_entry(cls, entry: AlertHistoryEntry) -> "AlertHistoryResponse":
        return cls(
            id=entry.id,
            time=entry.time,
            symbol=entry.symbol,
            interval=entry.interval,
            signal=entry.signal,
            regime_text=entry.regime_text,
            momentum=entry.momentum,
            tangent=entry.tangent,
            annotation=entry.annotation,
            receipts=[ReceiptResponse(recipient_id=r.recipient_id, message_id=r.message_id) for r in entry.dispatch_receipts],
        )


class MarketMoodResponse(BaseModel):
    angle: float  # [-90, 90], negative leans LONG
    color: str
    dominant_regime: str
    dominant_label: str
    fire_intensity: float
    saturation: float
    opacity: float
    terrain_note: Optional[str] = None
    symbol_count: int
    total_weight: int
    updated_at: Optional[float] = None

    @classmethod
    def from_mood(cls, mood: MarketMood) -> "MarketMoodResponse":
        return cls(
            angle=mood.angle,
            color=mood.color_hex,
            dominant_regime=mood.dominant_regime.value,
            dominant_label=mood.dominant_label,
            fire_intensity=mood.fire_intensity,
            saturation=mood.saturation,
            opacity=mood.opacity,
            terrain_note=mood.terrain_note,
            symbol_count=mood.symbol_count,
            total_weight=mood.total_weight,
            updated_at=mood.updated_at,
        )


class TerrainMemberResponse(BaseModel):
    symbol: str
    timestamp: float


class TerrainResponse(BaseModel):
    LONG: List[TerrainMemberResponse]
    SHORT: List[TerrainMemberResponse]


class ReportResponse(BaseModel):
    symbol: str
    interval: str
    price: float
    rsi: float
    momentum: float
    tangent: float
    regime: str
    delivered: int


class AnnotationRequest(BaseModel):
    note: str


class AnnotationResponse(BaseModel):
    id: str
    annotation: str
    edited: int


class HealthResponse(BaseModel):
    status: str
    cycle_count: int
    last_cycle_started_at: Optional[float] = None
    last_cycle_finished_at: Optional[float] = None
    tracked: int
