"""Sliding-window tracking of symbols sitting in a terrain regime.

Each direction keeps a list of (symbol, timestamp) entries, at most one per symbol.
Time is always passed in by the caller so the window can be driven by a fake clock.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from regime import Direction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TerrainConfig:
    window_s: float = 3600.0
    cooldown_s: float = 3600.0
    min_symbols: int = 3


@dataclass
class TerrainEntry:
    symbol: str
    timestamp: float


def prune_entries(entries: List[TerrainEntry], now: float, window_s: float) -> List[TerrainEntry]:
    """Entries no older than ``window_s`` seconds at ``now``."""
    return [e for e in entries if now - e.timestamp <= window_s]


def strip_quote(symbol: str, quote_asset: str = "USDT") -> str:
    if quote_asset and symbol.endswith(quote_asset) and len(symbol) > len(quote_asset):
        return symbol[: -len(quote_asset)]
    return symbol


class TerrainTracker:
    def __init__(self, window_s: float = 3600.0):
        self.window_s = window_s
        self._entries: Dict[Direction, List[TerrainEntry]] = {d: [] for d in Direction}

    def register(self, direction: Direction, symbol: str, now: float) -> None:
        """Upsert ``symbol``: refresh its timestamp or append a new entry."""
        for entry in self._entries[direction]:
            if entry.symbol == symbol:
                entry.timestamp = now
                return
        self._entries[direction].append(TerrainEntry(symbol, now))

    def prune(self, now: float) -> int:
        removed = 0
        for direction, entries in self._entries.items():
            kept = prune_entries(entries, now, self.window_s)
            removed += len(entries) - len(kept)
            self._entries[direction] = kept
        return removed

    def entries(self, direction: Direction) -> List[TerrainEntry]:
        return list(self._entries[direction])

    def members(self, direction: Direction) -> List[str]:
        return [e.symbol for e in self._entries[direction]]

    def counts(self) -> Dict[Direction, int]:
        return {d: len(entries) for d, entries in self._entries.items()}


@dataclass
class ConsolidationState:
    last_fired_at: Dict[Direction, Optional[float]] = field(
        default_factory=lambda: {d: None for d in Direction}
    )


class Consolidator:
    """Decides when a direction has enough terrain members to warrant one combined alert."""

    def __init__(self, min_symbols: int = 3, cooldown_s: float = 3600.0, state: Optional[ConsolidationState] = None):
        self.min_symbols = min_symbols
        self.cooldown_s = cooldown_s
        self.state = state or ConsolidationState()

    def due(self, tracker: TerrainTracker, now: float) -> List[Direction]:
        ready = []
        for direction in Direction:
            if len(tracker.members(direction)) < self.min_symbols:
                continue
            last = self.state.last_fired_at.get(direction)
            if last is not None and now - last <= self.cooldown_s:
                logger.debug("Consolidated %s alert in cooldown (%.0fs since last)", direction.value, now - last)
                continue
            ready.append(direction)
        return ready

    def mark_fired(self, direction: Direction, now: float) -> None:
        # Members are left in place; only the cooldown clock moves.
        self.state.last_fired_at[direction] = now
