"""Market regime classification from (tangent, curvature).

Rules are an ordered table evaluated first-match-wins. The trend bands overlap the
euphoria bands, so reordering ``RULES`` changes results.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from indicators import Curvature

EUPHORIA_TANGENT = 1.0
TREND_TANGENT = 0.10


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class Regime(str, Enum):
    LONG_EUPHORIA = "LONG_EUPHORIA"
    LONG_TREND = "LONG_TREND"
    SHORT_EUPHORIA = "SHORT_EUPHORIA"
    SHORT_TREND = "SHORT_TREND"
    LONG_TERRAIN = "LONG_TERRAIN"
    SHORT_TERRAIN = "SHORT_TERRAIN"
    INDECISION = "INDECISION"


@dataclass(frozen=True)
class RegimeInfo:
    text: str
    emoji: str
    weight: int
    terrain: Optional[Direction] = None


# Negative weights lean LONG (bullish), positive lean SHORT (bearish)
REGIME_INFO: Dict[Regime, RegimeInfo] = {
    Regime.LONG_EUPHORIA: RegimeInfo("Long euphoria", "🚀", -10),
    Regime.LONG_TREND: RegimeInfo("Long trend", "📈", -5),
    Regime.SHORT_EUPHORIA: RegimeInfo("Short euphoria", "💥", 10),
    Regime.SHORT_TREND: RegimeInfo("Short trend", "📉", 5),
    Regime.LONG_TERRAIN: RegimeInfo("Long terrain", "🟢", 0, Direction.LONG),
    Regime.SHORT_TERRAIN: RegimeInfo("Short terrain", "🔴", 0, Direction.SHORT),
    Regime.INDECISION: RegimeInfo("Indecision", "⚖️", 0),
}

Rule = Tuple[Callable[[float, Curvature], bool], Regime]

RULES: Tuple[Rule, ...] = (
    (lambda t, c: t > EUPHORIA_TANGENT, Regime.LONG_EUPHORIA),
    (lambda t, c: t > TREND_TANGENT, Regime.LONG_TREND),
    (lambda t, c: t < -EUPHORIA_TANGENT, Regime.SHORT_EUPHORIA),
    (lambda t, c: t < -TREND_TANGENT, Regime.SHORT_TREND),
    (lambda t, c: -TREND_TANGENT <= t <= TREND_TANGENT and c == Curvature.DOWN, Regime.LONG_TERRAIN),
    (lambda t, c: -TREND_TANGENT <= t <= TREND_TANGENT and c == Curvature.UP, Regime.SHORT_TERRAIN),
)


@dataclass(frozen=True)
class Classification:
    regime: Regime
    text: str
    emoji: str
    weight: int
    terrain: Optional[Direction] = None

    @property
    def signal(self) -> Optional[str]:
        """Dispatchable signal; only terrain regimes produce one."""
        return self.terrain.value if self.terrain is not None else None

    @property
    def label(self) -> str:
        return f"{self.emoji} {self.text}"


def describe(regime: Regime) -> Classification:
    info = REGIME_INFO[regime]
    return Classification(regime, info.text, info.emoji, info.weight, info.terrain)


def classify(tangent: float, curvature: Curvature) -> Classification:
    for predicate, regime in RULES:
        if predicate(tangent, curvature):
            return describe(regime)
    return describe(Regime.INDECISION)
