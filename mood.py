"""Aggregate "market mood" from the current cycle's regime weights.

The mood is a pure fold: it is recomputed from the full set of this cycle's weights
every time, never updated incrementally.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from regime import REGIME_INFO, Direction, Regime

MAX_REGIME_WEIGHT = 10
EUPHORIA_ANGLE = 45.0
TREND_ANGLE = 15.0

NEUTRAL_RGB = (156, 163, 175)
LONG_RGB = (74, 222, 128)
SHORT_RGB = (248, 113, 113)

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class MarketMood:
    angle: float = 0.0
    color: RGB = NEUTRAL_RGB
    dominant_regime: Regime = Regime.INDECISION
    dominant_label: str = REGIME_INFO[Regime.INDECISION].text
    fire_intensity: float = 0.0
    saturation: float = 1.0
    opacity: float = 1.0
    terrain_note: Optional[str] = None
    symbol_count: int = 0
    total_weight: int = 0
    updated_at: Optional[float] = None

    @property
    def color_hex(self) -> str:
        return "#{:02x}{:02x}{:02x}".format(*self.color)


def mood_angle(total_weight: float, symbol_count: int) -> float:
    """Map the summed weight onto [-90, 90] degrees; negative leans LONG."""
    if symbol_count <= 0:
        return 0.0
    max_weight = symbol_count * MAX_REGIME_WEIGHT
    return (total_weight / max_weight) * 90.0


def blend_color(angle: float) -> RGB:
    target = LONG_RGB if angle < 0 else SHORT_RGB
    factor = min(abs(angle) / 90.0, 1.0)
    return tuple(
        int(round(n + (t - n) * factor)) for n, t in zip(NEUTRAL_RGB, target)
    )


def fire_intensity(angle: float) -> float:
    if angle > -TREND_ANGLE:
        return 0.0
    return min((-TREND_ANGLE - angle) / (90.0 - TREND_ANGLE), 1.0)


def fade(angle: float) -> Tuple[float, float]:
    """(saturation, opacity); both drain as the angle leans SHORT past the trend band."""
    if angle < TREND_ANGLE:
        return 1.0, 1.0
    factor = (angle - 90.0) / (TREND_ANGLE - 90.0)
    factor = min(max(factor, 0.0), 1.0)
    return factor, 0.4 + 0.6 * factor


def dominant_regime(angle: float, long_terrain: int, short_terrain: int) -> Regime:
    if long_terrain or short_terrain:
        # Ties favour LONG
        return Regime.LONG_TERRAIN if long_terrain >= short_terrain else Regime.SHORT_TERRAIN
    if abs(angle) >= EUPHORIA_ANGLE:
        return Regime.LONG_EUPHORIA if angle < 0 else Regime.SHORT_EUPHORIA
    if abs(angle) >= TREND_ANGLE:
        return Regime.LONG_TREND if angle < 0 else Regime.SHORT_TREND
    return Regime.INDECISION


def score_mood(
    weights: Sequence[int],
    long_terrain: int = 0,
    short_terrain: int = 0,
    now: Optional[float] = None,
) -> MarketMood:
    total = sum(weights)
    angle = mood_angle(total, len(weights))
    saturation, opacity = fade(angle)
    regime = dominant_regime(angle, long_terrain, short_terrain)
    note = None
    if long_terrain or short_terrain:
        note = f"{long_terrain} {Direction.LONG.value} / {short_terrain} {Direction.SHORT.value} in terrain"

    return MarketMood(
        angle=angle,
        color=blend_color(angle),
        dominant_regime=regime,
        dominant_label=REGIME_INFO[regime].text,
        fire_intensity=fire_intensity(angle),
        saturation=saturation,
        opacity=opacity,
        terrain_note=note,
        symbol_count=len(weights),
        total_weight=total,
        updated_at=now,
    )
