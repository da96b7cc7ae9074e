"""Momentum indicators over closing-price sequences.

This module provides Simple Moving Average (SMA) and Relative Strength Index (RSI)
calculations plus the smoothed-momentum pipeline built on top of them:

    closes -> RSI(20) -> SMA(20) of the RSI -> tangent + curvature

Series helpers return one value per position where the indicator is defined, so a
series is always shorter than its input. Single-value helpers return the latest value
and fall back to a neutral reading when the input is too short.

Notes on efficiency:
- Every call walks the input once; nothing is carried between polling cycles since
  the whole candle window is re-fetched each time.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence


class InsufficientData(ValueError):
    """Raised when a price sequence is too short to derive a momentum reading."""


class Curvature(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class PipelineConfig:
    rsi_period: int = 20
    sma_period: int = 20
    min_closes: int = 50
    min_rsi_length: int = 20
    # Minimum smoothed points; 20 is the stricter alternative
    min_momentum_length: int = 15
    curvature_window: int = 10
    curvature_ratio: float = 0.9


@dataclass(frozen=True)
class MomentumReading:
    momentum: float
    tangent: float
    curvature: Curvature
    price: float


def calculate_sma_series(values: Sequence[float], period: int) -> List[float]:
    """Rolling Simple Moving Average; ``len(values) - period + 1`` points."""
    if period <= 0:
        raise ValueError("period must be > 0")

    n = len(values)
    if n < period:
        return []

    window = sum(float(v) for v in values[:period])
    out = [window / period]
    for i in range(period, n):
        window += float(values[i]) - float(values[i - period])
        out.append(window / period)
    return out


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0.0:
        if avg_gain == 0.0:
            return 50.0  # flat market
        return 100.0
    if avg_gain == 0.0:
        return 0.0
    rs = avg_gain / avg_loss
    rsi = 100.0 - 100.0 / (1.0 + rs)
    # Bound the value strictly to [0, 100]
    return min(max(rsi, 0.0), 100.0)


def calculate_rsi_series(prices: Sequence[float], period: int = 14, digits: int = 2) -> List[float]:
    """Relative Strength Index using Wilder's smoothing, one value per close.

    - The first value uses the simple mean gain/loss over the first ``period`` deltas.
    - Each later delta updates the averages via Wilder's smoothing:
         avg_gain = (prev_avg_gain*(period-1) + gain) / period
         avg_loss = (prev_avg_loss*(period-1) + loss) / period
    - Output length is ``len(prices) - period``; empty when there are not more
      than ``period`` prices.
    - Values are rounded to ``digits`` decimals, the precision charting packages
      quote RSI at.
    """
    if period <= 0:
        raise ValueError("period must be > 0")

    if len(prices) < period + 1:
        return []

    closes = [float(x) for x in prices]
    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]

    avg_gain = sum(max(d, 0.0) for d in deltas[:period]) / period
    avg_loss = sum(max(-d, 0.0) for d in deltas[:period]) / period
    out = [round(_rsi_from_averages(avg_gain, avg_loss), digits)]

    for d in deltas[period:]:
        gain = max(d, 0.0)
        loss = max(-d, 0.0)
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        out.append(round(_rsi_from_averages(avg_gain, avg_loss), digits))
    return out


def calculate_rsi(prices: Sequence[float], period: int = 14) -> float:
    """Latest RSI value; 50.0 if there are fewer than ``period + 1`` prices."""
    series = calculate_rsi_series(prices, period=period)
    if not series:
        return 50.0  # Neutral when data is insufficient
    return series[-1]


def classify_curvature(series: Sequence[float], window: int = 10, ratio: float = 0.9) -> Curvature:
    """Classify the ``window`` points preceding the latest value.

    Counts rising and falling steps across the window's ``window - 1`` transitions.
    Flat steps count as neither.
    """
    if window < 2:
        raise ValueError("window must be >= 2")
    if len(series) < window + 1:
        raise InsufficientData(f"curvature needs {window + 1} points, got {len(series)}")

    points = series[-(window + 1):-1]
    transitions = len(points) - 1
    ups = downs = 0
    for prev, cur in zip(points, points[1:]):
        if cur > prev:
            ups += 1
        elif cur < prev:
            downs += 1

    if downs >= ratio * transitions:
        return Curvature.DOWN
    if ups >= ratio * transitions:
        return Curvature.UP
    return Curvature.NEUTRAL


def compute_momentum(closes: Sequence[float], config: PipelineConfig = PipelineConfig()) -> MomentumReading:
    """Run the smoothed-momentum pipeline over a chronological close sequence.

    Raises ``InsufficientData`` when the closes, the RSI series or the smoothed
    series are shorter than the configured minimums.
    """
    if len(closes) < config.min_closes:
        raise InsufficientData(f"need {config.min_closes} closes, got {len(closes)}")

    rsi_values = calculate_rsi_series(closes, period=config.rsi_period)
    if len(rsi_values) < config.min_rsi_length:
        raise InsufficientData(f"need {config.min_rsi_length} RSI values, got {len(rsi_values)}")

    smoothed = calculate_sma_series(rsi_values, period=config.sma_period)
    required = max(config.min_momentum_length, config.curvature_window + 1)
    if len(smoothed) < required:
        raise InsufficientData(f"need {required} smoothed values, got {len(smoothed)}")

    return MomentumReading(
        momentum=smoothed[-1],
        tangent=smoothed[-1] - smoothed[-2],
        curvature=classify_curvature(smoothed, config.curvature_window, config.curvature_ratio),
        price=float(closes[-1]),
    )
