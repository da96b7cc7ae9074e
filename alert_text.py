"""
Message text for Telegram alerts.

Keeps formatting out of the engine so every alert kind reads the same way.
"""

from __future__ import annotations

from typing import Sequence

from indicators import MomentumReading
from regime import Classification, Direction
from terrain import strip_quote

DIRECTION_EMOJI = {Direction.LONG: "🟢", Direction.SHORT: "🔴"}


def _fmt_price(value: float) -> str:
    if value >= 100:
        return f"{value:,.2f}"
    return f"{value:.6g}"


def build_signal_text(
    symbol: str,
    interval: str,
    signal: str,
    reading: MomentumReading,
    classification: Classification,
) -> str:
    return (
        "🚀 MOMENTUM ALERT\n"
        "\n"
        f"💎 {symbol}\n"
        "\n"
        f"⏱ Interval: {interval}\n"
        f"📈 Type: {signal}\n"
        f"🧭 Regime: {classification.label}\n"
        f"💵 Price: ~{_fmt_price(reading.price)}\n"
        f"📊 Smoothed RSI: {reading.momentum:.2f}\n"
        f"📐 Tangent: {reading.tangent:.4f}"
    )


def build_consolidated_text(direction: Direction, symbols: Sequence[str], quote_asset: str = "USDT") -> str:
    names = ", ".join(strip_quote(s, quote_asset) for s in symbols)
    return (
        f"{DIRECTION_EMOJI[direction]} {direction.value} TERRAIN CLUSTER\n"
        "\n"
        f"{len(symbols)} symbols in {direction.value.lower()} terrain within the last hour:\n"
        f"{names}"
    )


def build_report_text(
    symbol: str,
    interval: str,
    reading: MomentumReading,
    classification: Classification,
    rsi: float,
    rsi_period: int = 22,
) -> str:
    return (
        "📋 MANUAL REPORT\n"
        f"Instrument: {symbol} ({interval})\n"
        f"Price: ~{_fmt_price(reading.price)}\n"
        f"RSI ({rsi_period}): {rsi:.2f}\n"
        f"Smoothed RSI: {reading.momentum:.2f}\n"
        f"Tangent: {reading.tangent:.4f}\n"
        f"Curvature: {reading.curvature.value}\n"
        f"Regime: {classification.label}"
    )


def build_annotated_text(original: str, note: str) -> str:
    return f"{original}\n\n📝 {note}"
