"""Polling cycle for the momentum monitor.

One cycle walks every (symbol, interval):

    fetch candles -> smoothed momentum -> regime -> dedup gate -> dispatch + history

then prunes the terrain windows, recomputes the market mood and checks whether a
consolidated terrain alert is due. ``EngineState`` is written only from here; the
HTTP layer reads it through the accessors at the bottom of ``MomentumEngine``.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from alert_text import build_annotated_text, build_consolidated_text, build_report_text, build_signal_text
from indicators import InsufficientData, MomentumReading, PipelineConfig, calculate_rsi, compute_momentum
from logging_config import CYCLE_ID_CTX
from market_data import CandleSource, MarketDataError, build_source
from models import AlertHistoryEntry, EngineState, SymbolState, utc_iso
from mood import MarketMood, score_mood
from notifier import NotificationChannel, RecipientDirectory, TelegramChannel
from regime import Classification, Direction, classify
from terrain import Consolidator, TerrainConfig, TerrainEntry

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    processed: int = 0
    skipped: int = 0
    alerts: int = 0
    consolidated: int = 0


@dataclass(frozen=True)
class ManualReport:
    symbol: str
    interval: str
    reading: MomentumReading
    rsi: float
    classification: Classification
    delivered: int


class MomentumEngine:
    def __init__(
        self,
        source: CandleSource,
        channel: NotificationChannel,
        directory: RecipientDirectory,
        symbols: Sequence[str],
        intervals: Sequence[str],
        pipeline: PipelineConfig = PipelineConfig(),
        terrain: TerrainConfig = TerrainConfig(),
        request_delay_s: float = 0.25,
        candle_limit: int = 100,
        check_interval_s: float = 60.0,
        history_size: int = 20,
        quote_asset: str = "USDT",
        report_rsi_period: int = 22,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        state: Optional[EngineState] = None,
        analyze: Optional[Callable[[Sequence[float]], MomentumReading]] = None,
    ):
        self.source = source
        self.channel = channel
        self.directory = directory
        self.symbols = list(symbols)
        self.intervals = list(intervals)
        self.pipeline = pipeline
        self.analyze = analyze or (lambda closes: compute_momentum(closes, self.pipeline))
        self.request_delay_s = request_delay_s
        self.candle_limit = candle_limit
        self.check_interval_s = check_interval_s
        self.quote_asset = quote_asset
        self.report_rsi_period = report_rsi_period
        self.clock = clock
        self.sleep = sleep
        self.state = state or EngineState(terrain_window_s=terrain.window_s, history_size=history_size)
        self.consolidator = Consolidator(
            min_symbols=terrain.min_symbols,
            cooldown_s=terrain.cooldown_s,
            state=self.state.consolidation,
        )
        self._lock = asyncio.Lock()

    # --- cycle ---

    async def run_cycle(self) -> CycleReport:
        report = CycleReport()
        token = CYCLE_ID_CTX.set(uuid.uuid4().hex[:8])
        self.state.last_cycle_started_at = self.clock()
        logger.info("Scanning %d symbols x %d intervals", len(self.symbols), len(self.intervals))
        weights: List[int] = []
        try:
            for symbol in self.symbols:
                for interval in self.intervals:
                    await self.sleep(self.request_delay_s)
                    classification = await self._process(symbol, interval, report)
                    if classification is not None:
                        weights.append(classification.weight)

            now = self.clock()
            pruned = self.state.terrain.prune(now)
            if pruned:
                logger.debug("Pruned %d stale terrain entries", pruned)
            counts = self.state.terrain.counts()
            self.state.mood = score_mood(weights, counts[Direction.LONG], counts[Direction.SHORT], now=now)
            report.consolidated = await self._check_consolidation(now)
        finally:
            self.state.cycle_count += 1
            self.state.last_cycle_finished_at = self.clock()
            logger.info(
                "Cycle done: processed=%d skipped=%d alerts=%d consolidated=%d",
                report.processed, report.skipped, report.alerts, report.consolidated,
            )
            CYCLE_ID_CTX.reset(token)
        return report

    async def _process(self, symbol: str, interval: str, report: CycleReport) -> Optional[Classification]:
        try:
            candles = await self.source.fetch_candles(symbol, interval, self.candle_limit)
        except MarketDataError as e:
            logger.warning("Error fetching data for %s %s: %s", symbol, interval, e)
            report.skipped += 1
            return None
        except Exception:
            logger.exception("Unexpected error fetching %s %s", symbol, interval)
            report.skipped += 1
            return None

        try:
            reading = self.analyze([c.close_price for c in candles])
        except InsufficientData as e:
            logger.debug("Skipping %s %s: %s", symbol, interval, e)
            report.skipped += 1
            return None

        now = self.clock()
        classification = classify(reading.tangent, reading.curvature)
        if classification.terrain is not None:
            self.state.terrain.register(classification.terrain, symbol, now)

        candle_time = candles[-1].close_time
        signal = self.state.gate.check(symbol, interval, classification.signal, candle_time)
        last_signal, last_candle_time = self.state.gate.last(symbol, interval)
        self.state.symbol_states[(symbol, interval)] = SymbolState(
            symbol=symbol,
            interval=interval,
            regime=classification.regime.value,
            regime_text=classification.text,
            regime_emoji=classification.emoji,
            weight=classification.weight,
            price=reading.price,
            momentum=reading.momentum,
            tangent=reading.tangent,
            curvature=reading.curvature.value,
            last_dispatched_signal=last_signal,
            last_candle_time=last_candle_time,
            updated_at=now,
        )
        report.processed += 1

        if signal is not None:
            await self._dispatch_signal(symbol, interval, signal, reading, classification, now)
            report.alerts += 1
        return classification

    async def _send(self, text: str, symbol: Optional[str] = None):
        try:
            return await self.channel.send(text, self.directory.recipients(symbol))
        except Exception:
            logger.exception("Dispatch failed")
            return []

    async def _dispatch_signal(
        self,
        symbol: str,
        interval: str,
        signal: str,
        reading: MomentumReading,
        classification: Classification,
        now: float,
    ) -> AlertHistoryEntry:
        text = build_signal_text(symbol, interval, signal, reading, classification)
        receipts = await self._send(text, symbol)
        logger.info("%s %s %s alert dispatched to %d recipients", symbol, interval, signal, len(receipts))
        entry = AlertHistoryEntry(
            time=utc_iso(now),
            symbol=symbol,
            interval=interval,
            signal=signal,
            regime_text=classification.text,
            momentum=reading.momentum,
            tangent=reading.tangent,
            message=text,
            id=uuid.uuid4().hex,
            dispatch_receipts=list(receipts),
        )
        self.state.record_alert(entry)
        return entry

    async def _check_consolidation(self, now: float) -> int:
        fired = 0
        for direction in self.consolidator.due(self.state.terrain, now):
            members = self.state.terrain.members(direction)
            receipts = await self._send(build_consolidated_text(direction, members, self.quote_asset))
            self.consolidator.mark_fired(direction, now)
            logger.info("Consolidated %s alert for %s sent to %d recipients",
                        direction.value, ",".join(members), len(receipts))
            fired += 1
        return fired

    # --- scheduling ---

    async def trigger_cycle(self) -> Optional[CycleReport]:
        """Run one cycle unless one is already in progress."""
        if self._lock.locked():
            logger.warning("Previous cycle still running; skipping this tick")
            return None
        async with self._lock:
            return await self.run_cycle()

    async def run_forever(self) -> None:
        loop = asyncio.get_running_loop()
        logger.info("Starting polling loop every %.0fs", self.check_interval_s)
        while True:
            started = loop.time()
            try:
                await self.trigger_cycle()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Polling cycle failed")
            elapsed = loop.time() - started
            await self.sleep(max(0.0, self.check_interval_s - elapsed))

    # --- on-demand operations ---

    async def manual_report(self, symbol: str, interval: str) -> ManualReport:
        """Compute and send a one-off report. Bypasses the gate, terrain and history.

        Raises ``MarketDataError`` or ``InsufficientData``.
        """
        logger.info("Generating manual report for %s %s", symbol, interval)
        candles = await self.source.fetch_candles(symbol, interval, self.candle_limit)
        closes = [c.close_price for c in candles]
        reading = self.analyze(closes)
        rsi = calculate_rsi(closes, period=self.report_rsi_period)
        classification = classify(reading.tangent, reading.curvature)
        text = build_report_text(symbol, interval, reading, classification, rsi, self.report_rsi_period)
        receipts = await self._send(text)
        return ManualReport(symbol, interval, reading, rsi, classification, len(receipts))

    async def annotate(self, alert_id: str, note: str) -> int:
        """Attach a note to a past alert and edit its delivered messages.

        Returns how many messages were edited. Raises ``KeyError`` for an unknown id.
        Must run on the event loop that runs the cycles; the note is written
        through ``EngineState`` like every other state change.
        """
        entry = self.state.annotate_alert(alert_id, note)
        if entry is None:
            raise KeyError(alert_id)
        text = build_annotated_text(entry.message, note)
        edited = 0
        for receipt in entry.dispatch_receipts:
            if await self.channel.edit(receipt, text):
                edited += 1
        return edited

    # --- query surface ---

    def is_tracked(self, symbol: str, interval: str) -> bool:
        return symbol in self.symbols and interval in self.intervals

    def symbol_states(self) -> List[SymbolState]:
        return list(self.state.symbol_states.values())

    def symbol_state(self, symbol: str, interval: str) -> Optional[SymbolState]:
        return self.state.symbol_states.get((symbol, interval))

    def history(self) -> List[AlertHistoryEntry]:
        return list(self.state.history)

    def mood(self) -> MarketMood:
        return self.state.mood

    def terrain(self) -> Dict[Direction, List[TerrainEntry]]:
        return {d: self.state.terrain.entries(d) for d in Direction}

    async def aclose(self) -> None:
        await self.source.aclose()
        await self.channel.aclose()


def build_engine(settings) -> MomentumEngine:
    return MomentumEngine(
        source=build_source(settings),
        channel=TelegramChannel(settings.telegram_token, api_url=settings.telegram_api_url,
                                timeout=settings.http_timeout_s),
        directory=RecipientDirectory.from_settings(settings),
        symbols=settings.symbol_list,
        intervals=settings.interval_list,
        pipeline=settings.pipeline_config(),
        terrain=settings.terrain_config(),
        request_delay_s=settings.request_delay_s,
        candle_limit=settings.candle_limit,
        check_interval_s=settings.check_interval_s,
        history_size=settings.history_size,
        quote_asset=settings.quote_asset,
        report_rsi_period=settings.report_rsi_period,
    )
