# main.py
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, HTTPException, WebSocket, status
from starlette.websockets import WebSocketDisconnect

from engine import MomentumEngine, build_engine
from indicators import InsufficientData
from logging_config import log_config, setup_logging
from market_data import MarketDataError
from models import (
    AlertHistoryResponse,
    AnnotationRequest,
    AnnotationResponse,
    HealthResponse,
    MarketMoodResponse,
    ReportResponse,
    SymbolStateResponse,
    TerrainMemberResponse,
    TerrainResponse,
)
from regime import Direction
from settings import get_settings

logger = logging.getLogger(__name__)

WS_POLL_S = 0.5


async def _poll_pause(websocket: WebSocket) -> None:
    """Wait one poll period; raises WebSocketDisconnect if the client leaves meanwhile."""
    try:
        await asyncio.wait_for(websocket.receive_text(), timeout=WS_POLL_S)
    except asyncio.TimeoutError:
        pass


def create_app(engine: MomentumEngine, run_scheduler: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Start the polling loop when the server starts, cancel it on shutdown
        task = asyncio.create_task(engine.run_forever()) if run_scheduler else None
        app.state.scheduler_task = task
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    logger.info("Polling loop cancelled.")
            await engine.aclose()

    app = FastAPI(title="Momentum Terrain Monitor", lifespan=lifespan)
    app.state.engine = engine

    # --- read-only query surface ---

    @app.get("/signal", response_model=SymbolStateResponse, tags=["Signal"])
    async def get_signal(symbol: str, interval: str):
        """Latest regime snapshot for one symbol and interval."""
        state = engine.symbol_state(symbol.upper(), interval)
        if state is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                                detail=f"No state for {symbol} {interval}.")
        return SymbolStateResponse.from_state(state)

    @app.get("/states", response_model=List[SymbolStateResponse], tags=["Signal"])
    async def get_states():
        return [SymbolStateResponse.from_state(s) for s in engine.symbol_states()]

    @app.get("/history", response_model=List[AlertHistoryResponse], tags=["Alerts"])
    async def get_history():
        """Most recent dispatched alerts, newest first."""
        return [AlertHistoryResponse.from_entry(e) for e in engine.history()]

    @app.get("/mood", response_model=MarketMoodResponse, tags=["Mood"])
    async def get_mood():
        return MarketMoodResponse.from_mood(engine.mood())

    @app.get("/terrain", response_model=TerrainResponse, tags=["Mood"])
    async def get_terrain():
        members = engine.terrain()
        return TerrainResponse(**{
            d.value: [TerrainMemberResponse(symbol=e.symbol, timestamp=e.timestamp) for e in members[d]]
            for d in Direction
        })

    @app.get("/health", response_model=HealthResponse, tags=["Service"])
    async def get_health():
        s = engine.state
        return HealthResponse(
            status="ok",
            cycle_count=s.cycle_count,
            last_cycle_started_at=s.last_cycle_started_at,
            last_cycle_finished_at=s.last_cycle_finished_at,
            tracked=len(s.symbol_states),
        )

    # --- on-demand actions ---

    @app.get("/report/{symbol}/{interval}", response_model=ReportResponse, tags=["Alerts"])
    async def send_report(symbol: str, interval: str):
        """Compute a one-off report for a tracked pair and send it to every recipient."""
        symbol = symbol.upper()
        if not engine.is_tracked(symbol, interval):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid symbol or interval")
        try:
            report = await engine.manual_report(symbol, interval)
        except MarketDataError as e:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Error fetching data: {e}")
        except InsufficientData as e:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                                detail=f"Error calculating indicators: {e}")
        return ReportResponse(
            symbol=report.symbol,
            interval=report.interval,
            price=report.reading.price,
            rsi=report.rsi,
            momentum=report.reading.momentum,
            tangent=report.reading.tangent,
            regime=report.classification.regime.value,
            delivered=report.delivered,
        )

    @app.post("/history/{alert_id}/annotation", response_model=AnnotationResponse, tags=["Alerts"])
    async def annotate_alert(alert_id: str, body: AnnotationRequest):
        try:
            edited = await engine.annotate(alert_id, body.note)
        except KeyError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Alert {alert_id} not found.")
        return AnnotationResponse(id=alert_id, annotation=body.note, edited=edited)

    # --- streams ---

    @app.websocket("/ws/signal/{symbol}")
    async def websocket_signal(websocket: WebSocket, symbol: str, interval: str):
        """Push the pair's regime whenever it changes."""
        await websocket.accept()
        symbol = symbol.upper()
        if not engine.is_tracked(symbol, interval):
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=f"{symbol} {interval} not tracked.")
            return

        def snapshot():
            state = engine.symbol_state(symbol, interval)
            return {
                "symbol": symbol,
                "interval": interval,
                "regime": state.regime if state else None,
                "regime_text": state.regime_text if state else None,
                "tangent": state.tangent if state else None,
            }

        try:
            # Send an initial snapshot immediately so clients receive something on connect
            last = snapshot()
            await websocket.send_json(last)
            while True:
                current = snapshot()
                if current["regime"] != last["regime"]:
                    await websocket.send_json(current)
                    last = current
                await _poll_pause(websocket)
        except WebSocketDisconnect:
            logger.info("Client disconnected from %s %s WebSocket.", symbol, interval)

    @app.websocket("/ws/mood")
    async def websocket_mood(websocket: WebSocket):
        await websocket.accept()
        try:
            last = engine.mood()
            await websocket.send_json(MarketMoodResponse.from_mood(last).model_dump())
            while True:
                current = engine.mood()
                if current is not last:
                    await websocket.send_json(MarketMoodResponse.from_mood(current).model_dump())
                    last = current
                await _poll_pause(websocket)
        except WebSocketDisconnect:
            logger.info("Client disconnected from mood WebSocket.")

    return app


def build_default_app() -> FastAPI:
    """App factory for uvicorn; reads settings and configures logging when called."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.log_dir)
    log_config(settings)
    return create_app(build_engine(settings))


def run():
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:build_default_app", factory=True, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
