"""
Service configuration.

Loaded from environment variables and an optional ``.env`` file. Variable names
are case-insensitive and carry no prefix, so ``TELEGRAM_TOKEN`` maps to
``telegram_token``.
"""
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from indicators import PipelineConfig
from terrain import TerrainConfig


def _split_csv(raw: str) -> List[str]:
    seen: List[str] = []
    for part in (raw or "").split(","):
        item = part.strip()
        if item and item not in seen:
            seen.append(item)
    return seen


class Settings(BaseSettings):
    """Application settings. Every field can be overridden by the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =============================================
    # UNIVERSE
    # =============================================
    symbols: str = Field(
        default="BTCUSDT,ETHUSDT,SOLUSDT,DOGEUSDT,AVAXUSDT,ADAUSDT,RENDERUSDT,NEARUSDT,WLDUSDT",
        description="Comma separated exchange symbols",
    )
    intervals: str = Field(default="1h,2h", description="Comma separated candle intervals")
    quote_asset: str = Field(default="USDT", description="Suffix stripped in consolidated alerts")

    # =============================================
    # POLLING
    # =============================================
    check_interval_s: float = Field(default=60.0, gt=0)
    request_delay_s: float = Field(default=0.25, ge=0)
    candle_limit: int = Field(default=100, ge=1, le=1000)

    # =============================================
    # INDICATORS
    # =============================================
    rsi_period: int = 20
    sma_period: int = 20
    report_rsi_period: int = 22
    min_closes: int = 50
    min_rsi_length: int = 20
    min_momentum_length: int = 15
    curvature_window: int = 10
    curvature_ratio: float = 0.9

    # =============================================
    # TERRAIN / CONSOLIDATION
    # =============================================
    terrain_window_s: float = 3600.0
    consolidation_cooldown_s: float = 3600.0
    consolidation_min_symbols: int = 3
    history_size: int = Field(default=20, ge=1)

    # =============================================
    # MARKET DATA
    # =============================================
    data_source: str = Field(default="binance", description="'binance' or 'simulated'")
    binance_base_url: str = "https://api.binance.com"
    http_timeout_s: float = 10.0

    # =============================================
    # TELEGRAM
    # =============================================
    telegram_token: Optional[str] = None
    telegram_chat_id: str = ""
    telegram_target_group_id: Optional[str] = None
    telegram_thread_id: Optional[int] = None
    telegram_preferences: Dict[str, List[str]] = Field(default_factory=dict)
    telegram_api_url: str = "https://api.telegram.org"

    # =============================================
    # LOGGING / SERVER
    # =============================================
    log_level: str = "INFO"
    log_format: str = "text"
    log_dir: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8001

    @property
    def symbol_list(self) -> List[str]:
        return [s.upper() for s in _split_csv(self.symbols)]

    @property
    def interval_list(self) -> List[str]:
        return _split_csv(self.intervals)

    @property
    def chat_id_list(self) -> List[str]:
        return _split_csv(self.telegram_chat_id)

    def pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            rsi_period=self.rsi_period,
            sma_period=self.sma_period,
            min_closes=self.min_closes,
            min_rsi_length=self.min_rsi_length,
            min_momentum_length=self.min_momentum_length,
            curvature_window=self.curvature_window,
            curvature_ratio=self.curvature_ratio,
        )

    def terrain_config(self) -> TerrainConfig:
        return TerrainConfig(
            window_s=self.terrain_window_s,
            cooldown_s=self.consolidation_cooldown_s,
            min_symbols=self.consolidation_min_symbols,
        )

    def public_dict(self) -> Dict[str, object]:
        """Settings with secrets masked, for startup logging."""
        data = self.model_dump()
        token = data.get("telegram_token")
        if token:
            data["telegram_token"] = token[:5] + "..."
        return data


@lru_cache
def get_settings() -> Settings:
    return Settings()
