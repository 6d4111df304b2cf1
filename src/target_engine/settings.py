from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    symbol: str = "BTCUSDT"
    ai_enabled: bool = True
    ai_provider: Literal["auto", "ollama", "openai"] = "auto"
    ai_timeout_seconds: int = Field(default=120, ge=5, le=600)

    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "mistral"
    ollama_health_timeout_seconds: int = Field(default=5, ge=1, le=60)
    ai_temperature: float = Field(default=0.3, ge=0, le=2)
    ollama_num_predict: int = Field(default=1000, ge=64, le=8192)

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    openai_max_output_tokens: int = Field(default=1000, ge=64, le=4096)

    max_trades_per_day: int = Field(default=2, ge=1, le=100)
    position_size_fraction: float = Field(default=0.10, gt=0, le=1)
    state_backend: Literal["json", "sqlite"] = "json"
    trade_state_path: Path = Path("runtime/trade_state.json")
    trade_state_db_path: Path = Path("runtime/trade_state.sqlite3")
    trade_policy_path: Path = Path("config/trade_policy.yaml")
    report_path: Path = Path("runtime/target_report_latest.json")

    price_check_interval_seconds: int = Field(default=30, ge=1, le=3600)
    ai_recalc_interval_seconds: int = Field(default=300, ge=1, le=86400)
    snapshot_path: Path = Path("runtime/market_snapshot.json")

    alert_webhook_url: str = ""
    alert_webhook_timeout_seconds: int = Field(default=10, ge=2, le=60)
    alert_event_types_csv: str = "ai_fallback,daily_limit_reached,stop_loss_triggered"

    log_level: str = "INFO"
    log_file_path: Path | None = None

    @model_validator(mode="after")
    def validate_cadence(self) -> "Settings":
        if self.ai_recalc_interval_seconds < self.price_check_interval_seconds:
            raise ValueError(
                "AI_RECALC_INTERVAL_SECONDS must not be shorter than PRICE_CHECK_INTERVAL_SECONDS."
            )
        return self


settings = Settings()
