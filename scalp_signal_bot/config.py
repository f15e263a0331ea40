from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional
import os
import yaml


def _env_override(value: Any, env_key: str) -> Any:
    env_val = os.getenv(env_key)
    if env_val is None:
        return value
    # basic parsing
    if isinstance(value, bool):
        return env_val.strip().lower() in ("1", "true", "yes", "y", "on")
    if isinstance(value, int):
        try:
            return int(env_val)
        except ValueError:
            return value
    if isinstance(value, float):
        try:
            return float(env_val)
        except ValueError:
            return value
    return env_val


@dataclass
class EngineConfig:
    # Bracket
    reward_risk: float = 1.8
    atr_stop_mult: float = 1.0
    max_risk_atr: float = 3.0

    # Pullback geometry (multiples of ATR)
    max_pullback_atr: float = 0.4
    max_overshoot_atr: float = 1.0
    pullback_lookback: int = 7

    # Scoring
    min_confidence: int = 65
    max_confidence: int = 95
    min_atr: float = 0.3

    # Lifecycle
    max_hold_min: int = 20
    cooldown_min: int = 5
    expired_r: float = -0.15

    # Session (UTC hours)
    session_start_hour: int = 12
    session_end_hour: int = 13
    monday_open_hour: int = 10

    # Trend filters
    macro_min_bars: int = 55
    macro_adx_min: float = 20.0
    intraday_min_bars: int = 55
    intraday_adx_min: float = 25.0
    setup_min_bars: int = 30

    # Buffer capacities
    capacity_1m: int = 100
    capacity_5m: int = 80
    capacity_1h: int = 100

    def validate(self) -> None:
        errs = []
        if self.cooldown_min <= 0:
            errs.append(f"cooldown_min must be > 0 (got {self.cooldown_min})")
        if self.reward_risk <= 0:
            errs.append(f"reward_risk must be > 0 (got {self.reward_risk})")
        if self.atr_stop_mult <= 0:
            errs.append(f"atr_stop_mult must be > 0 (got {self.atr_stop_mult})")
        if self.max_hold_min <= 0:
            errs.append(f"max_hold_min must be > 0 (got {self.max_hold_min})")
        if not (0 <= self.session_start_hour < self.session_end_hour <= 24):
            errs.append(
                f"session hours must satisfy 0 <= start < end <= 24 "
                f"(got {self.session_start_hour}..{self.session_end_hour})"
            )
        if self.pullback_lookback <= 0:
            errs.append(f"pullback_lookback must be > 0 (got {self.pullback_lookback})")
        if self.capacity_1m < self.setup_min_bars:
            errs.append(f"capacity_1m={self.capacity_1m} is below setup_min_bars={self.setup_min_bars}")
        if self.capacity_5m < self.intraday_min_bars:
            errs.append(f"capacity_5m={self.capacity_5m} is below intraday_min_bars={self.intraday_min_bars}")
        if self.capacity_1h < self.macro_min_bars:
            errs.append(f"capacity_1h={self.capacity_1h} is below macro_min_bars={self.macro_min_bars}")
        if errs:
            raise ValueError("Engine config invalid: " + "; ".join(errs))


@dataclass
class ProviderConfig:
    type: str = "twelvedata"
    api_key: str = ""
    symbols: List[str] = None
    outputsize_1m: int = 35
    outputsize_5m: int = 70
    outputsize_1h: int = 100
    poll_interval_s: int = 60
    fetch_start_hour: int = 12
    fetch_end_hour: int = 14
    request_gap_s: float = 1.2
    refresh_5m_s: int = 240
    refresh_1h_s: int = 3600
    rest_timeout_s: int = 20


@dataclass
class DiscordConfig:
    webhook_url: str = ""
    timeout_s: int = 10


@dataclass
class BridgeConfig:
    enabled: bool = False
    signals_dir: str = "/tmp/mt5_scalp_signals"
    risk_percent: float = 1.0
    poll_s: float = 2.0
    signal_ttl_s: int = 60


@dataclass
class AppConfig:
    name: str = "Scalp Agent"
    log_level: str = "INFO"


@dataclass
class Config:
    app: AppConfig = field(default_factory=AppConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    discord: DiscordConfig = field(default_factory=DiscordConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)


def load_config(path: Optional[str]) -> Config:
    raw = {}
    if path:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    cfg = Config(
        app=AppConfig(**raw.get("app", {})),
        engine=EngineConfig(**raw.get("engine", {})),
        provider=ProviderConfig(**raw.get("provider", {})),
        discord=DiscordConfig(**raw.get("discord", {})),
        bridge=BridgeConfig(**raw.get("bridge", {})),
    )

    # env overrides (useful on servers)
    cfg.provider.api_key = _env_override(cfg.provider.api_key, "TWELVEDATA_API_KEY")
    if cfg.provider.symbols is None:
        cfg.provider.symbols = ["XAU/USD"]

    # Allow SCALP_WATCHLIST="XAU/USD,EUR/USD"
    watch_env = os.getenv("SCALP_WATCHLIST")
    if watch_env:
        cfg.provider.symbols = [x.strip() for x in watch_env.split(",") if x.strip()]

    cfg.discord.webhook_url = _env_override(cfg.discord.webhook_url, "DISCORD_WEBHOOK_URL")

    cfg.bridge.enabled = _env_override(cfg.bridge.enabled, "MT5_AUTO_TRADE")
    cfg.bridge.signals_dir = _env_override(cfg.bridge.signals_dir, "MT5_SIGNALS_DIR")
    cfg.bridge.risk_percent = _env_override(cfg.bridge.risk_percent, "MT5_RISK_PERCENT")

    cfg.engine.validate()
    return cfg
