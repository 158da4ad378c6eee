"""Runtime configuration loaded from environment variables."""
from __future__ import annotations

from dataclasses import dataclass
import os

DEFAULT_REFRESH_SEC = 30.0
DEFAULT_STALE_AFTER_SEC = 90.0
DEFAULT_FETCH_FAILED_PREFIX = "FETCH_FAILED"
DEFAULT_CASH_SYMBOLS = ("USD", "USDT")
DEFAULT_OVERBOUGHT_RSI = 70.0
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class DeskConfig:
    refresh_sec: float = DEFAULT_REFRESH_SEC
    stale_after_sec: float = DEFAULT_STALE_AFTER_SEC
    fetch_failed_prefix: str = DEFAULT_FETCH_FAILED_PREFIX
    cash_symbols: tuple[str, ...] = DEFAULT_CASH_SYMBOLS
    overbought_rsi: float = DEFAULT_OVERBOUGHT_RSI
    log_level: str = DEFAULT_LOG_LEVEL


def _parse_symbols(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_CASH_SYMBOLS
    symbols = tuple(part.strip().upper() for part in raw.split(",") if part.strip())
    return symbols or DEFAULT_CASH_SYMBOLS


def env_log_level() -> str:
    return (os.getenv("TRADEDESK_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()


def load_config() -> DeskConfig:
    """Load config from environment with defaults matching the backend feed."""
    return DeskConfig(
        refresh_sec=float(os.getenv("TRADEDESK_REFRESH_SEC", DEFAULT_REFRESH_SEC)),
        stale_after_sec=float(
            os.getenv("TRADEDESK_STALE_AFTER_SEC", DEFAULT_STALE_AFTER_SEC)
        ),
        fetch_failed_prefix=os.getenv(
            "TRADEDESK_FETCH_FAILED_PREFIX", DEFAULT_FETCH_FAILED_PREFIX
        ),
        cash_symbols=_parse_symbols(os.getenv("TRADEDESK_CASH_SYMBOLS")),
        overbought_rsi=float(
            os.getenv("TRADEDESK_OVERBOUGHT_RSI", DEFAULT_OVERBOUGHT_RSI)
        ),
        log_level=env_log_level(),
    )
