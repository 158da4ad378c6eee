"""Canonical data model shared by the reconcilers, evaluators and views.

Every upstream shape is mapped into these types by `tradedesk.normalize` before
any business logic runs. Views are frozen and replaced wholesale on each pass.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .errors import SourceState


class Signal(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    WAIT = "WAIT"


class ValueSource(str, Enum):
    BACKEND = "backend"
    COMPUTED = "computed"


class ExitRole(str, Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    SELL = "SELL"


@dataclass(frozen=True)
class IndicatorSnapshot:
    symbol: str | None = None
    price: float | None = None
    rsi: float | None = None
    ma50: float | None = None
    ma200: float | None = None
    ema10: float | None = None
    ma10w: float | None = None
    atr: float | None = None
    volume: float | None = None
    avg_volume: float | None = None
    volume_ratio: float | None = None
    resistance_up: float | None = None
    resistance_down: float | None = None
    updated_at: datetime | None = None

    @property
    def volume_factor(self) -> float | None:
        """Current volume relative to its average, when it can be determined."""
        if self.volume_ratio is not None:
            return self.volume_ratio
        if self.volume is None or not self.avg_volume or self.avg_volume <= 0:
            return None
        return self.volume / self.avg_volume


@dataclass(frozen=True)
class SignalDecision:
    signal: Signal
    reason: str


@dataclass(frozen=True)
class Asset:
    symbol: str
    balance: float = 0.0
    value_usd: float = 0.0
    updated_at: datetime | None = None
    available: float = 0.0
    reserved: float = 0.0

    @property
    def unit_price(self) -> float | None:
        if self.balance > 0 and self.value_usd > 0:
            return self.value_usd / self.balance
        return None


@dataclass(frozen=True)
class Balance:
    symbol: str
    balance: float = 0.0
    free: float = 0.0
    locked: float = 0.0
    usd_value: float | None = None
    market_value: float | None = None


@dataclass(frozen=True)
class BotStatus:
    is_running: bool = False
    status: str = "stopped"
    reason: str | None = None
    live_trading_enabled: bool | None = None
    mode: str | None = None

    @property
    def is_transient(self) -> bool:
        return self.status == "stopped" and self.reason == "Status unavailable (checking...)"


@dataclass(frozen=True)
class StalenessInfo:
    last_updated_at: datetime | None = None
    is_stale: bool = False
    stale_seconds: float | None = None


@dataclass(frozen=True)
class PortfolioView:
    assets: tuple[Asset, ...] = ()
    total_value_usd: float = 0.0
    value_source: ValueSource = ValueSource.COMPUTED
    total_assets_usd: float | None = None
    total_collateral_usd: float | None = None
    total_borrowed_usd: float | None = None
    balances: tuple[Balance, ...] = ()
    data_source: str = "none"
    state: SourceState = SourceState.LOADING
    error: str | None = None
    staleness: StalenessInfo = field(default_factory=StalenessInfo)

    @property
    def is_derived_total(self) -> bool:
        return self.value_source is ValueSource.COMPUTED

    def asset(self, symbol: str) -> Asset | None:
        wanted = (symbol or "").strip().upper()
        for asset in self.assets:
            if asset.symbol == wanted:
                return asset
        return None


@dataclass(frozen=True)
class Order:
    order_id: str
    symbol: str
    side: str
    order_type: str = "LIMIT"
    quantity: float = 0.0
    price: float | None = None
    status: str = "UNKNOWN"
    created_at: datetime | None = None
    client_group_id: str | None = None
    updated_at: datetime | None = None
    cumulative_quantity: float | None = None
    cumulative_value: float | None = None
    avg_price: float | None = None
    is_trigger: bool = False
    trigger_type: str | None = None
    trigger_price: float | None = None


@dataclass(frozen=True)
class OrderView:
    orders: tuple[Order, ...] = ()
    data_source: str = "none"
    state: SourceState = SourceState.LOADING
    error: str | None = None
    updated_at: datetime | None = None
    staleness: StalenessInfo = field(default_factory=StalenessInfo)


@dataclass(frozen=True)
class ChildOrder:
    order_id: str
    side: str
    role: ExitRole
    quantity: float
    price: float | None
    created_at: datetime | None


@dataclass(frozen=True)
class Position:
    symbol: str
    base_order_id: str
    base_quantity: float
    base_price: float | None
    base_total: float | None = None
    base_created_at: datetime | None = None
    tp_count: int = 0
    sl_count: int = 0
    take_profit_price: float | None = None
    stop_loss_price: float | None = None
    take_profit_profit: float | None = None
    stop_loss_profit: float | None = None
    child_orders: tuple[ChildOrder, ...] = ()
    entry_source: str | None = None
    group_key: str = ""
