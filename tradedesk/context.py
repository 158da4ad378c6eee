"""Shared desk context: the current-view cells every component reads from.

One instance is created by the caller and passed to the refresh cycle and the
query functions. Each cell holds a frozen view and is only ever replaced.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping

from .config import DeskConfig
from .models import BotStatus, IndicatorSnapshot, OrderView, PortfolioView
from .time_utils import now_utc


@dataclass
class DeskContext:
    config: DeskConfig = field(default_factory=DeskConfig)
    portfolio: PortfolioView | None = None
    orders: OrderView | None = None
    executed_orders: OrderView | None = None
    indicators: Mapping[str, IndicatorSnapshot] = field(
        default_factory=lambda: MappingProxyType({})
    )
    bot_status: BotStatus | None = None
    updated_at: datetime | None = None

    def _touch(self) -> None:
        self.updated_at = now_utc()

    def publish_portfolio(self, view: PortfolioView | None) -> None:
        if view is None:
            return
        self.portfolio = view
        self._touch()

    def publish_orders(self, view: OrderView | None) -> None:
        if view is None:
            return
        self.orders = view
        self._touch()

    def publish_executed(self, view: OrderView | None) -> None:
        if view is None:
            return
        self.executed_orders = view
        self._touch()

    def publish_bot_status(self, status: BotStatus | None) -> None:
        if status is None:
            return
        self.bot_status = status

    def publish_indicators(self, snapshots: Mapping[str, IndicatorSnapshot]) -> None:
        if not snapshots:
            return
        merged = dict(self.indicators)
        merged.update(snapshots)
        self.indicators = MappingProxyType(merged)
        self._touch()

    def indicator(self, symbol: str) -> IndicatorSnapshot | None:
        return self.indicators.get((symbol or "").strip().upper())

    def price(self, symbol: str) -> float | None:
        """Last indicator price for a symbol, trying ``<symbol>_USDT`` and ``<symbol>_USD``."""
        wanted = (symbol or "").strip().upper()
        for key in (wanted, f"{wanted}_USDT", f"{wanted}_USD"):
            snapshot = self.indicators.get(key)
            if snapshot is not None and snapshot.price is not None:
                return snapshot.price
        return None
