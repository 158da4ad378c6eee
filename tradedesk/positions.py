"""Bracket position reconstruction from flat exit-order lists."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from .models import Asset, ChildOrder, ExitRole, Order, PortfolioView, Position

STANDALONE_PREFIX = "standalone-"

_TAKE_PROFIT_TYPES = ("TAKE_PROFIT", "TAKE_PROFIT_LIMIT")
_STOP_LOSS_TYPES = ("STOP_LOSS", "STOP_LOSS_LIMIT")


def exit_role(order: Order) -> ExitRole:
    if order.order_type in _TAKE_PROFIT_TYPES:
        return ExitRole.TAKE_PROFIT
    if order.order_type in _STOP_LOSS_TYPES:
        return ExitRole.STOP_LOSS
    if order.is_trigger and order.trigger_type == "TAKE_PROFIT":
        return ExitRole.TAKE_PROFIT
    if order.is_trigger and order.trigger_type == "STOP_LOSS":
        return ExitRole.STOP_LOSS
    return ExitRole.SELL


def group_key(order: Order) -> str:
    return order.client_group_id or f"{STANDALONE_PREFIX}{order.order_id}"


def _positive_prices(orders: Iterable[Order]) -> list[float]:
    return [order.price for order in orders if order.price is not None and order.price > 0]


def _vwap(orders: Iterable[Order]) -> float | None:
    qty = 0.0
    value = 0.0
    for order in orders:
        qty += order.quantity
        value += order.quantity * (order.price or 0.0)
    if qty <= 0:
        return None
    return value / qty


def _exit_quantity(tp: list[Order], sl: list[Order], generic: list[Order]) -> float:
    # TP and SL legs of one bracket protect the same units.
    tp_qty = sum(order.quantity for order in tp)
    sl_qty = sum(order.quantity for order in sl)
    return max(tp_qty, sl_qty) + sum(order.quantity for order in generic)


def _earliest(orders: Iterable[Order]) -> datetime | None:
    stamps = [order.created_at for order in orders if order.created_at is not None]
    return min(stamps) if stamps else None


def match_asset(symbol: str, portfolio: PortfolioView | None) -> Asset | None:
    """Portfolio asset for an instrument, matching ``BTC_USDT`` against ``BTC``."""
    if portfolio is None or not symbol:
        return None
    asset = portfolio.asset(symbol)
    if asset is None and "_" in symbol:
        asset = portfolio.asset(symbol.split("_", 1)[0])
    return asset


@dataclass(frozen=True)
class _Entry:
    price: float | None
    quantity: float
    source: str | None


def _entry(symbol: str, orders: list[Order], quantity: float, portfolio: PortfolioView | None) -> _Entry:
    asset = match_asset(symbol, portfolio)
    if asset is not None and asset.unit_price is not None:
        return _Entry(price=asset.unit_price, quantity=asset.balance, source="portfolio")
    vwap = _vwap(orders)
    return _Entry(price=vwap, quantity=quantity, source="orders" if vwap is not None else None)


def _projection(exit_price: float | None, entry: _Entry) -> float | None:
    if exit_price is None or entry.price is None or entry.quantity <= 0:
        return None
    return (exit_price - entry.price) * entry.quantity


def _position(key: str, orders: list[Order], portfolio: PortfolioView | None) -> Position:
    symbol = orders[0].symbol
    tp = [order for order in orders if exit_role(order) is ExitRole.TAKE_PROFIT]
    sl = [order for order in orders if exit_role(order) is ExitRole.STOP_LOSS]
    generic = [order for order in orders if exit_role(order) is ExitRole.SELL]

    tp_prices = _positive_prices(tp)
    sl_prices = _positive_prices(sl)
    tp_price = max(tp_prices) if tp_prices else None
    sl_price = min(sl_prices) if sl_prices else None

    entry = _entry(symbol, orders, _exit_quantity(tp, sl, generic), portfolio)
    base_total = None
    if entry.price is not None and entry.quantity > 0:
        base_total = entry.price * entry.quantity

    children = tuple(
        ChildOrder(
            order_id=order.order_id,
            side=order.side,
            role=exit_role(order),
            quantity=order.quantity,
            price=order.price,
            created_at=order.created_at,
        )
        for order in orders
    )
    base_order_id = orders[0].order_id if key.startswith(STANDALONE_PREFIX) else key
    return Position(
        symbol=symbol,
        base_order_id=base_order_id,
        base_quantity=entry.quantity,
        base_price=entry.price,
        base_total=base_total,
        base_created_at=_earliest(orders),
        tp_count=len(tp),
        sl_count=len(sl),
        take_profit_price=tp_price,
        stop_loss_price=sl_price,
        take_profit_profit=_projection(tp_price, entry),
        stop_loss_profit=_projection(sl_price, entry),
        child_orders=children,
        entry_source=entry.source,
        group_key=key,
    )


def aggregate(orders: Iterable[Order], portfolio: PortfolioView | None = None) -> list[Position]:
    """Group SELL orders into one position per bracket group, in first-seen order.

    Entry price comes from the matching portfolio asset (value / balance) when
    one is held, else from the volume-weighted price of the group's own orders.
    """
    groups: dict[str, list[Order]] = {}
    for order in orders:
        if order.side != "SELL":
            continue
        groups.setdefault(group_key(order), []).append(order)
    return [_position(key, members, portfolio) for key, members in groups.items()]
