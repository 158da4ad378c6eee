"""Boundary normalization of backend payloads.

Every accepted upstream spelling is mapped here into the canonical models so the
reconcilers and evaluators never branch on which field name was present.
Keep this free of logging and side effects.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Sequence

from .models import Asset, Balance, BotStatus, IndicatorSnapshot, Order
from .time_utils import parse_timestamp

PriceLookup = Callable[[str], "float | None"]

_ASSET_SYMBOL_KEYS = ("coin", "currency")
_ASSET_VALUE_KEYS = ("value_usd", "usd_value")
_BALANCE_SYMBOL_KEYS = ("asset", "currency", "coin")
_BALANCE_AMOUNT_KEYS = ("balance", "total", "quantity")
_ORDER_ID_KEYS = ("exchange_order_id", "order_id")
_ORDER_SYMBOL_KEYS = ("symbol", "instrument_name")
_ORDER_CREATED_KEYS = ("created_at", "create_time", "create_datetime")
_ORDER_UPDATED_KEYS = ("updated_at", "update_time")
_ORDER_FILLED_QTY_KEYS = ("cumulative_quantity", "filled_quantity")
_ORDER_AVG_PRICE_KEYS = ("avg_price", "filled_price")
_ORDER_GROUP_KEYS = ("client_oid", "client_group_id")


def _safe_float(value: object, *, abs_cap: float = 1e307) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed) or not math.isfinite(parsed):
        return None
    if abs(parsed) >= float(abs_cap):
        return None
    return float(parsed)


def _first_present(raw: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _first_float(raw: Mapping[str, Any], keys: Sequence[str]) -> float | None:
    for key in keys:
        value = _safe_float(raw.get(key))
        if value is not None:
            return value
    return None


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _upper(value: object) -> str:
    return _text(value).upper()


def mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def raw_list(state: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    """Return the mapping entries of ``state[key]``; non-list values yield []."""
    value = state.get(key)
    if not isinstance(value, (list, tuple)):
        return []
    return [entry for entry in value if isinstance(entry, Mapping)]


def has_list(state: Mapping[str, Any], key: str) -> bool:
    return isinstance(state.get(key), (list, tuple))


@dataclass(frozen=True)
class SnapshotEnvelope:
    data: Mapping[str, Any] = field(default_factory=dict)
    empty: bool = True
    stale: bool = True
    stale_seconds: float | None = None
    last_updated_at: datetime | None = None


def snapshot_envelope(raw: object) -> SnapshotEnvelope:
    """Normalize a ``GET snapshot`` response; a missing or odd payload is empty."""
    envelope = mapping(raw)
    if not envelope:
        return SnapshotEnvelope()
    data = mapping(envelope.get("data"))
    empty = bool(envelope.get("empty", not data))
    stale = envelope.get("stale")
    return SnapshotEnvelope(
        data=data,
        empty=empty or not data,
        stale=bool(stale) if stale is not None else True,
        stale_seconds=_safe_float(envelope.get("stale_seconds")),
        last_updated_at=parse_timestamp(envelope.get("last_updated_at")),
    )


def is_fetch_failed(state: Mapping[str, Any], prefix: str) -> bool:
    errors = state.get("errors")
    if not isinstance(errors, (list, tuple)):
        return False
    return any(isinstance(err, str) and err.startswith(prefix) for err in errors)


def asset_from_raw(
    raw: Mapping[str, Any],
    *,
    default_updated_at: datetime | None = None,
) -> Asset | None:
    symbol = _upper(_first_present(raw, _ASSET_SYMBOL_KEYS))
    if not symbol:
        return None
    updated_at = parse_timestamp(raw.get("updated_at")) or default_updated_at
    return Asset(
        symbol=symbol,
        balance=_safe_float(raw.get("balance")) or 0.0,
        value_usd=_first_float(raw, _ASSET_VALUE_KEYS) or 0.0,
        updated_at=updated_at,
        available=_safe_float(raw.get("available_qty")) or 0.0,
        reserved=_safe_float(raw.get("reserved_qty")) or 0.0,
    )


def balance_from_raw(raw: Mapping[str, Any]) -> Balance | None:
    symbol = _upper(_first_present(raw, _BALANCE_SYMBOL_KEYS))
    if not symbol:
        return None
    return Balance(
        symbol=symbol,
        balance=_first_float(raw, _BALANCE_AMOUNT_KEYS) or 0.0,
        free=_safe_float(raw.get("free")) or 0.0,
        locked=_safe_float(raw.get("locked")) or 0.0,
        usd_value=_safe_float(raw.get("usd_value")),
        market_value=_safe_float(raw.get("market_value")),
    )


def asset_from_balance(
    balance: Balance,
    *,
    price_lookup: PriceLookup | None = None,
    updated_at: datetime | None = None,
) -> Asset:
    """Value a raw balance: backend USD value, then market value, then qty x price."""
    value = balance.usd_value
    if value is None:
        value = balance.market_value
    if value is None and price_lookup is not None:
        price = _safe_float(price_lookup(balance.symbol))
        if price is not None:
            value = balance.balance * price
    return Asset(
        symbol=balance.symbol,
        balance=balance.balance,
        value_usd=value if value is not None else 0.0,
        updated_at=updated_at,
        available=balance.free,
        reserved=balance.locked,
    )


def order_from_raw(raw: Mapping[str, Any]) -> Order | None:
    order_id = _text(_first_present(raw, _ORDER_ID_KEYS))
    if not order_id:
        return None
    group_id = _text(_first_present(raw, _ORDER_GROUP_KEYS)) or None
    trigger_type = _upper(raw.get("trigger_type")) or None
    return Order(
        order_id=order_id,
        symbol=_upper(_first_present(raw, _ORDER_SYMBOL_KEYS)),
        side=_upper(raw.get("side")) or "UNKNOWN",
        order_type=_upper(raw.get("order_type")) or "LIMIT",
        quantity=_safe_float(raw.get("quantity")) or 0.0,
        price=_safe_float(raw.get("price")),
        status=_upper(raw.get("status")) or "UNKNOWN",
        created_at=_first_timestamp(raw, _ORDER_CREATED_KEYS),
        client_group_id=group_id,
        updated_at=_first_timestamp(raw, _ORDER_UPDATED_KEYS),
        cumulative_quantity=_first_float(raw, _ORDER_FILLED_QTY_KEYS),
        cumulative_value=_safe_float(raw.get("cumulative_value")),
        avg_price=_first_float(raw, _ORDER_AVG_PRICE_KEYS),
        is_trigger=bool(raw.get("is_trigger") or False),
        trigger_type=trigger_type,
        trigger_price=_safe_float(raw.get("trigger_price")),
    )


def _first_timestamp(raw: Mapping[str, Any], keys: Sequence[str]) -> datetime | None:
    for key in keys:
        ts = parse_timestamp(raw.get(key))
        if ts is not None:
            return ts
    return None


def orders_from_raw(entries: Sequence[Mapping[str, Any]]) -> tuple[Order, ...]:
    orders = (order_from_raw(entry) for entry in entries)
    return tuple(order for order in orders if order is not None)


def indicators_from_raw(raw: Mapping[str, Any]) -> IndicatorSnapshot:
    symbol = _upper(_first_present(raw, _ORDER_SYMBOL_KEYS)) or None
    return IndicatorSnapshot(
        symbol=symbol,
        price=_first_float(raw, ("current_price", "price")),
        rsi=_safe_float(raw.get("rsi")),
        ma50=_safe_float(raw.get("ma50")),
        ma200=_safe_float(raw.get("ma200")),
        ema10=_safe_float(raw.get("ema10")),
        ma10w=_safe_float(raw.get("ma10w")),
        atr=_safe_float(raw.get("atr")),
        volume=_first_float(raw, ("current_volume", "volume", "volume_24h")),
        avg_volume=_safe_float(raw.get("avg_volume")),
        volume_ratio=_safe_float(raw.get("volume_ratio")),
        resistance_up=_first_float(raw, ("resistance_up", "res_up")),
        resistance_down=_first_float(raw, ("resistance_down", "res_down")),
        updated_at=_first_timestamp(raw, ("last_update_at", "updated_at")),
    )


def bot_status_from_raw(raw: object) -> BotStatus | None:
    status = mapping(raw)
    if not status:
        return None
    live_enabled = status.get("live_trading_enabled")
    return BotStatus(
        is_running=bool(status.get("is_running", False)),
        status=_text(status.get("status")).lower() or "stopped",
        reason=_text(status.get("reason")) or None,
        live_trading_enabled=bool(live_enabled) if live_enabled is not None else None,
        mode=_upper(status.get("mode")) or None,
    )


def indicators_from_state(state: Mapping[str, Any]) -> dict[str, IndicatorSnapshot]:
    """Indicator snapshots keyed by symbol; fast-refresh entries supersede slow ones."""
    snapshots: dict[str, IndicatorSnapshot] = {}
    for key in ("slow_signals", "fast_signals"):
        for raw in raw_list(state, key):
            snapshot = indicators_from_raw(raw)
            if snapshot.symbol:
                snapshots[snapshot.symbol] = snapshot
    return snapshots
