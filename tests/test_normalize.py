from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tradedesk.models import Balance
from tradedesk.normalize import (
    asset_from_balance,
    asset_from_raw,
    balance_from_raw,
    bot_status_from_raw,
    indicators_from_state,
    is_fetch_failed,
    order_from_raw,
    orders_from_raw,
    snapshot_envelope,
)


def test_asset_accepts_both_value_spellings_and_defaults_to_zero() -> None:
    a = asset_from_raw({"coin": "btc", "balance": "0.5", "value_usd": 100})
    b = asset_from_raw({"currency": "ETH", "balance": 1, "usd_value": "250.5"})
    c = asset_from_raw({"coin": "DOGE", "balance": None, "value_usd": float("nan")})
    assert (a.symbol, a.balance, a.value_usd) == ("BTC", 0.5, 100.0)
    assert (b.symbol, b.value_usd) == ("ETH", 250.5)
    assert (c.balance, c.value_usd) == (0.0, 0.0)


def test_asset_without_symbol_is_dropped() -> None:
    assert asset_from_raw({"balance": 1, "value_usd": 5}) is None


def test_balance_valuation_order() -> None:
    backend = Balance(symbol="BTC", balance=2.0, usd_value=120.0, market_value=999.0)
    market = Balance(symbol="BTC", balance=2.0, market_value=110.0)
    priced = Balance(symbol="BTC", balance=2.0)
    assert asset_from_balance(backend).value_usd == 120.0
    assert asset_from_balance(market).value_usd == 110.0
    assert asset_from_balance(priced, price_lookup=lambda s: 50.0).value_usd == 100.0
    assert asset_from_balance(priced, price_lookup=lambda s: None).value_usd == 0.0
    assert asset_from_balance(priced).value_usd == 0.0


def test_balance_aliases() -> None:
    bal = balance_from_raw({"currency": "usdt", "total": "-40", "free": 1, "locked": 2})
    assert bal == Balance(symbol="USDT", balance=-40.0, free=1.0, locked=2.0)


def test_order_field_aliases() -> None:
    order = order_from_raw(
        {
            "order_id": 42,
            "instrument_name": "eth_usdt",
            "side": "sell",
            "order_type": "stop_loss_limit",
            "quantity": "1.5",
            "price": "3000",
            "status": "active",
            "create_time": 1741600000000,
            "filled_quantity": 0.5,
            "filled_price": 3001,
            "client_oid": "grp-1",
        }
    )
    assert order.order_id == "42"
    assert order.symbol == "ETH_USDT"
    assert order.side == "SELL"
    assert order.order_type == "STOP_LOSS_LIMIT"
    assert order.quantity == 1.5
    assert order.created_at == datetime.fromtimestamp(1741600000, tz=timezone.utc)
    assert order.cumulative_quantity == 0.5
    assert order.avg_price == 3001.0
    assert order.client_group_id == "grp-1"


def test_created_timestamp_spellings_agree() -> None:
    iso = order_from_raw({"exchange_order_id": "1", "created_at": "2025-03-10T12:00:00Z"})
    alt = order_from_raw({"exchange_order_id": "2", "create_datetime": "2025-03-10T12:00:00+00:00"})
    assert iso.created_at == alt.created_at
    assert iso.created_at.tzinfo is not None


def test_orders_without_id_are_skipped() -> None:
    orders = orders_from_raw([{"symbol": "BTC_USDT"}, {"exchange_order_id": "x", "side": "BUY"}])
    assert [o.order_id for o in orders] == ["x"]


def test_snapshot_envelope_defaults() -> None:
    assert snapshot_envelope(None).empty
    assert snapshot_envelope("garbage").empty
    env = snapshot_envelope({"data": {"a": 1}, "empty": False, "stale": False, "last_updated_at": "2025-01-01T00:00:00Z"})
    assert not env.empty
    assert not env.stale
    assert env.last_updated_at == datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("errors", "expected"),
    [
        (["FETCH_FAILED: timeout"], True),
        (["RATE_LIMITED", "FETCH_FAILED"], True),
        (["OTHER"], False),
        (None, False),
        ("FETCH_FAILED", False),
    ],
)
def test_fetch_failed_marker(errors, expected) -> None:
    assert is_fetch_failed({"errors": errors}, "FETCH_FAILED") is expected


def test_bot_status_normalized() -> None:
    status = bot_status_from_raw({"is_running": False, "status": "STOPPED", "reason": "Status unavailable (checking...)"})
    assert status.status == "stopped"
    assert status.is_transient
    assert bot_status_from_raw(None) is None


def test_fast_indicators_supersede_slow() -> None:
    state = {
        "slow_signals": [{"symbol": "btc_usdt", "rsi": 30, "ma50": 1}, {"symbol": "ETH_USDT", "rsi": 50}],
        "fast_signals": [{"symbol": "BTC_USDT", "rsi": 40, "current_price": 10, "volume_24h": 5}],
    }
    snaps = indicators_from_state(state)
    assert snaps["BTC_USDT"].rsi == 40.0
    assert snaps["BTC_USDT"].price == 10.0
    assert snaps["BTC_USDT"].volume == 5.0
    assert snaps["ETH_USDT"].rsi == 50.0
