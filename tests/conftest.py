from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)


NOW = datetime(2025, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def snapshot_response() -> dict:
    return {
        "data": {
            "portfolio": {
                "assets": [
                    {"coin": "BTC", "balance": 0.5, "value_usd": 30000.0},
                    {"currency": "USDT", "balance": -1200.0, "usd_value": -1200.0},
                ],
            },
            "open_orders": [
                {
                    "exchange_order_id": "snap-1",
                    "symbol": "BTC_USDT",
                    "side": "SELL",
                    "order_type": "LIMIT",
                    "quantity": 0.1,
                    "price": 65000,
                },
            ],
            "fast_signals": [{"symbol": "BTC_USDT", "rsi": 42.0, "current_price": 60000.0}],
        },
        "empty": False,
        "stale": False,
        "stale_seconds": 12,
        "last_updated_at": "2025-03-10T11:59:30Z",
    }


@pytest.fixture
def live_response() -> dict:
    return {
        "portfolio": {
            "assets": [
                {"coin": "BTC", "balance": 0.5, "value_usd": 31000.0},
                {"coin": "ETH", "balance": 2.0, "usd_value": 7000.0},
                {"coin": "USD", "balance": -500.0, "value_usd": -500.0},
            ],
            "total_value_usd": 37500.0,
        },
        "balances": [
            {"asset": "BTC", "balance": 0.5, "usd_value": 31000.0},
            {"asset": "ETH", "balance": 2.0, "usd_value": 7000.0},
        ],
        "open_orders": [
            {
                "order_id": "live-1",
                "instrument_name": "ETH_USDT",
                "side": "SELL",
                "order_type": "TAKE_PROFIT_LIMIT",
                "quantity": 2,
                "price": 4000,
                "client_oid": "grp-eth",
                "create_time": 1741600000000,
            },
        ],
        "bot_status": {"is_running": True, "status": "running", "reason": None},
        "fast_signals": [{"symbol": "BTC_USDT", "rsi": 44.0, "current_price": 62000.0}],
        "errors": [],
        "last_sync": "2025-03-10T11:59:55Z",
    }
