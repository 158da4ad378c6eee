from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tradedesk.models import Asset, ExitRole, Order, PortfolioView
from tradedesk.positions import aggregate, exit_role


def _order(order_id: str, order_type: str, price: float | None, qty: float = 1.0, **kw) -> Order:
    return Order(
        order_id=order_id,
        symbol=kw.pop("symbol", "BTC_USDT"),
        side=kw.pop("side", "SELL"),
        order_type=order_type,
        quantity=qty,
        price=price,
        client_group_id=kw.pop("group", "grp-1"),
        **kw,
    )


def test_empty_order_list() -> None:
    assert aggregate([]) == []
    assert aggregate([], PortfolioView()) == []


def test_bracket_profits_from_order_prices() -> None:
    positions = aggregate([
        _order("tp", "TAKE_PROFIT_LIMIT", 110.0),
        _order("sl", "STOP_LOSS_LIMIT", 90.0),
    ])
    assert len(positions) == 1
    pos = positions[0]
    assert pos.base_order_id == "grp-1"
    assert pos.base_price == pytest.approx(100.0)
    assert pos.base_quantity == 1.0
    assert pos.take_profit_profit == pytest.approx(10.0)
    assert pos.stop_loss_profit == pytest.approx(-10.0)
    assert (pos.tp_count, pos.sl_count) == (1, 1)
    assert pos.entry_source == "orders"


def test_entry_price_prefers_matching_portfolio_asset() -> None:
    portfolio = PortfolioView(assets=(Asset("BTC", balance=2.0, value_usd=200.0),))
    pos = aggregate(
        [_order("tp", "TAKE_PROFIT", 130.0), _order("sl", "STOP_LOSS", 80.0)],
        portfolio,
    )[0]
    assert pos.base_price == pytest.approx(100.0)
    assert pos.base_quantity == 2.0
    assert pos.base_total == pytest.approx(200.0)
    assert pos.take_profit_profit == pytest.approx(60.0)
    assert pos.stop_loss_profit == pytest.approx(-40.0)
    assert pos.entry_source == "portfolio"


def test_unheld_asset_falls_back_to_order_prices() -> None:
    portfolio = PortfolioView(assets=(Asset("BTC", balance=0.0, value_usd=0.0),))
    pos = aggregate([_order("tp", "TAKE_PROFIT", 110.0), _order("sl", "STOP_LOSS", 90.0)], portfolio)[0]
    assert pos.entry_source == "orders"


def test_extrema_ignore_missing_and_non_positive_prices() -> None:
    pos = aggregate([
        _order("tp1", "TAKE_PROFIT", 105.0),
        _order("tp2", "TAKE_PROFIT", 120.0),
        _order("tp3", "TAKE_PROFIT", 0.0),
        _order("sl1", "STOP_LOSS", 95.0),
        _order("sl2", "STOP_LOSS", 85.0),
        _order("sl3", "STOP_LOSS", None),
    ])[0]
    assert pos.take_profit_price == 120.0
    assert pos.stop_loss_price == 85.0
    assert (pos.tp_count, pos.sl_count) == (3, 3)


def test_trigger_orders_classified_by_trigger_type() -> None:
    tp = _order("t", "LIMIT", 110.0, is_trigger=True, trigger_type="TAKE_PROFIT")
    sl = _order("s", "LIMIT", 90.0, is_trigger=True, trigger_type="STOP_LOSS")
    plain = _order("p", "LIMIT", 100.0, trigger_type="STOP_LOSS")
    assert exit_role(tp) is ExitRole.TAKE_PROFIT
    assert exit_role(sl) is ExitRole.STOP_LOSS
    assert exit_role(plain) is ExitRole.SELL


def test_ungrouped_orders_become_standalone_positions() -> None:
    positions = aggregate([
        _order("a", "LIMIT", 50.0, group=None),
        _order("b", "LIMIT", 60.0, group=None, symbol="ETH_USDT"),
        _order("buy", "LIMIT", 40.0, group=None, side="BUY"),
    ])
    assert [p.base_order_id for p in positions] == ["a", "b"]
    assert positions[0].group_key == "standalone-a"
    assert positions[0].take_profit_price is None
    assert positions[0].stop_loss_profit is None
    assert (positions[0].tp_count, positions[0].sl_count) == (0, 0)
    assert positions[0].child_orders[0].role is ExitRole.SELL


def test_base_created_at_is_earliest() -> None:
    early = datetime(2025, 1, 1, tzinfo=timezone.utc)
    late = datetime(2025, 1, 2, tzinfo=timezone.utc)
    pos = aggregate([
        _order("tp", "TAKE_PROFIT", 110.0, created_at=late),
        _order("sl", "STOP_LOSS", 90.0, created_at=early),
        _order("x", "STOP_LOSS", 91.0),
    ])[0]
    assert pos.base_created_at == early
