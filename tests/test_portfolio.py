from __future__ import annotations

import copy

import pytest

from tradedesk.config import DeskConfig
from tradedesk.errors import PORTFOLIO_UNAVAILABLE_MESSAGE, MalformedSource, SourceState, SourceUnavailable
from tradedesk.models import Asset, PortfolioView, ValueSource
from tradedesk.portfolio import (
    LIVE_REFRESH_FAILED_MESSAGE,
    PortfolioPhase,
    PortfolioReconciler,
    borrowed_usd,
    reconcile,
)


def _failed(live: dict) -> dict:
    out = copy.deepcopy(live)
    out["errors"] = ["FETCH_FAILED: upstream timeout"]
    return out


def _reconciler(now) -> PortfolioReconciler:
    return PortfolioReconciler(DeskConfig(), clock=lambda: now)


def test_live_assets_win_with_backend_total(snapshot_response, live_response, now) -> None:
    view = reconcile(snapshot_response, live_response, now=now)
    assert view.data_source == "live.portfolio"
    assert [a.symbol for a in view.assets] == ["BTC", "ETH", "USD"]
    assert view.total_value_usd == 37500.0
    assert view.value_source is ValueSource.BACKEND
    assert view.total_borrowed_usd == 500.0
    assert view.state is SourceState.OK
    assert view.error is None


def test_total_is_computed_when_backend_omits_it(live_response, now) -> None:
    del live_response["portfolio"]["total_value_usd"]
    view = reconcile(None, live_response, now=now)
    assert view.total_value_usd == pytest.approx(31000.0 + 7000.0 - 500.0)
    assert view.value_source is ValueSource.COMPUTED
    assert view.is_derived_total


def test_raw_balances_are_valued_with_price_lookup(now) -> None:
    live = {"balances": [{"asset": "SOL", "balance": 10}, {"asset": "ADA", "balance": 0}], "errors": []}
    view = reconcile(None, live, price_lookup=lambda symbol: {"SOL": 150.0}.get(symbol), now=now)
    assert view.data_source == "live.balances"
    assert [(a.symbol, a.value_usd) for a in view.assets] == [("SOL", 1500.0)]
    assert view.total_value_usd == 1500.0


def test_falls_back_to_snapshot_when_live_has_no_assets(snapshot_response, now) -> None:
    view = reconcile(snapshot_response, {"errors": []}, now=now)
    assert view.data_source == "snapshot.portfolio"
    assert view.assets[0].symbol == "BTC"
    assert view.total_borrowed_usd == 1200.0


def test_fetch_failure_marker_keeps_snapshot_and_annotates(snapshot_response, live_response, now) -> None:
    view = reconcile(snapshot_response, _failed(live_response), now=now)
    assert view.data_source == "snapshot.portfolio"
    assert [a.symbol for a in view.assets] == ["BTC", "USDT"]
    assert view.error == PORTFOLIO_UNAVAILABLE_MESSAGE
    assert view.state is SourceState.SOURCE_UNAVAILABLE


def test_annotation_clears_on_next_successful_live(snapshot_response, live_response, now) -> None:
    flagged = reconcile(snapshot_response, _failed(live_response), now=now)
    cleared = reconcile(snapshot_response, live_response, previous=flagged, now=now)
    assert flagged.error is not None
    assert cleared.error is None
    assert cleared.state is SourceState.OK


def test_no_source_at_all_is_an_explicit_no_data_view(now) -> None:
    view = reconcile({"data": {}, "empty": True}, None, now=now)
    assert view.assets == ()
    assert view.total_value_usd == 0.0
    assert view.state is SourceState.NO_DATA
    assert view.error == PORTFOLIO_UNAVAILABLE_MESSAGE


def test_successful_empty_live_is_not_an_error(now) -> None:
    view = reconcile(None, {"portfolio": {"assets": []}, "errors": []}, now=now)
    assert view.state is SourceState.OK
    assert view.data_source == "live.empty"


def test_reconcile_is_idempotent(snapshot_response, live_response, now) -> None:
    first = reconcile(snapshot_response, live_response, now=now)
    second = reconcile(snapshot_response, live_response, now=now)
    assert first == second


def test_staleness_from_snapshot_timestamp(snapshot_response, live_response, now) -> None:
    view = reconcile(snapshot_response, live_response, now=now)
    assert view.staleness.stale_seconds == 30
    assert not view.staleness.is_stale
    snapshot_response["last_updated_at"] = "2025-03-10T11:58:00Z"
    assert reconcile(snapshot_response, live_response, now=now).staleness.is_stale


def test_borrowed_only_counts_negative_cash() -> None:
    assets = (
        Asset("USD", -100.0, -100.0),
        Asset("USDT", -50.0, -50.0),
        Asset("USDT", 20.0, 20.0),
        Asset("BTC", -1.0, -30000.0),
    )
    assert borrowed_usd(assets, ("USD", "USDT")) == 150.0


def test_borrowed_survives_a_failed_cycle(snapshot_response, live_response, now) -> None:
    rec = _reconciler(now)
    c1 = rec.begin_cycle()
    rec.apply_snapshot(c1, snapshot_response)
    rec.apply_live(c1, live_response)
    assert rec.view.total_borrowed_usd == 500.0
    rec.end_cycle()

    c2 = rec.begin_cycle()
    rec.apply_snapshot(c2, snapshot_response)
    view = rec.fail_live(c2, SourceUnavailable("live-state", "timeout"))
    assert view.total_borrowed_usd == 500.0
    assert view.data_source == "snapshot.portfolio"
    assert view.error == LIVE_REFRESH_FAILED_MESSAGE
    assert rec.phase is PortfolioPhase.LIVE_FAILED


def test_borrowed_survives_a_fetch_failed_marker(snapshot_response, live_response, now) -> None:
    rec = _reconciler(now)
    c1 = rec.begin_cycle()
    rec.apply_live(c1, live_response)
    failed = _failed(live_response)
    failed["portfolio"]["assets"][2]["value_usd"] = -900.0
    c2 = rec.begin_cycle()
    view = rec.apply_live(c2, failed)
    assert view.error == PORTFOLIO_UNAVAILABLE_MESSAGE
    assert view.total_borrowed_usd == 500.0


def test_live_wins_even_when_it_resolves_first(snapshot_response, live_response, now) -> None:
    rec = _reconciler(now)
    cycle = rec.begin_cycle()
    rec.apply_live(cycle, live_response)
    view = rec.apply_snapshot(cycle, snapshot_response)
    assert view.data_source == "live.portfolio"
    assert view.total_value_usd == 37500.0
    assert rec.phase is PortfolioPhase.LIVE_APPLIED


def test_first_cycle_is_loading_until_a_source_resolves(snapshot_response, now) -> None:
    rec = _reconciler(now)
    assert rec.view is None
    cycle = rec.begin_cycle()
    rec.fail_snapshot(cycle, SourceUnavailable("snapshot"))
    assert rec.view is None

    empty = rec.apply_snapshot(cycle, {"data": {}, "empty": True})
    assert empty.state is SourceState.LOADING
    assert rec.phase is PortfolioPhase.SNAPSHOT_APPLIED


def test_failed_live_never_blanks_previous_view(snapshot_response, live_response, now) -> None:
    rec = _reconciler(now)
    c1 = rec.begin_cycle()
    rec.apply_live(c1, live_response)
    c2 = rec.begin_cycle()
    rec.fail_snapshot(c2, SourceUnavailable("snapshot"))
    view = rec.fail_live(c2, MalformedSource("live", "expected a mapping"))
    assert [a.symbol for a in view.assets] == ["BTC", "ETH", "USD"]
    assert view.state is SourceState.MALFORMED_SOURCE
    assert view.error is not None


def test_results_from_superseded_cycle_are_ignored(snapshot_response, live_response, now) -> None:
    rec = _reconciler(now)
    old = rec.begin_cycle()
    current = rec.begin_cycle()
    rec.apply_live(current, live_response)
    view = rec.apply_snapshot(old, {"data": {"portfolio": {"assets": [{"coin": "XRP", "value_usd": 1}]}}, "empty": False})
    assert view.data_source == "live.portfolio"


def test_transient_bot_status_does_not_overwrite(live_response, now) -> None:
    rec = _reconciler(now)
    c1 = rec.begin_cycle()
    rec.apply_live(c1, live_response)
    assert rec.bot_status.is_running
    transient = dict(live_response, bot_status={"is_running": False, "status": "stopped", "reason": "Status unavailable (checking...)"})
    c2 = rec.begin_cycle()
    rec.apply_live(c2, transient)
    assert rec.bot_status.is_running


def test_pending_live_keeps_previous_assets_without_error(live_response, now) -> None:
    previous = reconcile({"data": {}, "empty": True}, live_response, now=now)
    view = reconcile({"data": {}, "empty": True}, None, previous=previous, live_pending=True, now=now)
    assert [a.symbol for a in view.assets] == ["BTC", "ETH", "USD"]
    assert view.state is SourceState.OK
    assert view.error is None

    blank = reconcile({"data": {}, "empty": True}, None, previous=PortfolioView(), live_pending=True, now=now)
    assert blank.state is SourceState.LOADING
