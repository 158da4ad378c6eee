"""Portfolio reconciliation across the snapshot and live-state feeds.

`reconcile` is the pure merge: it picks the first usable asset source from an
ordered resolver list, derives totals and the borrowed amount, and annotates
the view with staleness and unavailability. `PortfolioReconciler` owns the
current-view cell across polling cycles and enforces that live state always
wins over the snapshot of the same cycle.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping

from .config import DeskConfig
from .errors import PORTFOLIO_UNAVAILABLE_MESSAGE, SourceState, failure_state
from .logging_config import setup_logger
from .models import Asset, Balance, BotStatus, PortfolioView, StalenessInfo, ValueSource
from .normalize import (
    PriceLookup,
    SnapshotEnvelope,
    _safe_float,
    asset_from_balance,
    asset_from_raw,
    balance_from_raw,
    bot_status_from_raw,
    is_fetch_failed,
    mapping,
    raw_list,
    snapshot_envelope,
)
from .resolve import Resolver, resolve_first
from .time_utils import now_utc, parse_timestamp, staleness_info

logger = setup_logger("tradedesk.portfolio")

LIVE_REFRESH_FAILED_MESSAGE = "Background refresh failed. Showing cached data if available."


class PortfolioPhase(str, Enum):
    IDLE = "idle"
    SNAPSHOT_REQUESTED = "snapshot_requested"
    SNAPSHOT_APPLIED = "snapshot_applied"
    LIVE_REQUESTED = "live_requested"
    LIVE_APPLIED = "live_applied"
    LIVE_FAILED = "live_failed"


@dataclass(frozen=True)
class _AssetSet:
    assets: tuple[Asset, ...]
    balances: tuple[Balance, ...]
    total_value_usd: float | None = None
    total_assets_usd: float | None = None
    total_collateral_usd: float | None = None
    total_borrowed_usd: float | None = None
    from_live: bool = False


@dataclass(frozen=True)
class _Sources:
    snapshot: SnapshotEnvelope
    live: Mapping[str, Any] | None
    price_lookup: PriceLookup | None


def _balances(state: Mapping[str, Any]) -> tuple[Balance, ...]:
    parsed = (balance_from_raw(entry) for entry in raw_list(state, "balances"))
    return tuple(balance for balance in parsed if balance is not None)


def _portfolio_assets(
    state: Mapping[str, Any],
    *,
    updated_at: datetime | None,
    from_live: bool,
) -> _AssetSet | None:
    portfolio = mapping(state.get("portfolio"))
    parsed = (
        asset_from_raw(entry, default_updated_at=updated_at)
        for entry in raw_list(portfolio, "assets")
    )
    assets = tuple(asset for asset in parsed if asset is not None)
    if not assets:
        return None
    return _AssetSet(
        assets=assets,
        balances=_balances(state),
        total_value_usd=_safe_float(portfolio.get("total_value_usd")),
        total_assets_usd=_safe_float(portfolio.get("total_assets_usd")),
        total_collateral_usd=_safe_float(portfolio.get("total_collateral_usd")),
        total_borrowed_usd=_safe_float(portfolio.get("total_borrowed_usd")),
        from_live=from_live,
    )


def _balance_assets(
    state: Mapping[str, Any],
    *,
    price_lookup: PriceLookup | None,
    updated_at: datetime | None,
    from_live: bool,
) -> _AssetSet | None:
    balances = tuple(balance for balance in _balances(state) if balance.balance != 0)
    if not balances:
        return None
    assets = tuple(
        asset_from_balance(balance, price_lookup=price_lookup, updated_at=updated_at)
        for balance in balances
    )
    return _AssetSet(assets=assets, balances=balances, from_live=from_live)


def _live_updated_at(sources: _Sources) -> datetime | None:
    if sources.live is None:
        return None
    return parse_timestamp(sources.live.get("last_sync"))


def _snapshot_state(sources: _Sources) -> Mapping[str, Any]:
    if sources.snapshot.empty:
        return {}
    return sources.snapshot.data


def _live_portfolio(sources: _Sources) -> _AssetSet | None:
    if sources.live is None:
        return None
    return _portfolio_assets(sources.live, updated_at=_live_updated_at(sources), from_live=True)


def _live_balances(sources: _Sources) -> _AssetSet | None:
    if sources.live is None:
        return None
    return _balance_assets(
        sources.live,
        price_lookup=sources.price_lookup,
        updated_at=_live_updated_at(sources),
        from_live=True,
    )


def _snapshot_portfolio(sources: _Sources) -> _AssetSet | None:
    return _portfolio_assets(
        _snapshot_state(sources),
        updated_at=sources.snapshot.last_updated_at,
        from_live=False,
    )


def _snapshot_balances(sources: _Sources) -> _AssetSet | None:
    return _balance_assets(
        _snapshot_state(sources),
        price_lookup=sources.price_lookup,
        updated_at=sources.snapshot.last_updated_at,
        from_live=False,
    )


LIVE_FIRST: tuple[Resolver[_Sources, _AssetSet], ...] = (
    Resolver("live.portfolio", _live_portfolio),
    Resolver("live.balances", _live_balances),
    Resolver("snapshot.portfolio", _snapshot_portfolio),
    Resolver("snapshot.balances", _snapshot_balances),
)

# A live response flagged as failed is only trusted after the snapshot.
SNAPSHOT_FIRST: tuple[Resolver[_Sources, _AssetSet], ...] = (
    Resolver("snapshot.portfolio", _snapshot_portfolio),
    Resolver("snapshot.balances", _snapshot_balances),
    Resolver("live.portfolio", _live_portfolio),
    Resolver("live.balances", _live_balances),
)


def borrowed_usd(assets: tuple[Asset, ...], cash_symbols: tuple[str, ...]) -> float:
    """Sum of negative cash-equivalent valuations (margin loans), as a positive amount."""
    cash = {symbol.upper() for symbol in cash_symbols}
    return sum(
        abs(asset.value_usd)
        for asset in assets
        if asset.symbol in cash and asset.value_usd < 0
    )


def _previous_borrowed(previous: PortfolioView | None) -> float | None:
    if previous is None:
        return None
    return previous.total_borrowed_usd


def reconcile(
    snapshot_response: object,
    live_response: object | None,
    *,
    previous: PortfolioView | None = None,
    live_error: str | None = None,
    live_pending: bool = False,
    live_failure: SourceState = SourceState.SOURCE_UNAVAILABLE,
    config: DeskConfig = DeskConfig(),
    price_lookup: PriceLookup | None = None,
    now: datetime | None = None,
) -> PortfolioView:
    """Merge a snapshot response and a live-state response into one portfolio view.

    `live_response` is None when the live fetch has not resolved (`live_pending`)
    or failed outright (`live_error`, classified by `live_failure`). `previous`
    is the last view shown; it is kept instead of an empty one and carries the
    borrowed amount forward whenever no successful live response is available.
    """
    envelope = snapshot_envelope(snapshot_response)
    live = mapping(live_response) if live_response is not None else None
    fetch_failed = live is not None and is_fetch_failed(live, config.fetch_failed_prefix)
    live_ok = live is not None and not fetch_failed

    staleness = staleness_info(
        envelope.last_updated_at,
        now=now or now_utc(),
        stale_after_sec=config.stale_after_sec,
        reported_stale=envelope.stale if snapshot_response is not None else False,
        reported_seconds=envelope.stale_seconds,
    )

    error: str | None = None
    state = SourceState.OK
    if fetch_failed:
        error = PORTFOLIO_UNAVAILABLE_MESSAGE
        state = SourceState.SOURCE_UNAVAILABLE
    elif live_error is not None:
        error = LIVE_REFRESH_FAILED_MESSAGE
        state = live_failure

    sources = _Sources(snapshot=envelope, live=live, price_lookup=price_lookup)
    resolvers = SNAPSHOT_FIRST if fetch_failed else LIVE_FIRST
    resolution = resolve_first(resolvers, sources)

    if resolution is None:
        return _unresolved_view(
            previous,
            live_ok=live_ok,
            live_pending=live_pending,
            error=error,
            state=state,
            staleness=staleness,
        )

    found = resolution.value
    computed_total = sum(asset.value_usd for asset in found.assets)
    if found.total_value_usd is not None:
        total, value_source = found.total_value_usd, ValueSource.BACKEND
    else:
        total, value_source = computed_total, ValueSource.COMPUTED

    borrowed = found.total_borrowed_usd
    if borrowed is None:
        borrowed = borrowed_usd(found.assets, config.cash_symbols)
    if not (found.from_live and live_ok):
        # Only a successful live response may replace a known borrowed amount.
        carried = _previous_borrowed(previous)
        if carried is not None:
            borrowed = carried

    return PortfolioView(
        assets=found.assets,
        total_value_usd=total,
        value_source=value_source,
        total_assets_usd=found.total_assets_usd,
        total_collateral_usd=found.total_collateral_usd,
        total_borrowed_usd=borrowed,
        balances=found.balances,
        data_source=resolution.source,
        state=state,
        error=error,
        staleness=staleness,
    )


def _unresolved_view(
    previous: PortfolioView | None,
    *,
    live_ok: bool,
    live_pending: bool,
    error: str | None,
    state: SourceState,
    staleness: StalenessInfo,
) -> PortfolioView:
    if live_ok:
        # The authoritative source answered and holds no assets.
        return PortfolioView(
            total_borrowed_usd=_previous_borrowed(previous),
            data_source="live.empty",
            state=SourceState.OK,
            staleness=staleness,
        )
    if previous is not None and previous.assets:
        if live_pending:
            return replace(previous, staleness=staleness)
        return replace(
            previous,
            state=state if state is not SourceState.OK else SourceState.SOURCE_UNAVAILABLE,
            error=error or PORTFOLIO_UNAVAILABLE_MESSAGE,
            staleness=staleness,
        )
    if live_pending:
        return PortfolioView(
            total_borrowed_usd=_previous_borrowed(previous),
            state=SourceState.LOADING,
            staleness=staleness,
        )
    return PortfolioView(
        total_borrowed_usd=_previous_borrowed(previous),
        state=SourceState.NO_DATA,
        error=PORTFOLIO_UNAVAILABLE_MESSAGE,
        staleness=staleness,
    )


def merge_bot_status(previous: BotStatus | None, state: Mapping[str, Any] | None) -> BotStatus | None:
    """Take the state's bot status unless it is the backend's transient placeholder."""
    if state is None:
        return previous
    status = bot_status_from_raw(state.get("bot_status"))
    if status is None or status.is_transient:
        return previous
    return status


class PortfolioReconciler:
    """Owns the current portfolio view across polling cycles.

    Each cycle applies the snapshot provisionally and the live state
    authoritatively. Whatever order the two resolve in, the view is rebuilt
    from both with live state first, so a late snapshot can only fill in
    where live state had nothing.
    """

    def __init__(
        self,
        config: DeskConfig = DeskConfig(),
        *,
        price_lookup: PriceLookup | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._config = config
        self._price_lookup = price_lookup
        self._clock = clock
        self.phase = PortfolioPhase.IDLE
        self.view: PortfolioView | None = None
        self.bot_status: BotStatus | None = None
        self._cycle = 0
        self._snapshot_response: object | None = None
        self._live_response: object | None = None
        self._live_error: str | None = None
        self._live_failure = SourceState.SOURCE_UNAVAILABLE
        self._live_done = False

    @property
    def cycle(self) -> int:
        return self._cycle

    def begin_cycle(self) -> int:
        self._cycle += 1
        self._snapshot_response = None
        self._live_response = None
        self._live_error = None
        self._live_done = False
        self.phase = PortfolioPhase.SNAPSHOT_REQUESTED
        return self._cycle

    def live_requested(self) -> None:
        if not self._live_done:
            self.phase = PortfolioPhase.LIVE_REQUESTED

    def end_cycle(self) -> None:
        self.phase = PortfolioPhase.IDLE

    def _rebuild(self) -> PortfolioView:
        self.view = reconcile(
            self._snapshot_response,
            self._live_response,
            previous=self.view,
            live_error=self._live_error,
            live_pending=not self._live_done,
            live_failure=self._live_failure,
            config=self._config,
            price_lookup=self._price_lookup,
            now=self._clock(),
        )
        return self.view

    def apply_snapshot(self, cycle: int, snapshot_response: object) -> PortfolioView | None:
        if cycle != self._cycle:
            logger.debug(f"Ignoring snapshot from superseded cycle {cycle}")
            return self.view
        self._snapshot_response = snapshot_response
        envelope = snapshot_envelope(snapshot_response)
        if not envelope.empty and not self._live_done:
            self.bot_status = merge_bot_status(self.bot_status, envelope.data)
        view = self._rebuild()
        if self._live_done:
            logger.debug(f"Snapshot for cycle {cycle} arrived after live state; live data kept")
            return view
        self.phase = PortfolioPhase.SNAPSHOT_APPLIED
        logger.info(
            f"Snapshot applied: {len(view.assets)} assets from {view.data_source}, "
            f"total=${view.total_value_usd:,.2f}"
        )
        return view

    def fail_snapshot(self, cycle: int, exc: BaseException) -> None:
        logger.warning(f"Snapshot fetch failed for cycle {cycle}, waiting for live state: {exc}")

    def apply_live(self, cycle: int, live_response: object) -> PortfolioView | None:
        if cycle != self._cycle:
            logger.debug(f"Ignoring live state from superseded cycle {cycle}")
            return self.view
        self._live_response = live_response
        self._live_error = None
        self._live_done = True
        self.bot_status = merge_bot_status(self.bot_status, mapping(live_response))
        view = self._rebuild()
        self.phase = PortfolioPhase.LIVE_APPLIED
        if view.error:
            logger.warning(f"Live state applied with error: {view.error}")
        else:
            logger.info(
                f"Live state applied: {len(view.assets)} assets from {view.data_source}, "
                f"total=${view.total_value_usd:,.2f} ({view.value_source.value})"
            )
        return view

    def fail_live(self, cycle: int, exc: BaseException) -> PortfolioView | None:
        if cycle != self._cycle:
            return self.view
        logger.warning(f"Live state fetch failed for cycle {cycle}, keeping last data visible: {exc}")
        self._live_response = None
        self._live_error = str(exc) or type(exc).__name__
        self._live_failure = failure_state(exc)
        self._live_done = True
        view = self._rebuild()
        self.phase = PortfolioPhase.LIVE_FAILED
        return view
