"""Open and executed order reconciliation.

Same two-tier pattern as the portfolio: the snapshot's order list is shown
provisionally, the live state's list replaces it, and when live state fails
the chain falls back to the snapshot and then to the legacy orders endpoint.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Mapping

from .config import DeskConfig
from .errors import (
    EXECUTED_ORDERS_UNAVAILABLE_MESSAGE,
    ORDERS_UNAVAILABLE_MESSAGE,
    SourceState,
    failure_state,
)
from .logging_config import setup_logger
from .models import Order, OrderView
from .normalize import (
    SnapshotEnvelope,
    has_list,
    is_fetch_failed,
    mapping,
    orders_from_raw,
    raw_list,
    snapshot_envelope,
)
from .resolve import Resolver, resolve_first
from .time_utils import now_utc, staleness_info

logger = setup_logger("tradedesk.orders")

_NO_SOURCE = "none"
_PREVIOUS = "previous"


@dataclass(frozen=True)
class _OrderSources:
    snapshot: SnapshotEnvelope
    live: Mapping[str, Any] | None
    legacy: Mapping[str, Any] | None


def _non_empty(orders: tuple[Order, ...]) -> bool:
    return bool(orders)


def _listed(key: str) -> Callable[[Mapping[str, Any] | None], tuple[Order, ...] | None]:
    def _extract(state: Mapping[str, Any] | None) -> tuple[Order, ...] | None:
        if state is None or not has_list(state, key):
            return None
        return orders_from_raw(raw_list(state, key))

    return _extract


_summary = _listed("open_orders_summary")
_open = _listed("open_orders")
_legacy = _listed("orders")


def _snapshot_state(sources: _OrderSources) -> Mapping[str, Any] | None:
    if sources.snapshot.empty:
        return None
    return sources.snapshot.data


# The unified summary carries client group ids and trigger metadata, so it
# wins over the plain open_orders list whenever it has entries.
LIVE_ORDERS: tuple[Resolver[_OrderSources, tuple[Order, ...]], ...] = (
    Resolver("live.open_orders_summary", lambda s: _summary(s.live), _non_empty),
    Resolver("live.open_orders", lambda s: _open(s.live)),
)

FALLBACK_ORDERS: tuple[Resolver[_OrderSources, tuple[Order, ...]], ...] = (
    Resolver("snapshot.open_orders_summary", lambda s: _summary(_snapshot_state(s)), _non_empty),
    Resolver("snapshot.open_orders", lambda s: _open(_snapshot_state(s)), _non_empty),
    Resolver("live.open_orders_summary", lambda s: _summary(s.live), _non_empty),
    Resolver("live.open_orders", lambda s: _open(s.live), _non_empty),
    Resolver("legacy.orders", lambda s: _legacy(s.legacy)),
)


def reconcile_orders(
    snapshot_response: object,
    live_response: object | None,
    *,
    legacy_response: object | None = None,
    previous: OrderView | None = None,
    live_error: str | None = None,
    live_pending: bool = False,
    live_failure: SourceState = SourceState.SOURCE_UNAVAILABLE,
    config: DeskConfig = DeskConfig(),
    now: datetime | None = None,
) -> OrderView:
    """Merge the order lists of the snapshot, live and legacy responses.

    A successful live response is authoritative even when its list is empty.
    Otherwise the first non-empty fallback wins; with nothing usable the view
    keeps the previous orders and carries an explicit error instead of an
    empty list.
    """
    envelope = snapshot_envelope(snapshot_response)
    live = mapping(live_response) if live_response is not None else None
    legacy = mapping(legacy_response) if legacy_response is not None else None
    fetch_failed = live is not None and is_fetch_failed(live, config.fetch_failed_prefix)
    live_ok = live is not None and not fetch_failed
    current = now or now_utc()

    staleness = staleness_info(
        envelope.last_updated_at,
        now=current,
        stale_after_sec=config.stale_after_sec,
        reported_stale=envelope.stale if snapshot_response is not None else False,
        reported_seconds=envelope.stale_seconds,
    )
    sources = _OrderSources(snapshot=envelope, live=live, legacy=legacy)

    resolution = None
    if live_ok:
        resolution = resolve_first(LIVE_ORDERS, sources)
    if resolution is None:
        resolution = resolve_first(FALLBACK_ORDERS, sources)

    live_failed = fetch_failed or live_error is not None
    failed_state = SourceState.SOURCE_UNAVAILABLE if fetch_failed else live_failure
    if resolution is not None:
        from_fallback = not resolution.source.startswith("live.") or not live_ok
        # A legacy answer replaces the failed live list outright.
        degraded = live_failed and from_fallback and resolution.source != "legacy.orders"
        return OrderView(
            orders=resolution.value,
            data_source=resolution.source,
            state=failed_state if degraded else SourceState.OK,
            error=ORDERS_UNAVAILABLE_MESSAGE if degraded else None,
            updated_at=current,
            staleness=staleness,
        )

    if live_pending or not live_failed:
        if previous is not None and previous.orders:
            return replace(previous, data_source=_PREVIOUS, staleness=staleness)
        state = SourceState.LOADING if live_pending else SourceState.OK
        return OrderView(data_source=_NO_SOURCE, state=state, staleness=staleness)

    if previous is not None and previous.orders:
        return replace(
            previous,
            data_source=_PREVIOUS,
            state=failed_state,
            error=ORDERS_UNAVAILABLE_MESSAGE,
            staleness=staleness,
        )
    return OrderView(
        data_source=_NO_SOURCE,
        state=SourceState.NO_DATA,
        error=ORDERS_UNAVAILABLE_MESSAGE,
        staleness=staleness,
    )


def reconcile_executed(
    history_response: object | None,
    *,
    previous: OrderView | None = None,
    error: str | None = None,
    now: datetime | None = None,
) -> OrderView:
    """Executed orders from an order-history response, keeping the last list on failure."""
    current = now or now_utc()
    history = mapping(history_response) if history_response is not None else None
    if error is None and history is not None and has_list(history, "orders"):
        return OrderView(
            orders=orders_from_raw(raw_list(history, "orders")),
            data_source="history.orders",
            state=SourceState.OK,
            updated_at=current,
        )
    kept = previous.orders if previous is not None else ()
    return OrderView(
        orders=kept,
        data_source=_PREVIOUS if kept else _NO_SOURCE,
        state=SourceState.SOURCE_UNAVAILABLE if kept else SourceState.NO_DATA,
        error=EXECUTED_ORDERS_UNAVAILABLE_MESSAGE,
        updated_at=previous.updated_at if previous is not None else None,
    )


class OrderReconciler:
    """Owns the open-order and executed-order views across polling cycles."""

    def __init__(
        self,
        config: DeskConfig = DeskConfig(),
        *,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._config = config
        self._clock = clock
        self.view: OrderView | None = None
        self.executed: OrderView | None = None
        self._cycle = 0
        self._snapshot_response: object | None = None
        self._live_response: object | None = None
        self._live_error: str | None = None
        self._live_failure = SourceState.SOURCE_UNAVAILABLE
        self._live_done = False
        self._legacy_response: object | None = None
        self._legacy_done = False

    @property
    def cycle(self) -> int:
        return self._cycle

    def begin_cycle(self) -> int:
        self._cycle += 1
        self._snapshot_response = None
        self._live_response = None
        self._live_error = None
        self._live_done = False
        self._legacy_response = None
        self._legacy_done = False
        return self._cycle

    @property
    def needs_legacy(self) -> bool:
        """True when live state failed and no other source produced orders this cycle."""
        if not self._live_done or self._legacy_done or self.view is None:
            return False
        if self.view.data_source not in (_NO_SOURCE, _PREVIOUS):
            return False
        if self._live_error is not None:
            return True
        live = mapping(self._live_response)
        return is_fetch_failed(live, self._config.fetch_failed_prefix)

    def _rebuild(self) -> OrderView:
        self.view = reconcile_orders(
            self._snapshot_response,
            self._live_response,
            legacy_response=self._legacy_response,
            previous=self.view,
            live_error=self._live_error,
            live_pending=not self._live_done,
            live_failure=self._live_failure,
            config=self._config,
            now=self._clock(),
        )
        return self.view

    def apply_snapshot(self, cycle: int, snapshot_response: object) -> OrderView | None:
        if cycle != self._cycle:
            return self.view
        self._snapshot_response = snapshot_response
        view = self._rebuild()
        if not self._live_done:
            logger.info(f"Snapshot orders applied: {len(view.orders)} from {view.data_source}")
        return view

    def fail_snapshot(self, cycle: int, exc: BaseException) -> None:
        logger.warning(f"Snapshot orders unavailable for cycle {cycle}: {exc}")

    def apply_live(self, cycle: int, live_response: object) -> OrderView | None:
        if cycle != self._cycle:
            return self.view
        self._live_response = live_response
        self._live_error = None
        self._live_done = True
        view = self._rebuild()
        logger.info(f"Live orders applied: {len(view.orders)} from {view.data_source}")
        return view

    def fail_live(self, cycle: int, exc: BaseException) -> OrderView | None:
        if cycle != self._cycle:
            return self.view
        logger.warning(f"Live orders fetch failed for cycle {cycle}, keeping snapshot orders: {exc}")
        self._live_response = None
        self._live_error = str(exc) or type(exc).__name__
        self._live_failure = failure_state(exc)
        self._live_done = True
        return self._rebuild()

    def apply_legacy(self, cycle: int, legacy_response: object) -> OrderView | None:
        if cycle != self._cycle:
            return self.view
        self._legacy_response = legacy_response
        self._legacy_done = True
        view = self._rebuild()
        logger.info(f"Legacy orders applied: {len(view.orders)} from {view.data_source}")
        return view

    def fail_legacy(self, cycle: int, exc: BaseException) -> OrderView | None:
        if cycle != self._cycle:
            return self.view
        logger.warning(f"Legacy open orders fallback also failed: {exc}")
        self._legacy_done = True
        return self._rebuild()

    def apply_history(self, history_response: object) -> OrderView:
        self.executed = reconcile_executed(
            history_response, previous=self.executed, now=self._clock()
        )
        logger.info(f"Loaded {len(self.executed.orders)} executed orders")
        return self.executed

    def fail_history(self, exc: BaseException) -> OrderView:
        logger.warning(f"Failed to fetch executed orders (will retry on next tick): {exc}")
        self.executed = reconcile_executed(
            None, previous=self.executed, error=str(exc) or type(exc).__name__, now=self._clock()
        )
        return self.executed
