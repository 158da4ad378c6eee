"""One polling cycle: snapshot and live state fetched concurrently.

Results are applied in arrival order. The reconcilers guarantee live state
wins over the snapshot of the same cycle, so arrival order only changes what
is shown in between. Fetch errors stop here and become view states.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping

from .context import DeskContext
from .errors import MalformedSource
from .feed import FeedSource
from .config import DeskConfig
from .logging_config import set_log_level, setup_logger
from .normalize import indicators_from_state, mapping, snapshot_envelope
from .orders import OrderReconciler
from .portfolio import PortfolioReconciler
from .scheduler import IntervalTicks, PollScheduler, Sleep

logger = setup_logger("tradedesk.refresh")

SNAPSHOT = "snapshot"
LIVE = "live"
HISTORY = "history"
LEGACY = "legacy"


async def _settle(
    tag: str, fetch: Callable[[], Awaitable[object]]
) -> tuple[str, Mapping[str, Any] | None, Exception | None]:
    try:
        payload = await fetch()
    except Exception as exc:
        return tag, None, exc
    if not isinstance(payload, Mapping):
        return tag, None, MalformedSource(tag, f"expected a mapping, got {type(payload).__name__}")
    return tag, payload, None


class RefreshCycle:
    """Runs polling cycles against a feed and publishes into a `DeskContext`.

    Cycles are serialized: a refresh requested while one is running is
    coalesced into a single rerun once it finishes.
    """

    def __init__(
        self,
        feed: FeedSource,
        context: DeskContext,
        *,
        portfolio: PortfolioReconciler | None = None,
        orders: OrderReconciler | None = None,
        include_history: bool = True,
    ) -> None:
        self._feed = feed
        self._context = context
        set_log_level(context.config.log_level)
        self.portfolio = portfolio or PortfolioReconciler(
            context.config, price_lookup=context.price
        )
        self.orders = orders or OrderReconciler(context.config)
        self._include_history = include_history
        self._lock = asyncio.Lock()
        self._dirty = False
        self._live_ok = False
        self.cycles_run = 0

    @property
    def config(self) -> DeskConfig:
        return self._context.config

    async def refresh(self) -> bool:
        """Run a cycle; returns False when folded into a cycle already running."""
        if self._lock.locked():
            self._dirty = True
            return False
        async with self._lock:
            await self._run_cycle()
            while self._dirty:
                self._dirty = False
                await self._run_cycle()
        return True

    async def _run_cycle(self) -> None:
        cycle = self.portfolio.begin_cycle()
        order_cycle = self.orders.begin_cycle()
        self._live_ok = False
        fetches = [
            (SNAPSHOT, self._feed.fetch_snapshot),
            (LIVE, self._feed.fetch_live_state),
        ]
        if self._include_history:
            fetches.append((HISTORY, self._feed.fetch_order_history))
        tasks = [asyncio.create_task(_settle(tag, fetch)) for tag, fetch in fetches]
        try:
            for finished in asyncio.as_completed(tasks):
                tag, payload, exc = await finished
                self._apply(tag, payload, exc, cycle, order_cycle)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        if self.orders.needs_legacy:
            logger.info("Live orders unavailable and snapshot empty, trying legacy orders")
            tag, payload, exc = await _settle(LEGACY, self._feed.fetch_orders)
            self._apply(tag, payload, exc, cycle, order_cycle)

        self.portfolio.end_cycle()
        self.cycles_run += 1

    def _apply(
        self,
        tag: str,
        payload: Mapping[str, Any] | None,
        exc: Exception | None,
        cycle: int,
        order_cycle: int,
    ) -> None:
        ctx = self._context
        if tag == SNAPSHOT:
            if exc is not None:
                self.portfolio.fail_snapshot(cycle, exc)
                self.orders.fail_snapshot(order_cycle, exc)
            else:
                # Prices first: balances are valued through the context.
                if not self._live_ok:
                    ctx.publish_indicators(indicators_from_state(snapshot_envelope(payload).data))
                ctx.publish_portfolio(self.portfolio.apply_snapshot(cycle, payload))
                ctx.publish_orders(self.orders.apply_snapshot(order_cycle, payload))
            self.portfolio.live_requested()
        elif tag == LIVE:
            if exc is not None:
                ctx.publish_portfolio(self.portfolio.fail_live(cycle, exc))
                ctx.publish_orders(self.orders.fail_live(order_cycle, exc))
            else:
                ctx.publish_indicators(indicators_from_state(mapping(payload)))
                self._live_ok = True
                ctx.publish_portfolio(self.portfolio.apply_live(cycle, payload))
                ctx.publish_orders(self.orders.apply_live(order_cycle, payload))
        elif tag == HISTORY:
            if exc is not None:
                ctx.publish_executed(self.orders.fail_history(exc))
            else:
                ctx.publish_executed(self.orders.apply_history(payload))
        elif tag == LEGACY:
            if exc is not None:
                ctx.publish_orders(self.orders.fail_legacy(order_cycle, exc))
            else:
                ctx.publish_orders(self.orders.apply_legacy(order_cycle, payload))
        ctx.publish_bot_status(self.portfolio.bot_status)


def poller(
    refresh: RefreshCycle,
    interval_sec: float | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
    limit: int | None = None,
) -> PollScheduler:
    """Scheduler that runs `refresh` every ``interval_sec``, the configured refresh interval by default."""
    if interval_sec is None:
        interval_sec = refresh.config.refresh_sec
    ticks = IntervalTicks(interval_sec, sleep=sleep, limit=limit)
    return PollScheduler(ticks, refresh.refresh)
