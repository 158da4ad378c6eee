"""Read-only queries over the last merged state.

These are what a presentation layer calls. They are synchronous, never fetch
and never raise: missing state comes back as a loading view or WAIT.
"""
from __future__ import annotations

from .context import DeskContext
from .errors import SourceState
from .models import Order, OrderView, PortfolioView, Position, Signal, SignalDecision
from .positions import aggregate
from .rules import PresetInput, RiskInput
from .signals import evaluate_preset_signal, evaluate_signal

_LOADING_PORTFOLIO = PortfolioView(state=SourceState.LOADING)
_LOADING_ORDERS = OrderView(state=SourceState.LOADING)


def current_portfolio(ctx: DeskContext) -> PortfolioView:
    return ctx.portfolio or _LOADING_PORTFOLIO


def current_order_view(ctx: DeskContext) -> OrderView:
    return ctx.orders or _LOADING_ORDERS


def current_orders(ctx: DeskContext) -> list[Order]:
    return list(current_order_view(ctx).orders)


def executed_orders(ctx: DeskContext) -> list[Order]:
    view = ctx.executed_orders
    return list(view.orders) if view is not None else []


def current_positions(ctx: DeskContext) -> list[Position]:
    return aggregate(current_order_view(ctx).orders, ctx.portfolio)


def signal_for(ctx: DeskContext, symbol: str, preset: PresetInput, risk: RiskInput) -> Signal:
    indicators = ctx.indicator(symbol)
    if indicators is None:
        return Signal.WAIT
    return evaluate_signal(indicators, preset, risk, overbought=ctx.config.overbought_rsi)


def signal_decision_for(
    ctx: DeskContext, symbol: str, preset: PresetInput, risk: RiskInput = None
) -> SignalDecision:
    """Preset signal with its justification, for tooltips."""
    indicators = ctx.indicator(symbol)
    if indicators is None:
        return SignalDecision(Signal.WAIT, f"No indicator data for {symbol}.")
    return evaluate_preset_signal(indicators, preset, risk)
