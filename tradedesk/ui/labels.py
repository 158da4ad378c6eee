"""Rich text labels for signals, staleness and projected P/L.

Pure formatting; a presentation layer drops these straight into its tables.
"""
from __future__ import annotations

from rich.text import Text

from ..errors import SourceState
from ..models import PortfolioView, Position, Signal, StalenessInfo

_SIGNAL_STYLES = {
    Signal.BUY: "bold green",
    Signal.SELL: "bold red",
    Signal.WAIT: "grey58",
}


def _fmt_money(value: float) -> str:
    return f"{value:,.2f}"


def _fmt_age(seconds: float) -> str:
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    return f"{seconds // 3600}h{(seconds % 3600) // 60:02d}m"


def signal_text(signal: Signal) -> Text:
    return Text(signal.value, style=_SIGNAL_STYLES.get(signal, ""))


def pnl_text(value: float | None, *, prefix: str = "") -> Text:
    if value is None:
        return Text("")
    text = f"{prefix}{_fmt_money(value)}"
    if value > 0:
        return Text(text, style="green")
    if value < 0:
        return Text(text, style="red")
    return Text(text)


def staleness_text(info: StalenessInfo) -> Text:
    if info.stale_seconds is None:
        return Text("")
    age = _fmt_age(info.stale_seconds)
    if info.is_stale:
        return Text(f"stale {age}", style="yellow")
    return Text(f"updated {age} ago", style="grey58")


def portfolio_status_text(view: PortfolioView) -> Text:
    """Header line: total, a derived marker when computed locally, and any error."""
    if view.state is SourceState.LOADING:
        return Text("Loading portfolio...", style="grey58")
    line = Text(f"${_fmt_money(view.total_value_usd)}", style="bold")
    if view.is_derived_total:
        line.append(" (computed)", style="grey58")
    if view.total_borrowed_usd:
        line.append(f"  borrowed ${_fmt_money(view.total_borrowed_usd)}", style="red")
    stale = staleness_text(view.staleness)
    if stale.plain:
        line.append("  ")
        line.append_text(stale)
    if view.error:
        line.append(f"  {view.error}", style="bold red")
    return line


def _projection_text(value: float | None) -> Text:
    if value is None:
        return Text("-", style="grey58")
    return pnl_text(value, prefix="+" if value > 0 else "")


def position_pnl_text(position: Position) -> Text:
    """``TP +x / SL -y`` pair for a bracket position."""
    line = Text("TP ", style="grey58")
    line.append_text(_projection_text(position.take_profit_profit))
    line.append(" / SL ", style="grey58")
    line.append_text(_projection_text(position.stop_loss_profit))
    return line
