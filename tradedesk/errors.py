"""Error taxonomy for feed reconciliation.

Exceptions are raised by feed collaborators and normalization helpers; the
reconcilers catch them at their boundary and record a `SourceState` on the view
instead of letting them reach signal evaluation or position aggregation.
"""
from __future__ import annotations

from enum import Enum

PORTFOLIO_UNAVAILABLE_MESSAGE = (
    "Portfolio data unavailable from backend. Please check API /dashboard/state, then retry."
)
ORDERS_UNAVAILABLE_MESSAGE = "Failed to refresh orders. Showing cached data if available."
EXECUTED_ORDERS_UNAVAILABLE_MESSAGE = "Failed to load executed orders. Retrying..."


class SourceState(str, Enum):
    OK = "ok"
    LOADING = "loading"
    SOURCE_UNAVAILABLE = "source_unavailable"
    MALFORMED_SOURCE = "malformed_source"
    NO_DATA = "no_data"


class TradedeskError(Exception):
    """Base class for tradedesk errors."""


class SourceUnavailable(TradedeskError):
    """A fetch failed outright (network or backend error)."""

    def __init__(self, source: str, reason: str | None = None) -> None:
        self.source = source
        self.reason = reason
        detail = f"{source} unavailable"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail)


class MalformedSource(TradedeskError):
    """A response parsed but lacked the structure a resolver needs."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{source} malformed: {reason}")


def failure_state(exc: BaseException) -> SourceState:
    """Map a fetch exception onto the state recorded on the view."""
    if isinstance(exc, MalformedSource):
        return SourceState.MALFORMED_SOURCE
    return SourceState.SOURCE_UNAVAILABLE
