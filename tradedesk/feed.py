"""The feed collaborator the refresh cycle reads from.

Transport is out of scope here: any object with these coroutines works, and
each may raise. Responses are the backend's raw JSON-like mappings.
"""
from __future__ import annotations

from typing import Any, Mapping, Protocol


class FeedSource(Protocol):
    async def fetch_snapshot(self) -> Mapping[str, Any]:
        """Cached state: ``{data, empty, stale, stale_seconds, last_updated_at}``."""
        ...

    async def fetch_live_state(self) -> Mapping[str, Any]:
        """Full dashboard state with ``portfolio``, ``balances``, ``open_orders`` and ``errors``."""
        ...

    async def fetch_orders(self) -> Mapping[str, Any]:
        """Legacy single-shot open orders: ``{orders: [...]}``."""
        ...

    async def fetch_order_history(self) -> Mapping[str, Any]:
        """Executed orders: ``{orders: [...]}``."""
        ...
