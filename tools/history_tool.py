"""Read and format recent context classifications for display."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from core.store import StateStore

logger = logging.getLogger(__name__)


class HistoryTool:
    def __init__(self, store: StateStore) -> None:
        self.store = store

    # ── public ────────────────────────────────────────────────────

    def recent(self, n: int = 5) -> str:
        """Return a formatted summary of the last *n* classifications (newest first)."""
        entries = self.store.recent_context(n)
        if not entries:
            return "[history] no context recorded yet"

        logger.info("history: returning %d entr%s", len(entries), "y" if len(entries) == 1 else "ies")
        return "\n".join(_format_entry(i, e) for i, e in enumerate(entries, 1))


# ── helpers ───────────────────────────────────────────────────────────────────


def _format_entry(idx: int, e: dict[str, Any]) -> str:
    ts = e.get("timestamp")
    when = datetime.fromtimestamp(ts).strftime("%H:%M:%S") if isinstance(ts, (int, float)) else "?"
    confidence = e.get("confidence")
    conf = f"{confidence:.2f}" if isinstance(confidence, (int, float)) else "?"
    return f"#{idx} {when}  {e.get('context', '?'):<13} {conf}  {e.get('url', '')}"
