"""Fire-and-forget presentation: notifications and the toolbar-style indicator."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class Notifier:
    """Logs every message.  Subclasses may render them; failures never reach callers."""

    def __init__(self) -> None:
        self.indicator = ""
        self.indicator_color = ""

    def show(self, title: str, message: str, priority: int = 0) -> None:
        try:
            self._show(title, message, priority)
        except Exception as exc:
            logger.warning("notification %r not shown: %s", title, exc)

    def set_indicator(self, text: str, color: str) -> None:
        try:
            self._set_indicator(text, color)
        except Exception as exc:
            logger.warning("indicator not updated: %s", exc)

    def _show(self, title: str, message: str, priority: int) -> None:
        level = logging.WARNING if priority >= 2 else logging.INFO
        logger.log(level, "🔔 %s — %s", title, message)

    def _set_indicator(self, text: str, color: str) -> None:
        self.indicator = text
        self.indicator_color = color
        logger.debug("indicator → %r (%s)", text, color)
