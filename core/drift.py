"""Rolling-window detection of repeated switches into disallowed contexts."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable

from core.categories import Category
from core.config import DriftConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContextSwitch:
    from_context: Category
    to_context: Category
    timestamp: float
    from_url: str
    to_url: str


@dataclass(frozen=True)
class FocusStatus:
    is_lost_focus: bool
    context_switches: tuple[ContextSwitch, ...]
    current_streak: int
    current_context: Category | None

    def to_dict(self) -> dict:
        return {
            "is_lost_focus": self.is_lost_focus,
            "context_switches": [
                {
                    "from": s.from_context.value,
                    "to": s.to_context.value,
                    "timestamp": s.timestamp,
                    "from_url": s.from_url,
                    "to_url": s.to_url,
                }
                for s in self.context_switches
            ],
            "current_streak": self.current_streak,
            "current_context": self.current_context.value if self.current_context else None,
        }


class DriftDetector:
    """Advisory signal only; the hard block decision lives in the session machine.

    *is_disallowed* decides which switch destinations count toward drift.
    """

    def __init__(
        self,
        config: DriftConfig,
        clock: Callable[[], float],
        is_disallowed: Callable[[Category], bool] = lambda _c: True,
    ):
        self._config = config
        self._clock = clock
        self._is_disallowed = is_disallowed
        self._switches: deque[ContextSwitch] = deque()
        self._current: Category | None = None
        self._current_url = ""
        self._streak = 0

    @property
    def window_seconds(self) -> float:
        return self._config.time_window_minutes * 60

    def observe(self, category: Category, url: str) -> ContextSwitch | None:
        """Feed one classification; records a switch when the context changed."""
        switch = None
        if category == self._current:
            self._streak += 1
        else:
            if self._current is not None:
                switch = self.record_switch(self._current, category, self._current_url, url)
            self._current = category
            self._streak = 1
        self._current_url = url
        return switch

    def record_switch(
        self,
        from_context: Category,
        to_context: Category,
        from_url: str,
        to_url: str,
    ) -> ContextSwitch:
        switch = ContextSwitch(from_context, to_context, self._clock(), from_url, to_url)
        self._switches.append(switch)
        self._evict()
        logger.debug("context switch %s → %s", from_context.value, to_context.value)
        return switch

    def status(self) -> FocusStatus:
        self._evict()
        drifting = sum(1 for s in self._switches if self._is_disallowed(s.to_context))
        return FocusStatus(
            is_lost_focus=drifting >= self._config.switch_threshold,
            context_switches=tuple(self._switches),
            current_streak=self._streak,
            current_context=self._current,
        )

    def reset(self) -> None:
        self._switches.clear()
        self._current = None
        self._current_url = ""
        self._streak = 0

    def _evict(self) -> None:
        cutoff = self._clock() - self.window_seconds
        while self._switches and self._switches[0].timestamp < cutoff:
            self._switches.popleft()
