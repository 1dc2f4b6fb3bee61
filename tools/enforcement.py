"""Host enforcement engines: where compiled block rules are installed."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

from core.policy_compiler import MAIN_FRAME, BlockRule

logger = logging.getLogger(__name__)

# Dynamic rule limit of the reference host.
DEFAULT_MAX_RULES = 5000


class EnforcementError(Exception):
    """The host refused a rule update or an imperative redirect."""


class EnforcementEngine(ABC):
    max_rules: int = DEFAULT_MAX_RULES

    @abstractmethod
    async def replace_rules(self, rules: Sequence[BlockRule]) -> None:
        """Atomically swap the whole installed rule set for *rules*."""

    @abstractmethod
    async def redirect(self, tab_id: int | None, url: str) -> None:
        """Send an already-committed navigation to *url* right now."""

    @abstractmethod
    async def open_tab(self, url: str) -> int:
        """Open *url* in a new tab and return its id."""

    @abstractmethod
    async def go_back_or_close(self, tab_id: int) -> None:
        """Leave the current page: one step back in history, or close the tab when there is none."""


class InMemoryEnforcement(EnforcementEngine):
    """Rule table kept in process.  Used offline by the CLI and by tests."""

    def __init__(self, max_rules: int = DEFAULT_MAX_RULES) -> None:
        self.max_rules = max_rules
        self.rules: tuple[BlockRule, ...] = ()
        self.redirects: list[tuple[int | None, str]] = []
        self.opened: list[str] = []
        self.left: list[int] = []

    async def replace_rules(self, rules: Sequence[BlockRule]) -> None:
        if len(rules) > self.max_rules:
            raise EnforcementError(f"{len(rules)} rules exceed the host limit of {self.max_rules}")
        ids = [r.rule_id for r in rules]
        if len(ids) != len(set(ids)):
            raise EnforcementError("duplicate rule ids in update")
        self.rules = tuple(rules)
        logger.debug("rule table now holds %d rule(s)", len(self.rules))

    async def redirect(self, tab_id: int | None, url: str) -> None:
        logger.info("redirect tab %s → %s", tab_id, url)
        self.redirects.append((tab_id, url))

    async def open_tab(self, url: str) -> int:
        self.opened.append(url)
        return 1000 + len(self.opened)

    async def go_back_or_close(self, tab_id: int) -> None:
        logger.info("tab %s leaves the page", tab_id)
        self.left.append(tab_id)

    def match(self, url: str, resource_type: str = MAIN_FRAME) -> BlockRule | None:
        for rule in self.rules:
            if rule.matches(url, resource_type):
                return rule
        return None
