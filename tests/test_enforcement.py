"""Tests for tools/enforcement.py and tools/notifier.py — in-process rule table, presentation."""

from __future__ import annotations

import pytest

from core.categories import Category
from core.policy_compiler import BlockRule
from tools.enforcement import EnforcementError, InMemoryEnforcement
from tools.notifier import Notifier

_BASE = "http://focus-guard.localhost/intercept"


def _rule(rule_id: int, *domains: str) -> BlockRule:
    return BlockRule(rule_id, Category.SOCIAL, domains, _BASE)


class TestInMemoryEnforcement:
    @pytest.mark.asyncio
    async def test_replace_swaps_whole_table(self) -> None:
        engine = InMemoryEnforcement()
        await engine.replace_rules([_rule(100, "reddit.com"), _rule(101, "x.com")])
        await engine.replace_rules([_rule(100, "facebook.com")])
        assert engine.match("https://reddit.com/") is None
        assert engine.match("https://www.facebook.com/feed") is not None

    @pytest.mark.asyncio
    async def test_over_limit_rejected_and_table_kept(self) -> None:
        engine = InMemoryEnforcement(max_rules=1)
        await engine.replace_rules([_rule(100, "reddit.com")])
        with pytest.raises(EnforcementError, match="exceed"):
            await engine.replace_rules([_rule(100, "a.com"), _rule(101, "b.com")])
        assert engine.match("https://reddit.com/") is not None

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected(self) -> None:
        engine = InMemoryEnforcement()
        with pytest.raises(EnforcementError, match="duplicate"):
            await engine.replace_rules([_rule(100, "a.com"), _rule(100, "b.com")])

    @pytest.mark.asyncio
    async def test_redirect_recorded(self) -> None:
        engine = InMemoryEnforcement()
        await engine.redirect(4, _BASE)
        assert engine.redirects == [(4, _BASE)]

    @pytest.mark.asyncio
    async def test_tab_operations_recorded(self) -> None:
        engine = InMemoryEnforcement()
        first = await engine.open_tab("https://github.com/")
        second = await engine.open_tab("https://docs.google.com/")
        await engine.go_back_or_close(first)
        assert first != second
        assert engine.opened == ["https://github.com/", "https://docs.google.com/"]
        assert engine.left == [first]


class TestNotifier:
    def test_indicator_state_kept(self) -> None:
        notifier = Notifier()
        notifier.set_indicator("!", "#d32f2f")
        assert (notifier.indicator, notifier.indicator_color) == ("!", "#d32f2f")

    def test_high_priority_logged_as_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        Notifier().show("FOCUS ALERT!", "drifting", priority=2)
        assert any(r.levelname == "WARNING" and "FOCUS ALERT!" in r.getMessage() for r in caplog.records)

    def test_rendering_failure_never_reaches_caller(self, caplog: pytest.LogCaptureFixture) -> None:
        class _Broken(Notifier):
            def _show(self, title: str, message: str, priority: int) -> None:
                raise RuntimeError("no display")

        _Broken().show("Focus Session Started", "go")
        assert "not shown: no display" in caplog.text
