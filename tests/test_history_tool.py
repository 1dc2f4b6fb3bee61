"""Tests for tools/history_tool.py — HistoryTool.recent() and formatting."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.store import StateStore
from tools.history_tool import HistoryTool


@pytest.fixture
def history_tool(tmp_path: Path) -> HistoryTool:
    store = StateStore(path=tmp_path / "state.json")
    return HistoryTool(store)


class TestRecent:
    def test_empty_store_returns_no_context_message(self, history_tool: HistoryTool) -> None:
        assert history_tool.recent(5) == "[history] no context recorded yet"

    def test_recent_lists_newest_first_with_index(self, history_tool: HistoryTool) -> None:
        store = history_tool.store
        store.append_context("Work", "https://docs.google.com/document/d/1", 0.8)
        store.append_context("Entertainment", "https://youtube.com/watch?v=1", 0.95)
        lines = history_tool.recent(2).splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("#1 ")
        assert "Entertainment" in lines[0]
        assert "0.95" in lines[0]
        assert "https://youtube.com/watch?v=1" in lines[0]
        assert lines[1].startswith("#2 ")
        assert "Work" in lines[1]

    def test_recent_respects_n(self, history_tool: HistoryTool) -> None:
        for i in range(4):
            history_tool.store.append_context("News", f"https://cnn.com/{i}", 0.8)
        assert len(history_tool.recent(3).splitlines()) == 3

    def test_missing_fields_render_placeholders(self, history_tool: HistoryTool) -> None:
        history_tool.store.set(context_history=[{"context": "Work", "url": "https://a.com"}])
        line = history_tool.recent(1)
        assert line.startswith("#1 ?")
        assert "Work" in line
