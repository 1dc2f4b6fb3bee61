"""Tests for core/messages.py — request dispatch, rejections and failures as responses."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from core.config import StoreConfig, default_config
from core.focus_core import FocusCore
from core.messages import (
    CheckFocusStatus,
    ClassifyDomain,
    ContextDetected,
    EndSession,
    GetFocusState,
    GetHistory,
    GetTimeLeft,
    Navigate,
    OverrideBlock,
    ParkLink,
    RecordOverride,
    ReleaseParkedLinks,
    RestoreWorkspace,
    StartSession,
    StayFocused,
    TabClosed,
    dispatch,
    handle_intercept_action,
)
from core.scheduler import VirtualScheduler
from core.store import StateStore, StoreError
from tools.enforcement import EnforcementError, InMemoryEnforcement


class _BrokenEngine(InMemoryEnforcement):
    async def replace_rules(self, rules) -> None:
        raise EnforcementError("host offline")


def _core(tmp_path: Path, engine: InMemoryEnforcement | None = None) -> FocusCore:
    config = dataclasses.replace(default_config(), store=StoreConfig(path=tmp_path / "state.json"))
    return FocusCore(config, StateStore(config=config.store), VirtualScheduler(), engine or InMemoryEnforcement())


@pytest.fixture
def core(tmp_path: Path) -> FocusCore:
    return _core(tmp_path)


class TestSessionMessages:
    @pytest.mark.asyncio
    async def test_start_then_state_and_time_left(self, core: FocusCore) -> None:
        assert (await dispatch(core, StartSession(["Work"], 25))).success

        state = await dispatch(core, GetFocusState())
        assert state.data["active"] is True
        assert state.data["allowed_contexts"] == ["Work"]

        left = await dispatch(core, GetTimeLeft())
        assert left.data["seconds"] == pytest.approx(25 * 60, abs=1)

    @pytest.mark.asyncio
    async def test_unknown_category_rejected(self, core: FocusCore) -> None:
        response = await dispatch(core, StartSession(["Work", "Gaming"], 25))
        assert response.success is False
        assert "Gaming" in (response.error or "")
        assert core.is_active() is False

    @pytest.mark.asyncio
    async def test_bad_duration_rejected(self, core: FocusCore) -> None:
        response = await dispatch(core, StartSession(["Work"], 0))
        assert response.success is False

    @pytest.mark.asyncio
    async def test_end_when_inactive_succeeds(self, core: FocusCore) -> None:
        assert (await dispatch(core, EndSession())).success

    @pytest.mark.asyncio
    async def test_engine_failure_reported(self, tmp_path: Path) -> None:
        core = _core(tmp_path, _BrokenEngine())
        response = await dispatch(core, StartSession(["Work"]))
        assert response.success is False
        assert "host offline" in (response.error or "")

    @pytest.mark.asyncio
    async def test_store_failure_reported_without_partial_state(
        self, core: FocusCore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _fail(self: StateStore, state: dict) -> None:
            raise StoreError("disk full")

        monkeypatch.setattr(StateStore, "save", _fail)
        response = await dispatch(core, StartSession(["Work"], 25))
        assert response.success is False
        assert "disk full" in (response.error or "")
        assert core.is_active() is False
        assert core.compiler.installed is None

        response = await dispatch(core, RecordOverride("example.com", "News"))
        assert response.success is False
        assert core.classify_domain("example.com") is None

    @pytest.mark.asyncio
    async def test_focus_status(self, core: FocusCore) -> None:
        response = await dispatch(core, CheckFocusStatus())
        assert response.data["is_lost_focus"] is False
        assert response.data["context_switches"] == []


class TestClassificationMessages:
    @pytest.mark.asyncio
    async def test_classify_domain(self, core: FocusCore) -> None:
        response = await dispatch(core, ClassifyDomain("www.github.com"))
        assert response.data == {"domain": "www.github.com", "context": "Development"}

    @pytest.mark.asyncio
    async def test_classify_unknown_domain(self, core: FocusCore) -> None:
        response = await dispatch(core, ClassifyDomain("unknown-site-xyz.io"))
        assert response.success
        assert response.data["context"] is None

    @pytest.mark.asyncio
    async def test_record_override_rejects_unknown_category(self, core: FocusCore) -> None:
        response = await dispatch(core, RecordOverride("example.com", "Gaming"))
        assert response.success is False

    @pytest.mark.asyncio
    async def test_record_override_applies(self, core: FocusCore) -> None:
        assert (await dispatch(core, RecordOverride("example.com", "news"))).success
        assert (await dispatch(core, ClassifyDomain("example.com"))).data["context"] == "News"


class TestNavigationMessages:
    @pytest.mark.asyncio
    async def test_navigate_reports_decision(self, core: FocusCore) -> None:
        await dispatch(core, StartSession(["Work"]))
        response = await dispatch(core, Navigate("https://www.youtube.com/watch?v=1", tab_id=2))
        assert response.data == {
            "domain": "www.youtube.com",
            "context": "Entertainment",
            "blocked": True,
            "intercepted": True,
        }

    @pytest.mark.asyncio
    async def test_context_detected_learns_unknown_domain(self, core: FocusCore) -> None:
        await dispatch(core, StartSession(["Work"]))
        response = await dispatch(
            core, ContextDetected("https://deals-xyz.shop/", "Shopping", 0.92, tab_id=1)
        )
        assert response.data["context"] == "Shopping"
        assert response.data["blocked"] is True
        assert core.classify_domain("deals-xyz.shop") is not None

    @pytest.mark.asyncio
    async def test_context_detected_with_unknown_label_rejected(self, core: FocusCore) -> None:
        response = await dispatch(core, ContextDetected("https://a.com/", "Gaming", 0.9))
        assert response.success is False

    @pytest.mark.asyncio
    async def test_override_block_then_tab_closed(self, core: FocusCore) -> None:
        await dispatch(core, StartSession(["Work"]))
        await dispatch(core, OverrideBlock(tab_id=5))
        response = await dispatch(core, Navigate("https://reddit.com/", tab_id=5))
        assert response.data["blocked"] is True
        assert response.data["intercepted"] is False

        await dispatch(core, TabClosed(tab_id=5))
        assert core.in_grace(5) is False


class TestStorageMessages:
    @pytest.mark.asyncio
    async def test_park_and_release(self, core: FocusCore) -> None:
        assert (await dispatch(core, ParkLink("https://youtube.com/watch?v=1", "entertainment", "Talk"))).success
        response = await dispatch(core, ReleaseParkedLinks())
        assert [l["url"] for l in response.data["links"]] == ["https://youtube.com/watch?v=1"]
        assert response.data["links"][0]["context"] == "Entertainment"
        assert (await dispatch(core, ReleaseParkedLinks())).data["links"] == []

    @pytest.mark.asyncio
    async def test_park_rejects_unknown_context(self, core: FocusCore) -> None:
        response = await dispatch(core, ParkLink("https://a.com", "Gaming"))
        assert response.success is False

    @pytest.mark.asyncio
    async def test_history(self, core: FocusCore) -> None:
        await dispatch(core, Navigate("https://cnn.com/world", tab_id=1))
        response = await dispatch(core, GetHistory(5))
        assert "News" in response.data["history"]

    @pytest.mark.asyncio
    async def test_stay_focused_parks_link_and_leaves_page(self, tmp_path: Path) -> None:
        engine = InMemoryEnforcement()
        core = _core(tmp_path, engine)
        await dispatch(core, StartSession(["Work"]))
        response = await dispatch(core, StayFocused("https://youtube.com/watch?v=1", "Entertainment", "Talk", 3))
        assert response.success
        assert engine.left == [3]
        assert core.store.get("parked_links")[0]["title"] == "Talk"

    @pytest.mark.asyncio
    async def test_stay_focused_rejects_unknown_context(self, tmp_path: Path) -> None:
        engine = InMemoryEnforcement()
        core = _core(tmp_path, engine)
        response = await dispatch(core, StayFocused("https://a.com/", "Gaming", tab_id=3))
        assert response.success is False
        assert engine.left == []

    @pytest.mark.asyncio
    async def test_restore_workspace_reopens_saved_tabs(self, tmp_path: Path) -> None:
        engine = InMemoryEnforcement()
        core = _core(tmp_path, engine)
        await dispatch(core, StartSession(["Work", "Development"]))
        await dispatch(core, Navigate("https://github.com/org/repo", tab_id=1))
        await dispatch(core, Navigate("https://docs.google.com/document/d/1", tab_id=2))
        await dispatch(core, EndSession("deep-work"))

        response = await dispatch(core, RestoreWorkspace("deep-work"))
        assert response.success
        assert len(response.data["tab_ids"]) == 2
        assert engine.opened == ["https://github.com/org/repo", "https://docs.google.com/document/d/1"]

    @pytest.mark.asyncio
    async def test_restore_unknown_workspace_rejected(self, core: FocusCore) -> None:
        response = await dispatch(core, RestoreWorkspace("nope"))
        assert response.success is False
        assert "nope" in (response.error or "")


class TestInterceptActions:
    @pytest.mark.asyncio
    async def test_stay_action(self, tmp_path: Path) -> None:
        engine = InMemoryEnforcement()
        core = _core(tmp_path, engine)
        await dispatch(core, StartSession(["Work"]))
        params = {"url": "https://reddit.com/r/python", "context": "Social"}
        assert (await handle_intercept_action(core, 6, "stay", params)).success
        assert engine.left == [6]
        assert [l["url"] for l in core.store.get("parked_links")] == ["https://reddit.com/r/python"]

    @pytest.mark.asyncio
    async def test_reclassify_action_records_override_and_continues(self, tmp_path: Path) -> None:
        engine = InMemoryEnforcement()
        core = _core(tmp_path, engine)
        await dispatch(core, StartSession(["Work", "Learning"]))
        assert engine.match("https://www.youtube.com/watch?v=lecture") is not None

        params = {"url": "https://www.youtube.com/watch?v=lecture", "context": "Learning"}
        assert (await handle_intercept_action(core, 6, "reclassify", params)).success

        assert core.classify_domain("youtube.com").value == "Learning"
        assert engine.match("https://www.youtube.com/watch?v=lecture") is None
        assert core.in_grace(6) is True
        assert engine.redirects[-1] == (6, "https://www.youtube.com/watch?v=lecture")

    @pytest.mark.asyncio
    async def test_reclassify_with_unknown_context_changes_nothing(self, tmp_path: Path) -> None:
        engine = InMemoryEnforcement()
        core = _core(tmp_path, engine)
        params = {"url": "https://www.youtube.com/", "context": "Gaming"}
        response = await handle_intercept_action(core, 6, "reclassify", params)
        assert response.success is False
        assert core.in_grace(6) is False
        assert engine.redirects == []

    @pytest.mark.asyncio
    async def test_unknown_action_rejected(self, core: FocusCore) -> None:
        assert (await handle_intercept_action(core, 1, "dance", {})).success is False
