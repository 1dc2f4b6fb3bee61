"""Tests for core/store.py — StateStore load/save, merges, rotation, change notification."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from core.config import StoreConfig
from core.store import StateStore, StoreError


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    """Use a unique filename so we never read the project's focus_state.json."""
    return StateStore(path=tmp_path / "test_focus_state.json")


class TestLoadSave:
    def test_missing_file_returns_default_state(self, store: StateStore) -> None:
        state = store.load()
        assert state["focus_state"] == {"active": False, "allowed_contexts": [], "end_time": None}
        assert state["domain_context_map"] == {}
        assert state["context_history"] == []
        assert state["parked_links"] == []

    def test_save_and_load_round_trip(self, store: StateStore) -> None:
        state = store.load()
        state["domain_context_map"] = {"example.com": "Work"}
        store.save(state)
        assert store.load()["domain_context_map"] == {"example.com": "Work"}

    def test_missing_keys_filled_from_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "partial.json"
        path.write_text(json.dumps({"domain_context_map": {"a.com": "News"}}))
        state = StateStore(path=path).load()
        assert state["domain_context_map"] == {"a.com": "News"}
        assert state["focus_state"]["active"] is False

    def test_corrupt_file_raises_store_error(self, store: StateStore) -> None:
        store.path.write_text("{not json")
        with pytest.raises(StoreError, match="cannot read"):
            store.load()

    def test_non_object_file_raises_store_error(self, store: StateStore) -> None:
        store.path.write_text("[1, 2, 3]")
        with pytest.raises(StoreError, match="JSON object"):
            store.load()

    def test_unwritable_location_raises_store_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")
        with pytest.raises(StoreError, match="cannot write"):
            StateStore(path=blocker / "state.json").set(parked_links=[])

    def test_no_temp_files_left_behind(self, store: StateStore) -> None:
        store.set(parked_links=[])
        assert [p.name for p in store.path.parent.iterdir()] == [store.path.name]


class TestFocusState:
    def test_partial_merge_keeps_other_fields(self, store: StateStore) -> None:
        store.set_focus_state({"active": True, "allowed_contexts": ["Work"], "end_time": 123.0})
        store.set_focus_state({"end_time": None})
        fs = store.get_focus_state()
        assert fs == {"active": True, "allowed_contexts": ["Work"], "end_time": None}


class TestDomainMap:
    def test_set_domain_category_upserts(self, store: StateStore) -> None:
        store.set_domain_category("example.com", "Work")
        store.set_domain_category("example.com", "News")
        store.set_domain_category("other.org", "Research")
        assert store.get_domain_map() == {"example.com": "News", "other.org": "Research"}


class TestContextHistory:
    def test_recent_context_newest_first_and_respects_n(self, store: StateStore) -> None:
        for i in range(3):
            store.append_context("Work", f"https://example.com/{i}", 0.8, timestamp=float(i))
        recent = store.recent_context(2)
        assert [e["url"] for e in recent] == ["https://example.com/2", "https://example.com/1"]

    def test_history_rotates_at_limit(self, tmp_path: Path) -> None:
        store = StateStore(path=tmp_path / "s.json", config=StoreConfig(max_context_history=3))
        for i in range(5):
            store.append_context("News", f"https://cnn.com/{i}", 0.8, timestamp=float(i))
        history = store.get("context_history")
        assert len(history) == 3
        assert history[0]["url"] == "https://cnn.com/2"

    def test_recent_context_zero_returns_empty(self, store: StateStore) -> None:
        store.append_context("Work", "https://example.com", 0.8)
        assert store.recent_context(0) == []


class TestParkedLinksAndWorkspaces:
    def test_release_returns_links_and_clears(self, store: StateStore) -> None:
        store.park_link("https://youtube.com/watch?v=1", "Entertainment", "A talk", timestamp=1.0)
        store.park_link("https://reddit.com/r/python", "Social", timestamp=2.0)
        released = store.release_parked_links()
        assert [l["url"] for l in released] == ["https://youtube.com/watch?v=1", "https://reddit.com/r/python"]
        assert released[0]["title"] == "A talk"
        assert store.release_parked_links() == []

    def test_save_workspace_replaces_same_name(self, store: StateStore) -> None:
        store.save_workspace("morning", [{"url": "https://github.com"}], timestamp=1.0)
        store.save_workspace("morning", [{"url": "https://docs.google.com"}], timestamp=2.0)
        workspaces = store.get("saved_workspaces")
        assert len(workspaces) == 1
        assert workspaces[0]["tabs"] == [{"url": "https://docs.google.com"}]


class TestChangeNotification:
    def test_listener_receives_changed_keys_only(self, store: StateStore) -> None:
        seen: list[frozenset[str]] = []
        store.subscribe(seen.append)
        store.set_domain_category("example.com", "Work")
        assert seen == [frozenset({"domain_context_map"})]

    def test_unchanged_write_does_not_notify(self, store: StateStore) -> None:
        store.set_domain_category("example.com", "Work")
        seen: list[frozenset[str]] = []
        store.subscribe(seen.append)
        store.set_domain_category("example.com", "Work")
        assert seen == []

    def test_unsubscribe_stops_notifications(self, store: StateStore) -> None:
        seen: list[frozenset[str]] = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        store.set(parked_links=[{"url": "x"}])
        assert seen == []

    def test_refresh_detects_write_from_another_process(self, tmp_path: Path) -> None:
        path = tmp_path / "shared.json"
        ours = StateStore(path=path)
        ours.set(parked_links=[])
        theirs = StateStore(path=path)
        seen: list[frozenset[str]] = []
        ours.subscribe(seen.append)

        theirs.set_focus_state({"active": True, "allowed_contexts": ["Work"]})
        # a plain read must not swallow the change
        ours.get_focus_state()
        changed = ours.refresh()

        assert changed == frozenset({"focus_state"})
        assert seen == [frozenset({"focus_state"})]

    def test_refresh_without_external_change_is_empty(self, store: StateStore) -> None:
        store.set(parked_links=[])
        assert store.refresh() == frozenset()
