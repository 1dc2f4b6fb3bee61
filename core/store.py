"""File-based JSON state store with atomic writes, partial merges and change notification."""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Callable

from core.config import StoreConfig

logger = logging.getLogger(__name__)

Listener = Callable[[frozenset[str]], None]

_DEFAULT_STATE: dict[str, Any] = {
    "focus_state": {
        "active": False,
        "allowed_contexts": [],
        "end_time": None,  # epoch seconds; cleared whenever active is False
    },
    "domain_context_map": {},   # learned / overridden entries only; seed table lives in policies/
    "context_history": [],      # {context, url, timestamp, confidence}
    "parked_links": [],         # {url, title, context, timestamp}
    "saved_workspaces": [],     # {name, tabs, timestamp}
}


class StoreError(Exception):
    """Raised when the state file cannot be read or written."""


class StateStore:
    """Thin wrapper around a JSON file.  All reads go to disk — no in-process cache.

    The last state seen by this process is remembered only to work out which
    top-level keys changed, so listeners can react to writes made here and,
    through ``refresh()``, to writes made by other processes.
    """

    def __init__(self, path: Path | None = None, config: StoreConfig | None = None):
        self._config = config or StoreConfig()
        self.path = path or self._config.path
        self._listeners: list[Listener] = []
        self._last_seen: dict[str, Any] = copy.deepcopy(_DEFAULT_STATE)
        self._fingerprint: tuple[int, int] | None = None
        if self.path.exists():
            self._remember(self.load())

    # ── public API ────────────────────────────────────────────────

    def load(self) -> dict[str, Any]:
        """Read state from disk.  Returns fresh default if file is missing."""
        if not self.path.exists():
            state = copy.deepcopy(_DEFAULT_STATE)
        else:
            try:
                with open(self.path) as fh:
                    state = json.load(fh)
            except (OSError, ValueError) as exc:
                raise StoreError(f"cannot read state from {self.path}: {exc}") from exc
            if not isinstance(state, dict):
                raise StoreError(f"state file {self.path} does not hold a JSON object")
            for key, default in _DEFAULT_STATE.items():
                state.setdefault(key, copy.deepcopy(default))
        return state

    def save(self, state: dict[str, Any]) -> None:
        """Apply rotation limits and atomically write to disk."""
        state = self._rotate(state)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        except OSError as exc:
            raise StoreError(f"cannot write state to {self.path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w") as fh:
                json.dump(state, fh, indent=2)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as exc:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise StoreError(f"cannot write state to {self.path}: {exc}") from exc
        self._remember(state)

    def get(self, key: str, default: Any = None) -> Any:
        return self.load().get(key, default)

    def set(self, **partial: Any) -> None:
        """Merge top-level keys into the stored state and notify listeners."""
        previous = self._last_seen
        state = self.load()
        state.update(copy.deepcopy(partial))
        self.save(state)
        self._notify(_changed_keys(previous, state))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with the changed keys after every change.  Returns an unsubscribe."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def refresh(self) -> frozenset[str]:
        """Pick up writes made by other processes since our last write or refresh."""
        if self._current_fingerprint() == self._fingerprint:
            return frozenset()
        previous = self._last_seen
        state = self.load()
        self._remember(state)
        changed = _changed_keys(previous, state)
        if changed:
            logger.info("state changed externally: %s", ", ".join(sorted(changed)))
            self._notify(changed)
        return changed

    # ── focus state ───────────────────────────────────────────────

    def get_focus_state(self) -> dict[str, Any]:
        defaults = copy.deepcopy(_DEFAULT_STATE["focus_state"])
        return {**defaults, **(self.get("focus_state") or {})}

    def set_focus_state(self, partial: dict[str, Any]) -> None:
        """Partial merge: keys absent from *partial* keep their stored value."""
        self.set(focus_state={**self.get_focus_state(), **partial})

    # ── domain classification ─────────────────────────────────────

    def get_domain_map(self) -> dict[str, str]:
        return dict(self.get("domain_context_map") or {})

    def set_domain_category(self, domain: str, label: str) -> None:
        domain_map = self.get_domain_map()
        domain_map[domain] = label
        self.set(domain_context_map=domain_map)

    # ── context history ───────────────────────────────────────────

    def append_context(
        self,
        context: str,
        url: str,
        confidence: float,
        timestamp: float | None = None,
    ) -> None:
        history = list(self.get("context_history") or [])
        history.append({
            "context": context,
            "url": url,
            "timestamp": timestamp if timestamp is not None else time.time(),
            "confidence": confidence,
        })
        self.set(context_history=history)

    def recent_context(self, n: int = 5) -> list[dict[str, Any]]:
        """Return the most recent *n* classifications (newest first)."""
        history = self.get("context_history") or []
        return list(reversed(history[-n:])) if n > 0 else []

    # ── parked links / workspaces ─────────────────────────────────

    def park_link(
        self,
        url: str,
        context: str,
        title: str | None = None,
        timestamp: float | None = None,
    ) -> None:
        links = list(self.get("parked_links") or [])
        links.append({
            "url": url,
            "title": title,
            "context": context,
            "timestamp": timestamp if timestamp is not None else time.time(),
        })
        self.set(parked_links=links)

    def release_parked_links(self) -> list[dict[str, Any]]:
        """Return every parked link and clear the list."""
        links = list(self.get("parked_links") or [])
        if links:
            self.set(parked_links=[])
        return links

    def save_workspace(
        self,
        name: str,
        tabs: list[dict[str, Any]],
        timestamp: float | None = None,
    ) -> None:
        workspaces = [w for w in self.get("saved_workspaces") or [] if w.get("name") != name]
        workspaces.append({
            "name": name,
            "tabs": tabs,
            "timestamp": timestamp if timestamp is not None else time.time(),
        })
        self.set(saved_workspaces=workspaces)

    def get_workspace(self, name: str) -> dict[str, Any] | None:
        for workspace in self.get("saved_workspaces") or []:
            if workspace.get("name") == name:
                return workspace
        return None

    # ── internals ─────────────────────────────────────────────────

    def _rotate(self, state: dict[str, Any]) -> dict[str, Any]:
        limits = {
            "context_history": self._config.max_context_history,
            "parked_links": self._config.max_parked_links,
            "saved_workspaces": self._config.max_workspaces,
        }
        for key, limit in limits.items():
            arr = state.get(key, [])
            if isinstance(arr, list) and limit > 0 and len(arr) > limit:
                state[key] = arr[-limit:]
        return state

    def _remember(self, state: dict[str, Any]) -> None:
        self._last_seen = copy.deepcopy(state)
        self._fingerprint = self._current_fingerprint()

    def _current_fingerprint(self) -> tuple[int, int] | None:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def _notify(self, changed: frozenset[str]) -> None:
        if not changed:
            return
        for listener in list(self._listeners):
            listener(changed)


def _changed_keys(before: dict[str, Any], after: dict[str, Any]) -> frozenset[str]:
    keys = set(before) | set(after)
    return frozenset(k for k in keys if before.get(k) != after.get(k))
