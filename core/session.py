"""Focus session state machine: Inactive ⇄ Active(end_time?).

The user picks the ALLOWED contexts; everything else that can be classified
is blocked while the session is active.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from core.categories import Category, parse_categories
from core.config import SessionConfig
from core.effects import (
    BLUE,
    RED,
    Effect,
    EffectSink,
    Notify,
    Recompile,
    ReleaseParkedLinks,
    SaveWorkspace,
    SetIndicator,
    discard_effects,
)
from core.scheduler import Scheduler, TaskSlot
from core.store import StateStore, StoreError

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Raised when a session operation is rejected."""


@dataclass(frozen=True)
class FocusSession:
    active: bool = False
    allowed_contexts: frozenset[Category] = field(default_factory=frozenset)
    end_time: float | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> FocusSession:
        allowed: set[Category] = set()
        for label in raw.get("allowed_contexts") or []:
            try:
                allowed.add(Category.parse(label))
            except ValueError:
                logger.warning("dropping unknown allowed context %r from stored state", label)
        active = bool(raw.get("active", False))
        end_time = raw.get("end_time")
        return cls(
            active=active,
            allowed_contexts=frozenset(allowed),
            end_time=float(end_time) if active and end_time is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "active": self.active,
            "allowed_contexts": sorted(c.value for c in self.allowed_contexts),
            "end_time": self.end_time,
        }


class FocusSessionMachine:
    """Owns the singleton FocusSession and its two timers.

    * expiry check: recurring, armed on every start and disarmed on every end
    * blocked cool-down: one-shot, restarted by every block decision
    """

    def __init__(
        self,
        store: StateStore,
        scheduler: Scheduler,
        config: SessionConfig | None = None,
        emit: EffectSink = discard_effects,
    ):
        self.store = store
        self.scheduler = scheduler
        self._config = config or SessionConfig()
        self._emit = emit
        self._expiry = TaskSlot(scheduler, "focus-expiry")
        self._cooldown = TaskSlot(scheduler, "blocked-cooldown")
        self.recently_blocked = False
        self._state = FocusSession.from_dict(store.get_focus_state())
        store.subscribe(self._on_store_change)

    @property
    def state(self) -> FocusSession:
        return self._state

    @property
    def expiry_armed(self) -> bool:
        return self._expiry.armed

    # ── transitions ───────────────────────────────────────────────

    def start(
        self,
        allowed: Iterable[str | Category],
        duration_minutes: float | None = None,
    ) -> list[Effect]:
        try:
            allowed_set = parse_categories(allowed)
        except ValueError as exc:
            raise SessionError(str(exc)) from exc
        if duration_minutes is not None and duration_minutes <= 0:
            raise SessionError(f"duration must be positive, got {duration_minutes}")

        end_time = (
            self.scheduler.now() + duration_minutes * 60
            if duration_minutes is not None else None
        )
        self._write(FocusSession(active=True, allowed_contexts=allowed_set, end_time=end_time))
        self._arm_expiry()
        logger.info(
            "focus session started: allowed=%s duration=%s",
            sorted(c.value for c in allowed_set) or "∅",
            f"{duration_minutes}min" if duration_minutes is not None else "unlimited",
        )

        if duration_minutes is not None:
            message = f"Focus session started for {duration_minutes:g} minutes. Stay focused!"
        else:
            message = "Focus session started. Stay focused!"
        return [
            Recompile("session started"),
            SetIndicator("•", BLUE),
            Notify("Focus Session Started", message),
        ]

    def end(self, save_workspace_name: str | None = None) -> list[Effect]:
        """Idempotent: ending an inactive session changes nothing."""
        if not self._state.active:
            self._disarm()
            return []

        self._write(FocusSession(active=False, allowed_contexts=self._state.allowed_contexts))
        self._disarm()
        logger.info("focus session ended")

        effects: list[Effect] = [Recompile("session ended"), SetIndicator("", BLUE)]
        if save_workspace_name:
            effects.append(SaveWorkspace(save_workspace_name))
        effects.append(ReleaseParkedLinks())
        effects.append(Notify("Focus Session Ended", "Great job! Your focus session has ended."))
        return effects

    def resume(self) -> list[Effect]:
        """Reconcile persisted state at process start."""
        if not self._state.active:
            return []
        if self._expired():
            logger.info("focus session expired while not running, cleaning up")
            return self.end()
        logger.info("resuming active focus session")
        self._arm_expiry()
        return [Recompile("session resumed"), SetIndicator("•", BLUE)]

    async def check_expiry(self) -> None:
        """Recurring task body; runs at tick granularity, so may end up to one tick late."""
        if not self._expired():
            return
        logger.info("focus timer expired, ending session")
        effects = self.end()
        effects.append(
            Notify("Focus Session Complete", "Your timed focus session has ended.", priority=2)
        )
        await self._emit(effects)

    # ── queries ───────────────────────────────────────────────────

    def is_active(self) -> bool:
        return self._state.active

    def would_block(self, category: Category | None) -> bool:
        """Pure block decision.  Unknown category is never blocked."""
        if not self._state.active or category is None:
            return False
        return category not in self._state.allowed_contexts

    def is_blocked(self, category: Category | None) -> bool:
        """Block decision that also raises the short-lived "recently blocked" indicator."""
        blocked = self.would_block(category)
        if blocked:
            self.recently_blocked = True
            self._cooldown.arm_once(self._config.blocked_cooldown_seconds, self._clear_recently_blocked)
        return blocked

    def time_left(self) -> float:
        """Seconds remaining; 0 when inactive or unlimited."""
        if not self._state.active or self._state.end_time is None:
            return 0.0
        return max(0.0, self._state.end_time - self.scheduler.now())

    def indicator(self) -> SetIndicator:
        if not self._state.active:
            return SetIndicator("", BLUE)
        if self.recently_blocked:
            return SetIndicator("!", RED)
        return SetIndicator("•", BLUE)

    # ── internals ─────────────────────────────────────────────────

    def _expired(self) -> bool:
        s = self._state
        return s.active and s.end_time is not None and s.end_time <= self.scheduler.now()

    def _write(self, new: FocusSession) -> None:
        previous = self._state
        self._state = new
        try:
            self.store.set_focus_state(new.to_dict())
        except StoreError:
            self._state = previous
            raise

    def _arm_expiry(self) -> None:
        self._expiry.arm_every(self._config.tick_seconds, self.check_expiry)

    def _disarm(self) -> None:
        self._expiry.disarm()
        self._cooldown.disarm()
        self.recently_blocked = False

    async def _clear_recently_blocked(self) -> None:
        if not self.recently_blocked:
            return
        self.recently_blocked = False
        await self._emit([self.indicator()])

    def _on_store_change(self, changed: frozenset[str]) -> None:
        if "focus_state" not in changed:
            return
        stored = FocusSession.from_dict(self.store.get_focus_state())
        if stored == self._state:
            return
        logger.info("focus state changed outside this process (active=%s)", stored.active)
        self._state = stored
        if stored.active:
            self._arm_expiry()
        else:
            self._disarm()
