"""Process-scoped focus state handle: wires classifier, session, drift and compiler.

All in-memory caches (tab → context, override grace, drift window) live on
this object and are cleared when a session ends or the process restarts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from core.categories import Category
from core.classifier import ContextResult, DomainClassifier, PageData
from core.config import AppConfig
from core.drift import DriftDetector, FocusStatus
from core.effects import (
    RED,
    Effect,
    Notify,
    Recompile,
    Redirect,
    ReleaseParkedLinks,
    SaveWorkspace,
    SetIndicator,
)
from core.navigator import NavigationState, build_navigation_graph, initial_navigation_state
from core.policy_compiler import CompiledPolicy, PolicyCompiler
from core.scheduler import Scheduler, TaskHandle, TaskSlot
from core.session import FocusSessionMachine
from core.store import StateStore
from tools.enforcement import EnforcementEngine
from tools.notifier import Notifier

logger = logging.getLogger(__name__)

_WATCHED_KEYS = frozenset({"focus_state", "domain_context_map"})


@dataclass(frozen=True)
class TabContext:
    url: str
    category: Category | None


class FocusCore:
    def __init__(
        self,
        config: AppConfig,
        store: StateStore,
        scheduler: Scheduler,
        engine: EnforcementEngine,
        notifier: Notifier | None = None,
        content_classifier=None,
    ):
        self.config = config
        self.store = store
        self.scheduler = scheduler
        self.engine = engine
        self.notifier = notifier or Notifier()

        self.classifier = DomainClassifier(store, config.classifier)
        self.session = FocusSessionMachine(store, scheduler, config.session, emit=self.execute)
        self.drift = DriftDetector(config.drift, scheduler.now, self.session.would_block)
        self.compiler = PolicyCompiler(config.policy, self.session, self.classifier, engine)

        self.tabs: dict[int, TabContext] = {}
        self._tabs_at_end: dict[int, TabContext] = {}
        self._grace: dict[int, TaskHandle] = {}
        self._drift_task = TaskSlot(scheduler, "drift-check")
        self._maintenance = TaskSlot(scheduler, "maintenance")
        self._drift_warnings = 0

        self.navigator = build_navigation_graph(
            self.classifier,
            self.session,
            self.drift,
            store,
            config.policy.intercept_page_url,
            remember_tab=self._remember_tab,
            in_grace=self.in_grace,
            content_classifier=content_classifier,
        )
        store.subscribe(self._on_store_change)

    # ── lifecycle ─────────────────────────────────────────────────

    async def boot(self) -> CompiledPolicy:
        """Reconcile persisted state, install the initial policy and start maintenance."""
        await self.execute(self.session.resume())
        self._sync_drift_task()
        self._maintenance.arm_every(self.config.session.tick_seconds, self.maintenance_tick)
        return await self.recompile()

    def shutdown(self) -> None:
        self._maintenance.disarm()
        self._drift_task.disarm()
        for handle in self._grace.values():
            handle.cancel()
        self._grace.clear()

    async def maintenance_tick(self) -> None:
        """Recompile when another process changed the session or the domain map."""
        changed = self.store.refresh()
        if changed & _WATCHED_KEYS:
            await self.recompile()

    # ── exposed operations ────────────────────────────────────────

    async def start(self, allowed: Iterable[str | Category], duration_minutes: float | None = None) -> None:
        effects = self.session.start(allowed, duration_minutes)
        self.drift.reset()
        self._drift_warnings = 0
        self._drift_task.arm_every(self.config.drift.check_interval_seconds, self._drift_tick)
        await self.execute(effects)

    async def end(self, save_workspace_name: str | None = None) -> None:
        await self.execute(self.session.end(save_workspace_name))

    async def record_override(self, domain: str, category: str | Category) -> None:
        """Upsert a domain's context and wait for the policy to be reinstalled."""
        self.classifier.record_override(domain, category)
        await self.recompile()

    async def recompile(self) -> CompiledPolicy:
        return await self.compiler.recompile()

    def classify_domain(self, domain: str) -> Category | None:
        return self.classifier.classify_domain(domain)

    def is_blocked(self, category: str | Category | None) -> bool:
        if category is None:
            return False
        try:
            cat = Category.parse(category)
        except ValueError:
            return False
        return self.session.is_blocked(cat)

    def is_active(self) -> bool:
        return self.session.is_active()

    def time_left(self) -> float:
        return self.session.time_left()

    def status(self) -> FocusStatus:
        return self.drift.status()

    async def navigate(
        self,
        url: str,
        tab_id: int | None = None,
        page: PageData | None = None,
        reported: ContextResult | None = None,
    ) -> NavigationState:
        """Run one navigation/observation through the graph and carry out its effects."""
        result: NavigationState = await self.navigator.ainvoke(
            initial_navigation_state(url, tab_id=tab_id, page=page, reported=reported)
        )
        await self.execute(result["effects"])
        return result

    def grant_grace(self, tab_id: int) -> None:
        """Let *tab_id* through for a few seconds after the user overrides a block."""
        previous = self._grace.pop(tab_id, None)
        if previous is not None:
            previous.cancel()

        async def _expire() -> None:
            self._grace.pop(tab_id, None)
            logger.debug("tab %s grace period over", tab_id)

        self._grace[tab_id] = self.scheduler.call_later(
            self.config.session.override_grace_seconds, _expire, f"grace-{tab_id}"
        )

    def in_grace(self, tab_id: int | None) -> bool:
        return tab_id is not None and tab_id in self._grace

    def forget_tab(self, tab_id: int) -> None:
        self.tabs.pop(tab_id, None)
        handle = self._grace.pop(tab_id, None)
        if handle is not None:
            handle.cancel()

    # ── parked links / workspaces ─────────────────────────────────

    def park_link(self, url: str, context: str | Category, title: str | None = None) -> None:
        category = Category.parse(context)
        self.store.park_link(url, category.value, title, self.scheduler.now())
        logger.info("parked %s (%s)", title or url, category.value)

    async def stay_focused(
        self,
        url: str,
        context: str | Category,
        title: str | None = None,
        tab_id: int | None = None,
    ) -> None:
        """Park the blocked link for after the session, then leave the intercept page."""
        self.park_link(url, context, title)
        if tab_id is not None:
            await self.engine.go_back_or_close(tab_id)

    async def restore_workspace(self, name: str) -> list[int]:
        """Reopen every tab of a saved workspace.  Blocking rules still apply to each load."""
        workspace = self.store.get_workspace(name)
        if workspace is None:
            raise ValueError(f"no saved workspace named {name!r}")
        tab_ids = [await self.engine.open_tab(tab["url"]) for tab in workspace.get("tabs") or []]
        logger.info("workspace %r restored into %d tab(s)", name, len(tab_ids))
        return tab_ids

    # ── drift ─────────────────────────────────────────────────────

    async def check_drift(self) -> FocusStatus:
        """Advisory warning with escalating priority; never blocks by itself."""
        status = self.drift.status()
        if not self.session.is_active() or not status.is_lost_focus:
            self._drift_warnings = 0
            return status

        self._drift_warnings += 1
        message = "YOU'RE DRIFTING FROM YOUR FOCUS TASK!"
        if status.context_switches:
            last = status.context_switches[-1]
            message = f"FOCUS LOST: Switched from {last.from_context.value} to {last.to_context.value}"
        logger.info("drift warning #%d: %s", self._drift_warnings, message)
        await self.execute([
            Notify("FOCUS ALERT!", message, priority=min(2, self._drift_warnings)),
            SetIndicator("!", RED),
        ])
        return status

    # ── effects ───────────────────────────────────────────────────

    async def execute(self, effects: Sequence[Effect]) -> None:
        """Carry out effects in order.  Recompile/redirect failures propagate."""
        for effect in effects:
            if isinstance(effect, Recompile):
                logger.debug("recompile: %s", effect.reason)
                await self.recompile()
            elif isinstance(effect, Redirect):
                await self.engine.redirect(effect.tab_id, effect.url)
            elif isinstance(effect, Notify):
                self.notifier.show(effect.title, effect.message, effect.priority)
            elif isinstance(effect, SetIndicator):
                self.notifier.set_indicator(effect.text, effect.color)
            elif isinstance(effect, SaveWorkspace):
                source = self.tabs if self.session.is_active() else self._tabs_at_end
                tabs = [
                    {"tab_id": tab_id, "url": t.url, "context": t.category.value if t.category else None}
                    for tab_id, t in sorted(source.items())
                ]
                self.store.save_workspace(effect.name, tabs, self.scheduler.now())
                logger.info("workspace %r saved with %d tab(s)", effect.name, len(tabs))
            elif isinstance(effect, ReleaseParkedLinks):
                released = self.store.release_parked_links()
                if released:
                    self.notifier.show(
                        "Parked links",
                        f"{len(released)} link(s) saved during your session are ready: "
                        + ", ".join(link.get("title") or link["url"] for link in released),
                    )
            else:
                logger.warning("unknown effect %r ignored", effect)

    # ── internals ─────────────────────────────────────────────────

    def _remember_tab(self, tab_id: int | None, url: str, category: Category | None) -> None:
        if tab_id is not None:
            self.tabs[tab_id] = TabContext(url, category)

    def _clear_session_caches(self) -> None:
        """Drop everything tied to the session that just ended.

        The tab cache is kept aside so a workspace save requested by the same
        end() still sees the tabs that were open.
        """
        self._drift_task.disarm()
        self.drift.reset()
        self._drift_warnings = 0
        self._tabs_at_end = dict(self.tabs)
        self.tabs.clear()
        for handle in self._grace.values():
            handle.cancel()
        self._grace.clear()

    def _sync_drift_task(self) -> None:
        if self.session.is_active():
            if not self._drift_task.armed:
                self._drift_task.arm_every(self.config.drift.check_interval_seconds, self._drift_tick)
        else:
            self._drift_task.disarm()

    async def _drift_tick(self) -> None:
        await self.check_drift()

    def _on_store_change(self, changed: frozenset[str]) -> None:
        if changed & _WATCHED_KEYS:
            self.compiler.invalidate()
        if "focus_state" not in changed:
            return
        if self.session.is_active():
            self._sync_drift_task()
        else:
            self._clear_session_caches()
