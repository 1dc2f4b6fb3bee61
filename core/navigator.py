"""LangGraph state machine for one navigation: RESOLVE → DECIDE → TRACK → (INTERCEPT) → DONE.

Every node is a coroutine run on the caller's event loop; only the content
classifier awaits I/O.  Side effects leave the graph as data in ``effects``;
FocusCore executes them after ``ainvoke`` returns.
"""

from __future__ import annotations

import logging
from typing import Callable, TypedDict

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from core.categories import Category
from core.classifier import ContextResult, DomainClassifier, PageData, extract_domain
from core.drift import DriftDetector
from core.effects import Effect, Recompile, Redirect
from core.policy_compiler import intercept_url
from core.session import FocusSessionMachine
from core.store import StateStore

logger = logging.getLogger(__name__)

# Confidence recorded in history for a plain domain-table hit.
_DOMAIN_HIT_CONFIDENCE = 0.8

# ── state ─────────────────────────────────────────────────────────────────────


class NavigationState(TypedDict):
    tab_id: int | None
    url: str
    page: PageData | None               # page content, when the event carries it
    reported: ContextResult | None      # classification already done by the page side
    domain: str
    category: Category | None
    confidence: float
    blocked: bool                       # session decision
    intercepted: bool                   # decision after the override grace period
    effects: list[Effect]


def initial_navigation_state(
    url: str,
    tab_id: int | None = None,
    page: PageData | None = None,
    reported: ContextResult | None = None,
) -> NavigationState:
    return NavigationState(
        tab_id=tab_id,
        url=url,
        page=page,
        reported=reported,
        domain="",
        category=None,
        confidence=0.0,
        blocked=False,
        intercepted=False,
        effects=[],
    )


# ── graph ─────────────────────────────────────────────────────────────────────


def build_navigation_graph(
    classifier: DomainClassifier,
    session: FocusSessionMachine,
    drift: DriftDetector,
    store: StateStore,
    intercept_page_url: str,
    remember_tab: Callable[[int | None, str, Category | None], None],
    in_grace: Callable[[int | None], bool],
    content_classifier=None,
) -> CompiledStateGraph:

    # ── RESOLVE ───────────────────────────────────────────────────
    async def resolve_node(state: NavigationState) -> NavigationState:
        """Domain table first; page content only on a miss."""
        url = state["url"]
        domain = extract_domain(url)
        if not domain:
            logger.debug("no domain in %r — unclassified", url)
            return {**state, "domain": "", "category": None, "confidence": 0.0}

        effects = list(state["effects"])
        reported = state["reported"]
        page = state["page"]
        if (
            reported is None
            and page is not None
            and content_classifier is not None
            and classifier.classify_domain(domain) is None
        ):
            reported = await content_classifier.classify(page)

        if reported is not None and classifier.learn(domain, reported):
            effects.append(Recompile(f"learned {domain}"))

        category = classifier.classify_domain(domain)
        if category is None:
            confidence = 0.0
        elif reported is not None and reported.primary_context == category:
            confidence = reported.confidence
        else:
            confidence = _DOMAIN_HIT_CONFIDENCE

        if category is not None:
            store.append_context(category.value, url, confidence, session.scheduler.now())
        logger.info("resolve %s → %s", domain, category.value if category else "unclassified")
        return {
            **state,
            "domain": domain,
            "category": category,
            "confidence": confidence,
            "reported": reported,
            "effects": effects,
        }

    # ── DECIDE ────────────────────────────────────────────────────
    async def decide_node(state: NavigationState) -> NavigationState:
        blocked = session.is_blocked(state["category"])
        intercepted = blocked and not in_grace(state["tab_id"])
        if blocked and not intercepted:
            logger.info("tab %s in override grace — letting %s through", state["tab_id"], state["domain"])
        return {**state, "blocked": blocked, "intercepted": intercepted}

    # ── TRACK ─────────────────────────────────────────────────────
    async def track_node(state: NavigationState) -> NavigationState:
        category = state["category"]
        remember_tab(state["tab_id"], state["url"], category)
        if category is not None:
            drift.observe(category, state["url"])
        return state

    # ── INTERCEPT ─────────────────────────────────────────────────
    async def intercept_node(state: NavigationState) -> NavigationState:
        effects = list(state["effects"])
        # without a tab there is nothing to redirect; the indicator still flips
        if state["tab_id"] is not None:
            target = intercept_url(intercept_page_url, state["category"], state["url"])
            effects.append(Redirect(state["tab_id"], target))
        logger.info("intercepting %s (%s)", state["domain"], state["category"].value if state["category"] else "?")
        effects.append(session.indicator())
        return {**state, "effects": effects}

    def _route_after_track(state: NavigationState) -> str:
        return "intercept" if state["intercepted"] else "done"

    # ── wire the graph ────────────────────────────────────────────
    graph = StateGraph(NavigationState)
    graph.add_node("resolve", resolve_node)
    graph.add_node("decide", decide_node)
    graph.add_node("track", track_node)
    graph.add_node("intercept", intercept_node)

    graph.set_entry_point("resolve")
    graph.add_edge("resolve", "decide")
    graph.add_edge("decide", "track")
    graph.add_conditional_edges(
        "track",
        _route_after_track,
        {
            "intercept": "intercept",
            "done": END,
        },
    )
    graph.add_edge("intercept", END)

    return graph.compile()
