"""Closed set of request messages accepted from a UI or messaging boundary.

Inputs are plain data (category labels, minutes, domains, URLs).  ``dispatch``
never raises for rejected or failed operations; it answers with
``Response(success=False, error=...)`` and logs instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Union

from core.categories import Category
from core.classifier import ContextResult, PageData, extract_domain
from core.focus_core import FocusCore
from core.policy_compiler import PolicyInstallError
from core.session import SessionError
from core.store import StoreError
from tools.enforcement import EnforcementError
from tools.history_tool import HistoryTool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartSession:
    allowed_contexts: list[str]
    duration_minutes: float | None = None


@dataclass(frozen=True)
class EndSession:
    save_workspace_name: str | None = None


@dataclass(frozen=True)
class GetTimeLeft:
    pass


@dataclass(frozen=True)
class GetFocusState:
    pass


@dataclass(frozen=True)
class CheckFocusStatus:
    pass


@dataclass(frozen=True)
class ClassifyDomain:
    domain: str


@dataclass(frozen=True)
class RecordOverride:
    domain: str
    category: str


@dataclass(frozen=True)
class ContextDetected:
    """Classification reported by the page side after the page loaded."""

    url: str
    context: str
    confidence: float
    tab_id: int | None = None
    secondary_contexts: list[tuple[str, float]] = field(default_factory=list)


@dataclass(frozen=True)
class Navigate:
    url: str
    tab_id: int | None = None
    title: str = ""
    text: str = ""


@dataclass(frozen=True)
class OverrideBlock:
    """Let *tab_id* through briefly; with *url*, send the tab there right away."""

    tab_id: int
    url: str | None = None


@dataclass(frozen=True)
class TabClosed:
    tab_id: int


@dataclass(frozen=True)
class ParkLink:
    url: str
    context: str
    title: str | None = None


@dataclass(frozen=True)
class StayFocused:
    url: str
    context: str
    title: str | None = None
    tab_id: int | None = None


@dataclass(frozen=True)
class ReleaseParkedLinks:
    pass


@dataclass(frozen=True)
class RestoreWorkspace:
    name: str


@dataclass(frozen=True)
class GetHistory:
    n: int = 10


Message = Union[
    StartSession, EndSession, GetTimeLeft, GetFocusState, CheckFocusStatus,
    ClassifyDomain, RecordOverride, ContextDetected, Navigate, OverrideBlock,
    TabClosed, ParkLink, StayFocused, ReleaseParkedLinks, RestoreWorkspace, GetHistory,
]


@dataclass(frozen=True)
class Response:
    success: bool = True
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


_REJECTED = (SessionError, ValueError)
_FAILED = (StoreError, PolicyInstallError, EnforcementError)


async def dispatch(core: FocusCore, message: Message) -> Response:
    try:
        return await _handle(core, message)
    except _REJECTED as exc:
        logger.info("%s rejected: %s", type(message).__name__, exc)
        return Response(success=False, error=str(exc))
    except _FAILED as exc:
        logger.error("%s failed: %s", type(message).__name__, exc)
        return Response(success=False, error=str(exc))


async def _handle(core: FocusCore, message: Message) -> Response:
    if isinstance(message, StartSession):
        await core.start(message.allowed_contexts, message.duration_minutes)
        return Response()

    elif isinstance(message, EndSession):
        await core.end(message.save_workspace_name)
        return Response()

    elif isinstance(message, GetTimeLeft):
        return Response(data={"seconds": core.time_left()})

    elif isinstance(message, GetFocusState):
        return Response(data=core.session.state.to_dict())

    elif isinstance(message, CheckFocusStatus):
        return Response(data=core.status().to_dict())

    elif isinstance(message, ClassifyDomain):
        category = core.classify_domain(message.domain)
        return Response(data={"domain": message.domain, "context": category.value if category else None})

    elif isinstance(message, RecordOverride):
        await core.record_override(message.domain, message.category)
        return Response()

    elif isinstance(message, ContextDetected):
        reported = ContextResult(
            primary_context=Category.parse(message.context),
            confidence=float(message.confidence),
            secondary_contexts=tuple(
                (Category.parse(label), float(score)) for label, score in message.secondary_contexts
            ),
        )
        result = await core.navigate(message.url, tab_id=message.tab_id, reported=reported)
        return _navigation_response(result)

    elif isinstance(message, Navigate):
        page = PageData(url=message.url, title=message.title, text=message.text) if message.text else None
        result = await core.navigate(message.url, tab_id=message.tab_id, page=page)
        return _navigation_response(result)

    elif isinstance(message, OverrideBlock):
        core.grant_grace(message.tab_id)
        if message.url:
            await core.engine.redirect(message.tab_id, message.url)
        return Response()

    elif isinstance(message, TabClosed):
        core.forget_tab(message.tab_id)
        return Response()

    elif isinstance(message, ParkLink):
        core.park_link(message.url, message.context, message.title)
        return Response()

    elif isinstance(message, StayFocused):
        await core.stay_focused(message.url, message.context, message.title, message.tab_id)
        return Response()

    elif isinstance(message, ReleaseParkedLinks):
        links = core.store.release_parked_links()
        return Response(data={"links": links})

    elif isinstance(message, RestoreWorkspace):
        tab_ids = await core.restore_workspace(message.name)
        return Response(data={"tab_ids": tab_ids})

    elif isinstance(message, GetHistory):
        return Response(data={"history": HistoryTool(core.store).recent(message.n)})

    raise ValueError(f"unsupported message type: {type(message).__name__}")


def _navigation_response(result) -> Response:
    category = result["category"]
    return Response(data={
        "domain": result["domain"],
        "context": category.value if category else None,
        "blocked": result["blocked"],
        "intercepted": result["intercepted"],
    })


async def handle_intercept_action(
    core: FocusCore, tab_id: int, action: str, params: dict[str, str]
) -> Response:
    """Turn a choice made on the intercept page into messages.

    ``stay`` parks the blocked link and leaves the page.  ``reclassify``
    records the chosen context for the blocked domain, then overrides the
    block and sends the tab back to the link.
    """
    url = params.get("url", "")
    context = params.get("context", "")
    if action == "stay":
        return await dispatch(core, StayFocused(url, context, params.get("title"), tab_id))
    if action == "reclassify":
        response = await dispatch(core, RecordOverride(extract_domain(url), context))
        if not response.success:
            return response
        return await dispatch(core, OverrideBlock(tab_id, url))
    logger.warning("unknown intercept action %r from tab %s", action, tab_id)
    return Response(success=False, error=f"unknown intercept action: {action}")
