"""Entry point: load config → build the focus core → run one command."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from core.config import AppConfig, load_config
from core.focus_core import FocusCore
from core.messages import (
    ClassifyDomain,
    EndSession,
    GetHistory,
    ParkLink,
    RecordOverride,
    ReleaseParkedLinks,
    RestoreWorkspace,
    Response,
    StartSession,
    dispatch,
    handle_intercept_action,
)
from core.scheduler import AsyncioScheduler
from core.store import StateStore, StoreError
from tools.enforcement import EnforcementEngine, InMemoryEnforcement

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Focus session guard")
    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="start a focus session")
    start.add_argument("--allow", nargs="*", default=[], metavar="CONTEXT",
                       help="contexts allowed during the session (none = block everything classified)")
    start.add_argument("--minutes", type=float, default=None, help="session length; omit for unlimited")

    end = sub.add_parser("end", help="end the focus session")
    end.add_argument("--save-workspace", default=None, metavar="NAME")

    sub.add_parser("status", help="show session state and time left")

    classify = sub.add_parser("classify", help="look up a domain's context")
    classify.add_argument("domain")

    override = sub.add_parser("override", help="set a domain's context")
    override.add_argument("domain")
    override.add_argument("context")

    history = sub.add_parser("history", help="recent classifications")
    history.add_argument("-n", type=int, default=10)

    park = sub.add_parser("park", help="save a link for after the session")
    park.add_argument("url")
    park.add_argument("context")
    park.add_argument("--title", default=None)

    sub.add_parser("release", help="release parked links now")

    guard = sub.add_parser("guard", help="open a guarded browser and enforce the session")
    guard.add_argument("url", nargs="?", default="about:blank")
    guard.add_argument("--workspace", default=None, help="reopen a saved workspace on start")
    return parser.parse_args(argv)


def build_core(config: AppConfig, engine: EnforcementEngine) -> FocusCore:
    content_classifier = None
    if config.llm.api_key:
        from tools.content_classifier import LLMContentClassifier

        content_classifier = LLMContentClassifier(config.llm)
    return FocusCore(
        config,
        StateStore(config=config.store),
        AsyncioScheduler(),
        engine,
        content_classifier=content_classifier,
    )


async def run_command(args: argparse.Namespace, config: AppConfig) -> int:
    if args.command == "guard":
        return await run_guard(args, config)

    core = build_core(config, InMemoryEnforcement())
    if args.command == "start":
        response = await dispatch(core, StartSession(args.allow, args.minutes))
    elif args.command == "end":
        response = await dispatch(core, EndSession(args.save_workspace))
    elif args.command == "status":
        state = core.session.state
        print(f"active:    {state.active}")
        print(f"allowed:   {', '.join(sorted(c.value for c in state.allowed_contexts)) or '-'}")
        left = core.time_left()
        print(f"time left: {int(left // 60)}:{int(left % 60):02d}" if state.end_time else "time left: unlimited")
        response = Response()
    elif args.command == "classify":
        response = await dispatch(core, ClassifyDomain(args.domain))
        print(response.data.get("context") or "unclassified")
    elif args.command == "override":
        response = await dispatch(core, RecordOverride(args.domain, args.context))
    elif args.command == "history":
        response = await dispatch(core, GetHistory(args.n))
        print(response.data.get("history", ""))
    elif args.command == "park":
        response = await dispatch(core, ParkLink(args.url, args.context, args.title))
    else:  # release
        response = await dispatch(core, ReleaseParkedLinks())
        for link in response.data.get("links", []):
            print(link["url"])

    if not response.success:
        logger.error("%s failed: %s", args.command, response.error)
        return 1
    return 0


async def run_guard(args: argparse.Namespace, config: AppConfig) -> int:
    from tools.browser_guard import BrowserGuard

    guard = BrowserGuard(config.browser, config.policy.intercept_page_url)
    core = build_core(config, guard)

    async def _on_navigation(tab_id: int, url: str) -> None:
        await core.navigate(url, tab_id=tab_id)

    async def _on_action(tab_id: int, action: str, params: dict[str, str]) -> None:
        response = await handle_intercept_action(core, tab_id, action, params)
        if not response.success:
            logger.warning("intercept action %s failed: %s", action, response.error)

    await guard.launch(on_navigation=_on_navigation, on_action=_on_action)
    try:
        policy = await core.boot()
        logger.info("guard running — %d rule(s) installed", len(policy.rules))
        await guard.open_tab(args.url)
        if args.workspace:
            response = await dispatch(core, RestoreWorkspace(args.workspace))
            if not response.success:
                logger.warning("workspace %r not restored: %s", args.workspace, response.error)
        await guard.wait_closed()
    finally:
        core.shutdown()
        await guard.close()
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    try:
        config = load_config()
    except (EnvironmentError, ValueError) as exc:
        logger.error("configuration error: %s", exc)
        sys.exit(1)

    try:
        code = asyncio.run(run_command(args, config))
    except StoreError as exc:
        logger.error("state store error: %s", exc)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
