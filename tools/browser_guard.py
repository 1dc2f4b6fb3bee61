"""Playwright-backed enforcement: a guarded browser whose top-level loads obey the rules.

Browser mode (resolved at launch time):
  - BROWSER_CDP_URL is set  →  connect to a running Chrome via CDP
  - otherwise               →  launch Chromium locally

Only main-frame navigations are checked; sub-resources and iframes always
pass so allowed pages keep working when they embed blocked-context assets.
"""

from __future__ import annotations

import asyncio
import html
import logging
from typing import Awaitable, Callable, Sequence
from urllib.parse import parse_qs, urlencode, urlparse

from playwright.async_api import Browser, BrowserContext, Page, Playwright, Request, Route, async_playwright

from core.categories import Category
from core.config import BrowserConfig
from core.policy_compiler import BlockRule, intercept_url
from tools.enforcement import EnforcementEngine, EnforcementError

logger = logging.getLogger(__name__)

NavigationListener = Callable[[int, str], Awaitable[None]]
# (tab id, action name, query parameters of the action link)
ActionListener = Callable[[int, str, dict[str, str]], Awaitable[None]]

_INTERCEPT_HTML = """<!doctype html>
<html><head><meta charset="utf-8"><title>Stay focused</title></head>
<body style="font-family: sans-serif; max-width: 36em; margin: 4em auto;">
<h1>Blocked during your focus session</h1>
<p>This page looks like <strong>{context}</strong>, which is not on your allow-list.</p>
<p><code>{url}</code></p>
<p><a href="{stay}">Stay focused</a> (save the link for after the session)</p>
<form action="{reclassify}" method="get">
<input type="hidden" name="url" value="{url}">
<label>Wrong context? This site is actually
<select name="context">{options}</select></label>
<button type="submit">Reclassify and continue</button>
</form>
</body></html>
"""

STAY_ACTION = "stay"
RECLASSIFY_ACTION = "reclassify"


class BrowserGuard(EnforcementEngine):
    def __init__(self, config: BrowserConfig, intercept_page_url: str) -> None:
        self._config = config
        self._intercept_page_url = intercept_page_url
        self._rules: tuple[BlockRule, ...] = ()
        self._pw: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._pages: dict[int, Page] = {}
        self._next_tab = 1
        self._listener: NavigationListener | None = None
        self._on_action: ActionListener | None = None
        self._pending: set[asyncio.Task] = set()
        if config.cdp_url:
            logger.info("BrowserGuard: will connect to remote CDP at %s", config.cdp_url)
        else:
            logger.info("BrowserGuard: will launch chromium locally")

    # ── lifecycle ─────────────────────────────────────────────────

    async def launch(
        self,
        on_navigation: NavigationListener | None = None,
        on_action: ActionListener | None = None,
    ) -> None:
        self._listener = on_navigation
        self._on_action = on_action
        self._pw = await async_playwright().start()
        if self._config.cdp_url:
            self._browser = await self._pw.chromium.connect_over_cdp(self._config.cdp_url)
            self._context = (
                self._browser.contexts[0] if self._browser.contexts else await self._browser.new_context()
            )
        else:
            self._browser = await self._pw.chromium.launch(headless=self._config.headless)
            self._context = await self._browser.new_context()
        await self._context.route("**/*", self._on_route)
        self._context.on("page", self._track_page)
        for page in self._context.pages:
            self._track_page(page)

    async def close(self) -> None:
        # only close if we launched it; remote browsers stay alive
        if self._browser is not None and not self._config.cdp_url:
            await self._browser.close()
        if self._pw is not None:
            await self._pw.stop()
        self._browser = None
        self._context = None
        self._pw = None

    async def open_tab(self, url: str) -> int:
        if self._context is None:
            raise EnforcementError("browser guard is not launched")
        page = await self._context.new_page()
        tab_id = self._tab_id(page)
        await page.goto(url)
        return tab_id

    async def wait_closed(self) -> None:
        """Block until the user closes the browser."""
        if self._browser is None:
            return
        closed = asyncio.Event()
        self._browser.on("disconnected", lambda _b: closed.set())
        await closed.wait()

    # ── EnforcementEngine ─────────────────────────────────────────

    async def replace_rules(self, rules: Sequence[BlockRule]) -> None:
        if len(rules) > self.max_rules:
            raise EnforcementError(f"{len(rules)} rules exceed the host limit of {self.max_rules}")
        # single assignment: routing sees either the old or the new table, never a mix
        self._rules = tuple(rules)
        logger.info("guard now enforcing %d rule(s)", len(self._rules))

    async def redirect(self, tab_id: int | None, url: str) -> None:
        page = self._pages.get(tab_id) if tab_id is not None else None
        if page is None:
            raise EnforcementError(f"no open tab {tab_id}")
        logger.info("redirecting tab %s → %s", tab_id, url)
        await page.goto(url)

    async def go_back_or_close(self, tab_id: int) -> None:
        page = self._pages.get(tab_id)
        if page is None:
            raise EnforcementError(f"no open tab {tab_id}")
        before = page.url
        await page.go_back()
        if page.url == before:
            logger.info("tab %s has no page to go back to, closing it", tab_id)
            await page.close()

    # ── routing ───────────────────────────────────────────────────

    async def _on_route(self, route: Route, request: Request) -> None:
        url = request.url
        if url.startswith(self._intercept_page_url):
            action = _intercept_action(url, self._intercept_page_url)
            if action and self._on_action is not None:
                # 204 leaves the tab on the intercept page; the action moves it afterwards
                await route.fulfill(status=204)
                tab_id = self._tab_id(request.frame.page)
                self._spawn(self._act(tab_id, action, _query(url)))
                return
            await route.fulfill(status=200, content_type="text/html", body=_render_intercept(url))
            return
        if request.is_navigation_request() and request.frame.parent_frame is None:
            for rule in self._rules:
                if rule.matches(url):
                    target = intercept_url(self._intercept_page_url, rule.category, url)
                    logger.info("rule %d blocks %s", rule.rule_id, url)
                    await route.fulfill(status=302, headers={"location": target})
                    return
        await route.continue_()

    def _track_page(self, page: Page) -> None:
        tab_id = self._tab_id(page)

        def _on_frame(frame) -> None:
            if frame != page.main_frame or self._listener is None:
                return
            if frame.url.startswith(self._intercept_page_url) or frame.url == "about:blank":
                return
            self._spawn(self._notify(tab_id, frame.url))

        page.on("framenavigated", _on_frame)
        page.on("close", lambda _p: self._pages.pop(tab_id, None))

    def _tab_id(self, page: Page) -> int:
        for tab_id, known in self._pages.items():
            if known is page:
                return tab_id
        tab_id = self._next_tab
        self._next_tab += 1
        self._pages[tab_id] = page
        return tab_id

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify(self, tab_id: int, url: str) -> None:
        try:
            await self._listener(tab_id, url)  # type: ignore[misc]
        except Exception:
            logger.exception("navigation handling failed for %s", url)

    async def _act(self, tab_id: int, action: str, params: dict[str, str]) -> None:
        try:
            await self._on_action(tab_id, action, params)  # type: ignore[misc]
        except Exception:
            logger.exception("intercept action %s failed for tab %s", action, tab_id)


def _query(url: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlparse(url).query).items()}


def _intercept_action(url: str, base: str) -> str:
    """Action name for ``<base>/<action>`` links on the intercept page, "" otherwise."""
    rest = urlparse(url).path[len(urlparse(base).path):].strip("/")
    return rest if rest in (STAY_ACTION, RECLASSIFY_ACTION) else ""


def _render_intercept(url: str) -> str:
    parts = urlparse(url)
    base = f"{parts.scheme}://{parts.netloc}{parts.path}"
    params = _query(url)
    context = params.get("context", "Unknown")
    original = params.get("url", "")
    stay = f"{base}/{STAY_ACTION}?" + urlencode({"url": original, "context": context})
    options = "".join(
        f'<option value="{c.value}">{c.value}</option>' for c in Category if c.value != context
    )
    return _INTERCEPT_HTML.format(
        context=html.escape(context),
        url=html.escape(original),
        stay=html.escape(stay),
        reclassify=html.escape(f"{base}/{RECLASSIFY_ACTION}"),
        options=options,
    )
