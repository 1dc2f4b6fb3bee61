"""Load and validate application configuration from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


# Served by the browser guard; never a real remote host.
DEFAULT_INTERCEPT_PAGE_URL = "http://focus-guard.localhost/intercept"


@dataclass(frozen=True)
class StoreConfig:
    """On-disk location and list limits for the JSON state store."""

    path: Path = Path("memory/focus_state.json")
    max_context_history: int = 100   # Keep last N classifications
    max_parked_links: int = 50       # Keep last N parked links
    max_workspaces: int = 20


@dataclass(frozen=True)
class SessionConfig:
    tick_seconds: float = 60.0            # host scheduling granularity
    blocked_cooldown_seconds: float = 30.0
    override_grace_seconds: float = 5.0


@dataclass(frozen=True)
class DriftConfig:
    switch_threshold: int = 3
    time_window_minutes: float = 30.0
    check_interval_seconds: float = 120.0


@dataclass(frozen=True)
class PolicyConfig:
    max_rules: int = 5000
    # 0 means one rule per blocked category, however many domains it holds.
    max_domains_per_rule: int = 0
    rule_id_offset: int = 100
    intercept_page_url: str = DEFAULT_INTERCEPT_PAGE_URL


@dataclass(frozen=True)
class ClassifierConfig:
    learn_confidence_threshold: float = 0.6


@dataclass(frozen=True)
class LLMConfig:
    api_key: str | None = None
    model: str = "openai/gpt-oss-20b"
    base_url: str = "https://openrouter.ai/api/v1"
    max_text_chars: int = 1500


@dataclass(frozen=True)
class BrowserConfig:
    cdp_url: str | None = None
    headless: bool = False


@dataclass(frozen=True)
class AppConfig:
    store: StoreConfig
    session: SessionConfig
    drift: DriftConfig
    policy: PolicyConfig
    classifier: ClassifierConfig
    llm: LLMConfig
    browser: BrowserConfig


def default_config() -> AppConfig:
    return AppConfig(
        store=StoreConfig(),
        session=SessionConfig(),
        drift=DriftConfig(),
        policy=PolicyConfig(),
        classifier=ClassifierConfig(),
        llm=LLMConfig(),
        browser=BrowserConfig(),
    )


def _getenv(name: str, default: str | None = None) -> str | None:
    """os.getenv wrapper that strips inline comments (e.g. '3  # note' → '3')."""
    raw = os.getenv(name, default)
    if raw is None:
        return None
    # Split on first ' #' (space-hash) to drop inline comments, then strip
    return raw.split(" #")[0].strip()


def _require(name: str) -> str:
    value = _getenv(name)
    if not value:
        raise EnvironmentError(f"Required environment variable {name} is not set")
    return value


def _getbool(name: str, default: bool) -> bool:
    value = _getenv(name)
    if not value:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def load_config() -> AppConfig:
    """Build AppConfig from environment. Every key has a default."""
    return AppConfig(
        store=StoreConfig(
            path=Path(_getenv("FOCUS_STATE_PATH", "memory/focus_state.json")),  # type: ignore[arg-type]
            max_context_history=int(_getenv("MAX_CONTEXT_HISTORY", "100")),  # type: ignore[arg-type]
        ),
        session=SessionConfig(
            tick_seconds=float(_getenv("SESSION_TICK_SECONDS", "60")),  # type: ignore[arg-type]
            blocked_cooldown_seconds=float(_getenv("BLOCKED_COOLDOWN_SECONDS", "30")),  # type: ignore[arg-type]
            override_grace_seconds=float(_getenv("OVERRIDE_GRACE_SECONDS", "5")),  # type: ignore[arg-type]
        ),
        drift=DriftConfig(
            switch_threshold=int(_getenv("DRIFT_SWITCH_THRESHOLD", "3")),  # type: ignore[arg-type]
            time_window_minutes=float(_getenv("DRIFT_WINDOW_MINUTES", "30")),  # type: ignore[arg-type]
            check_interval_seconds=float(_getenv("DRIFT_CHECK_SECONDS", "120")),  # type: ignore[arg-type]
        ),
        policy=PolicyConfig(
            max_rules=int(_getenv("POLICY_MAX_RULES", "5000")),  # type: ignore[arg-type]
            max_domains_per_rule=int(_getenv("POLICY_MAX_DOMAINS_PER_RULE", "0")),  # type: ignore[arg-type]
            intercept_page_url=_getenv("INTERCEPT_PAGE_URL", DEFAULT_INTERCEPT_PAGE_URL),  # type: ignore[arg-type]
        ),
        classifier=ClassifierConfig(
            learn_confidence_threshold=float(_getenv("CLASSIFIER_LEARN_THRESHOLD", "0.6")),  # type: ignore[arg-type]
        ),
        llm=LLMConfig(
            api_key=_getenv("OPENROUTER_API_KEY"),
            model=_getenv("CLASSIFIER_MODEL", "openai/gpt-oss-20b"),  # type: ignore[arg-type]
        ),
        browser=BrowserConfig(
            cdp_url=_getenv("BROWSER_CDP_URL") or None,
            headless=_getbool("BROWSER_HEADLESS", False),
        ),
    )
