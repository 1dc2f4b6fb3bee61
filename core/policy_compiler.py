"""Compile {domain → context} + allowed contexts into declarative block rules.

Every recompile is a full rebuild from the latest snapshot; nothing is
patched incrementally, so the installed rules cannot drift from the state.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING, Mapping
from urllib.parse import urlencode

from core.categories import Category
from core.classifier import DomainClassifier, extract_domain
from core.config import PolicyConfig
from core.session import FocusSession, FocusSessionMachine

if TYPE_CHECKING:
    from tools.enforcement import EnforcementEngine

logger = logging.getLogger(__name__)

MAIN_FRAME = "main_frame"

_HOST_END = r"(?::\d+)?(?:[/?#]|$)"


class PolicyInstallError(Exception):
    """Raised when the enforcement engine rejects a compiled rule set."""


def intercept_url(base: str, category: Category | None = None, url: str | None = None) -> str:
    """Intercept page address carrying the detected context and the original URL."""
    params = {}
    if category is not None:
        params["context"] = category.value
    if url:
        params["url"] = url
    if not params:
        return base
    sep = "&" if "?" in base else "?"
    return f"{base}{sep}{urlencode(params)}"


def _covers_subdomains(domain: str) -> bool:
    return domain.count(".") == 1


def _hosts_pattern(domains: tuple[str, ...]) -> str:
    parents = [re.escape(d) for d in domains if _covers_subdomains(d)]
    exact = [re.escape(d) for d in domains if not _covers_subdomains(d)]
    groups = []
    if parents:
        groups.append(rf"(?:[a-z0-9-]+\.)*(?:{'|'.join(parents)})")
    if exact:
        groups.append(rf"(?:www\.)?(?:{'|'.join(exact)})")
    return "|".join(groups)


def _exclusions(
    domains: tuple[str, ...],
    category: Category,
    domain_map: Mapping[str, Category],
) -> tuple[str, ...]:
    """Table keys below a covered parent whose own category differs."""
    parents = {d for d in domains if _covers_subdomains(d)}
    if not parents:
        return ()
    return tuple(sorted(
        key for key, cat in domain_map.items()
        if cat != category and key.count(".") > 1 and ".".join(key.split(".")[-2:]) in parents
    ))


@dataclass(frozen=True)
class BlockRule:
    rule_id: int
    category: Category
    domains: tuple[str, ...]
    redirect_url: str
    # Top-level navigations only: allowed sites may embed frames/assets from blocked ones.
    resource_types: tuple[str, ...] = (MAIN_FRAME,)
    # More specific table entries under one of ``domains`` that classify differently.
    excluded: tuple[str, ...] = ()

    @cached_property
    def pattern(self) -> str:
        """Host-anchored regex matching the hosts the classifier resolves to ``domains``.

        A two-label domain also covers every subdomain, since lookups fall back
        to the last two labels.  Longer domains cover themselves and ``www.``.
        """
        hosts = _hosts_pattern(self.domains)
        guard = ""
        if self.excluded:
            skip = "|".join(re.escape(d) for d in self.excluded)
            guard = rf"(?!(?:www\.)?(?:{skip}){_HOST_END})"
        return rf"^https?://{guard}(?:{hosts}){_HOST_END}"

    @cached_property
    def _regex(self) -> re.Pattern[str]:
        return re.compile(self.pattern, re.IGNORECASE)

    def matches(self, url: str, resource_type: str = MAIN_FRAME) -> bool:
        if resource_type not in self.resource_types:
            return False
        return self._regex.match(url) is not None

    def matches_domain(self, domain: str) -> bool:
        return self.matches(f"https://{domain}/")


@dataclass(frozen=True)
class CompiledPolicy:
    rules: tuple[BlockRule, ...] = ()
    truncated: bool = False
    dropped_domains: int = 0

    def match(self, url: str, resource_type: str = MAIN_FRAME) -> BlockRule | None:
        for rule in self.rules:
            if rule.matches(url, resource_type):
                return rule
        return None

    def blocked_domains(self) -> set[str]:
        return {d for rule in self.rules for d in rule.domains}


def compile_policy(
    session: FocusSession,
    domain_map: Mapping[str, Category],
    *,
    max_rules: int,
    max_domains_per_rule: int = 0,
    rule_id_offset: int = 100,
    intercept_page_url: str,
) -> CompiledPolicy:
    """Pure: same session + domain map always yields the same policy."""
    if not session.active:
        return CompiledPolicy()

    by_category: dict[Category, list[str]] = defaultdict(list)
    for domain, category in domain_map.items():
        by_category[category].append(domain)

    rules: list[BlockRule] = []
    dropped = 0
    rule_id = rule_id_offset
    for category in Category:
        if category in session.allowed_contexts:
            continue
        domains = sorted(by_category.get(category, ()))
        if not domains:
            continue
        chunk = max_domains_per_rule if max_domains_per_rule > 0 else len(domains)
        for i in range(0, len(domains), chunk):
            group = tuple(domains[i:i + chunk])
            if len(rules) >= max_rules:
                dropped += len(group)
                continue
            rules.append(BlockRule(
                rule_id=rule_id,
                category=category,
                domains=group,
                redirect_url=intercept_url(intercept_page_url, category),
                excluded=_exclusions(group, category, domain_map),
            ))
            rule_id += 1

    return CompiledPolicy(rules=tuple(rules), truncated=dropped > 0, dropped_domains=dropped)


class PolicyCompiler:
    """Keeps the enforcement engine's rule table equal to the compiled policy."""

    def __init__(
        self,
        config: PolicyConfig,
        session: FocusSessionMachine,
        classifier: DomainClassifier,
        engine: EnforcementEngine,
    ):
        self.config = config
        self.session = session
        self.classifier = classifier
        self.engine = engine
        self.installed: CompiledPolicy | None = None
        self.stale = True

    @property
    def max_rules(self) -> int:
        return min(self.config.max_rules, self.engine.max_rules)

    def invalidate(self) -> None:
        self.stale = True

    def compile(self) -> CompiledPolicy:
        return compile_policy(
            self.session.state,
            self.classifier.domain_map(),
            max_rules=self.max_rules,
            max_domains_per_rule=self.config.max_domains_per_rule,
            rule_id_offset=self.config.rule_id_offset,
            intercept_page_url=self.config.intercept_page_url,
        )

    async def recompile(self) -> CompiledPolicy:
        """Rebuild from the current snapshot and atomically swap it into the engine."""
        policy = self.compile()
        if policy.truncated:
            logger.warning(
                "rule ceiling of %d reached — %d domain(s) left out of the policy",
                self.max_rules, policy.dropped_domains,
            )
        self.stale = False
        try:
            await self.engine.replace_rules(policy.rules)
        except Exception as exc:
            self.installed = None
            self.stale = True
            logger.error("installing %d rule(s) failed: %s", len(policy.rules), exc)
            raise PolicyInstallError(f"enforcement engine rejected the policy: {exc}") from exc
        self.installed = policy
        logger.info(
            "installed %d blocking rule(s) (session active=%s)",
            len(policy.rules), self.session.is_active(),
        )
        return policy

    def blocks_url(self, url: str) -> bool:
        """True when the installed policy would intercept a top-level load of *url*."""
        if self.installed is None:
            return False
        if not extract_domain(url):
            return False
        return self.installed.match(url) is not None
