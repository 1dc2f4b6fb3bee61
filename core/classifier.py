"""Domain → context classification: seed table, runtime overrides, URL helpers.

Nothing here raises on malformed input.  An unparsable URL yields an empty
domain, no keywords and no category, and "no category" never blocks.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from urllib.parse import urlparse

from core.categories import Category
from core.config import ClassifierConfig
from core.store import StateStore
from policies.default_domains import DOMAIN_CATEGORIES

logger = logging.getLogger(__name__)

_KEYWORD_SPLIT = re.compile(r"[-_]")
_MIN_KEYWORD_LEN = 3


@dataclass(frozen=True)
class PageData:
    url: str
    title: str = ""
    text: str = ""
    meta_description: str = ""
    meta_keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class ContextResult:
    """What the content classifier reports for one page."""

    primary_context: Category
    confidence: float
    secondary_contexts: tuple[tuple[Category, float], ...] = field(default=())


# ── URL helpers ───────────────────────────────────────────────────────────────


def extract_domain(url: str) -> str:
    """Lower-cased host of *url* without port.  "" when there is none."""
    try:
        host = urlparse(url).hostname
    except (ValueError, AttributeError, TypeError):
        return ""
    return (host or "").rstrip(".")


def normalize_domain(domain: str) -> str:
    """Canonical key for DomainClassification: lower-case, no port, no "www."."""
    d = str(domain or "").strip().lower().rstrip(".")
    if "://" in d:
        d = extract_domain(d)
    d = d.split("/", 1)[0].split(":", 1)[0]
    if d.startswith("www."):
        d = d[4:]
    return d


def extract_path_keywords(url: str) -> list[str]:
    """Split the URL path on "/" then "-"/"_", keeping tokens longer than two chars."""
    try:
        path = urlparse(url).path
    except (ValueError, AttributeError, TypeError):
        return []
    words: list[str] = []
    for segment in path.split("/"):
        if not segment:
            continue
        words.extend(w for w in _KEYWORD_SPLIT.split(segment) if len(w) >= _MIN_KEYWORD_LEN)
    return words


# ── classifier ────────────────────────────────────────────────────────────────


class DomainClassifier:
    """O(1) domain lookup over the seed table merged with persisted entries.

    The merged map is held in memory and reloaded whenever the store reports
    a change to ``domain_context_map``, including changes from other processes.
    """

    def __init__(self, store: StateStore, config: ClassifierConfig | None = None):
        self.store = store
        self._config = config or ClassifierConfig()
        self._map: dict[str, Category] = {}
        self.reload()
        store.subscribe(self._on_store_change)

    # ── public ────────────────────────────────────────────────────

    def classify_domain(self, domain: str) -> Category | None:
        d = str(domain or "").strip().lower().split(":", 1)[0].rstrip(".")
        if not d:
            return None
        hit = self._map.get(d)
        if hit is not None:
            return hit
        if d.startswith("www."):
            d = d[4:]
            hit = self._map.get(d)
            if hit is not None:
                return hit
        # Naive parent-domain fallback; wrong for suffixes like co.uk.
        parts = d.split(".")
        if len(parts) > 2:
            return self._map.get(".".join(parts[-2:]))
        return None

    def classify_url(self, url: str) -> Category | None:
        return self.classify_domain(extract_domain(url))

    def analyze_url(self, url: str) -> dict[Category, float]:
        """Per-category scores from URL evidence alone."""
        category = self.classify_url(url)
        return {category: 0.8} if category is not None else {}

    def record_override(self, domain: str, category: str | Category) -> bool:
        """Upsert *domain* → *category*.  Returns True when the map changed.

        The caller owns recompiling the policy afterwards.
        """
        key = normalize_domain(domain)
        if not key:
            raise ValueError(f"cannot classify an empty domain: {domain!r}")
        cat = Category.parse(category)
        if self._map.get(key) == cat:
            return False
        self.store.set_domain_category(key, cat.value)
        self._map[key] = cat
        logger.info("domain %s → %s", key, cat.value)
        return True

    def learn(self, domain: str, result: ContextResult) -> bool:
        """Record a content-classifier result if it is confident enough."""
        if result.confidence < self._config.learn_confidence_threshold:
            logger.debug(
                "not learning %s → %s (confidence %.2f < %.2f)",
                domain, result.primary_context.value, result.confidence,
                self._config.learn_confidence_threshold,
            )
            return False
        if not normalize_domain(domain):
            return False
        return self.record_override(domain, result.primary_context)

    def domain_map(self) -> dict[str, Category]:
        return dict(self._map)

    def reload(self) -> None:
        merged = dict(DOMAIN_CATEGORIES)
        for domain, label in self.store.get_domain_map().items():
            try:
                merged[domain] = Category.parse(label)
            except ValueError:
                logger.warning("ignoring stored domain %s with unknown context %r", domain, label)
        self._map = merged

    # ── internals ─────────────────────────────────────────────────

    def _on_store_change(self, changed: frozenset[str]) -> None:
        if "domain_context_map" in changed:
            self.reload()
