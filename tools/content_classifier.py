"""Page-content classification via an LLM on OpenRouter.

Only consulted when the domain table has no answer.  Any model or parse
failure yields None, which the rest of the system treats as "unclassified"
(never blocked).
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from langchain_openai import ChatOpenAI

from core.categories import Category
from core.classifier import ContextResult, PageData, extract_domain, extract_path_keywords
from core.config import LLMConfig, _require

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You classify what a person is doing on a web page into exactly one of these "
    "activity contexts: " + ", ".join(c.value for c in Category) + ".\n"
    "Respond with ONLY valid JSON. No markdown. No explanation.\n"
    '{"primary_context": "<context>", "confidence": <0.0 to 1.0>, '
    '"secondary_contexts": [{"context": "<context>", "confidence": <0.0 to 1.0>}]}'
)


class ContentClassifier(ABC):
    @abstractmethod
    async def classify(self, page: PageData) -> ContextResult | None:
        ...


class LLMContentClassifier(ContentClassifier):
    def __init__(self, config: LLMConfig, llm: Any | None = None) -> None:
        self.config = config
        self.llm = llm or ChatOpenAI(
            model=config.model,
            openai_api_key=config.api_key or _require("OPENROUTER_API_KEY"),  # type: ignore[arg-type]
            base_url=config.base_url,
            temperature=0.0,
            max_tokens=256,  # type: ignore[arg-type]
        )

    async def classify(self, page: PageData) -> ContextResult | None:
        prompt = _build_prompt(page, self.config.max_text_chars)
        logger.info("classifying %s with %s …", extract_domain(page.url) or page.url, self.config.model)
        try:
            response = await self.llm.ainvoke([
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ])
            raw = str(response.content)
        except Exception as exc:
            logger.warning("  content classification failed: %s", exc)
            return None
        logger.debug("  raw LLM response: %s", raw[:500])
        result = parse_result(raw)
        if result is None:
            logger.warning("  no usable JSON from classifier")
        else:
            logger.info("  → %s (%.2f)", result.primary_context.value, result.confidence)
        return result


def _build_prompt(page: PageData, max_chars: int) -> str:
    text = " ".join(page.text.split())[:max_chars]
    keywords = ", ".join(extract_path_keywords(page.url)) or "(none)"
    return (
        f"Domain: {extract_domain(page.url)}\n"
        f"Title: {page.title}\n"
        f"Description: {page.meta_description}\n"
        f"Meta keywords: {', '.join(page.meta_keywords) or '(none)'}\n"
        f"Path keywords: {keywords}\n"
        f"Text: {text}\n"
    )


def parse_result(raw: str) -> ContextResult | None:
    """Parse the model's JSON reply.  Tolerates surrounding prose."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", raw, re.DOTALL)
        if not match:
            return None
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError:
            return None
    if not isinstance(data, dict):
        return None
    try:
        primary = Category.parse(data.get("primary_context", ""))
        confidence = min(1.0, max(0.0, float(data.get("confidence", 0.0))))
    except (TypeError, ValueError):
        return None

    secondary: list[tuple[Category, float]] = []
    for item in data.get("secondary_contexts") or []:
        try:
            secondary.append((Category.parse(item["context"]), float(item.get("confidence", 0.0))))
        except (KeyError, TypeError, ValueError, AttributeError):
            continue
    return ContextResult(primary, confidence, tuple(secondary))
