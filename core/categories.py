from __future__ import annotations

from enum import Enum
from typing import Iterable


class Category(Enum):
    WORK = "Work"
    DEVELOPMENT = "Development"
    RESEARCH = "Research"
    LEARNING = "Learning"
    ENTERTAINMENT = "Entertainment"
    SOCIAL = "Social"
    SHOPPING = "Shopping"
    NEWS = "News"

    @classmethod
    def parse(cls, value: str | Category) -> Category:
        """Resolve a label like "work" or "Work" to its Category.

        Raises ValueError for anything outside the enumeration.
        """
        if isinstance(value, Category):
            return value
        label = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == label:
                return member
        raise ValueError(f"unknown context category: {value!r}")


ALL_CATEGORIES: frozenset[Category] = frozenset(Category)


def parse_categories(values: Iterable[str | Category]) -> frozenset[Category]:
    return frozenset(Category.parse(v) for v in values)
