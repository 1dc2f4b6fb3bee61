"""Side effects returned as data by the session machine and the navigator.

FocusCore.execute() is the only place that carries them out.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, Union

BLUE = "#1565c0"
RED = "#d32f2f"


@dataclass(frozen=True)
class Notify:
    title: str
    message: str
    priority: int = 0


@dataclass(frozen=True)
class SetIndicator:
    text: str
    color: str = BLUE


@dataclass(frozen=True)
class Redirect:
    tab_id: int | None
    url: str


@dataclass(frozen=True)
class Recompile:
    reason: str = ""


@dataclass(frozen=True)
class SaveWorkspace:
    name: str


@dataclass(frozen=True)
class ReleaseParkedLinks:
    pass


Effect = Union[Notify, SetIndicator, Redirect, Recompile, SaveWorkspace, ReleaseParkedLinks]
EffectSink = Callable[[Sequence[Effect]], Awaitable[None]]


async def discard_effects(effects: Sequence[Effect]) -> None:
    return None
