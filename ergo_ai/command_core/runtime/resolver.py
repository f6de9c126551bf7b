from __future__ import annotations

"""Resolution of a typed command to an execution plan.

Precedence is fixed: an executable on the system PATH always wins, then a
cached artifact in the current mode's namespace, and only then generation.
The resolver performs no side effects beyond the injected lookups.
"""

import re
import shutil
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Union

from ergo_ai.core.config import Mode
from ergo_ai.core.logging_config import get_logger

from ..repos.interfaces import ArtifactRepository
from ..schemas.domain import ArtifactRecord

logger = get_logger(__name__)

PathLookup = Callable[[str], Optional[str]]
Preflight = Callable[[], None]

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")
MAX_SLUG_LENGTH = 64


@dataclass(frozen=True)
class SystemPath:
    path: str


@dataclass(frozen=True)
class Cached:
    record: ArtifactRecord


@dataclass(frozen=True)
class Generate:
    intent: str


ExecutionPlan = Union[SystemPath, Cached, Generate]


@dataclass(frozen=True)
class Invocation:
    """What the user typed, split into a command name and its arguments.

    ``free_text`` is set when the whole request was a single phrase such as
    ``ergo "show me the date"``; ``name`` is then a slug of that phrase.
    """

    name: str
    args: List[str] = field(default_factory=list)
    free_text: Optional[str] = None

    @property
    def intent(self) -> str:
        if self.free_text is not None:
            return self.free_text
        return " ".join([self.name, *self.args])


def slugify(text: str) -> str:
    """Deterministic command name for a free-text request."""
    slug = _SLUG_STRIP_RE.sub("-", text.lower()).strip("-")
    slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or "command"


def parse_invocation(argv: Sequence[str]) -> Invocation:
    """
    Split raw arguments into an ``Invocation``.

    Raises:
        ValueError: If ``argv`` is empty or the command name is blank.
    """
    if not argv:
        raise ValueError("no command given")
    first, rest = argv[0], list(argv[1:])
    if not first.strip():
        raise ValueError("command name must not be blank")
    if not rest and len(first.split()) > 1:
        phrase = " ".join(first.split())
        return Invocation(name=slugify(phrase), free_text=phrase)
    return Invocation(name=first, args=rest)


class Resolver:
    """Decide whether a command runs from PATH, from the cache, or needs generating.

    Args:
        cache: Repository for the active mode.
        path_lookup: Returns the absolute path of an executable or None.
        preflight: Called after a PATH miss and before the cache is consulted;
            may raise to abort resolution (e.g. a missing credential).
    """

    def __init__(
        self,
        cache: ArtifactRepository,
        *,
        path_lookup: PathLookup = shutil.which,
        preflight: Optional[Preflight] = None,
    ) -> None:
        self._cache = cache
        self._path_lookup = path_lookup
        self._preflight = preflight

    def resolve(self, name: str, args: Sequence[str], mode: Mode, free_text: Optional[str] = None) -> ExecutionPlan:
        if Mode(mode) != self._cache.mode:
            raise ValueError(f"resolver cache is bound to {self._cache.mode.value}, not {Mode(mode).value}")

        if free_text is None:
            path = self._path_lookup(name)
            if path:
                logger.debug(f"'{name}' found on PATH at {path}")
                return SystemPath(path)

        if self._preflight is not None:
            self._preflight()

        record = self._cache.get(name)
        if record is not None:
            return Cached(record)

        intent = free_text if free_text is not None else " ".join([name, *args])
        logger.debug(f"'{name}' not found; generation required for intent '{intent}'")
        return Generate(intent)

    def resolve_invocation(self, invocation: Invocation, mode: Mode) -> ExecutionPlan:
        return self.resolve(invocation.name, invocation.args, mode, invocation.free_text)
