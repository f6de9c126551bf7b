from __future__ import annotations

"""Generator protocol and shared candidate construction.

A generator turns an intent (plus optional correction context) into a
``Candidate``. Backends differ only in where the script comes from; every
one of them builds its result through ``build_candidate`` so the requested
permissions always pass through the ``PermissionPolicy`` before anything
can be cached.
"""

from typing import Any, Iterable, Optional, Protocol

from ..permissions.policy import PermissionPolicy
from ..schemas.domain import Candidate, CorrectionContext


class Generator(Protocol):
    """Protocol for generator backends."""

    name: str

    def generate(self, intent: str, context: Optional[CorrectionContext] = None) -> Candidate:
        """
        Produce a candidate artifact for ``intent``.

        Raises:
            GenerationError: On any failure; no candidate is returned.
        """
        ...


def build_candidate(
    *,
    script: str,
    permissions: Iterable[Any],
    explanation: str,
    policy: PermissionPolicy,
) -> Candidate:
    """
    Validate requested permissions and assemble a candidate.

    Raises:
        UnrecognizedPermission: If any permission is outside the grammar or allow-list.
    """
    grants = policy.validate(permissions)
    return Candidate(script=script, permissions=grants, explanation=explanation)


def command_of(intent: str) -> str:
    """The leading word of an intent, which is the command name for literal invocations."""
    parts = intent.strip().split()
    return parts[0].lower() if parts else ""
