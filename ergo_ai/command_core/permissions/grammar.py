from __future__ import annotations

"""Permission grammar for generated artifacts.

An artifact declares the capabilities it needs as a list of grants. Each
grant names one of a closed set of kinds and, optionally, a target that
narrows it (a path, a host, an environment variable, an executable).

Accepted textual forms::

    --allow-read              broad grant
    --allow-net=wttr.in       targeted grant
    --allow-read=/tmp,/etc    expands into one grant per target
    read / net:wttr.in        shorthand, normalised to the flag form

Anything that does not name a recognised kind, including blanket grants such
as ``--allow-all`` / ``-A``, is rejected by ``parse_permission``.
"""

import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ConfigDict, field_validator

from ..errors import UnrecognizedPermission
from ..schemas.base import BaseSchema

_PERMISSION_RE = re.compile(r"^(?:--)?(?:allow-)?(?P<kind>[A-Za-z]+)(?:[=:](?P<targets>.*))?$", re.DOTALL)


class PermissionKind(str, Enum):
    """Capability kinds an artifact may request."""

    read = "read"
    write = "write"
    net = "net"
    env = "env"
    run = "run"


KIND_DESCRIPTIONS: Dict[PermissionKind, str] = {
    PermissionKind.read: "read files",
    PermissionKind.write: "write files",
    PermissionKind.net: "make network requests",
    PermissionKind.env: "read environment variables",
    PermissionKind.run: "spawn subprocesses",
}


class PermissionGrant(BaseSchema):
    """One declared capability.

    ``target`` is ``None`` for a broad grant of the kind. ``reason`` is the
    generator's justification and is shown to the user, but it is not part of
    the grant's identity and does not contribute to the content hash.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    kind: PermissionKind
    target: Optional[str] = None
    reason: Optional[str] = None

    @field_validator("target")
    @classmethod
    def _target_is_single_value(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value or "," in value:
            raise ValueError("permission target must be a single non-empty value")
        return value

    @property
    def key(self) -> tuple[PermissionKind, Optional[str]]:
        return self.kind, self.target

    def to_flag(self) -> str:
        """Render as a single runtime flag."""
        if self.target is None:
            return f"--allow-{self.kind.value}"
        return f"--allow-{self.kind.value}={self.target}"

    def describe(self) -> str:
        """Human readable summary used by the approval dialog."""
        scope = KIND_DESCRIPTIONS[self.kind]
        if self.target is None:
            return f"{scope} (unrestricted)"
        return f"{scope}: {self.target}"


def parse_permission(text: str, *, reason: Optional[str] = None) -> List[PermissionGrant]:
    """
    Parse one textual permission into grants.

    Args:
        text: The permission in flag or shorthand form.
        reason: Optional justification to attach to every resulting grant.

    Returns:
        One grant per target, or a single broad grant.

    Raises:
        UnrecognizedPermission: If the text does not name a recognised kind or
            has an empty target list.
    """
    raw = str(text).strip()
    match = _PERMISSION_RE.match(raw)
    if not match:
        raise UnrecognizedPermission([raw])
    try:
        kind = PermissionKind(match.group("kind").lower())
    except ValueError:
        raise UnrecognizedPermission([raw]) from None

    targets_part = match.group("targets")
    if targets_part is None:
        return [PermissionGrant(kind=kind, reason=reason)]

    targets = [t.strip() for t in targets_part.split(",") if t.strip()]
    if not targets:
        raise UnrecognizedPermission([raw])
    return [PermissionGrant(kind=kind, target=t, reason=reason) for t in targets]


def coerce_grants(item: Any) -> List[PermissionGrant]:
    """Accept a grant, a textual permission, or a ``{"permission", "reason"}`` mapping."""
    if isinstance(item, PermissionGrant):
        return [item]
    if isinstance(item, dict):
        if "kind" in item:
            try:
                return [PermissionGrant.model_validate(item)]
            except ValueError:
                raise UnrecognizedPermission([str(item.get("kind"))]) from None
        text = item.get("permission")
        if not isinstance(text, str):
            raise UnrecognizedPermission([repr(item)])
        reason = item.get("reason")
        return parse_permission(text, reason=str(reason) if reason else None)
    if isinstance(item, str):
        return parse_permission(item)
    raise UnrecognizedPermission([repr(item)])


def normalize_grants(grants: Iterable[PermissionGrant]) -> List[PermissionGrant]:
    """
    Deduplicate grants while preserving first-seen order.

    A broad grant of a kind subsumes every targeted grant of the same kind.
    The first non-empty reason seen for a grant is kept.
    """
    grants = list(grants)
    broad_kinds = {g.kind for g in grants if g.target is None}

    ordered: Dict[tuple, PermissionGrant] = {}
    for grant in grants:
        if grant.target is not None and grant.kind in broad_kinds:
            continue
        existing = ordered.get(grant.key)
        if existing is None:
            ordered[grant.key] = grant
        elif existing.reason is None and grant.reason:
            ordered[grant.key] = existing.model_copy(update={"reason": grant.reason})
    return list(ordered.values())


def canonical_permissions(grants: Iterable[PermissionGrant]) -> List[str]:
    """Reason-free representation used for hashing and comparison."""
    return [g.to_flag() for g in grants]


def to_runtime_flags(grants: Iterable[PermissionGrant]) -> List[str]:
    """
    Render grants as runtime flags: one flag per kind, targets comma-joined.

    Kinds appear in the order they were first declared.
    """
    by_kind: Dict[PermissionKind, Optional[List[str]]] = {}
    for grant in grants:
        if grant.kind not in by_kind:
            by_kind[grant.kind] = []
        targets = by_kind[grant.kind]
        if grant.target is None:
            by_kind[grant.kind] = None
        elif targets is not None and grant.target not in targets:
            targets.append(grant.target)

    flags: List[str] = []
    for kind, targets in by_kind.items():
        if targets is None:
            flags.append(f"--allow-{kind.value}")
        else:
            flags.append(f"--allow-{kind.value}={','.join(targets)}")
    return flags
