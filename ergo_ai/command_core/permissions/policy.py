from __future__ import annotations

"""Permission allow-list enforcement.

``PermissionPolicy`` is the single gate every generator backend passes its
requested permissions through before a candidate may reach the cache. It
parses the requested items with the grammar, rejects anything outside the
grammar or outside the configured allow-list, and returns the normalised
grant list.
"""

from typing import Any, Iterable, List, Optional

from ..errors import UnrecognizedPermission
from .grammar import PermissionGrant, PermissionKind, coerce_grants, normalize_grants


class PermissionPolicy:
    """Validate requested permission sets against an allow-list of kinds.

    Args:
        allowed_kinds: Kinds a candidate may request. ``None`` allows every kind
            of the grammar.
    """

    def __init__(self, allowed_kinds: Optional[Iterable[PermissionKind | str]] = None) -> None:
        if allowed_kinds is None:
            self._allowed = frozenset(PermissionKind)
        else:
            self._allowed = frozenset(self._to_kind(k) for k in allowed_kinds)

    @staticmethod
    def _to_kind(value: PermissionKind | str) -> PermissionKind:
        try:
            return PermissionKind(value)
        except ValueError:
            raise UnrecognizedPermission([str(value)]) from None

    @property
    def allowed_kinds(self) -> frozenset[PermissionKind]:
        return self._allowed

    def is_allowed(self, grant: PermissionGrant) -> bool:
        return grant.kind in self._allowed

    def validate(self, requested: Iterable[Any]) -> List[PermissionGrant]:
        """
        Validate a requested permission set.

        Every item is checked before failing so that the error lists all the
        offending entries at once.

        Args:
            requested: Strings, ``{"permission", "reason"}`` mappings or grants.

        Returns:
            The deduplicated, order-preserving grant list.

        Raises:
            UnrecognizedPermission: If any item is outside the grammar or the allow-list.
        """
        grants: List[PermissionGrant] = []
        rejected: List[str] = []
        for item in requested:
            try:
                parsed = coerce_grants(item)
            except UnrecognizedPermission as exc:
                rejected.extend(exc.permissions)
                continue
            for grant in parsed:
                if self.is_allowed(grant):
                    grants.append(grant)
                else:
                    rejected.append(grant.to_flag())
        if rejected:
            raise UnrecognizedPermission(rejected)
        return normalize_grants(grants)
