"""Permission grammar and allow-list enforcement.

Generated artifacts run with exactly the capabilities they declare. This
package defines what may be declared:

- ``PermissionKind``: the closed set of capability kinds (read, write, net,
  env, run).
- ``PermissionGrant``: one declared capability, optionally narrowed to a
  target.
- ``PermissionPolicy``: validates a requested set against an allow-list and
  normalises it (dedupe, broad grants subsume targeted ones).
- ``to_runtime_flags``: renders grants for the sandbox runtime.
"""

from .grammar import (
    PermissionGrant,
    PermissionKind,
    canonical_permissions,
    parse_permission,
    to_runtime_flags,
)
from .policy import PermissionPolicy

__all__ = [
    "PermissionGrant",
    "PermissionKind",
    "PermissionPolicy",
    "canonical_permissions",
    "parse_permission",
    "to_runtime_flags",
]
