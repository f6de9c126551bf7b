"""Command pipeline: resolution, generation, caching and sandboxed execution.

Design overview
---------------

A typed command flows through a fixed pipeline:

- The ``Resolver`` decides between an executable on PATH, a cached artifact
  for the current mode, or generation. PATH always wins.
- A ``Generator`` backend turns the intent into a ``Candidate`` (a Deno
  TypeScript script plus the permissions it needs). Every backend validates
  permissions through the ``PermissionPolicy``.
- The ``GenerationCache`` stores ``ArtifactRecord`` objects, one JSON store
  per mode, written atomically.
- The ``SandboxExecutor`` refuses to run a record whose current content has
  not been approved, then runs it under Deno with only the declared
  permissions and keeps its stderr on the record.
- The ``Corrector`` (``--nope``) regenerates a record from its intent, its
  last stderr and user feedback, producing the next revision.

Typical usage
-------------

Most callers should use ``command_core.service.build_service`` and then
``CommandService.run`` / ``CommandService.correct``.
"""

from .errors import (
    CacheCorruptionWarning,
    ErgoError,
    ExecutionError,
    GenerationError,
    InvalidResponse,
    MissingCredential,
    NoRecordToCorrect,
    PermissionDenied,
    SandboxFault,
    SandboxTimeout,
    Unavailable,
    UnrecognizedPermission,
)
from .schemas.domain import (
    ArtifactRecord,
    Candidate,
    CorrectionContext,
    ExecutionResult,
    LastInvocation,
)
from .service import CommandService, CommandServiceDeps, build_service, describe_config

__all__ = [
    "ArtifactRecord",
    "CacheCorruptionWarning",
    "Candidate",
    "CommandService",
    "CommandServiceDeps",
    "CorrectionContext",
    "ErgoError",
    "ExecutionError",
    "ExecutionResult",
    "GenerationError",
    "InvalidResponse",
    "LastInvocation",
    "MissingCredential",
    "NoRecordToCorrect",
    "PermissionDenied",
    "SandboxFault",
    "SandboxTimeout",
    "Unavailable",
    "UnrecognizedPermission",
    "build_service",
    "describe_config",
]
