"""Error types raised by the command pipeline.

Purpose:
- Give every failure category of the pipeline a typed exception so that the
  CLI can map it to an exit code without string matching.
- Carry diagnostic context (HTTP status, response body, captured stderr)
  on the exception itself.

Categories that are *not* exceptions:
- A resolution miss is the ``Generate`` plan returned by the resolver.
- An artifact failure (nonzero exit) is an ``ExecutionResult`` with a nonzero
  ``exit_code``; it becomes correction context instead of aborting anything.
- Cache corruption is recovered locally and surfaced as a
  ``CacheCorruptionWarning``.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class ErgoError(Exception):
    """Base class for all pipeline errors."""


class CacheCorruptionWarning(UserWarning):
    """Emitted when a cache store cannot be parsed and is treated as empty."""


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class GenerationError(ErgoError):
    """Base error for generator failures. No cache mutation follows one."""

    kind = "generation"


class Unavailable(GenerationError):
    """The generative service could not be reached or refused the request.

    Args:
        message: Human-readable error description.
        status_code: Optional HTTP status code associated with the failure.
        details: Optional response body for diagnosis.
    """

    kind = "unavailable"

    def __init__(self, message: str, *, status_code: Optional[int] = None, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class InvalidResponse(GenerationError):
    """The generative service answered with a payload that does not match the candidate schema."""

    kind = "invalid_response"

    def __init__(self, message: str, *, raw: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw = raw


class UnrecognizedPermission(GenerationError):
    """A candidate requested a capability outside the permission grammar or allow-list."""

    kind = "unrecognized_permission"

    def __init__(self, permissions: Sequence[str]) -> None:
        self.permissions = list(permissions)
        super().__init__(f"unrecognized permission(s): {', '.join(self.permissions)}")


class MissingCredential(GenerationError):
    """The remote backend is selected but no API key is configured."""

    kind = "missing_credential"

    def __init__(self, env_var: str = "ANTHROPIC_API_KEY") -> None:
        super().__init__(
            f"No API key configured for the remote generator. Set {env_var} in the environment "
            f"or in the ergo config file, or set ERGO_GENERATOR=template to use the local fallback."
        )
        self.env_var = env_var


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ExecutionError(ErgoError):
    """Base error for the sandbox executor."""


class PermissionDenied(ExecutionError):
    """The user refused the approval gate; nothing was run."""

    def __init__(self, name: str) -> None:
        super().__init__(f"permission denied for command '{name}'; it was not executed")
        self.name = name


class SandboxFault(ExecutionError):
    """The sandbox runtime could not be spawned or failed on its own account.

    Args:
        message: Human-readable error description.
        stderr: Any standard error captured before the fault.
    """

    def __init__(self, message: str, *, stderr: Optional[str] = None) -> None:
        super().__init__(message)
        self.stderr = stderr


class SandboxTimeout(SandboxFault):
    """The artifact exceeded the execution timeout and was killed."""

    def __init__(self, name: str, timeout: float, *, stderr: Optional[str] = None) -> None:
        super().__init__(f"command '{name}' timed out after {timeout:g} seconds", stderr=stderr)
        self.timeout = timeout


# ---------------------------------------------------------------------------
# Correction
# ---------------------------------------------------------------------------


class NoRecordToCorrect(ErgoError):
    """The corrective loop was asked to refine a command that was never generated."""

    def __init__(self, name: Optional[str], mode: str) -> None:
        if name:
            message = f"no generated command named '{name}' in the {mode} cache to correct"
        else:
            message = "no previous generated command found; run a command first, then use --nope"
        super().__init__(message)
        self.name = name
        self.mode = mode
