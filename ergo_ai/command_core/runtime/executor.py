from __future__ import annotations

"""Sandbox executor.

Runs an approved artifact under Deno with exactly the permissions it
declares:

    deno run --no-prompt --quiet <--allow-* flags> <tmpfile.ts> <args...>

Flow
----
1. Approval gate: if ``approved_hash != content_hash`` the user is asked
   through an ``ApprovalPrompt``. Consent is persisted before the process
   starts; refusal raises ``PermissionDenied`` and nothing runs.
2. The script is written to a private temporary file.
3. stdout goes straight to the terminal; stderr is captured, echoed after
   the run and stored on the record for the corrective loop.
4. The execution outcome is persisted whether or not the artifact succeeded.

A nonzero exit code is returned as an ``ExecutionResult``; only failures of
the sandbox itself raise.
"""

import os
import shutil
import signal
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence, TextIO

from ergo_ai.core.logging_config import get_logger

from ..errors import PermissionDenied, SandboxFault, SandboxTimeout
from ..permissions.grammar import to_runtime_flags
from ..repos.interfaces import ArtifactRepository
from ..schemas.domain import ArtifactRecord, ExecutionResult
from .approval import ApprovalPrompt

logger = get_logger(__name__)

DENO_BASE_ARGS = ("run", "--no-prompt", "--quiet")


@dataclass(frozen=True)
class ProcessOutcome:
    exit_code: int
    stderr: str = ""
    timed_out: bool = False


class ProcessRunner(Protocol):
    """Spawns a process with stdout inherited and stderr captured."""

    def run(self, argv: Sequence[str], timeout: float) -> ProcessOutcome:
        """
        Run ``argv`` to completion or until ``timeout`` seconds elapse.

        Raises:
            OSError: If the process cannot be spawned.
        """
        ...


class SubprocessRunner:
    """``subprocess`` based runner.

    The child leads its own process group so that on timeout or interrupt
    everything it spawned is killed with it. Reading the remaining stderr
    after a kill is bounded by ``kill_grace``.
    """

    def __init__(self, kill_grace: float = 2.0) -> None:
        self.kill_grace = kill_grace

    def _kill_group(self, proc: subprocess.Popen) -> None:
        if hasattr(os, "killpg"):
            try:
                os.killpg(proc.pid, signal.SIGKILL)
                return
            except (ProcessLookupError, PermissionError):
                pass
        proc.kill()

    def _drain_stderr(self, proc: subprocess.Popen) -> bytes:
        try:
            _, stderr_bytes = proc.communicate(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            logger.warning(f"process {proc.pid} left its stderr open after being killed; discarding it")
            if proc.stderr is not None:
                proc.stderr.close()
            proc.wait()
            return b""
        return stderr_bytes or b""

    def run(self, argv: Sequence[str], timeout: float) -> ProcessOutcome:
        proc = subprocess.Popen(list(argv), stdout=None, stderr=subprocess.PIPE, start_new_session=True)
        try:
            _, stderr_bytes = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._kill_group(proc)
            stderr_bytes = self._drain_stderr(proc)
            return ProcessOutcome(
                exit_code=proc.returncode,
                stderr=stderr_bytes.decode("utf-8", errors="replace"),
                timed_out=True,
            )
        except KeyboardInterrupt:
            self._kill_group(proc)
            proc.wait()
            raise
        return ProcessOutcome(
            exit_code=proc.returncode,
            stderr=(stderr_bytes or b"").decode("utf-8", errors="replace"),
        )


class SandboxExecutor:
    """Gate and run artifacts in the Deno sandbox.

    Args:
        cache: Repository the record belongs to; approval and execution
            outcomes are written back to it.
        prompt: Approval prompt used when the record's content is not approved.
        runner: Process runner; defaults to ``SubprocessRunner``.
        deno_path: Deno executable name or path.
        timeout: Seconds an artifact may run.
        auto_approve_empty: Approve records that declare no permissions without asking.
        which: Executable lookup used to locate Deno.
        stderr_stream: Where captured stderr is echoed after the run.
    """

    def __init__(
        self,
        cache: ArtifactRepository,
        prompt: ApprovalPrompt,
        *,
        runner: Optional[ProcessRunner] = None,
        deno_path: str = "deno",
        timeout: float = 300.0,
        auto_approve_empty: bool = False,
        which: Callable[[str], Optional[str]] = shutil.which,
        stderr_stream: Optional[TextIO] = None,
    ) -> None:
        self._cache = cache
        self._prompt = prompt
        self._runner = runner or SubprocessRunner()
        self._deno_path = deno_path
        self._timeout = timeout
        self._auto_approve_empty = auto_approve_empty
        self._which = which
        self._stderr_stream = stderr_stream

    # ------------------------------------------------------------------
    def ensure_approved(self, record: ArtifactRecord) -> ArtifactRecord:
        """
        Pass the approval gate, persisting consent before returning.

        Raises:
            PermissionDenied: If the user refuses.
        """
        if record.is_approved:
            return record
        if self._auto_approve_empty and not record.permissions:
            logger.debug(f"'{record.name}' declares no permissions; auto-approved")
        elif not self._prompt.confirm(record):
            raise PermissionDenied(record.name)
        approved = record.approved()
        self._cache.put(approved)
        return approved

    def build_argv(self, deno: str, record: ArtifactRecord, script_path: str, args: Sequence[str]) -> List[str]:
        return [deno, *DENO_BASE_ARGS, *to_runtime_flags(record.permissions), script_path, *args]

    def _locate_deno(self) -> str:
        deno = self._which(self._deno_path)
        if not deno:
            raise SandboxFault(
                f"sandbox runtime '{self._deno_path}' not found; install Deno (https://deno.land) "
                "or set ERGO_DENO_PATH"
            )
        return deno

    def _echo_stderr(self, stderr: str) -> None:
        if not stderr:
            return
        out = self._stderr_stream or sys.stderr
        out.write(stderr if stderr.endswith("\n") else stderr + "\n")
        out.flush()

    # ------------------------------------------------------------------
    def execute(self, record: ArtifactRecord, args: Sequence[str] = ()) -> ExecutionResult:
        """
        Run ``record`` with ``args``.

        Raises:
            PermissionDenied: Approval refused; nothing was run.
            SandboxFault: Deno is missing or could not be spawned.
            SandboxTimeout: The artifact exceeded the timeout and was killed.
        """
        record = self.ensure_approved(record)
        deno = self._locate_deno()

        fd, script_path = tempfile.mkstemp(prefix="ergo-", suffix=".ts")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(record.script)
            argv = self.build_argv(deno, record, script_path, args)
            logger.info(f"executing '{record.name}' revision {record.revision}: {' '.join(argv)}")

            started = time.monotonic()
            try:
                outcome = self._runner.run(argv, self._timeout)
            except OSError as e:
                raise SandboxFault(f"failed to start sandbox runtime: {e}") from e
            duration = time.monotonic() - started
        finally:
            try:
                os.unlink(script_path)
            except FileNotFoundError:
                pass

        self._echo_stderr(outcome.stderr)
        self._cache.put(record.with_execution(stderr=outcome.stderr or None, exit_code=outcome.exit_code))

        if outcome.timed_out:
            logger.warning(f"'{record.name}' timed out after {self._timeout:g}s")
            raise SandboxTimeout(record.name, self._timeout, stderr=outcome.stderr or None)

        logger.info(f"'{record.name}' exited with {outcome.exit_code} in {duration:.2f}s")
        return ExecutionResult(
            name=record.name,
            exit_code=outcome.exit_code,
            stderr=outcome.stderr or None,
            duration_seconds=duration,
        )
