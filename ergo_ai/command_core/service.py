from __future__ import annotations

"""High-level orchestration service for ergo invocations.

``CommandService`` wires the resolver, generator, cache and sandbox
executor into the two user-facing flows.

Workflow
--------

- ``run``:

  1. Splits the arguments into an ``Invocation``.
  2. Resolves it: PATH first, then the mode's cache, then generation.
  3. System commands are run directly with the user's stdio.
  4. Generated commands are cached (on a miss), remembered as the last
     command, then passed to the sandbox executor.

- ``correct``:

  1. Picks the last generated command (or an explicit target).
  2. Regenerates it through the ``Corrector`` with the stored stderr and the
     user's feedback.
  3. Re-runs the new revision with the last arguments, which sends it
     through the approval gate again.

The service holds no policy itself. It only sequences the components.
"""

import shutil
import subprocess
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, TextIO

import httpx

from ergo_ai.core.config import GeneratorBackend, Mode, Settings
from ergo_ai.core.logging_config import get_logger

from .errors import MissingCredential, NoRecordToCorrect
from .generation.base import Generator
from .generation.factory import build_policy, create_generator
from .repos.json_cache import GenerationCache
from .runtime.approval import ApprovalPrompt
from .runtime.correction import Corrector
from .runtime.executor import ProcessRunner, SandboxExecutor
from .runtime.resolver import Cached, Generate, Resolver, SystemPath, parse_invocation
from .schemas.domain import ArtifactRecord, LastInvocation

logger = get_logger(__name__)

SystemRunner = Callable[[Sequence[str]], int]


def run_system_command(argv: Sequence[str]) -> int:
    """Run a PATH executable with inherited stdio and return its exit code."""
    try:
        return subprocess.run(list(argv)).returncode
    except OSError as e:
        logger.error(f"failed to run {argv[0]}: {e}")
        print(f"ergo: cannot execute {argv[0]}: {e.strerror or e}", file=sys.stderr)
        return 126


def credential_preflight(settings: Settings) -> Callable[[], None]:
    """Return a check that fails fast when the remote backend has no API key."""

    def _check() -> None:
        if settings.generator_backend == GeneratorBackend.remote and not settings.anthropic_api_key:
            raise MissingCredential()

    return _check


@dataclass(frozen=True)
class CommandServiceDeps:
    """Dependency bundle for ``CommandService``.

    ``generator_factory`` is called lazily so that a remote client is only
    built when something actually needs generating.
    """

    cache: GenerationCache
    resolver: Resolver
    executor: SandboxExecutor
    generator_factory: Callable[[], Generator]
    system_runner: SystemRunner = run_system_command
    preflight: Optional[Callable[[], None]] = None


class CommandService:
    """Sequence resolution, generation, approval and execution for one mode."""

    def __init__(
        self,
        *,
        mode: Mode,
        deps: CommandServiceDeps,
        verbose: bool = False,
        notify_stream: Optional[TextIO] = None,
    ) -> None:
        self._mode = Mode(mode)
        self._deps = deps
        self._verbose = verbose
        self._notify_stream = notify_stream
        self._generator: Optional[Generator] = None

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def cache(self) -> GenerationCache:
        return self._deps.cache

    def _notify(self, message: str) -> None:
        if self._verbose:
            out = self._notify_stream or sys.stderr
            out.write(message + "\n")
            out.flush()

    def _get_generator(self) -> Generator:
        if self._generator is None:
            self._generator = self._deps.generator_factory()
        return self._generator

    # ------------------------------------------------------------------
    def run(self, argv: Sequence[str]) -> int:
        """
        Resolve and run one invocation; return its exit code.

        Raises:
            ValueError: If ``argv`` does not name a command.
            GenerationError: If a candidate could not be produced.
            ExecutionError: If the approval gate refused or the sandbox failed.
        """
        invocation = parse_invocation(argv)
        plan = self._deps.resolver.resolve_invocation(invocation, self._mode)

        if isinstance(plan, SystemPath):
            logger.debug(f"running system command {plan.path}")
            return self._deps.system_runner([plan.path, *invocation.args])

        if isinstance(plan, Cached):
            record = plan.record
            self._notify(f"Using cached command '{record.name}' (revision {record.revision})")
        elif isinstance(plan, Generate):
            self._notify(f"Generating command '{invocation.name}'...")
            candidate = self._get_generator().generate(plan.intent)
            record = ArtifactRecord.from_candidate(
                name=invocation.name, mode=self._mode, intent=plan.intent, candidate=candidate
            )
            self._deps.cache.put(record)
        else:  # pragma: no cover
            raise TypeError(f"unknown plan {plan!r}")

        self._deps.cache.set_last(LastInvocation(name=record.name, args=list(invocation.args)))
        self._notify(f"Executing '{record.name}'...")
        return self._deps.executor.execute(record, invocation.args).exit_code

    def correct(self, feedback: Optional[str] = None, target: Optional[str] = None) -> int:
        """
        Correct the last (or ``target``) generated command and re-run it.

        Raises:
            NoRecordToCorrect: If there is nothing to correct.
            GenerationError: If regeneration failed; the stored record is unchanged.
            ExecutionError: If the approval gate refused or the sandbox failed.
        """
        if self._deps.preflight is not None:
            self._deps.preflight()

        last = self._deps.cache.get_last()
        if target:
            name = target
            args: List[str] = list(last.args) if last is not None and last.name == target else []
        elif last is not None:
            name, args = last.name, list(last.args)
        else:
            raise NoRecordToCorrect(None, self._mode.value)

        self._notify(f"Correcting '{name}'...")
        revised = Corrector(self._deps.cache, self._get_generator()).correct(name, feedback)
        self._notify(f"Generated revision {revised.revision} of '{name}'")

        self._deps.cache.set_last(LastInvocation(name=name, args=args))
        return self._deps.executor.execute(revised, args).exit_code

    # ------------------------------------------------------------------
    def list_records(self) -> List[ArtifactRecord]:
        return self._deps.cache.list_records()

    def remove(self, name: str) -> bool:
        return self._deps.cache.invalidate(name)

    def clear(self) -> int:
        return self._deps.cache.clear()

    def stats(self) -> Dict[str, Any]:
        return self._deps.cache.stats()


def build_service(
    settings: Settings,
    *,
    prompt: ApprovalPrompt,
    runner: Optional[ProcessRunner] = None,
    http_client: Optional[httpx.Client] = None,
    path_lookup: Callable[[str], Optional[str]] = shutil.which,
    system_runner: SystemRunner = run_system_command,
    verbose: bool = False,
) -> CommandService:
    """Wire a ``CommandService`` from settings."""
    cache = GenerationCache(settings.cache_root, settings.mode)
    policy = build_policy(settings)
    preflight = credential_preflight(settings)
    sandbox = settings.sandbox
    deps = CommandServiceDeps(
        cache=cache,
        resolver=Resolver(cache, path_lookup=path_lookup, preflight=preflight),
        executor=SandboxExecutor(
            cache,
            prompt,
            runner=runner,
            deno_path=sandbox.deno_path,
            timeout=sandbox.timeout,
            auto_approve_empty=settings.auto_approve_empty,
            which=path_lookup,
        ),
        generator_factory=lambda: create_generator(settings, policy, http_client=http_client),
        system_runner=system_runner,
        preflight=preflight,
    )
    return CommandService(mode=settings.mode, deps=deps, verbose=verbose)


def describe_config(settings: Settings) -> Dict[str, Any]:
    """Summary of the effective configuration, with the API key masked."""
    key = settings.anthropic_api_key
    return {
        "mode": settings.mode.value,
        "generator": settings.generator_backend.value,
        "home": str(settings.home),
        "config_file": str(settings.config_file),
        "cache": str(settings.cache_root / settings.mode.value),
        "api_key": f"{key[:7]}...{key[-4:]}" if key and len(key) > 12 else ("set" if key else "not set"),
        "model": settings.model,
        "api_url": settings.api_url,
        "deno_path": settings.deno_path,
        "execution_timeout": settings.execution_timeout,
        "generation_timeout": settings.generation_timeout,
        "allowed_permissions": settings.allowed_permission_kinds,
    }
