from __future__ import annotations

import io
import shutil
from pathlib import Path

import pytest

from ergo_ai.command_core.errors import SandboxTimeout
from ergo_ai.command_core.permissions import parse_permission
from ergo_ai.command_core.repos import GenerationCache
from ergo_ai.command_core.runtime.approval import PreAuthorizedPrompt
from ergo_ai.command_core.runtime.executor import SandboxExecutor
from ergo_ai.command_core.schemas.domain import ArtifactRecord, Candidate
from ergo_ai.core.config import Mode

pytestmark = [
    pytest.mark.e2e,
    pytest.mark.skipif(shutil.which("deno") is None, reason="Deno is not installed"),
]


def _record(name: str, script: str, permissions=()) -> ArtifactRecord:
    return ArtifactRecord.from_candidate(
        name=name,
        mode=Mode.mock,
        intent=name,
        candidate=Candidate(script=script, permissions=[g for p in permissions for g in parse_permission(p)]),
    )


@pytest.fixture
def executor(tmp_path: Path):
    cache = GenerationCache(tmp_path, Mode.mock)
    stderr = io.StringIO()
    return cache, stderr, SandboxExecutor(cache, PreAuthorizedPrompt(), timeout=20, stderr_stream=stderr)


def test_script_runs_with_arguments(executor) -> None:
    cache, _, sandbox = executor
    record = _record("echo-args", "if (Deno.args.join(' ') !== 'a b') Deno.exit(4);")

    result = sandbox.execute(record, ["a", "b"])

    assert result.exit_code == 0
    assert cache.get("echo-args").usage_count == 1


def test_undeclared_capability_is_refused(executor) -> None:
    cache, stderr, sandbox = executor
    record = _record("read-env", "console.log(Deno.env.get('HOME'));")

    result = sandbox.execute(record)

    assert result.exit_code != 0
    assert "NotCapable" in stderr.getvalue() or "PermissionDenied" in stderr.getvalue()
    assert cache.get("read-env").last_stderr


def test_declared_capability_is_granted(executor) -> None:
    _, _, sandbox = executor
    record = _record("read-env", "Deno.env.get('HOME');", ["--allow-env=HOME"])

    assert sandbox.execute(record).exit_code == 0


def test_runaway_script_is_killed(tmp_path: Path) -> None:
    cache = GenerationCache(tmp_path, Mode.mock)
    sandbox = SandboxExecutor(cache, PreAuthorizedPrompt(), timeout=1, stderr_stream=io.StringIO())

    with pytest.raises(SandboxTimeout):
        sandbox.execute(_record("spin", "while (true) {}"))

    assert cache.get("spin").last_exit_code is not None
