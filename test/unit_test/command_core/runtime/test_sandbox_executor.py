from __future__ import annotations

import io
import os
import subprocess
import sys
import time
from pathlib import Path

import pytest

from ergo_ai.command_core.errors import PermissionDenied, SandboxFault, SandboxTimeout
from ergo_ai.command_core.permissions import parse_permission
from ergo_ai.command_core.repos import GenerationCache
from ergo_ai.command_core.runtime.executor import ProcessOutcome, SandboxExecutor, SubprocessRunner
from ergo_ai.command_core.schemas.domain import ArtifactRecord, Candidate
from ergo_ai.core.config import Mode


@pytest.fixture
def cache(tmp_path: Path) -> GenerationCache:
    return GenerationCache(tmp_path / "cache", Mode.mock)


def _stored(cache: GenerationCache, *perms: str, script: str = "console.log('hi');") -> ArtifactRecord:
    grants = [g for p in perms for g in parse_permission(p)]
    record = ArtifactRecord.from_candidate(
        name="cmd", mode=Mode.mock, intent="cmd", candidate=Candidate(script=script, permissions=grants)
    )
    cache.put(record)
    return record


def _executor(cache, prompt, runner, which, **kwargs) -> SandboxExecutor:
    return SandboxExecutor(cache, prompt, runner=runner, which=which, stderr_stream=io.StringIO(), **kwargs)


def test_unapproved_record_is_gated_and_approval_persisted_first(
    cache, approving_prompt, fake_runner, fake_which
) -> None:
    record = _stored(cache, "--allow-net=wttr.in")
    persisted_before_run = []

    original_run = fake_runner.run

    def run(argv, timeout):
        persisted_before_run.append(cache.get("cmd").is_approved)
        return original_run(argv, timeout)

    fake_runner.run = run

    result = _executor(cache, approving_prompt, fake_runner, fake_which).execute(record, ["a", "b"])

    assert result.exit_code == 0
    assert approving_prompt.seen == [record]
    assert persisted_before_run == [True]
    assert cache.get("cmd").approved_hash == record.content_hash


def test_runtime_invocation_uses_only_declared_flags(cache, approving_prompt, fake_runner, fake_which) -> None:
    record = _stored(cache, "--allow-net=a.com", "--allow-net=b.com", "--allow-read", script="console.log(42);")

    _executor(cache, approving_prompt, fake_runner, fake_which).execute(record, ["x y", "--z"])

    (argv,) = fake_runner.calls
    assert argv[:4] == ["/usr/bin/deno", "run", "--no-prompt", "--quiet"]
    assert argv[4:6] == ["--allow-net=a.com,b.com", "--allow-read"]
    assert argv[6].endswith(".ts")
    assert argv[7:] == ["x y", "--z"]
    assert fake_runner.scripts == ["console.log(42);"]
    assert not os.path.exists(argv[6])


def test_no_permissions_means_no_flags(cache, approving_prompt, fake_runner, fake_which) -> None:
    record = _stored(cache)
    _executor(cache, approving_prompt, fake_runner, fake_which).execute(record)

    (argv,) = fake_runner.calls
    assert not any(a.startswith("--allow") for a in argv)


def test_refusal_raises_and_runs_nothing(cache, denying_prompt, fake_runner, fake_which) -> None:
    record = _stored(cache)
    record = record.with_execution(stderr="earlier failure", exit_code=1)
    cache.put(record)

    with pytest.raises(PermissionDenied):
        _executor(cache, denying_prompt, fake_runner, fake_which).execute(record)

    assert fake_runner.calls == []
    stored = cache.get("cmd")
    assert stored.approved_hash is None
    assert stored.last_stderr == "earlier failure"


def test_approved_record_runs_without_prompt(cache, denying_prompt, fake_runner, fake_which) -> None:
    record = _stored(cache).approved()
    cache.put(record)

    _executor(cache, denying_prompt, fake_runner, fake_which).execute(record)

    assert denying_prompt.seen == []
    assert len(fake_runner.calls) == 1


def test_changed_content_requires_new_approval(cache, denying_prompt, fake_runner, fake_which) -> None:
    approved = _stored(cache).approved()
    changed = approved.model_copy(update={"script": "console.log('changed');"})
    changed = ArtifactRecord.model_validate(changed.model_dump())

    with pytest.raises(PermissionDenied):
        _executor(cache, denying_prompt, fake_runner, fake_which).execute(changed)
    assert fake_runner.calls == []


def test_auto_approve_empty_skips_prompt_only_without_permissions(
    cache, denying_prompt, fake_runner, fake_which
) -> None:
    executor = _executor(cache, denying_prompt, fake_runner, fake_which, auto_approve_empty=True)

    executor.execute(_stored(cache))
    assert denying_prompt.seen == []
    assert cache.get("cmd").is_approved

    with pytest.raises(PermissionDenied):
        executor.execute(_stored(cache, "--allow-read"))


def test_failure_is_a_result_and_stderr_is_kept(cache, approving_prompt, fake_runner, fake_which) -> None:
    fake_runner.outcomes = [ProcessOutcome(exit_code=3, stderr="error: Uncaught ReferenceError: foo\n")]
    stream = io.StringIO()
    executor = SandboxExecutor(cache, approving_prompt, runner=fake_runner, which=fake_which, stderr_stream=stream)

    result = executor.execute(_stored(cache), [])

    assert result.exit_code == 3
    assert not result.success
    assert "ReferenceError" in result.stderr
    assert stream.getvalue() == "error: Uncaught ReferenceError: foo\n"
    stored = cache.get("cmd")
    assert stored.last_stderr == "error: Uncaught ReferenceError: foo\n"
    assert stored.last_exit_code == 3
    assert stored.usage_count == 1


def test_success_clears_previous_stderr(cache, approving_prompt, fake_runner, fake_which) -> None:
    fake_runner.outcomes = [ProcessOutcome(exit_code=1, stderr="boom"), ProcessOutcome(exit_code=0)]
    executor = _executor(cache, approving_prompt, fake_runner, fake_which)

    executor.execute(_stored(cache))
    executor.execute(cache.get("cmd"))

    stored = cache.get("cmd")
    assert stored.last_stderr is None
    assert stored.last_exit_code == 0
    assert stored.usage_count == 2


def test_missing_runtime_is_sandbox_fault(cache, approving_prompt, fake_runner) -> None:
    executor = _executor(cache, approving_prompt, fake_runner, lambda name: None)

    with pytest.raises(SandboxFault, match="not found"):
        executor.execute(_stored(cache))
    assert fake_runner.calls == []


def test_spawn_failure_is_sandbox_fault(cache, approving_prompt, fake_which) -> None:
    class BrokenRunner:
        def run(self, argv, timeout):
            raise PermissionError(13, "Permission denied")

    with pytest.raises(SandboxFault):
        _executor(cache, approving_prompt, BrokenRunner(), fake_which).execute(_stored(cache))


def test_timeout_persists_stderr_then_raises(cache, approving_prompt, fake_runner, fake_which) -> None:
    fake_runner.outcomes = [ProcessOutcome(exit_code=-9, stderr="partial output", timed_out=True)]
    executor = _executor(cache, approving_prompt, fake_runner, fake_which, timeout=1.5)

    with pytest.raises(SandboxTimeout) as exc_info:
        executor.execute(_stored(cache))

    assert exc_info.value.timeout == 1.5
    assert exc_info.value.stderr == "partial output"
    assert cache.get("cmd").last_stderr == "partial output"


class TestSubprocessRunner:
    def test_captures_stderr_and_exit_code(self) -> None:
        argv = [sys.executable, "-c", "import sys; sys.stderr.write('oops'); sys.exit(4)"]
        outcome = SubprocessRunner().run(argv, timeout=30)

        assert outcome.exit_code == 4
        assert outcome.stderr == "oops"
        assert not outcome.timed_out

    def test_kills_on_timeout(self) -> None:
        argv = [sys.executable, "-c", "import time; time.sleep(30)"]
        outcome = SubprocessRunner().run(argv, timeout=0.2)

        assert outcome.timed_out
        assert outcome.exit_code != 0

    @pytest.mark.skipif(os.name != "posix", reason="process groups are POSIX only")
    def test_timeout_is_bounded_when_grandchild_holds_stderr(self) -> None:
        script = (
            "import subprocess, sys, time; "
            "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)']); "
            "time.sleep(30)"
        )
        started = time.monotonic()
        outcome = SubprocessRunner(kill_grace=1.0).run([sys.executable, "-c", script], timeout=0.5)

        assert outcome.timed_out
        assert time.monotonic() - started < 10

    def test_spawn_failure_raises_os_error(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            SubprocessRunner().run([str(tmp_path / "does-not-exist")], timeout=1)

    def test_interrupt_kills_process_group(self, monkeypatch: pytest.MonkeyPatch) -> None:
        killed = []

        class InterruptedPopen:
            def __init__(self, *args, **kwargs):
                self.pid = 4242
                self.returncode = None
                killed.append(("session", kwargs.get("start_new_session")))

            def communicate(self, timeout=None):
                raise KeyboardInterrupt

            def kill(self):
                killed.append(("kill", self.pid))

            def wait(self):
                return -9

        monkeypatch.setattr(subprocess, "Popen", InterruptedPopen)
        monkeypatch.setattr(os, "killpg", lambda pid, sig: killed.append(("killpg", pid)), raising=False)

        with pytest.raises(KeyboardInterrupt):
            SubprocessRunner().run(["deno"], timeout=1)
        assert killed == [("session", True), ("killpg", 4242)]
