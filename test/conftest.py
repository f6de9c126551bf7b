from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import httpx
import pytest

from ergo_ai.command_core.runtime.executor import ProcessOutcome
from ergo_ai.command_core.schemas.domain import ArtifactRecord

_ERGO_ENV_VARS = (
    "ERGO_USE_MOCK",
    "ERGO_GENERATOR",
    "ERGO_MODEL",
    "ERGO_API_URL",
    "ERGO_GENERATION_TIMEOUT",
    "ERGO_EXECUTION_TIMEOUT",
    "ERGO_DENO_PATH",
    "ERGO_ALLOWED_PERMISSIONS",
    "ERGO_AUTO_APPROVE_EMPTY",
    "ERGO_LOG_LEVEL",
    "ERGO_LOG_FORMAT",
    "ERGO_ENABLE_FILE_LOGGING",
    "ANTHROPIC_API_KEY",
)


@pytest.fixture(autouse=True)
def _global_offline_http_guard(monkeypatch: pytest.MonkeyPatch):
    allowed_prefixes: Iterable[str] = (
        "http://mock",
        "https://mock",
        "http://localhost",
        "http://127.0.0.1",
    )

    orig_sync = httpx._client.Client.request

    def _is_allowed(url_str: str) -> bool:
        return any(url_str.startswith(p) for p in allowed_prefixes)

    def offline_sync(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return orig_sync(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard: {url_str}")

    monkeypatch.setattr(httpx._client.Client, "request", offline_sync, raising=True)
    yield


@pytest.fixture(autouse=True)
def ergo_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ERGO_HOME at a fresh directory and clear every ergo variable."""
    for var in _ERGO_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    home = tmp_path / "ergo-home"
    monkeypatch.setenv("ERGO_HOME", str(home))
    return home


# ----------------------------------------------------------------------
# Shared fakes
# ----------------------------------------------------------------------


class FakeRunner:
    """ProcessRunner that records argv and replays queued outcomes.

    The script file is read while it still exists so tests can assert on
    what would have been executed.
    """

    def __init__(self, outcomes: Optional[List[ProcessOutcome]] = None) -> None:
        self.outcomes = list(outcomes or [])
        self.calls: List[List[str]] = []
        self.scripts: List[str] = []

    def run(self, argv: Sequence[str], timeout: float) -> ProcessOutcome:
        self.calls.append(list(argv))
        script = next((a for a in argv if a.endswith(".ts")), None)
        if script is not None:
            self.scripts.append(Path(script).read_text(encoding="utf-8"))
        if self.outcomes:
            return self.outcomes.pop(0)
        return ProcessOutcome(exit_code=0)


class RecordingPrompt:
    """ApprovalPrompt with a fixed answer that remembers what it was shown."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer
        self.seen: List[ArtifactRecord] = []

    def confirm(self, record: ArtifactRecord) -> bool:
        self.seen.append(record)
        return self.answer


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def approving_prompt() -> RecordingPrompt:
    return RecordingPrompt(answer=True)


@pytest.fixture
def denying_prompt() -> RecordingPrompt:
    return RecordingPrompt(answer=False)


def _deno_only_which(name: str) -> Optional[str]:
    return "/usr/bin/deno" if name == "deno" else None


@pytest.fixture
def fake_which():
    """Executable lookup that only knows about deno."""
    return _deno_only_which


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """setup_logging replaces root handlers; put pytest's back afterwards."""
    root_logger = logging.getLogger()
    saved_handlers = root_logger.handlers[:]
    saved_level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        if handler not in saved_handlers:
            handler.close()
            root_logger.removeHandler(handler)
    for handler in saved_handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(saved_level)
