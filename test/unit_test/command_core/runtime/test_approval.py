from __future__ import annotations

import io
from pathlib import Path
from typing import Iterator, List

import pytest

from ergo_ai.command_core.permissions import parse_permission
from ergo_ai.command_core.runtime import approval
from ergo_ai.command_core.runtime.approval import ConsoleApprovalPrompt, PreAuthorizedPrompt, render_request
from ergo_ai.command_core.schemas.domain import ArtifactRecord, Candidate
from ergo_ai.core.config import Mode


def _record() -> ArtifactRecord:
    grants = parse_permission("--allow-net=wttr.in", reason="fetch the forecast") + parse_permission("--allow-read")
    return ArtifactRecord.from_candidate(
        name="weather",
        mode=Mode.mock,
        intent="weather",
        candidate=Candidate(script="x", permissions=grants, explanation="Get current weather"),
    )


def _answers(*values: str):
    it: Iterator[str] = iter(values)
    prompts: List[str] = []

    def _input(prompt: str) -> str:
        prompts.append(prompt)
        try:
            return next(it)
        except StopIteration:
            raise EOFError from None

    return _input, prompts


def test_render_lists_permissions_and_reasons() -> None:
    text = render_request(_record())

    assert "weather (revision 1)" in text
    assert "Get current weather" in text
    assert "--allow-net=wttr.in" in text
    assert "reason: fetch the forecast" in text
    assert "read files (unrestricted)" in text


def test_render_without_permissions() -> None:
    record = ArtifactRecord.from_candidate(name="a", mode=Mode.mock, intent="a", candidate=Candidate(script="x"))
    assert "requires no special permissions" in render_request(record)


def test_yes_approves() -> None:
    answer, _ = _answers("y")
    out = io.StringIO()
    assert ConsoleApprovalPrompt(answer, out).confirm(_record()) is True
    assert "PERMISSION REQUEST" in out.getvalue()


def test_default_answer_denies() -> None:
    answer, _ = _answers("")
    assert ConsoleApprovalPrompt(answer, io.StringIO()).confirm(_record()) is False


def test_invalid_answer_asks_again() -> None:
    answer, prompts = _answers("maybe", "YES")
    out = io.StringIO()

    assert ConsoleApprovalPrompt(answer, out).confirm(_record()) is True
    assert len(prompts) == 2
    assert "Please answer 'y' or 'n'." in out.getvalue()


def test_end_of_input_denies() -> None:
    answer, _ = _answers()
    assert ConsoleApprovalPrompt(answer, io.StringIO()).confirm(_record()) is False


def test_pre_authorized_prompt_approves() -> None:
    assert PreAuthorizedPrompt().confirm(_record()) is True


class TestTerminalInput:
    @pytest.fixture
    def piped_stdin(self, monkeypatch: pytest.MonkeyPatch) -> io.StringIO:
        stdin = io.StringIO("y\n")
        monkeypatch.setattr("sys.stdin", stdin)
        return stdin

    def test_piped_stdin_is_never_read_as_consent(
        self, piped_stdin: io.StringIO, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setattr(approval, "TTY_PATH", str(tmp_path / "no-terminal"))

        assert ConsoleApprovalPrompt(output=io.StringIO()).confirm(_record()) is False
        assert piped_stdin.read() == "y\n"

    def test_answer_comes_from_the_terminal(
        self, piped_stdin: io.StringIO, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        terminal = tmp_path / "tty"
        terminal.write_text("yes\n", encoding="utf-8")
        monkeypatch.setattr(approval, "TTY_PATH", str(terminal))

        assert ConsoleApprovalPrompt(output=io.StringIO()).confirm(_record()) is True
        assert piped_stdin.read() == "y\n"
