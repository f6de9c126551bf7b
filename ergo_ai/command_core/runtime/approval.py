from __future__ import annotations

"""Approval prompts for the sandbox executor's permission gate."""

import sys
from typing import Callable, Optional, Protocol, TextIO

from ergo_ai.core.logging_config import get_logger

from ..schemas.domain import ArtifactRecord

logger = get_logger(__name__)

RULE = "=" * 60
TTY_PATH = "/dev/tty"


def read_from_terminal(prompt: str) -> str:
    """
    Read one answer from the user's terminal, never from piped stdin.

    Piped stdin belongs to the command being approved. When stdin is not a
    terminal the controlling terminal is opened directly.

    Raises:
        EOFError: If there is no terminal to ask or it reached end of input.
    """
    if sys.stdin is not None and sys.stdin.isatty():
        sys.stderr.write(prompt)
        sys.stderr.flush()
        return input()
    try:
        with open(TTY_PATH, encoding="utf-8") as tty_in, open(TTY_PATH, "a", encoding="utf-8") as tty_out:
            tty_out.write(prompt)
            tty_out.flush()
            line = tty_in.readline()
    except OSError as e:
        raise EOFError(f"no terminal available for the approval prompt: {e}") from e
    if not line:
        raise EOFError("terminal closed")
    return line.rstrip("\n")


class ApprovalPrompt(Protocol):
    """Asks whether a record may run with the permissions it declares."""

    def confirm(self, record: ArtifactRecord) -> bool:
        """Return True to approve the record's current content."""
        ...


def render_request(record: ArtifactRecord) -> str:
    lines = [
        "",
        RULE,
        "PERMISSION REQUEST",
        RULE,
        f"Command:     {record.name} (revision {record.revision})",
    ]
    if record.description:
        lines.append(f"Description: {record.description}")
    lines.append("")
    if not record.permissions:
        lines.append("This command requires no special permissions.")
    else:
        lines.append("This command requires the following permissions:")
        for i, grant in enumerate(record.permissions, start=1):
            lines.append(f"  {i}. {grant.to_flag()}  ({grant.describe()})")
            if grant.reason:
                lines.append(f"     reason: {grant.reason}")
    lines.append("")
    lines.append("Approval is remembered until the command is regenerated or corrected.")
    return "\n".join(lines)


class ConsoleApprovalPrompt:
    """Interactive y/N prompt on the terminal.

    Answers are read from the terminal, not from stdin, so data piped into
    the command is never taken as consent. End of input or the absence of a
    terminal counts as a refusal.
    """

    def __init__(
        self,
        input_func: Optional[Callable[[str], str]] = None,
        output: Optional[TextIO] = None,
    ) -> None:
        self._input = input_func or read_from_terminal
        self._output = output

    def _write(self, text: str) -> None:
        out = self._output or sys.stderr
        out.write(text + "\n")
        out.flush()

    def confirm(self, record: ArtifactRecord) -> bool:
        self._write(render_request(record))
        while True:
            try:
                answer = self._input("Run this command? [y/N]: ")
            except EOFError as e:
                logger.info(f"no answer for '{record.name}' ({e or 'end of input'}); treating as denied")
                return False
            choice = answer.strip().lower()
            if choice in ("y", "yes"):
                logger.info(f"user approved '{record.name}' revision {record.revision}")
                return True
            if choice in ("", "n", "no"):
                logger.info(f"user denied '{record.name}' revision {record.revision}")
                return False
            self._write("Please answer 'y' or 'n'.")


class PreAuthorizedPrompt:
    """Approves without asking (``--yes``)."""

    def confirm(self, record: ArtifactRecord) -> bool:
        logger.info(f"'{record.name}' revision {record.revision} pre-authorized")
        return True
