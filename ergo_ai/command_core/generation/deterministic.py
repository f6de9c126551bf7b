from __future__ import annotations

"""Deterministic generator used in mock mode and in tests.

Known command names map to fixed TypeScript candidates; anything else gets a
generic echo script. Corrections are reproducible too: a command with a known
correction returns that revision, any other command returns its base script
annotated with the correction context.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ergo_ai.core.logging_config import get_logger

from ..permissions.policy import PermissionPolicy
from ..schemas.domain import Candidate, CorrectionContext
from .base import build_candidate, command_of

logger = get_logger(__name__)

# name -> (explanation, script, permissions)
_Entry = Tuple[str, str, List[str]]

KNOWN_COMMANDS: Dict[str, _Entry] = {
    "hello": (
        "Greet the user",
        "console.log(`Hello from ergo! Arguments: ${Deno.args.join(' ')}`);",
        [],
    ),
    "timestamp": (
        "Show current timestamp",
        "const now = new Date();\n"
        "console.log(now.toISOString().replace('T', '_').replace(/:/g, '-').split('.')[0]);",
        [],
    ),
    "uuid": (
        "Generate a UUID",
        "console.log(crypto.randomUUID());",
        [],
    ),
    "weather": (
        "Get current weather",
        "const response = await fetch('https://wttr.in/?format=%l:+%c+%t');\n"
        "const weather = await response.text();\n"
        "console.log(`Weather: ${weather.trim()}`);",
        ["--allow-net=wttr.in"],
    ),
    "project-info": (
        "Show project information",
        "const cwd = Deno.cwd();\n"
        "console.log(`Project: ${cwd.split('/').pop() || 'unknown'}`);\n"
        "try {\n"
        "  const git = new Deno.Command('git', { args: ['branch', '--show-current'] });\n"
        "  const out = await git.output();\n"
        "  const branch = new TextDecoder().decode(out.stdout).trim();\n"
        "  console.log(`Git branch: ${branch || 'not a git repo'}`);\n"
        "} catch {\n"
        "  console.log('Git branch: not a git repo');\n"
        "}\n"
        "let files = 0;\n"
        "for await (const entry of Deno.readDir('.')) {\n"
        "  if (entry.isFile) files++;\n"
        "}\n"
        "console.log(`Files: ${files}`);",
        ["--allow-read", "--allow-run=git"],
    ),
    "password": (
        "Generate a password",
        "console.log(Math.random().toString(36).slice(2, 7).padEnd(5, '0'));",
        [],
    ),
}

KNOWN_CORRECTIONS: Dict[str, _Entry] = {
    "password": (
        "Generate a strong password (24 characters, mixed case, digits, symbols)",
        "const lower = 'abcdefghijklmnopqrstuvwxyz';\n"
        "const upper = lower.toUpperCase();\n"
        "const digits = '0123456789';\n"
        "const symbols = '!@#$%^&*()-_=+[]{}';\n"
        "const all = lower + upper + digits + symbols;\n"
        "const pick = (set: string) => set[crypto.getRandomValues(new Uint32Array(1))[0] % set.length];\n"
        "const chars = [pick(lower), pick(upper), pick(digits), pick(symbols)];\n"
        "while (chars.length < 24) chars.push(pick(all));\n"
        "for (let i = chars.length - 1; i > 0; i--) {\n"
        "  const j = crypto.getRandomValues(new Uint32Array(1))[0] % (i + 1);\n"
        "  [chars[i], chars[j]] = [chars[j], chars[i]];\n"
        "}\n"
        "console.log(chars.join(''));",
        [],
    ),
}


def _git_entry(name: str) -> _Entry:
    action = name[len("git-"):]
    return (
        f"Custom git command for {action}",
        f"const proc = new Deno.Command('git', {{ args: ['{action}', ...Deno.args] }});\n"
        "const { code, stdout, stderr } = await proc.output();\n"
        "await Deno.stdout.write(stdout);\n"
        "await Deno.stderr.write(stderr);\n"
        "Deno.exit(code);",
        ["--allow-run=git"],
    )


def _generic_entry(intent: str) -> _Entry:
    escaped = intent.replace("\\", "\\\\").replace("'", "\\'")
    return (
        f"Generated command for {intent}",
        f"console.log('This is a generated command: {escaped}');",
        [],
    )


def _comment(text: str) -> str:
    return " ".join(text.split())


@dataclass
class DeterministicGenerator:
    """Maps known intents to fixed candidates.

    Attributes:
        policy: Permission policy every candidate is validated against.
        calls: Intents this instance has been asked to generate, in order.
    """

    policy: PermissionPolicy = field(default_factory=PermissionPolicy)
    calls: List[Tuple[str, Optional[CorrectionContext]]] = field(default_factory=list)
    name: str = "deterministic"

    def _base_entry(self, intent: str) -> _Entry:
        command = command_of(intent)
        if command in KNOWN_COMMANDS:
            return KNOWN_COMMANDS[command]
        if command.startswith("git-") and len(command) > len("git-"):
            return _git_entry(command)
        return _generic_entry(intent)

    def generate(self, intent: str, context: Optional[CorrectionContext] = None) -> Candidate:
        self.calls.append((intent, context))
        command = command_of(intent)

        if context is not None and command in KNOWN_CORRECTIONS:
            explanation, script, permissions = KNOWN_CORRECTIONS[command]
        else:
            explanation, script, permissions = self._base_entry(intent)
            if context is not None and not context.is_empty:
                notes = []
                if context.feedback_text:
                    notes.append(f"// feedback: {_comment(context.feedback_text)}")
                if context.previous_stderr:
                    notes.append(f"// previous error: {_comment(context.previous_stderr)}")
                script = "\n".join(notes + [script])

        logger.debug(f"deterministic candidate for '{intent}' (correction={context is not None})")
        return build_candidate(script=script, permissions=permissions, explanation=explanation, policy=self.policy)
