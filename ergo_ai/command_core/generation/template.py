from __future__ import annotations

"""Offline template generator.

A keyword-matching fallback for when no remote backend is configured. It
covers a handful of common intents; anything it does not recognise becomes a
stub that explains itself on stderr and exits with status 1, which is enough
context for the corrective loop to route the user to a better backend.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple

from ergo_ai.core.logging_config import get_logger

from ..permissions.policy import PermissionPolicy
from ..schemas.domain import Candidate, CorrectionContext
from .base import build_candidate

logger = get_logger(__name__)


@dataclass(frozen=True)
class TemplateRule:
    pattern: Pattern[str]
    explanation: str
    script: str
    permissions: Tuple[str, ...] = ()


def _rule(regex: str, explanation: str, script: str, *permissions: str) -> TemplateRule:
    return TemplateRule(re.compile(regex, re.IGNORECASE), explanation, script, tuple(permissions))


DEFAULT_RULES: List[TemplateRule] = [
    _rule(
        r"\b(password|passphrase|secret)\b",
        "Generate a random password",
        "const charset = 'abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!@#$%^&*';\n"
        "const length = Number(Deno.args[0] ?? 20);\n"
        "const values = crypto.getRandomValues(new Uint32Array(length));\n"
        "console.log(Array.from(values, (v) => charset[v % charset.length]).join(''));",
    ),
    _rule(
        r"\b(uuid|guid)\b",
        "Generate a UUID",
        "console.log(crypto.randomUUID());",
    ),
    _rule(
        r"\b(date|time|timestamp|now|clock)\b",
        "Show the current date and time",
        "console.log(new Date().toISOString());",
    ),
    _rule(
        r"\b(random|dice|roll)\b",
        "Print a random number",
        "const max = Number(Deno.args[0] ?? 100);\nconsole.log(Math.floor(Math.random() * max) + 1);",
    ),
    _rule(
        r"\b(env|environment)\b",
        "Print environment variables",
        "for (const [key, value] of Object.entries(Deno.env.toObject()).sort()) {\n"
        "  console.log(`${key}=${value}`);\n"
        "}",
        "--allow-env",
    ),
    _rule(
        r"\b(files|ls|list)\b",
        "List files in the current directory",
        "const names: string[] = [];\n"
        "for await (const entry of Deno.readDir(Deno.args[0] ?? '.')) names.push(entry.name);\n"
        "console.log(names.sort().join('\\n'));",
        "--allow-read",
    ),
    _rule(
        r"\b(echo|say|print|hello)\b",
        "Echo the arguments",
        "console.log(Deno.args.join(' '));",
    ),
]


def _fallback_script(intent: str) -> str:
    escaped = intent.replace("\\", "\\\\").replace("'", "\\'")
    return (
        f"console.error('ergo template generator has no template for: {escaped}');\n"
        "console.error('Configure ANTHROPIC_API_KEY or use --nope with more detail.');\n"
        "Deno.exit(1);"
    )


@dataclass
class TemplateGenerator:
    """Pick the first rule whose pattern matches the intent."""

    policy: PermissionPolicy = field(default_factory=PermissionPolicy)
    rules: List[TemplateRule] = field(default_factory=lambda: list(DEFAULT_RULES))
    name: str = "template"

    def generate(self, intent: str, context: Optional[CorrectionContext] = None) -> Candidate:
        haystack = intent
        if context is not None and context.feedback_text:
            # feedback may name the intent more precisely than the command did
            haystack = f"{context.feedback_text} {intent}"

        for rule in self.rules:
            if rule.pattern.search(haystack):
                logger.debug(f"template rule '{rule.explanation}' matched '{intent}'")
                return build_candidate(
                    script=rule.script,
                    permissions=rule.permissions,
                    explanation=rule.explanation,
                    policy=self.policy,
                )

        logger.info(f"no template matched '{intent}'; emitting a stub")
        return build_candidate(
            script=_fallback_script(intent),
            permissions=[],
            explanation=f"No template available for {intent}",
            policy=self.policy,
        )
