from __future__ import annotations

"""Prompt builders for the remote generator."""

from typing import Optional

from ..permissions.grammar import KIND_DESCRIPTIONS, PermissionKind
from ..schemas.domain import CorrectionContext

RESPONSE_SHAPE = """{
  "description": "Brief description",
  "script": "console.log('working code here');",
  "permissions": [{"permission": "--allow-net=example.com", "reason": "why it is needed"}]
}"""

MAX_CONTEXT_CHARS = 4000


def _permission_lines(allowed: frozenset[PermissionKind]) -> str:
    lines = []
    for kind in PermissionKind:
        if kind in allowed:
            lines.append(f"- --allow-{kind.value}[=target,...]: {KIND_DESCRIPTIONS[kind]}")
    return "\n".join(lines) if lines else "- (no permissions may be requested)"


def _clip(text: str) -> str:
    if len(text) <= MAX_CONTEXT_CHARS:
        return text
    return text[-MAX_CONTEXT_CHARS:]


def build_generation_prompt(
    intent: str,
    allowed: frozenset[PermissionKind],
    context: Optional[CorrectionContext] = None,
) -> str:
    """Build the user message sent to the model for ``intent``."""
    sections = [
        "CRITICAL: Your response must be EXACTLY a JSON object. No explanations, no code fences, no other text.",
        f"Write a Deno TypeScript program that does the following: {intent}",
        f"RESPOND WITH EXACTLY THIS FORMAT (with your values):\n{RESPONSE_SHAPE}",
        "RULES:\n"
        "- Create real, working functionality, no placeholder code\n"
        "- Command-line arguments are available as Deno.args\n"
        "- Request the MINIMAL set of permissions; an empty list is preferred\n"
        "- Narrow permissions to specific targets (hosts, paths, programs, variables) where possible\n"
        "- Write errors to stderr and exit with a nonzero code on failure\n"
        f"- Valid permissions:\n{_permission_lines(allowed)}",
    ]

    if context is not None:
        correction = ["This is a correction of a previous version that did not do what the user wanted."]
        if context.previous_script:
            correction.append(f"Previous script:\n{_clip(context.previous_script)}")
        if context.previous_stderr:
            correction.append(f"Standard error of the last run:\n{_clip(context.previous_stderr)}")
        if context.feedback_text:
            correction.append(f"User feedback: {context.feedback_text}")
        if context.is_empty:
            correction.append("The user gave no details; improve correctness and robustness.")
        sections.append("\n\n".join(correction))

    sections.append("CRITICAL: RESPOND ONLY WITH THE JSON OBJECT - NO OTHER TEXT")
    return "\n\n".join(sections)
