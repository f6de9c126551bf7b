"""Runtime pipeline: resolve, gate, execute, correct."""

from .approval import ApprovalPrompt, ConsoleApprovalPrompt, PreAuthorizedPrompt
from .correction import Corrector
from .executor import ProcessOutcome, ProcessRunner, SandboxExecutor, SubprocessRunner
from .resolver import (
    Cached,
    ExecutionPlan,
    Generate,
    Invocation,
    Resolver,
    SystemPath,
    parse_invocation,
    slugify,
)

__all__ = [
    "ApprovalPrompt",
    "Cached",
    "ConsoleApprovalPrompt",
    "Corrector",
    "ExecutionPlan",
    "Generate",
    "Invocation",
    "PreAuthorizedPrompt",
    "ProcessOutcome",
    "ProcessRunner",
    "Resolver",
    "SandboxExecutor",
    "SubprocessRunner",
    "SystemPath",
    "parse_invocation",
    "slugify",
]
