"""Generator backends.

- ``DeterministicGenerator``: fixed, reproducible candidates (mock mode, tests).
- ``RemoteGenerator``: Anthropic Messages API over ``httpx``.
- ``TemplateGenerator``: offline keyword templates.

Use ``create_generator`` to pick one from ``Settings``.
"""

from .base import Generator, build_candidate, command_of
from .deterministic import DeterministicGenerator
from .factory import build_policy, create_generator
from .remote import RemoteGenerator, parse_candidate_payload
from .template import TemplateGenerator

__all__ = [
    "DeterministicGenerator",
    "Generator",
    "RemoteGenerator",
    "TemplateGenerator",
    "build_candidate",
    "build_policy",
    "command_of",
    "create_generator",
    "parse_candidate_payload",
]
