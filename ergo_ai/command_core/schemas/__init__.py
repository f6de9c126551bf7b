"""Schemas used by the command pipeline.

``base`` holds the strict pydantic base model; ``domain`` holds the artifact
record, generator candidate and execution result models. ``domain`` is not
re-exported here because it depends on the permission grammar, which itself
builds on ``base``.
"""

from .base import BaseSchema

__all__ = ["BaseSchema"]
