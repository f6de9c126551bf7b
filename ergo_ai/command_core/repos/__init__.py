"""Persistence for generated artifacts.

``ArtifactRepository`` is the contract the pipeline depends on;
``GenerationCache`` is the JSON-file implementation with one physically
separate store per mode.
"""

from .interfaces import ArtifactRepository
from .json_cache import GenerationCache, atomic_write_json

__all__ = ["ArtifactRepository", "GenerationCache", "atomic_write_json"]
