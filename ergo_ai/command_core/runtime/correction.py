from __future__ import annotations

"""Corrective loop (``--nope``).

Regenerates an existing command from its original intent plus whatever the
last run left behind (captured stderr) and the user's feedback. The result is
the next revision of the same record, stored unapproved so the permission
gate runs again before it executes.
"""

from typing import Optional

from ergo_ai.core.logging_config import get_logger

from ..errors import NoRecordToCorrect
from ..generation.base import Generator
from ..repos.interfaces import ArtifactRepository
from ..schemas.domain import ArtifactRecord, CorrectionContext

logger = get_logger(__name__)


class Corrector:
    def __init__(self, cache: ArtifactRepository, generator: Generator) -> None:
        self._cache = cache
        self._generator = generator

    def build_context(self, record: ArtifactRecord, feedback_text: Optional[str]) -> CorrectionContext:
        feedback = feedback_text.strip() if feedback_text else None
        return CorrectionContext(
            previous_stderr=record.last_stderr or None,
            feedback_text=feedback or None,
            previous_script=record.script,
        )

    def correct(self, name: str, feedback_text: Optional[str] = None) -> ArtifactRecord:
        """
        Produce and store the next revision of ``name``.

        Raises:
            NoRecordToCorrect: If ``name`` has no record in this namespace.
            GenerationError: If the generator fails; the stored record is unchanged.
        """
        record = self._cache.get(name)
        if record is None:
            raise NoRecordToCorrect(name, self._cache.mode.value)

        context = self.build_context(record, feedback_text)
        logger.info(
            f"correcting '{name}' revision {record.revision} "
            f"(stderr={'yes' if context.previous_stderr else 'no'}, feedback={'yes' if context.feedback_text else 'no'})"
        )
        candidate = self._generator.generate(record.intent, context)
        revised = record.revise(candidate)
        self._cache.put(revised)
        return revised
