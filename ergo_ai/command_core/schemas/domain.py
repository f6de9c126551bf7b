from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator

from ergo_ai.core.config import Mode

from ..permissions.grammar import PermissionGrant, canonical_permissions, normalize_grants
from .base import BaseSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def compute_content_hash(script: str, permissions: List[PermissionGrant]) -> str:
    """Digest of the script and its reason-free permission list."""
    payload = json.dumps(
        {"script": script, "permissions": canonical_permissions(permissions)},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class CorrectionContext(BaseSchema):
    """Context handed to a generator when refining an existing artifact."""

    previous_stderr: Optional[str] = None
    feedback_text: Optional[str] = None
    previous_script: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.previous_stderr or self.feedback_text)


class Candidate(BaseSchema):
    """A generator's proposed artifact, already permission-validated."""

    script: str = Field(min_length=1)
    permissions: List[PermissionGrant] = Field(default_factory=list)
    explanation: str = ""


class ArtifactRecord(BaseSchema):
    """The unit of caching: one generated command in one namespace.

    ``content_hash`` is always recomputed from ``script`` and ``permissions``
    on validation, so a record edited on disk loses its approval. Records are
    frozen; changes go through ``revise``, ``approved`` or ``with_execution``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    mode: Mode
    intent: str
    script: str
    permissions: List[PermissionGrant] = Field(default_factory=list)
    description: str = ""

    revision: int = Field(default=1, ge=1)
    content_hash: str = ""
    approved_hash: Optional[str] = None

    last_stderr: Optional[str] = None
    last_exit_code: Optional[int] = None

    usage_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    last_used_at: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def _name_is_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value

    @field_validator("permissions")
    @classmethod
    def _normalize(cls, value: List[PermissionGrant]) -> List[PermissionGrant]:
        return normalize_grants(value)

    @model_validator(mode="after")
    def _recompute_hash(self) -> "ArtifactRecord":
        object.__setattr__(self, "content_hash", compute_content_hash(self.script, self.permissions))
        return self

    # ------------------------------------------------------------------
    @classmethod
    def from_candidate(cls, *, name: str, mode: Mode, intent: str, candidate: Candidate) -> "ArtifactRecord":
        """Create the first revision of a command."""
        return cls(
            name=name,
            mode=mode,
            intent=intent,
            script=candidate.script,
            permissions=candidate.permissions,
            description=candidate.explanation,
        )

    @property
    def is_approved(self) -> bool:
        return self.approved_hash is not None and self.approved_hash == self.content_hash

    def revise(self, candidate: Candidate) -> "ArtifactRecord":
        """
        Return the next revision built from ``candidate``.

        The revision is bumped and approval cleared unconditionally, even if the
        new content hashes to the same value. Name, intent and creation time are
        kept so the record stays the same evolving command.
        """
        return ArtifactRecord(
            name=self.name,
            mode=self.mode,
            intent=self.intent,
            script=candidate.script,
            permissions=candidate.permissions,
            description=candidate.explanation or self.description,
            revision=self.revision + 1,
            approved_hash=None,
            last_stderr=self.last_stderr,
            last_exit_code=self.last_exit_code,
            usage_count=self.usage_count,
            created_at=self.created_at,
            updated_at=_utc_now(),
            last_used_at=self.last_used_at,
        )

    def approved(self) -> "ArtifactRecord":
        """Copy of the record with its current content approved."""
        return self.model_copy(update={"approved_hash": self.content_hash, "updated_at": _utc_now()})

    def with_execution(self, *, stderr: Optional[str], exit_code: Optional[int]) -> "ArtifactRecord":
        """Copy of the record carrying the outcome of an execution."""
        now = _utc_now()
        return self.model_copy(
            update={
                "last_stderr": stderr,
                "last_exit_code": exit_code,
                "usage_count": self.usage_count + 1,
                "last_used_at": now,
                "updated_at": now,
            }
        )


class ExecutionResult(BaseSchema):
    """Outcome of running an artifact. A nonzero exit code is the artifact's own failure."""

    name: str
    exit_code: int
    stderr: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class LastInvocation(BaseSchema):
    """Pointer to the most recently resolved generated command, used by ``--nope``."""

    name: str
    args: List[str] = Field(default_factory=list)
    recorded_at: datetime = Field(default_factory=_utc_now)
