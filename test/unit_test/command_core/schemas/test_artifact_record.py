from __future__ import annotations

import pytest
from pydantic import ValidationError

from ergo_ai.command_core.permissions import parse_permission
from ergo_ai.command_core.schemas.domain import (
    ArtifactRecord,
    Candidate,
    CorrectionContext,
    ExecutionResult,
    compute_content_hash,
)
from ergo_ai.core.config import Mode


def _candidate(script: str = "console.log('hi');", *permissions: str) -> Candidate:
    grants = [g for p in permissions for g in parse_permission(p)]
    return Candidate(script=script, permissions=grants, explanation="Say hi")


def _record() -> ArtifactRecord:
    return ArtifactRecord.from_candidate(name="hi", mode=Mode.mock, intent="hi there", candidate=_candidate())


def test_from_candidate_starts_at_revision_one_unapproved() -> None:
    record = _record()

    assert record.revision == 1
    assert record.approved_hash is None
    assert not record.is_approved
    assert record.description == "Say hi"
    assert record.content_hash == compute_content_hash(record.script, record.permissions)


def test_hash_ignores_permission_reasons() -> None:
    plain = parse_permission("--allow-net=wttr.in")
    explained = parse_permission("--allow-net=wttr.in", reason="weather")

    assert compute_content_hash("x", plain) == compute_content_hash("x", explained)


def test_hash_changes_with_script_or_permissions() -> None:
    base = compute_content_hash("x", [])
    assert compute_content_hash("y", []) != base
    assert compute_content_hash("x", parse_permission("--allow-read")) != base


def test_content_hash_is_recomputed_on_validation() -> None:
    record = _record().approved()
    data = record.model_dump(mode="json")
    data["script"] = "console.log('tampered');"
    data["content_hash"] = record.content_hash

    reloaded = ArtifactRecord.model_validate(data)

    assert reloaded.content_hash != record.content_hash
    assert not reloaded.is_approved


def test_record_cannot_be_mutated_in_place() -> None:
    record = _record().approved()

    with pytest.raises(ValidationError):
        record.script = "console.log('swapped');"
    with pytest.raises(ValidationError):
        record.permissions = parse_permission("--allow-net")

    assert record.is_approved
    assert record.content_hash == compute_content_hash(record.script, record.permissions)


def test_approved_marks_current_content() -> None:
    record = _record().approved()
    assert record.is_approved
    assert record.approved_hash == record.content_hash


def test_revise_bumps_revision_and_clears_approval_even_when_unchanged() -> None:
    record = _record().approved().with_execution(stderr="boom", exit_code=1)

    revised = record.revise(_candidate())

    assert revised.revision == 2
    assert revised.content_hash == record.content_hash
    assert revised.approved_hash is None
    assert revised.name == record.name
    assert revised.intent == record.intent
    assert revised.created_at == record.created_at
    assert revised.last_stderr == "boom"


def test_with_execution_tracks_usage() -> None:
    record = _record()
    once = record.with_execution(stderr=None, exit_code=0)
    twice = once.with_execution(stderr="warn", exit_code=3)

    assert twice.usage_count == 2
    assert twice.last_exit_code == 3
    assert twice.last_stderr == "warn"
    assert twice.last_used_at is not None


def test_blank_name_is_rejected() -> None:
    with pytest.raises(ValidationError):
        ArtifactRecord(name="  ", mode=Mode.mock, intent="x", script="x")


def test_empty_candidate_script_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Candidate(script="")


def test_correction_context_emptiness() -> None:
    assert CorrectionContext(previous_script="x").is_empty
    assert not CorrectionContext(feedback_text="stronger").is_empty
    assert not CorrectionContext(previous_stderr="TypeError").is_empty


def test_execution_result_success() -> None:
    assert ExecutionResult(name="a", exit_code=0).success
    assert not ExecutionResult(name="a", exit_code=2).success
