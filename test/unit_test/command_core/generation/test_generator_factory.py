from __future__ import annotations

import pytest

from ergo_ai.command_core.errors import MissingCredential
from ergo_ai.command_core.generation import (
    DeterministicGenerator,
    RemoteGenerator,
    TemplateGenerator,
    build_policy,
    create_generator,
)
from ergo_ai.command_core.permissions import PermissionKind
from ergo_ai.core.config import load_settings


def test_mock_mode_defaults_to_deterministic(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ERGO_USE_MOCK", "1")
    assert isinstance(create_generator(load_settings()), DeterministicGenerator)


def test_production_defaults_to_remote(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    monkeypatch.setenv("ERGO_MODEL", "some-model")

    generator = create_generator(load_settings())

    assert isinstance(generator, RemoteGenerator)
    assert generator.model == "some-model"


def test_production_without_key_raises_missing_credential() -> None:
    with pytest.raises(MissingCredential):
        create_generator(load_settings())


def test_template_backend_needs_no_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ERGO_GENERATOR", "template")
    assert isinstance(create_generator(load_settings()), TemplateGenerator)


def test_policy_follows_allow_list(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ERGO_ALLOWED_PERMISSIONS", "read,net")
    monkeypatch.setenv("ERGO_USE_MOCK", "1")
    settings = load_settings()

    assert build_policy(settings).allowed_kinds == frozenset({PermissionKind.read, PermissionKind.net})
    assert create_generator(settings).policy.allowed_kinds == frozenset({PermissionKind.read, PermissionKind.net})
