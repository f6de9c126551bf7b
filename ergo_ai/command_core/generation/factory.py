from __future__ import annotations

"""Convenience factories for selecting a generator backend.

The backend is chosen from ``Settings.generator_backend``; each backend is
built with the same ``PermissionPolicy`` so that the allow-list applies no
matter where a candidate comes from.
"""

from typing import Callable, Dict, Optional

import httpx

from ergo_ai.core.config import GeneratorBackend, Settings

from ..permissions.policy import PermissionPolicy
from .base import Generator
from .deterministic import DeterministicGenerator
from .remote import RemoteGenerator
from .template import TemplateGenerator


def build_policy(settings: Settings) -> PermissionPolicy:
    """Build the ``PermissionPolicy`` described by the settings' allow-list."""
    return PermissionPolicy(settings.allowed_permission_kinds)


def _deterministic(settings: Settings, policy: PermissionPolicy, client: Optional[httpx.Client]) -> Generator:
    return DeterministicGenerator(policy=policy)


def _template(settings: Settings, policy: PermissionPolicy, client: Optional[httpx.Client]) -> Generator:
    return TemplateGenerator(policy=policy)


def _remote(settings: Settings, policy: PermissionPolicy, client: Optional[httpx.Client]) -> Generator:
    cfg = settings.anthropic
    return RemoteGenerator(
        cfg.api_key,
        policy=policy,
        model=cfg.model,
        base_url=cfg.base_url,
        timeout=cfg.timeout,
        client=client,
    )


_BACKENDS: Dict[GeneratorBackend, Callable[[Settings, PermissionPolicy, Optional[httpx.Client]], Generator]] = {
    GeneratorBackend.deterministic: _deterministic,
    GeneratorBackend.template: _template,
    GeneratorBackend.remote: _remote,
}


def create_generator(
    settings: Settings,
    policy: Optional[PermissionPolicy] = None,
    *,
    http_client: Optional[httpx.Client] = None,
) -> Generator:
    """
    Construct the generator selected by ``settings``.

    Raises:
        MissingCredential: If the remote backend is selected without an API key.
    """
    backend = settings.generator_backend
    return _BACKENDS[backend](settings, policy or build_policy(settings), http_client)
