"""Remote generator backed by the Anthropic Messages API

Overview
--------
Thin, synchronous HTTP client that asks a hosted model for a Deno TypeScript
program. The model is instructed to answer with a single JSON object; that
object is validated strictly against ``RemoteCandidatePayload`` before it is
turned into a ``Candidate`` through the permission policy.

Errors
------
- Transport failures, timeouts and non-2xx responses raise ``Unavailable``
  carrying the status code and response body where available.
- A reply that is not JSON, or JSON that does not match the payload schema,
  raises ``InvalidResponse`` carrying the raw text.
- Requested permissions outside the grammar or allow-list raise
  ``UnrecognizedPermission``.

No fallback candidate is ever produced: every failure propagates.

Usage
-----
>>> generator = RemoteGenerator(api_key="sk-ant-...", policy=PermissionPolicy())
>>> candidate = generator.generate("show disk usage of the current directory")
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError

from ergo_ai.core.logging_config import get_logger

from ..errors import InvalidResponse, MissingCredential, Unavailable
from ..permissions.policy import PermissionPolicy
from ..schemas.domain import Candidate, CorrectionContext
from .base import build_candidate
from .prompts import build_generation_prompt

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_MODEL = "claude-3-5-haiku-latest"
DEFAULT_MAX_TOKENS = 2048

_FENCE_RE = re.compile(r"^\s*```[A-Za-z]*\s*\n(?P<body>.*?)\n?```\s*$", re.DOTALL)


class RemotePermissionItem(BaseModel):
    """One ``{"permission": ..., "reason": ...}`` entry of a reply."""

    model_config = ConfigDict(extra="ignore")

    permission: StrictStr
    reason: Optional[StrictStr] = None


class RemoteCandidatePayload(BaseModel):
    """Shape the model must answer with.

    Permission entries are either a bare flag string or a
    ``RemotePermissionItem``; anything else is a schema mismatch. Whether a
    well-formed flag names a known kind is decided later by the policy.
    """

    model_config = ConfigDict(extra="ignore")

    script: StrictStr = Field(min_length=1)
    permissions: List[Union[StrictStr, RemotePermissionItem]] = Field(default_factory=list)
    description: Optional[StrictStr] = None

    def permission_specs(self) -> List[Union[str, Dict[str, str]]]:
        return [p if isinstance(p, str) else p.model_dump(exclude_none=True) for p in self.permissions]


def extract_json_text(text: str) -> str:
    """Strip a surrounding Markdown code fence, if the model added one."""
    match = _FENCE_RE.match(text)
    return match.group("body") if match else text.strip()


def parse_candidate_payload(text: str) -> RemoteCandidatePayload:
    """
    Decode and validate the model's reply.

    Raises:
        InvalidResponse: If the text is not JSON or does not match the schema.
    """
    body = extract_json_text(text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise InvalidResponse(f"model reply is not valid JSON: {e.msg}", raw=text) from e
    if not isinstance(data, dict):
        raise InvalidResponse("model reply is not a JSON object", raw=text)
    try:
        return RemoteCandidatePayload.model_validate(data)
    except ValidationError as e:
        raise InvalidResponse(f"model reply does not match the candidate schema: {e.error_count()} error(s)", raw=text) from e


class RemoteGenerator:
    """Generate candidates by calling the Anthropic Messages API.

    Responsibilities
    ----------------
    - Build the generation or correction prompt.
    - POST it to ``{base_url}/v1/messages`` with the API key headers.
    - Extract the text content and validate it into a ``Candidate``.
    """

    name = "remote"

    def __init__(
        self,
        api_key: Optional[str],
        *,
        policy: Optional[PermissionPolicy] = None,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        client: Optional[httpx.Client] = None,
    ) -> None:
        """Create a remote generator.

        Args:
            api_key: Anthropic API key. Required.
            policy: Permission policy applied to every candidate.
            model: Model identifier sent with each request.
            base_url: Base URL of the API (e.g., ``https://api.anthropic.com``).
            timeout: Default HTTP timeout for the internal client.
            max_tokens: Upper bound on the reply length.
            client: Optional preconfigured ``httpx.Client`` to use.

        Raises:
            MissingCredential: If ``api_key`` is empty.
        """
        if not api_key:
            raise MissingCredential()
        self._api_key = api_key
        self.policy = policy or PermissionPolicy()
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self._client = client or httpx.Client(timeout=timeout)
        self._logger = get_logger(__name__)

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _request_body(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

    def _complete(self, prompt: str) -> str:
        url = f"{self.base_url}/v1/messages"
        self._logger.debug(f"RemoteGenerator: POST {url} model={self.model}")
        try:
            r = self._client.post(url, headers=self._headers(), json=self._request_body(prompt))
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise Unavailable(
                f"generation request failed: {e.response.status_code}",
                status_code=e.response.status_code,
                details=e.response.text,
            ) from e
        except httpx.TimeoutException as e:
            raise Unavailable(f"generation request timed out: {e}") from e
        except httpx.TransportError as e:
            raise Unavailable(f"generation service unreachable: {e}") from e

        try:
            data = r.json()
        except ValueError as e:
            raise InvalidResponse("generation service returned a non-JSON body", raw=r.text) from e

        content = data.get("content") if isinstance(data, dict) else None
        texts = [
            block.get("text")
            for block in (content or [])
            if isinstance(block, dict) and block.get("type", "text") == "text" and isinstance(block.get("text"), str)
        ]
        if not texts:
            raise InvalidResponse("generation service reply has no text content", raw=r.text)
        return "".join(texts)

    def generate(self, intent: str, context: Optional[CorrectionContext] = None) -> Candidate:
        prompt = build_generation_prompt(intent, self.policy.allowed_kinds, context)
        text = self._complete(prompt)
        payload = parse_candidate_payload(text)
        self._logger.info(f"RemoteGenerator: received candidate for '{intent}' ({len(payload.script)} chars)")
        return build_candidate(
            script=payload.script,
            permissions=payload.permission_specs(),
            explanation=payload.description or "",
            policy=self.policy,
        )

    def close(self) -> None:
        self._client.close()
