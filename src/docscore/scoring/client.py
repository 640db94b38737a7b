"""HTTP client for a JSON scoring endpoint.

The endpoint receives ``{"document": ..., "description": ...}`` and answers
with a score object. Responses produced by language models are tolerated:
markdown code fences and text around the JSON object are stripped, and the
legacy flat subscore keys (``skillsMatch`` etc.) are folded into
``subscores``.
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx
from pydantic import ValidationError

from docscore.config import ScoringConfig, get_settings
from docscore.exceptions import (
    ScoringError,
    ScoringMalformedResponse,
    ScoringTransientRejection,
)
from docscore.logging import get_logger
from docscore.schemas import ScoreResult

logger = get_logger(__name__)

TRUNCATION_MARKER = "... [truncated]"

# Status codes meaning "slow down", not "this request is bad"
TRANSIENT_STATUS_CODES = frozenset({429, 503})

LEGACY_SUBSCORE_KEYS = {
    "skillsMatch": "skills",
    "experienceRelevance": "experience",
    "educationFit": "education",
    "projectImpact": "projects",
}

_FENCE = re.compile(r"```(?:json)?\s*")


def truncate_document(text: str, max_chars: int) -> str:
    """Cut ``text`` to ``max_chars`` characters and mark the cut."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the JSON object embedded in ``text``.

    Raises:
        ScoringMalformedResponse: No parsable JSON object found
    """
    cleaned = _FENCE.sub("", text)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end < start:
        raise ScoringMalformedResponse("No JSON object in scoring response")
    try:
        data = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError as e:
        raise ScoringMalformedResponse(f"Invalid JSON in scoring response: {e}") from e
    if not isinstance(data, dict):
        raise ScoringMalformedResponse("Scoring response is not a JSON object")
    return data


def weighted_total(subscores: dict[str, float], weights: dict[str, float]) -> float:
    """Combine 0-10 subscores into a 0-100 total, rounded to one decimal."""
    total = sum(subscores.get(name, 0.0) * weight for name, weight in weights.items())
    return round(total * 10, 1)


def parse_score(data: dict[str, Any], weights: dict[str, float]) -> ScoreResult:
    """Build a ScoreResult from a decoded response payload.

    Raises:
        ScoringMalformedResponse: The payload does not describe a score
    """
    payload = dict(data)
    subscores = dict(payload.get("subscores") or {})
    for legacy, name in LEGACY_SUBSCORE_KEYS.items():
        if legacy in payload:
            subscores.setdefault(name, payload.pop(legacy))
    payload["subscores"] = subscores

    if payload.get("totalScore") is None and payload.get("total_score") is None:
        if not subscores:
            raise ScoringMalformedResponse("Scoring response has neither totalScore nor subscores")
        try:
            payload["totalScore"] = weighted_total(
                {k: float(v) for k, v in subscores.items()}, weights
            )
        except (TypeError, ValueError) as e:
            raise ScoringMalformedResponse(f"Non-numeric subscore: {e}") from e

    try:
        return ScoreResult.model_validate(payload)
    except ValidationError as e:
        raise ScoringMalformedResponse(
            f"Scoring response failed validation ({e.error_count()} errors)"
        ) from e


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class HttpScoringClient:
    """ScoringService posting to an HTTP endpoint.

    Usage:
        async with HttpScoringClient() as scorer:
            result = await scorer.score(text, description)
    """

    def __init__(
        self,
        config: ScoringConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Scoring configuration (uses settings if not provided)
            client: Optional pre-built httpx client (tests inject a
                MockTransport-backed one); closed by the caller
        """
        self._config = config or get_settings().scoring
        self._owns_client = client is None
        self._client = client

    @property
    def config(self) -> ScoringConfig:
        return self._config

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._config.api_key:
                headers["Authorization"] = f"Bearer {self._config.api_key}"
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self._config.timeout_seconds,
            )
        return self._client

    async def score(self, text: str, description: str) -> ScoreResult:
        """Score one document.

        Raises:
            ScoringTransientRejection: HTTP 429/503 (carries Retry-After)
            ScoringMalformedResponse: Unparsable or invalid response body
            ScoringError: Any other HTTP or transport failure
        """
        body = {
            "document": truncate_document(text, self._config.max_document_chars),
            "description": description,
        }
        try:
            response = await self._http().post(self._config.endpoint_url, json=body)
        except httpx.TimeoutException as e:
            raise ScoringError(f"Scoring request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ScoringError(f"Scoring request failed: {e}") from e

        self._raise_for_status(response)

        data = extract_json_object(response.text)
        result = parse_score(data, self._config.weights)
        logger.debug("Scored document ({} chars): {}", len(text), result.total_score)
        return result

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Convert HTTP error statuses to scoring exceptions."""
        status = response.status_code
        if status < 400:
            return
        if status in TRANSIENT_STATUS_CODES:
            retry_after = _retry_after(response)
            logger.info("Scoring service throttled ({}), retry after {}", status, retry_after)
            raise ScoringTransientRejection(
                f"Scoring service rejected the request ({status})",
                retry_after=retry_after,
            )
        raise ScoringError(f"Scoring service error ({status}): {response.text[:200]}")

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> HttpScoringClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
