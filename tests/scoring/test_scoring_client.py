"""Tests for the HTTP scoring client."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from docscore.config import ScoringConfig
from docscore.exceptions import (
    ScoringError,
    ScoringMalformedResponse,
    ScoringTransientRejection,
)
from docscore.scoring import (
    TRUNCATION_MARKER,
    HttpScoringClient,
    extract_json_object,
    parse_score,
    truncate_document,
    weighted_total,
)

WEIGHTS = ScoringConfig().weights

SCORE_BODY = {
    "subscores": {"skills": 8, "experience": 7, "education": 6, "projects": 9},
    "strengths": ["asyncio", "testing"],
    "improvements": ["frontend"],
    "totalScore": 75.5,
    "narrative": "Strong backend profile",
    "candidateName": "Ada Lovelace",
}


def make_client(
    handler: Callable[[httpx.Request], httpx.Response],
    **config: object,
) -> HttpScoringClient:
    transport = httpx.MockTransport(handler)
    return HttpScoringClient(
        ScoringConfig(**config),
        client=httpx.AsyncClient(transport=transport),
    )


class TestParsing:
    """Tests for response parsing helpers."""

    def test_fenced_json(self) -> None:
        """Markdown fences and surrounding prose are ignored."""
        text = 'Here is the score:\n```json\n{"totalScore": 50}\n```\nThanks!'

        assert extract_json_object(text) == {"totalScore": 50}

    @pytest.mark.parametrize("text", ["no json here", "{not: valid}", "[1, 2]"])
    def test_unparsable(self, text: str) -> None:
        """Text without a JSON object is malformed."""
        with pytest.raises(ScoringMalformedResponse):
            extract_json_object(text)

    def test_legacy_keys_folded(self) -> None:
        """Flat legacy subscores are folded and weighted into a total."""
        data = {
            "skillsMatch": 8,
            "experienceRelevance": 6,
            "educationFit": 6,
            "projectImpact": 6,
        }

        result = parse_score(data, WEIGHTS)

        assert result.subscores == {
            "skills": 8.0,
            "experience": 6.0,
            "education": 6.0,
            "projects": 6.0,
        }
        assert result.total_score == 67.0

    def test_explicit_total_kept(self) -> None:
        """A total from the service is not recomputed."""
        assert parse_score(SCORE_BODY, WEIGHTS).total_score == 75.5

    def test_missing_score(self) -> None:
        """A payload with neither total nor subscores is malformed."""
        with pytest.raises(ScoringMalformedResponse):
            parse_score({"narrative": "no numbers"}, WEIGHTS)

    def test_out_of_range_total(self) -> None:
        """Validation failures are reported as malformed responses."""
        with pytest.raises(ScoringMalformedResponse):
            parse_score({"totalScore": 150}, WEIGHTS)

    def test_weighted_total(self) -> None:
        """Missing subscores count as zero."""
        assert weighted_total({"skills": 10}, WEIGHTS) == 35.0

    def test_truncate(self) -> None:
        """Long documents are cut and marked."""
        assert truncate_document("abcdef", 10) == "abcdef"
        assert truncate_document("abcdef", 3) == "abc" + TRUNCATION_MARKER


class TestHttpScoringClient:
    """Tests for HttpScoringClient against a mock transport."""

    async def test_successful_score(self) -> None:
        """The document and description are posted; the body is parsed."""
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=SCORE_BODY)

        async with make_client(handler) as scorer:
            result = await scorer.score("Ada's resume", "Python developer")

        assert seen == [{"document": "Ada's resume", "description": "Python developer"}]
        assert result.total_score == 75.5
        assert result.candidate_name == "Ada Lovelace"

    async def test_document_truncated(self) -> None:
        """Documents over the limit are truncated before sending."""
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content)["document"])
            return httpx.Response(200, json=SCORE_BODY)

        async with make_client(handler, max_document_chars=100) as scorer:
            await scorer.score("x" * 500, "desc")

        assert seen == ["x" * 100 + TRUNCATION_MARKER]

    async def test_fenced_text_response(self) -> None:
        """A fenced model reply is accepted."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="```json\n" + json.dumps(SCORE_BODY) + "\n```")

        async with make_client(handler) as scorer:
            result = await scorer.score("text", "desc")

        assert result.strengths == ["asyncio", "testing"]

    async def test_rate_limited(self) -> None:
        """429 is a transient rejection carrying Retry-After."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "12"}, text="slow down")

        async with make_client(handler) as scorer:
            with pytest.raises(ScoringTransientRejection) as exc_info:
                await scorer.score("text", "desc")

        assert exc_info.value.retry_after == 12.0

    async def test_unavailable_without_retry_after(self) -> None:
        """503 is transient too; Retry-After is optional."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async with make_client(handler) as scorer:
            with pytest.raises(ScoringTransientRejection) as exc_info:
                await scorer.score("text", "desc")

        assert exc_info.value.retry_after is None

    async def test_server_error(self) -> None:
        """Other error statuses are plain scoring errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="internal error")

        async with make_client(handler) as scorer:
            with pytest.raises(ScoringError) as exc_info:
                await scorer.score("text", "desc")

        assert not isinstance(exc_info.value, ScoringTransientRejection)
        assert "500" in str(exc_info.value)

    async def test_malformed_body(self) -> None:
        """An unparsable 200 body is a malformed response."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="I cannot score this document.")

        async with make_client(handler) as scorer:
            with pytest.raises(ScoringMalformedResponse):
                await scorer.score("text", "desc")

    async def test_timeout(self) -> None:
        """Transport timeouts become scoring errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler) as scorer:
            with pytest.raises(ScoringError, match="timed out"):
                await scorer.score("text", "desc")

    async def test_injected_client_not_closed(self) -> None:
        """A client passed in is left open for its owner."""
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        scorer = HttpScoringClient(ScoringConfig(), client=http)

        await scorer.close()

        assert http.is_closed is False
        await http.aclose()

    async def test_bearer_token(self) -> None:
        """The API key is sent as a bearer token."""
        scorer = HttpScoringClient(ScoringConfig(api_key="secret-key"))

        headers = scorer._http().headers

        assert headers["Authorization"] == "Bearer secret-key"
        await scorer.close()
