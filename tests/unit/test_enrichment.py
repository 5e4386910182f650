"""Tests for nanphoto.core.enrichment — best-effort text correction and facts."""

from __future__ import annotations

import asyncio

from nanphoto.core.enrichment import (
    FACTS_INSTRUCTION,
    GeminiTextEnricher,
    NullEnricher,
)
from nanphoto.core.errors import ExternalServiceError
from nanphoto.core.types import RawResponse


def run(coro):
    return asyncio.run(coro)


class TestNullEnricher:
    def test_returns_nothing(self):
        enricher = NullEnricher()
        assert run(enricher.correct_text("Helo")) is None
        assert run(enricher.extract_facts("tea")) is None


class TestGeminiTextEnricher:
    """Enrichment calls go through the shared model client."""

    def test_correct_text_strips_quotes(self, fake_client, text_response):
        fake_client.responses.append(text_response('"Hello World"\n'))
        enricher = GeminiTextEnricher(fake_client, "gemini-2.5-flash")

        assert run(enricher.correct_text("Helo Wrld")) == "Hello World"

        payload, model = fake_client.calls[0]
        assert model == "gemini-2.5-flash"
        assert payload.mode == "text-correction"
        assert "Helo Wrld" in payload.text
        assert payload.wants_image is False

    def test_extract_facts_uses_search_grounding(self, fake_client, text_response):
        fake_client.responses.append(text_response("- Fact one\n- Fact two"))
        enricher = GeminiTextEnricher(fake_client, "gemini-2.5-flash")

        assert run(enricher.extract_facts("green tea")) == "- Fact one\n- Fact two"

        payload, _ = fake_client.calls[0]
        assert payload.instruction == FACTS_INSTRUCTION.format(topic="green tea")
        assert payload.tools == ({"googleSearch": {}},)

    def test_transport_failure_is_unavailable(self, fake_client):
        fake_client.responses.append(ExternalServiceError("down"))
        enricher = GeminiTextEnricher(fake_client, "m")
        assert run(enricher.correct_text("Helo")) is None

    def test_error_status_is_unavailable(self, fake_client):
        fake_client.responses.append(RawResponse(status_code=500, body=""))
        enricher = GeminiTextEnricher(fake_client, "m")
        assert run(enricher.extract_facts("tea")) is None

    def test_rejection_is_unavailable(self, fake_client, text_response):
        fake_client.responses.append(text_response("", finish_reason="SAFETY"))
        enricher = GeminiTextEnricher(fake_client, "m")
        assert run(enricher.correct_text("Helo")) is None

    def test_empty_answer_is_unavailable(self, fake_client, text_response):
        fake_client.responses.append(text_response('  ""  '))
        enricher = GeminiTextEnricher(fake_client, "m")
        assert run(enricher.correct_text("Helo")) is None
