"""Shared pytest fixtures for Nanphoto tests."""

import base64
import json
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from nanphoto.core.config import NanphotoConfig
from nanphoto.core.types import RawResponse

# A tiny, valid 1x1 PNG.
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def make_raw_response(data, status_code: int = 200) -> RawResponse:
    """Wrap a JSON-serialisable object as a RawResponse."""
    return RawResponse(status_code=status_code, body=json.dumps(data))


def make_text_response(text: str, finish_reason: str = "STOP") -> RawResponse:
    """Gemini-shaped success response carrying only text."""
    return make_raw_response(
        {
            "candidates": [
                {
                    "finishReason": finish_reason,
                    "content": {"role": "model", "parts": [{"text": text}]},
                }
            ]
        }
    )


def make_image_response(
    image: bytes = PNG_BYTES,
    mime_type: str | None = "image/png",
    text: str | None = None,
) -> RawResponse:
    """Gemini-shaped success response carrying an inline image."""
    inline = {"data": base64.b64encode(image).decode("ascii")}
    if mime_type is not None:
        inline["mimeType"] = mime_type
    parts = []
    if text is not None:
        parts.append({"text": text})
    parts.append({"inlineData": inline})
    return make_raw_response(
        {"candidates": [{"finishReason": "STOP", "content": {"parts": parts}}]}
    )


class FakeModelClient:
    """Stand-in for GeminiClient that replays queued responses.

    Queue ``RawResponse`` objects (or exceptions to raise) in ``responses``;
    every call is recorded in ``calls`` as ``(payload, model)``.  ``models``
    is what :meth:`list_models` answers (an exception is raised instead).
    """

    def __init__(self, responses=None, models=None):
        self.responses = list(responses or [])
        self.models = list(models or [])
        self.calls = []
        self.token_limits = []
        self.closed = False

    async def generate(self, payload, model, *, max_output_tokens=None):
        self.calls.append((payload, model))
        self.token_limits.append(max_output_tokens)
        if not self.responses:
            raise AssertionError("FakeModelClient has no queued response")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def list_models(self):
        if isinstance(self.models, Exception):
            raise self.models
        return list(self.models)

    async def aclose(self):
        self.closed = True


class FakeEnricher:
    """Enricher returning fixed values and recording its inputs."""

    def __init__(self, corrected_text=None, facts=None, fail=False):
        self.corrected_text = corrected_text
        self.facts = facts
        self.fail = fail
        self.corrected = []
        self.topics = []

    async def correct_text(self, text):
        self.corrected.append(text)
        if self.fail:
            raise RuntimeError("correction service down")
        return self.corrected_text

    async def extract_facts(self, topic):
        self.topics.append(topic)
        if self.fail:
            raise RuntimeError("fact service down")
        return self.facts


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> NanphotoConfig:
    """Create a test configuration with an in-memory gallery.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        NanphotoConfig instance for testing
    """
    return NanphotoConfig(
        _env_file=None,
        gemini_api_key="test-key",
        gemini_base_url="https://gemini.test/v1beta/models",
        password="",
        gallery_backend="memory",
        data_dir=str(temp_dir / "data"),
        gallery_max_items=3,
    )


@pytest.fixture
def fake_client() -> FakeModelClient:
    """Model client with an empty response queue."""
    return FakeModelClient()


@pytest.fixture
def fake_enricher() -> FakeEnricher:
    """Enricher that corrects nothing and finds no facts."""
    return FakeEnricher()


@pytest.fixture
def png_bytes() -> bytes:
    """A valid 1x1 PNG image."""
    return PNG_BYTES


@pytest.fixture
def png_base64() -> str:
    """The 1x1 PNG image, base64-encoded for JSON bodies."""
    return base64.b64encode(PNG_BYTES).decode("ascii")


@pytest.fixture
def image_response():
    """Factory for Gemini responses carrying an inline image."""
    return make_image_response


@pytest.fixture
def text_response():
    """Factory for Gemini responses carrying only text."""
    return make_text_response


@pytest.fixture
def raw_response():
    """Factory wrapping any JSON object as a RawResponse."""
    return make_raw_response


@pytest.fixture
def enricher_factory():
    """Factory for enrichers with fixed answers or forced failures."""
    return FakeEnricher
