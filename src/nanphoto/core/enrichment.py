"""Best-effort auxiliary text services used before the main generation call.

Two enrichments exist:

- **Text correction**: fix spelling and grammar of words that must appear
  verbatim on an image.
- **Fact lookup**: fetch a short bullet list of current facts about an
  infographic topic, using Google Search grounding.

Both are optional.  "Unavailable" is a normal outcome represented by
``None``, never an exception: a failed enrichment only means the prompt is
built from the user's input as-is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from nanphoto.core.errors import NanphotoError
from nanphoto.core.gemini_client import GOOGLE_SEARCH_TOOLS, GeminiClient
from nanphoto.core.response_normalizer import normalize_response
from nanphoto.core.types import PromptPayload

logger = logging.getLogger(__name__)

CORRECTION_INSTRUCTION = (
    "Correct the spelling and grammar of the following text. Keep its language, meaning "
    "and capitalization style. Reply with the corrected text only, without quotes or "
    "explanations.\n\nText: {text}"
)

FACTS_INSTRUCTION = (
    "List 5 to 7 current, verifiable key facts and figures about: {topic}. "
    "Reply with bullet points only, one fact per line, each starting with '- '."
)


@dataclass(frozen=True)
class Enrichment:
    """Outcome of the auxiliary calls for one request.

    Attributes:
        corrected_text: Spell-checked literal text, or ``None`` if not
            requested or unavailable.
        facts: Bullet-point facts, or ``None`` if not requested or unavailable.
    """

    corrected_text: str | None = None
    facts: str | None = None


class TextEnricher(Protocol):
    """Capability interface for the auxiliary text service."""

    async def correct_text(self, text: str) -> str | None: ...

    async def extract_facts(self, topic: str) -> str | None: ...


class NullEnricher:
    """Enricher that never has anything to add."""

    async def correct_text(self, text: str) -> str | None:
        return None

    async def extract_facts(self, topic: str) -> str | None:
        return None


class GeminiTextEnricher:
    """Enrichment backed by a Gemini text model.

    Args:
        client: Shared :class:`GeminiClient`.
        model: Text model name used for both enrichments.
    """

    def __init__(self, client: GeminiClient, model: str):
        self.client = client
        self.model = model

    async def _ask(self, payload: PromptPayload) -> str | None:
        try:
            raw = await self.client.generate(payload, self.model)
            result = normalize_response(raw)
        except NanphotoError as e:
            logger.warning(f"Enrichment ({payload.mode}) unavailable: {e.message}")
            return None
        return result.text or None

    async def correct_text(self, text: str) -> str | None:
        corrected = await self._ask(
            PromptPayload(
                mode="text-correction",
                instruction=CORRECTION_INSTRUCTION.format(text=text),
            )
        )
        if corrected is None:
            return None
        # Models sometimes wrap the answer in quotes despite the instruction.
        return corrected.strip().strip('"«»“”').strip() or None

    async def extract_facts(self, topic: str) -> str | None:
        return await self._ask(
            PromptPayload(
                mode="fact-lookup",
                instruction=FACTS_INSTRUCTION.format(topic=topic),
                tools=GOOGLE_SEARCH_TOOLS,
            )
        )
