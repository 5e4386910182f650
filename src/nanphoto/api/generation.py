"""Generation orchestration shared by every API route.

:class:`GenerationService` runs one request through the whole pipeline:

1. validate the request (no external call on failure)
2. gather best-effort enrichment (text correction, fact lookup)
3. compile the payload with :func:`~nanphoto.api.prompt_builder.build_payload`
4. pick the model and perform the single outbound call
5. normalize the response
6. append produced images to the gallery, ignoring storage failures

It also checks which allowed chat models the API key can use
(:meth:`GenerationService.check_chat_models`).

Errors from steps 1, 4 and 5 propagate to the caller unchanged.  Failures in
steps 2 and 6 never fail the request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from starlette.concurrency import run_in_threadpool

from nanphoto.api.gallery_store import GalleryStore, new_gallery_item
from nanphoto.api.models import ChatRequest, GenerationRequest, TextToImageRequest
from nanphoto.api.prompt_builder import build_payload, fact_topic, text_to_correct, validate_request
from nanphoto.core.config import NanphotoConfig
from nanphoto.core.enrichment import Enrichment, NullEnricher, TextEnricher
from nanphoto.core.errors import NanphotoError
from nanphoto.core.gemini_client import GeminiClient
from nanphoto.core.response_normalizer import normalize_response
from nanphoto.core.types import ModelResult, PromptPayload

logger = logging.getLogger(__name__)

# Minimal text call used to check that a chat model answers.
LIVENESS_PROMPT = "Hi"
LIVENESS_MAX_OUTPUT_TOKENS = 1


@dataclass(frozen=True)
class ModelAvailability:
    """Whether a chat model is visible to the API key and answers."""

    model: str
    listed: bool
    works: bool


@dataclass(frozen=True)
class GenerationOutcome:
    """Result of one generation.

    Attributes:
        result: The normalized model output.
        payload: The payload that was sent.
        model: Model name that served the request.
        gallery_id: Id of the stored gallery item, or ``None`` if nothing
            was stored.
    """

    result: ModelResult
    payload: PromptPayload
    model: str
    gallery_id: str | None = None


class GenerationService:
    """Run generation requests against the external model.

    Args:
        config: Application configuration (models, autosave flag).
        client: Model client; anything with an async
            ``generate(payload, model) -> RawResponse`` works.
        enricher: Auxiliary text service; defaults to :class:`NullEnricher`.
        gallery: Gallery store, or ``None`` when persistence is disabled.
    """

    def __init__(
        self,
        config: NanphotoConfig,
        client: GeminiClient,
        enricher: TextEnricher | None = None,
        gallery: GalleryStore | None = None,
    ):
        self.config = config
        self.client = client
        self.enricher = enricher or NullEnricher()
        self.gallery = gallery

    def select_model(self, request: GenerationRequest) -> str:
        """Return the model that should serve *request*."""
        if isinstance(request, ChatRequest):
            if request.model and request.model in self.config.allowed_chat_models:
                return request.model
            return self.config.chat_model
        if isinstance(request, TextToImageRequest) and request.model:
            return self.config.image_model_choices.get(request.model, self.config.image_model)
        return self.config.image_model

    async def check_chat_models(self) -> tuple[list[ModelAvailability], list[str]]:
        """Check which allowed chat models are usable with the current key.

        A model is listed when the API key can see it, and works when a
        minimal generation call to it succeeds.  Unlisted models are not
        called.

        Returns:
            The status of every allowed chat model, in configured order, and
            the sorted names the key can see.

        Raises:
            ExternalServiceError: The model listing itself failed.
        """
        listed_names = sorted(set(await self.client.list_models()))
        statuses = []
        for model in self.config.allowed_chat_models:
            listed = model in listed_names
            works = listed and await self._answers(model)
            statuses.append(ModelAvailability(model=model, listed=listed, works=works))
        return statuses, listed_names

    async def _answers(self, model: str) -> bool:
        payload = PromptPayload(mode="chat", instruction=LIVENESS_PROMPT)
        try:
            raw = await self.client.generate(
                payload, model, max_output_tokens=LIVENESS_MAX_OUTPUT_TOKENS
            )
            normalize_response(raw)
        except NanphotoError as e:
            logger.info(f"Chat model {model} is not answering: {e.message}")
            return False
        return True

    async def enrich(self, request: GenerationRequest) -> Enrichment:
        """Run the enrichments *request* asks for; failures yield ``None`` fields."""
        corrected_text = None
        facts = None

        literal = text_to_correct(request)
        if literal:
            corrected_text = await self._best_effort(self.enricher.correct_text, literal)

        topic = fact_topic(request)
        if topic:
            facts = await self._best_effort(self.enricher.extract_facts, topic)

        return Enrichment(corrected_text=corrected_text, facts=facts)

    async def _best_effort(self, call, argument: str) -> str | None:
        try:
            return await call(argument)
        except Exception as e:
            # Enrichment must never fail the request.
            logger.warning(f"Enrichment call {getattr(call, '__name__', call)} failed: {e}")
            return None

    async def generate(self, request: GenerationRequest) -> GenerationOutcome:
        """Run *request* end to end.

        Raises:
            ValidationError: Required field missing.
            ExternalServiceError: Transport failure or bad response.
            GenerationRejected: The model declined.
            MissingImage: An image mode returned no image.
        """
        validate_request(request)

        enrichment = await self.enrich(request)
        payload = build_payload(request, enrichment)
        model = self.select_model(request)

        raw = await self.client.generate(payload, model)
        result = normalize_response(raw, require_image=payload.wants_image)

        gallery_id = None
        if result.image is not None and self.config.gallery_autosave:
            gallery_id = await self.save_to_gallery(result)

        return GenerationOutcome(result=result, payload=payload, model=model, gallery_id=gallery_id)

    async def save_to_gallery(self, result: ModelResult) -> str | None:
        """Append an image result to the gallery.

        Storage problems are logged and swallowed so they never mask a
        successful generation.

        Returns:
            The new gallery id, or ``None`` if nothing was stored.
        """
        if self.gallery is None or result.image is None:
            return None

        item = new_gallery_item(result.image.data, result.image.mime_type, result.text)
        try:
            await run_in_threadpool(self.gallery.append, item)
        except NanphotoError as e:
            logger.warning(f"Generated image not saved to gallery: {e.message}")
            return None
        except Exception as e:
            logger.error(f"Gallery store failed while saving generated image: {e}", exc_info=True)
            return None
        return item.id
