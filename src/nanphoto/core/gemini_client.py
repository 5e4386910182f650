"""HTTP client for the Gemini ``generateContent`` REST endpoint.

This module provides :class:`GeminiClient`, the single point of contact with
the external generative model.  It turns a
:class:`~nanphoto.core.types.PromptPayload` into the REST request body,
performs exactly one POST, and hands back the undecoded
:class:`~nanphoto.core.types.RawResponse`.  Interpreting the response is the
job of :mod:`nanphoto.core.response_normalizer`.

Key Responsibilities
--------------------
- **Request assembly**: inline attachments first, then the instruction
  text; the chat persona goes into ``systemInstruction``.
- **Modalities**: payloads that want an image ask for
  ``responseModalities: ["TEXT", "IMAGE"]``; text payloads get the chat
  temperature and output-token limit instead.
- **Transport errors**: timeouts and connection failures are raised as
  :class:`~nanphoto.core.errors.ExternalServiceError`.  Nothing is retried.
- **Model listing**: :meth:`GeminiClient.list_models` reads the names the
  API key can see, for the chat model availability check.

Usage
-----
::

    from nanphoto.core.config import config
    from nanphoto.core.gemini_client import GeminiClient

    client = GeminiClient(config)
    raw = await client.generate(payload, model=config.image_model)
    await client.aclose()
"""

from __future__ import annotations

import base64
import logging
from typing import Any

import httpx

from nanphoto.core.config import NanphotoConfig
from nanphoto.core.errors import ExternalServiceError
from nanphoto.core.types import PromptPayload, RawResponse

logger = logging.getLogger(__name__)

# Grounding with Google Search, as a ``tools`` entry.
GOOGLE_SEARCH_TOOLS: tuple[dict, ...] = ({"googleSearch": {}},)

# The models listing is small; one page covers it.
LIST_MODELS_PAGE_SIZE = 1000


def build_request_body(
    payload: PromptPayload,
    *,
    temperature: float | None = None,
    max_output_tokens: int | None = None,
) -> dict[str, Any]:
    """Translate a payload into the ``generateContent`` JSON body.

    Args:
        payload: The compiled prompt payload.
        temperature: Sampling temperature for text-only payloads.
        max_output_tokens: Output limit for text-only payloads.

    Returns:
        JSON-serialisable request body.
    """
    parts: list[dict[str, Any]] = [
        {
            "inlineData": {
                "mimeType": attachment.mime_type,
                "data": base64.b64encode(attachment.data).decode("ascii"),
            }
        }
        for attachment in payload.attachments
    ]
    parts.append({"text": payload.text})

    body: dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}

    if payload.system_instruction:
        body["systemInstruction"] = {"parts": [{"text": payload.system_instruction}]}

    if payload.wants_image:
        body["generationConfig"] = {"responseModalities": ["TEXT", "IMAGE"]}
    else:
        generation_config: dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if max_output_tokens is not None:
            generation_config["maxOutputTokens"] = max_output_tokens
        if generation_config:
            body["generationConfig"] = generation_config

    if payload.tools:
        body["tools"] = [dict(tool) for tool in payload.tools]

    return body


class GeminiClient:
    """Single-shot async client for Gemini models.

    Args:
        config: Application configuration (API key, base URL, timeouts).
        http_client: Optional pre-built ``httpx.AsyncClient``.  Tests pass one
            backed by ``httpx.MockTransport``.  A client created here is
            closed by :meth:`aclose`; an injected one is left to its owner.
    """

    def __init__(self, config: NanphotoConfig, http_client: httpx.AsyncClient | None = None):
        self.config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=config.request_timeout)

    def endpoint(self, model: str) -> str:
        """Return the ``generateContent`` URL for *model*."""
        return f"{self.config.gemini_base_url.rstrip('/')}/{model}:generateContent"

    def _headers(self) -> dict[str, str]:
        if not self.config.gemini_api_key:
            raise ExternalServiceError(
                "NANPHOTO_GEMINI_API_KEY is not set. Add it to the environment."
            )
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.config.gemini_api_key,
        }

    async def generate(
        self,
        payload: PromptPayload,
        model: str,
        *,
        max_output_tokens: int | None = None,
    ) -> RawResponse:
        """POST one payload to *model* and return the raw response.

        Args:
            payload: The compiled prompt payload.
            model: Gemini model name, e.g. ``gemini-2.5-flash-image``.
            max_output_tokens: Output limit for a text payload; defaults to
                ``chat_max_output_tokens``.

        Returns:
            The undecoded response, whatever its status code.

        Raises:
            ExternalServiceError: API key missing, timeout, or transport failure.
        """
        headers = self._headers()
        body = build_request_body(
            payload,
            temperature=self.config.chat_temperature,
            max_output_tokens=(
                max_output_tokens
                if max_output_tokens is not None
                else self.config.chat_max_output_tokens
            ),
        )

        logger.info(
            f"Calling {model} for mode={payload.mode} "
            f"({len(payload.attachments)} attachment(s), image={payload.wants_image})"
        )

        try:
            response = await self._http.post(self.endpoint(model), headers=headers, json=body)
        except httpx.TimeoutException as e:
            raise ExternalServiceError(f"Model request timed out: {model}") from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Model request failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(f"{model} answered HTTP {response.status_code}")

        return RawResponse(
            status_code=response.status_code,
            body=response.text,
            content_type=response.headers.get("content-type", ""),
        )

    async def list_models(self) -> list[str]:
        """Return the model names visible to the API key, without ``models/``.

        Raises:
            ExternalServiceError: API key missing, transport failure, or a
                non-success answer.
        """
        headers = self._headers()
        url = self.config.gemini_base_url.rstrip("/")

        try:
            response = await self._http.get(
                url, headers=headers, params={"pageSize": LIST_MODELS_PAGE_SIZE}
            )
        except httpx.TimeoutException as e:
            raise ExternalServiceError("Model listing timed out") from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Model listing failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            error = data.get("error") if isinstance(data, dict) else None
            message = error.get("message") if isinstance(error, dict) else None
            raise ExternalServiceError(
                message or f"HTTP {response.status_code}", response.status_code
            )

        models = data.get("models") if isinstance(data, dict) else None
        names = []
        for entry in models or []:
            name = entry.get("name") if isinstance(entry, dict) else None
            if isinstance(name, str) and name:
                names.append(name.removeprefix("models/"))
        logger.debug(f"API key sees {len(names)} model(s)")
        return names

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._http.aclose()
