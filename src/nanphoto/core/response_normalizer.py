"""Normalization of Gemini ``generateContent`` responses.

:func:`normalize_response` turns a :class:`~nanphoto.core.types.RawResponse`
into a :class:`~nanphoto.core.types.ModelResult` or raises one of the
classified errors from :mod:`nanphoto.core.errors`:

==========================  ===============================================
Condition                   Outcome
==========================  ===============================================
non-2xx status              ``ExternalServiceError`` (error message or body)
unparseable 2xx body        ``ExternalServiceError``
prompt blocked              ``GenerationRejected`` (block reason)
finishReason not STOP /     ``GenerationRejected`` (finish reason)
MAX_TOKENS
image required, none found  ``MissingImage``
otherwise                   ``ModelResult``
==========================  ===============================================

The function is pure and synchronous.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any

from nanphoto.core.errors import ExternalServiceError, GenerationRejected, MissingImage
from nanphoto.core.types import DEFAULT_IMAGE_MIME_TYPE, InlineImage, ModelResult, RawResponse

logger = logging.getLogger(__name__)

# Finish reasons that still carry a usable answer.
ACCEPTED_FINISH_REASONS = frozenset({"STOP", "MAX_TOKENS"})

# How much of an unparseable body is echoed back as diagnostics.
DIAGNOSTIC_SNIPPET_LENGTH = 300

_HTML_BODY_MESSAGE = (
    "The model endpoint returned HTML instead of JSON "
    "(the model may be unavailable or the URL is wrong)."
)


def _snippet(body: str) -> str:
    stripped = body.strip()
    if stripped.startswith("<"):
        return _HTML_BODY_MESSAGE
    return stripped[:DIAGNOSTIC_SNIPPET_LENGTH]


def _parse_body(raw: RawResponse) -> Any:
    """Decode the JSON body; an empty body counts as an empty object."""
    if not raw.body.strip():
        return {}
    return json.loads(raw.body)


def _error_message(data: Any) -> str | None:
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return None


def _first_candidate(data: dict) -> dict:
    candidates = data.get("candidates") or []
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return {}


def _inline_data(part: dict) -> dict | None:
    # The REST API answers in camelCase; snake_case shows up behind proxies.
    inline = part.get("inlineData") or part.get("inline_data")
    return inline if isinstance(inline, dict) else None


def _mime_type(inline: dict) -> str:
    mime_type = inline.get("mimeType") or inline.get("mime_type")
    if isinstance(mime_type, str) and mime_type.strip():
        return mime_type.strip()
    return DEFAULT_IMAGE_MIME_TYPE


def normalize_response(raw: RawResponse, *, require_image: bool = False) -> ModelResult:
    """Convert a raw model response into a :class:`ModelResult`.

    Text fragments of the first candidate are concatenated in order and
    trimmed.  The first fragment carrying inline data becomes the image; its
    mime type defaults to ``image/png`` when omitted.

    Args:
        raw: The undecoded HTTP response.
        require_image: Whether the calling mode must produce an image.

    Returns:
        The normalized result.

    Raises:
        ExternalServiceError: Non-success status, unparseable body, or
            undecodable inline image data.
        GenerationRejected: The model blocked the prompt or stopped for a
            reason other than ``STOP`` / ``MAX_TOKENS``.
        MissingImage: ``require_image`` is set and no image was returned.
    """
    try:
        data = _parse_body(raw)
    except json.JSONDecodeError:
        fallback = "Unparseable model response" if raw.ok else f"HTTP {raw.status_code}"
        raise ExternalServiceError(_snippet(raw.body) or fallback, raw.status_code) from None

    if not raw.ok:
        message = _error_message(data) or _snippet(raw.body) or f"HTTP {raw.status_code}"
        raise ExternalServiceError(message, raw.status_code)

    if not isinstance(data, dict):
        raise ExternalServiceError("Unexpected model response shape", raw.status_code)

    candidate = _first_candidate(data)

    # A blocked prompt comes back without candidates, with the reason under
    # promptFeedback.
    if not candidate:
        feedback = data.get("promptFeedback") or {}
        block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        if block_reason:
            raise GenerationRejected(str(block_reason))

    finish_reason = candidate.get("finishReason")
    if finish_reason and finish_reason not in ACCEPTED_FINISH_REASONS:
        raise GenerationRejected(str(finish_reason))

    content = candidate.get("content")
    parts = (content.get("parts") if isinstance(content, dict) else None) or []

    text_fragments: list[str] = []
    image: InlineImage | None = None

    for part in parts:
        if not isinstance(part, dict):
            continue

        inline = _inline_data(part)
        if inline is not None and image is None and inline.get("data"):
            encoded = inline["data"]
            if not isinstance(encoded, str):
                raise ExternalServiceError(
                    f"Malformed inline image data: expected a base64 string, "
                    f"got {type(encoded).__name__}"
                )
            try:
                image_bytes = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ExternalServiceError(f"Malformed inline image data: {e}") from e
            image = InlineImage(data=image_bytes, mime_type=_mime_type(inline))

        text = part.get("text")
        if isinstance(text, str) and text:
            text_fragments.append(text)

    if require_image and image is None:
        raise MissingImage()

    result = ModelResult(text="".join(text_fragments).strip(), image=image)
    logger.debug(
        f"Normalized response: {len(result.text)} chars, image={'yes' if image else 'no'}"
    )
    return result
