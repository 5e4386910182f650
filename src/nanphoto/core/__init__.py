"""Core components for Nanphoto.

- **NanphotoConfig / config**: configuration using Pydantic Settings
  (``NANPHOTO_`` environment variables)
- **GeminiClient**: single-shot async client for the Gemini REST API
- **normalize_response**: raw response to :class:`ModelResult` or a
  classified error
- **Enrichment**: best-effort text correction and fact lookup
- **errors**: the error taxonomy shared with the API layer

Usage Example
-------------
    from nanphoto.core import GeminiClient, config, normalize_response

    client = GeminiClient(config)
    raw = await client.generate(payload, model=config.image_model)
    result = normalize_response(raw, require_image=True)
"""

from nanphoto.core.config import NanphotoConfig, config
from nanphoto.core.gemini_client import GeminiClient
from nanphoto.core.response_normalizer import normalize_response
from nanphoto.core.types import InlineImage, ModelResult, PromptPayload, RawResponse

__all__ = [
    "GeminiClient",
    "InlineImage",
    "ModelResult",
    "NanphotoConfig",
    "PromptPayload",
    "RawResponse",
    "config",
    "normalize_response",
]
