"""Nanphoto - Gemini-backed chat, image generation and image editing."""

__version__ = "0.3.0"

from nanphoto.core.config import NanphotoConfig, config

__all__ = [
    "NanphotoConfig",
    "config",
]
