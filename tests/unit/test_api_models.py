"""Tests for nanphoto.api.models — Pydantic request/response models.

Tests cover:
- Mode dispatch through ``parse_generation_request``.
- Base64 and ``data:`` URL decoding of uploaded images.
- Structural limits (reference image count, strength range).
- Default values for optional fields.
"""

from __future__ import annotations

import pytest

from nanphoto.api.models import (
    ChatRequest,
    EditRequest,
    GalleryAppendRequest,
    ImageToImageRequest,
    InfographicRequest,
    ReferenceImage,
    TextRenderingRequest,
    TextToImageRequest,
    ThermalRequest,
    parse_generation_request,
)
from nanphoto.core.errors import ValidationError


class TestParseGenerationRequest:
    """The ``mode`` field selects the request variant."""

    @pytest.mark.parametrize(
        "mode, model",
        [
            ("chat", ChatRequest),
            ("text-to-image", TextToImageRequest),
            ("image-to-image", ImageToImageRequest),
            ("edit", EditRequest),
            ("infographic", InfographicRequest),
            ("text-rendering", TextRenderingRequest),
            ("thermal", ThermalRequest),
        ],
    )
    def test_mode_dispatch(self, mode, model):
        assert isinstance(parse_generation_request({"mode": mode}), model)

    def test_unknown_mode(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_generation_request({"mode": "video"})
        assert exc_info.value.status_class == "bad-request"

    def test_missing_mode(self):
        with pytest.raises(ValidationError):
            parse_generation_request({"prompt": "a cat"})

    def test_error_names_the_field(self):
        with pytest.raises(ValidationError, match="strength"):
            parse_generation_request({"mode": "image-to-image", "strength": 150})

    def test_fields_carried_over(self):
        req = parse_generation_request(
            {"mode": "text-to-image", "prompt": "a cat", "style": "anime", "aspect_ratio": "1:1"}
        )
        assert req.prompt == "a cat"
        assert req.style == "anime"
        assert req.aspect_ratio == "1:1"


class TestReferenceImage:
    """Uploaded images arrive as base64 and are stored as bytes."""

    def test_base64_decoded(self, png_bytes, png_base64):
        image = ReferenceImage(data=png_base64)
        assert image.data == png_bytes
        assert image.mime_type == "image/png"

    def test_data_url_prefix_stripped(self, png_bytes, png_base64):
        image = ReferenceImage(data=f"data:image/png;base64,{png_base64}")
        assert image.data == png_bytes

    def test_raw_bytes_pass_through(self, png_bytes):
        assert ReferenceImage(data=png_bytes).data == png_bytes

    def test_invalid_base64_rejected(self):
        with pytest.raises(ValidationError):
            parse_generation_request({"mode": "edit", "image": {"data": "not*base64"}})

    def test_gallery_append_decodes_image(self, png_bytes, png_base64):
        req = GalleryAppendRequest(image=png_base64, caption="hi")
        assert req.image == png_bytes
        assert req.mime_type == "image/png"


class TestStructuralLimits:
    """Shape problems are rejected before prompt building."""

    def test_at_most_three_references(self, png_base64):
        images = [{"data": png_base64}] * 4
        with pytest.raises(ValidationError, match="images"):
            parse_generation_request({"mode": "image-to-image", "prompt": "x", "images": images})

    def test_three_references_accepted(self, png_base64):
        images = [{"data": png_base64}] * 3
        req = parse_generation_request({"mode": "image-to-image", "prompt": "x", "images": images})
        assert len(req.images) == 3

    @pytest.mark.parametrize("strength", [0, 100])
    def test_strength_bounds_inclusive(self, strength):
        req = parse_generation_request({"mode": "image-to-image", "strength": strength})
        assert req.strength == strength

    def test_negative_strength_rejected(self):
        with pytest.raises(ValidationError):
            parse_generation_request({"mode": "image-to-image", "strength": -1})


class TestDefaults:
    """Optional fields have documented defaults."""

    def test_image_to_image_defaults(self):
        req = ImageToImageRequest()
        assert req.strength == 80
        assert req.images == []

    def test_thermal_defaults(self):
        req = ThermalRequest()
        assert req.background_removal is True
        assert req.image is None

    def test_text_rendering_defaults(self):
        assert TextRenderingRequest().language == "en"

    def test_infographic_defaults(self):
        assert InfographicRequest().use_fact_lookup is False

    def test_text_to_image_defaults(self):
        req = TextToImageRequest()
        assert req.optimizations == []
        assert req.model is None

    def test_optimizations_carried_over(self):
        req = parse_generation_request(
            {"mode": "text-to-image", "prompt": "x", "optimizations": ["8K", "moody"], "model": "imagen-4"}
        )
        assert req.optimizations == ["8K", "moody"]
        assert req.model == "imagen-4"
