"""Pydantic request and response models for the Nanphoto API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for automatic request validation, serialisation, and OpenAPI
documentation generation.

Generation Requests
-------------------
A generation request is a closed union over ``mode``.  Each variant carries
only the fields its mode understands:

==================  ==========================  ===========================
Mode                Model                       Required (after trimming)
==================  ==========================  ===========================
``chat``            :class:`ChatRequest`            ``query``
``text-to-image``   :class:`TextToImageRequest`     ``prompt``
``image-to-image``  :class:`ImageToImageRequest`    ``prompt``, one image
``edit``            :class:`EditRequest`            ``image``
``infographic``     :class:`InfographicRequest`     ``topic``
``text-rendering``  :class:`TextRenderingRequest`   ``exact_text``
``thermal``         :class:`ThermalRequest`         ``image``
==================  ==========================  ===========================

Structural problems (wrong types, out-of-range strength, too many reference
images) are rejected here.  Empty-after-trim checks live in
:func:`nanphoto.api.prompt_builder.validate_request` so that they report the
same way whether the request came over HTTP or was built in Python.

Style, preset and category fields are plain strings on purpose: unknown
values are accepted and simply contribute nothing to the prompt.
"""

from __future__ import annotations

import base64
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from nanphoto.core.errors import ValidationError

Mode = Literal[
    "chat",
    "text-to-image",
    "image-to-image",
    "edit",
    "infographic",
    "text-rendering",
    "thermal",
]

MAX_REFERENCE_IMAGES = 3
MAX_OPTIMIZATIONS = 50


def decode_image_data(value: Any) -> Any:
    """Decode base64 strings (optionally ``data:`` URLs); pass bytes through."""
    if isinstance(value, str):
        if value.startswith("data:") and "," in value:
            value = value.split(",", 1)[1]
        return base64.b64decode(value, validate=True)
    return value


ImageData = Annotated[bytes, BeforeValidator(decode_image_data)]


class ReferenceImage(BaseModel):
    """An uploaded image: base64 data in JSON, raw bytes once validated.

    Attributes:
        data: Image bytes (sent as a base64 string or ``data:`` URL).
        mime_type: Declared MIME type; defaults to ``image/png``.
    """

    data: ImageData = Field(..., description="Base64-encoded image bytes.")
    mime_type: str = Field(default="image/png", description="MIME type of the image.")


class ChatRequest(BaseModel):
    """Plain question answered as text.

    Attributes:
        query: The user's question.
        model: Optional model override; ignored unless it is in the allowed list.
    """

    mode: Literal["chat"] = "chat"
    query: str = Field(default="", description="The user's question.")
    model: str | None = Field(default=None, description="Optional chat model override.")


class TextToImageRequest(BaseModel):
    """Image generated from a text description.

    Attributes:
        prompt: Description of the image.
        style: Style hint key.
        aspect_ratio: Aspect ratio hint key.
        optimizations: Free-form refinements ("golden hour / sunset",
            "8K", ...) prepended to the description.
        model: Optional model choice; ignored unless it is configured.
    """

    mode: Literal["text-to-image"] = "text-to-image"
    prompt: str = Field(default="", description="Description of the image.")
    style: str = Field(
        default="",
        description="photorealistic, anime, concept-art or oil-painting.",
    )
    aspect_ratio: str = Field(default="", description="1:1, 16:9, 9:16 or 4:3.")
    optimizations: list[str] = Field(
        default_factory=list,
        max_length=MAX_OPTIMIZATIONS,
        description="Image refinements, e.g. the labels from the optimizer catalog.",
    )
    model: str | None = Field(default=None, description="Optional image model choice.")


class ImageToImageRequest(BaseModel):
    """New image built from one to three reference images."""

    mode: Literal["image-to-image"] = "image-to-image"
    prompt: str = Field(default="", description="What to create from the references.")
    images: list[ReferenceImage] = Field(
        default_factory=list,
        max_length=MAX_REFERENCE_IMAGES,
        description="Up to three reference images, in order.",
    )
    strength: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Reference influence strength in percent.",
    )


class EditRequest(BaseModel):
    """Guided edit of a single image using a preset template."""

    mode: Literal["edit"] = "edit"
    image: ReferenceImage | None = Field(default=None, description="Image to edit.")
    preset: str = Field(
        default="",
        description=(
            "replace-background, remove-object, change-colors, add-object or change-style."
        ),
    )
    details: str = Field(default="", description="Free-text detail for the preset.")


class InfographicRequest(BaseModel):
    """Infographic about a topic, optionally grounded on looked-up facts."""

    mode: Literal["infographic"] = "infographic"
    topic: str = Field(default="", description="Infographic topic.")
    metrics: str = Field(default="", description="Key data and metrics to include.")
    style: str = Field(
        default="",
        description="editorial, technical, hand-drawn or minimalist.",
    )
    use_fact_lookup: bool = Field(
        default=False,
        description="Look up current facts about the topic before generating.",
    )


class TextRenderingRequest(BaseModel):
    """Image whose main content is an exact piece of text."""

    mode: Literal["text-rendering"] = "text-rendering"
    exact_text: str = Field(default="", description="Text to render verbatim.")
    text_style: str = Field(
        default="",
        description="bold, calligraphy, neon, 3d or handwritten.",
    )
    language: str = Field(default="en", description="'ru' for Russian, anything else English.")
    context: str = Field(default="", description="Scene around the text.")


class ThermalRequest(BaseModel):
    """Conversion of a photo into thermal-printer line art."""

    mode: Literal["thermal"] = "thermal"
    image: ReferenceImage | None = Field(default=None, description="Image to convert.")
    category: str = Field(default="", description="portrait, objects or logos.")
    style: str = Field(default="", description="line-art, stencil, stamp or halftone.")
    detail_level: str = Field(default="", description="simplified, medium or detailed.")
    outline_thickness: str = Field(default="", description="thin, medium or bold.")
    background_removal: bool = Field(default=True, description="Remove the background.")
    paper_size: str = Field(default="", description="58mm or 80mm.")


GenerationRequest = Annotated[
    Union[
        ChatRequest,
        TextToImageRequest,
        ImageToImageRequest,
        EditRequest,
        InfographicRequest,
        TextRenderingRequest,
        ThermalRequest,
    ],
    Field(discriminator="mode"),
]

_generation_request_adapter: TypeAdapter = TypeAdapter(GenerationRequest)


def parse_generation_request(data: Any) -> GenerationRequest:
    """Validate raw JSON data into the matching request variant.

    Args:
        data: Decoded JSON body.

    Returns:
        The request model selected by ``data["mode"]``.

    Raises:
        ValidationError: If the mode is unknown or a field is malformed.
    """
    try:
        return _generation_request_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError(_describe_validation_error(e)) from e


def _describe_validation_error(error: PydanticValidationError) -> str:
    """Flatten pydantic errors into one readable line."""
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        messages.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return "; ".join(messages) or "Invalid request"


class GenerationResponse(BaseModel):
    """Response body for ``POST /api/generate``.

    Attributes:
        mode: The mode that was run.
        text: Trimmed model text (may be empty).
        image: Base64-encoded image, if the mode produced one.
        mime_type: MIME type of ``image``.
        gallery_id: Identifier of the stored gallery item, if it was saved.
    """

    mode: Mode
    text: str = ""
    image: str | None = None
    mime_type: str | None = None
    gallery_id: str | None = None


class ChatResponse(BaseModel):
    """Response body for ``POST /api/chat``."""

    text: str


class CompileResponse(BaseModel):
    """Response body for ``POST /api/prompt/compile``."""

    mode: Mode
    compiled_prompt: str
    system_instruction: str | None = None
    attachments: int = 0


class GalleryEntry(BaseModel):
    """One row of the gallery listing (no image bytes).

    Attributes:
        id: Gallery item identifier.
        url: Path that serves the raw image bytes.
        mime_type: MIME type of the image.
        caption: Optional caption (the model's accompanying text).
    """

    id: str
    url: str
    mime_type: str
    caption: str | None = None


class GalleryAppendRequest(BaseModel):
    """Request body for ``POST /api/gallery``."""

    image: ImageData = Field(..., description="Base64-encoded image bytes.")
    mime_type: str = Field(default="image/png")
    caption: str | None = Field(default=None)


class ChatModelStatus(BaseModel):
    """Availability of one allowed chat model.

    Attributes:
        id: Model name.
        listed: The API key can see the model.
        works: A minimal generation call succeeded.
    """

    id: str
    listed: bool
    works: bool


class ChatModelsResponse(BaseModel):
    """Response body for ``GET /api/chat/models``."""

    models: list[ChatModelStatus]
    listed_names: list[str] = Field(default_factory=list)


class LoginRequest(BaseModel):
    """Request body for ``POST /api/auth/login``."""

    password: str = ""
