"""Prompt compilation for every generation mode.

Each request variant from :mod:`nanphoto.api.models` is turned into a
:class:`~nanphoto.core.types.PromptPayload` by a small mode-specific builder.
Builders are pure: they never perform I/O.  Enrichment that needs the
network (spelling correction, fact lookup) is gathered beforehand by the
caller and passed in as an :class:`~nanphoto.core.enrichment.Enrichment`,
so the same request plus the same enrichment always yields the same payload.

Option Tables
-------------
Styles, presets, ratios and thermal options are plain dictionaries from the
option value to the text it contributes.  Unknown values are looked up with
``.get()`` and contribute nothing; they are never an error.

Strict Text Directive
---------------------
Image models happily invent captions and watermarks.  Every mode that
renders pixels therefore ends with :data:`STRICT_TEXT_DIRECTIVE`, sent as the
last text segment of the payload so it overrides any looser wording earlier
in the instruction.

Usage
-----
::

    request = TextToImageRequest(prompt="a cat", style="anime", aspect_ratio="1:1")
    payload = build_payload(request)
    payload.text
    # 'anime style. square, 1:1 aspect ratio. a cat\\n\\nDo not add any text ...'
"""

from __future__ import annotations

import re
from collections.abc import Callable
from types import MappingProxyType

from nanphoto.api.models import (
    ChatRequest,
    EditRequest,
    GenerationRequest,
    ImageToImageRequest,
    InfographicRequest,
    ReferenceImage,
    TextRenderingRequest,
    TextToImageRequest,
    ThermalRequest,
)
from nanphoto.core.enrichment import Enrichment
from nanphoto.core.errors import ValidationError
from nanphoto.core.gemini_client import GOOGLE_SEARCH_TOOLS
from nanphoto.core.types import InlineImage, PromptPayload

# ---------------------------------------------------------------------------
# Fixed instructions.
# ---------------------------------------------------------------------------

CHAT_SYSTEM_INSTRUCTION = """You are an expert AI assistant. Your job is to give accurate, factual and useful answers.

STRICT RULES:

1. Accuracy:
   - NEVER invent facts. If you do not know the answer, say: "I have no reliable information on this question."
   - Rely only on verified data.

2. Answer format:
   - Brevity: 2-4 paragraphs (expand only when necessary).
   - No introductory phrases ("Sure, I'll help..."). Get straight to the point.
   - Use Markdown for structure.

3. Adapt the format to the request:
   - Tutorials and instructions: a step-by-step explanation (Step 1, Step 2...).
   - Complex concepts: always 1-2 concrete examples.
   - Comparisons (A vs B): a Markdown table with criteria.

4. Style: professional, neutral, friendly. Answer in the language of the request.

5. Additionally:
   - Prefer scientific papers and English-language textbooks as sources, and translate the answer into the language of the request.
   - If the request asks "how many" (or similar), the answer must contain exact figures.
   - Where possible, add links to sources."""

STRICT_TEXT_DIRECTIVE = (
    "Do not add any text, letters, numbers, captions, labels, logos or watermarks to the "
    "image other than the text explicitly requested above. Any requested text must be "
    "rendered exactly as given, with no extra words."
)

THERMAL_BASE_PROMPT = (
    "Convert this image to black and white line art suitable for thermal printer. "
    "High contrast monochrome. No gray tones, only pure black and white. Isolated subject "
    "only, centered composition, compact layout optimized for small thermal printer paper. "
    "Vector-style edges, sharp crisp boundaries. Sticker-style cut-out, no shadows, flat "
    "design, ready for printing."
)

# ---------------------------------------------------------------------------
# Option tables.  Unknown keys contribute nothing.
# ---------------------------------------------------------------------------

IMAGE_STYLE_HINTS = MappingProxyType(
    {
        "photorealistic": "photorealistic, high quality photo",
        "anime": "anime style",
        "concept-art": "concept art style",
        "oil-painting": "oil painting style",
    }
)

ASPECT_RATIO_HINTS = MappingProxyType(
    {
        "1:1": "square, 1:1 aspect ratio",
        "16:9": "wide landscape, 16:9",
        "9:16": "portrait, 9:16",
        "4:3": "4:3 aspect ratio",
    }
)

# ``{details}`` is replaced with the user's detail text, or with the preset's
# default when no detail was given.
EDIT_PRESETS = MappingProxyType(
    {
        "replace-background": (
            "Replace the background with {details}, keep the main subject unchanged, "
            "seamless integration, natural lighting match",
            "a new background",
        ),
        "remove-object": (
            "Remove {details} from the image, inpaint the area naturally, seamless "
            "reconstruction, no traces left",
            "the selected object",
        ),
        "change-colors": (
            "Change {details} to new colors, maintain original lighting and shadows, "
            "natural color transition, photorealistic result",
            "colors as described",
        ),
        "add-object": (
            "Add {details} to the image, natural placement, consistent lighting and perspective",
            "the described object",
        ),
        "change-style": (
            "Change the style of the image: {details}, coherent result, high quality",
            "apply the new style",
        ),
    }
)

GENERIC_EDIT_INSTRUCTION = "Edit this image as requested."

INFOGRAPHIC_STYLES = MappingProxyType(
    {
        "editorial": "editorial",
        "technical": "technical diagram",
        "hand-drawn": "hand-drawn",
        "minimalist": "minimalist",
    }
)
DEFAULT_INFOGRAPHIC_STYLE = "editorial"

TEXT_STYLES = MappingProxyType(
    {
        "bold": "bold",
        "calligraphy": "calligraphy",
        "neon": "neon",
        "3d": "3D",
        "handwritten": "handwritten",
    }
)
DEFAULT_TEXT_STYLE = "bold"

THERMAL_CATEGORIES = MappingProxyType(
    {
        "portrait": "Focus on face and shoulders, clear facial features, portrait-optimized line art.",
        "objects": "Product or object focus, clear edges, no background.",
        "logos": "Icon or logo style, simple shapes, minimal lines.",
    }
)

THERMAL_STYLES = MappingProxyType(
    {
        "line-art": "Use clean line art style.",
        "stencil": "Use stencil style, bold cut-out look.",
        "stamp": "Use stamp style, rubber stamp aesthetic.",
        "halftone": "Use halftone/dotted style where appropriate.",
    }
)

THERMAL_DETAIL_LEVELS = MappingProxyType(
    {
        "simplified": "Simplified details, minimal lines.",
        "medium": "Medium level of detail.",
        "detailed": "Detailed, intricate lines.",
    }
)

THERMAL_OUTLINES = MappingProxyType(
    {
        "thin": "Thin outlines.",
        "medium": "Medium thickness outlines.",
        "bold": "Thick bold black outlines.",
    }
)

THERMAL_PAPER_SIZES = MappingProxyType(
    {
        "58mm": "Optimized for 58mm thermal paper width.",
        "80mm": "Optimized for 80mm thermal paper width.",
    }
)

THERMAL_BACKGROUND_REMOVAL = "Remove all background. Clean white background only."

# Quick refinements offered by the optimizer, grouped for display.  Requests
# send the labels themselves; labels outside this table are accepted too.
OPTIMIZER_CATEGORIES = MappingProxyType(
    {
        "style": ("photorealistic", "anime style", "oil painting", "3D render"),
        "quality": ("high quality", "detailed", "sharp focus"),
        "lighting": (
            "professional lighting",
            "natural light",
            "studio lighting",
            "golden hour / sunset",
        ),
        "portraits": (
            "photorealistic",
            "portrait",
            "detailed facial features",
            "professional studio lighting",
            "sharp eyes",
            "high quality",
        ),
        "products": (
            "product photography",
            "clean white background",
            "professional lighting",
            "high detail",
            "commercial quality",
        ),
        "concepts": (
            "concept art style",
            "detailed composition",
            "cinematic lighting",
            "high quality",
            "clear composition",
            "good lighting",
        ),
        "composition": (
            "wide angle",
            "close-up",
            "aerial view",
            "symmetrical composition",
            "centered composition",
        ),
        "detail": ("4K", "8K", "ultra detailed", "intricate details"),
        "atmosphere": ("dramatic", "soft", "moody", "vibrant colors", "minimalist", "dreamy"),
    }
)

# ---------------------------------------------------------------------------
# Literal-text detection for text-to-image.
# ---------------------------------------------------------------------------

# English words match with an optional plural; Russian phrases match as
# prefixes so inflected forms ("подписью", "надписи") are caught too.
LITERAL_TEXT_TRIGGERS_EN = (
    "caption",
    "sign",
    "quote",
    "text",
    "label",
    "title",
    "headline",
    "slogan",
    "inscription",
    "lettering",
    "banner",
    "poster",
)
LITERAL_TEXT_TRIGGERS_RU = (
    "подпис",
    "текст на",
    "надпис",
    "заголов",
    "цитат",
    "слоган",
    "вывеск",
)

_TRIGGER_PATTERN = re.compile(
    r"\b(?:"
    + "|".join(re.escape(word) for word in LITERAL_TEXT_TRIGGERS_EN)
    + r")s?\b|\b(?:"
    + "|".join(re.escape(phrase) for phrase in LITERAL_TEXT_TRIGGERS_RU)
    + r")",
    re.IGNORECASE,
)
_QUOTED_PATTERN = re.compile(r'"([^"]+)"|“([^”]+)”|«([^»]+)»')
_COLON_PATTERN = re.compile(r":\s*(.+)$", re.DOTALL)

# Phrases that introduce the words themselves: "a sign that says Open",
# "with the caption Happy birthday", "с надписью Привет".
LITERAL_TEXT_LEAD_INS = (
    r"says",
    r"saying",
    r"reads",
    r"reading",
    r"with\s+the\s+(?:text|words?)",
    r"captioned",
    r"caption",
    r"titled",
    r"labell?ed",
    r"(?:с\s+)?(?:надпис|подпис)\w*",
)
_LEAD_IN_PATTERN = re.compile(
    r"\b(?:" + "|".join(LITERAL_TEXT_LEAD_INS) + r")\b[\s,\-–]*(.+)$",
    re.IGNORECASE | re.DOTALL,
)


def implies_literal_text(prompt: str) -> bool:
    """Return whether a description asks for words rendered on the image."""
    return bool(_TRIGGER_PATTERN.search(prompt))


def _clean_literal(text: str) -> str:
    return text.strip().strip(".").strip()


def extract_literal_text(prompt: str) -> str | None:
    """Pull the literal words out of a description that asks for them.

    The first rule that yields something wins:

    1. quoted fragments (straight, curly or guillemet quotes), joined with a
       space;
    2. the text after the first colon that follows a trigger word, e.g.
       ``a birthday card, caption: Happy birthday``;
    3. the text after a lead-in phrase, e.g. ``a shop sign that says Open``;
    4. the whole trimmed description.

    Args:
        prompt: The user's image description.

    Returns:
        The literal text, or ``None`` when the prompt does not ask for text.
    """
    match = _TRIGGER_PATTERN.search(prompt)
    if not match:
        return None

    fragments = [
        next(group for group in found.groups() if group is not None).strip()
        for found in _QUOTED_PATTERN.finditer(prompt)
    ]
    fragments = [fragment for fragment in fragments if fragment]
    if fragments:
        return " ".join(fragments)

    for found in (_COLON_PATTERN.search(prompt, match.end()), _LEAD_IN_PATTERN.search(prompt)):
        if found:
            literal = _clean_literal(found.group(1))
            if literal:
                return literal

    return _clean_literal(prompt) or None


# ---------------------------------------------------------------------------
# Validation and enrichment needs.
# ---------------------------------------------------------------------------


def _has_image(image: ReferenceImage | None) -> bool:
    return image is not None and len(image.data) > 0


def validate_request(request: GenerationRequest) -> None:
    """Reject requests whose required fields are empty after trimming.

    Args:
        request: Any generation request variant.

    Raises:
        ValidationError: With a user-facing message naming the missing field.
    """
    if isinstance(request, ChatRequest):
        if not request.query.strip():
            raise ValidationError("query is required")
    elif isinstance(request, TextToImageRequest):
        if not request.prompt.strip():
            raise ValidationError("prompt is required")
    elif isinstance(request, ImageToImageRequest):
        if not any(len(image.data) > 0 for image in request.images):
            raise ValidationError("At least one reference image is required")
        if not request.prompt.strip():
            raise ValidationError("prompt is required")
    elif isinstance(request, EditRequest):
        if not _has_image(request.image):
            raise ValidationError("image is required")
    elif isinstance(request, InfographicRequest):
        if not request.topic.strip():
            raise ValidationError("topic is required")
    elif isinstance(request, TextRenderingRequest):
        if not request.exact_text.strip():
            raise ValidationError("exact_text is required")
    elif isinstance(request, ThermalRequest):
        if not _has_image(request.image):
            raise ValidationError("image is required")
    else:
        raise ValidationError(f"Unknown mode: {getattr(request, 'mode', None)!r}")


def text_to_correct(request: GenerationRequest) -> str | None:
    """Return the literal text a request wants spell-checked, if any."""
    if isinstance(request, TextRenderingRequest):
        return request.exact_text.strip() or None
    if isinstance(request, TextToImageRequest):
        return extract_literal_text(request.prompt)
    return None


def fact_topic(request: GenerationRequest) -> str | None:
    """Return the topic a request wants current facts for, if any."""
    if isinstance(request, InfographicRequest) and request.use_fact_lookup:
        return request.topic.strip() or None
    return None


# ---------------------------------------------------------------------------
# Mode builders.
# ---------------------------------------------------------------------------


def _inline(image: ReferenceImage) -> InlineImage:
    return InlineImage(data=image.data, mime_type=image.mime_type or "image/png")


def _image_payload(
    mode: str,
    instruction: str,
    attachments: tuple[InlineImage, ...] = (),
    tools: tuple[dict, ...] = (),
) -> PromptPayload:
    return PromptPayload(
        mode=mode,
        instruction=instruction,
        directives=(STRICT_TEXT_DIRECTIVE,),
        attachments=attachments,
        wants_image=True,
        tools=tools,
    )


def _build_chat(request: ChatRequest, enrichment: Enrichment) -> PromptPayload:
    return PromptPayload(
        mode=request.mode,
        instruction=request.query.strip(),
        system_instruction=CHAT_SYSTEM_INSTRUCTION,
    )


def refinements(optimizations: list[str]) -> list[str]:
    """Trim optimizer labels and drop empty and repeated ones, keeping order."""
    seen: set[str] = set()
    labels = []
    for label in optimizations:
        label = label.strip()
        if label and label.lower() not in seen:
            seen.add(label.lower())
            labels.append(label)
    return labels


def _build_text_to_image(request: TextToImageRequest, enrichment: Enrichment) -> PromptPayload:
    parts = [
        IMAGE_STYLE_HINTS.get(request.style, ""),
        ASPECT_RATIO_HINTS.get(request.aspect_ratio, ""),
        request.prompt.strip(),
    ]
    instruction = ". ".join(part for part in parts if part)

    labels = refinements(request.optimizations)
    if labels:
        instruction = (
            f"Image refinements: {', '.join(labels)}.\n\n"
            f"Image description: {instruction}\n\n"
            "Generate an image from this description."
        )

    literal = extract_literal_text(request.prompt)
    if literal:
        rendered = enrichment.corrected_text or literal
        instruction += (
            f'\n\nRender exactly this text on the image, spelled exactly as given: "{rendered}".'
        )

    return _image_payload(request.mode, instruction)


def _build_image_to_image(request: ImageToImageRequest, enrichment: Enrichment) -> PromptPayload:
    references = tuple(_inline(image) for image in request.images if len(image.data) > 0)
    prompt = request.prompt.strip()

    if len(references) >= 2:
        instruction = (
            f"Combine the style of image 1 with the composition of image 2, create: {prompt}, "
            f"seamless blend, coherent result, high quality. "
            f"Reference influence strength: {request.strength}%."
        )
    else:
        instruction = (
            f"Using this reference image, create: {prompt}, coherent result, high quality. "
            f"Reference influence: {request.strength}%."
        )

    return _image_payload(request.mode, instruction, references)


def _build_edit(request: EditRequest, enrichment: Enrichment) -> PromptPayload:
    details = request.details.strip()
    preset = EDIT_PRESETS.get(request.preset)

    if preset is not None:
        template, default_details = preset
        instruction = template.format(details=details or default_details)
    else:
        instruction = details or GENERIC_EDIT_INSTRUCTION

    return _image_payload(request.mode, instruction, (_inline(request.image),))


def _build_infographic(request: InfographicRequest, enrichment: Enrichment) -> PromptPayload:
    instruction = f"Create an infographic about {request.topic.strip()}."

    metrics = request.metrics.strip()
    if metrics:
        instruction += f" Include key data and metrics: {metrics}."

    # Looked-up facts go before the style directive.
    tools: tuple[dict, ...] = ()
    if request.use_fact_lookup:
        tools = GOOGLE_SEARCH_TOOLS
        if enrichment.facts:
            instruction += f" Use these current facts:\n{enrichment.facts.strip()}\n"
        else:
            instruction += " Use up-to-date information. Find latest data to visualize."

    style = INFOGRAPHIC_STYLES.get(request.style, INFOGRAPHIC_STYLES[DEFAULT_INFOGRAPHIC_STYLE])
    instruction += (
        f" Style: {style}. Compress information into visual format, clear typography, "
        "data visualization with charts and icons, organized layout, professional design, "
        "high readability."
    )

    return _image_payload(request.mode, instruction, tools=tools)


def _build_text_rendering(request: TextRenderingRequest, enrichment: Enrichment) -> PromptPayload:
    text = enrichment.corrected_text or request.exact_text.strip()
    style = TEXT_STYLES.get(request.text_style, TEXT_STYLES[DEFAULT_TEXT_STYLE])
    language = "Russian" if request.language == "ru" else "English"
    context = request.context.strip() or "clean background"

    instruction = (
        f'Generate image with accurate text rendering: "{text}", text style: {style}, '
        f"language: {language}, context: {context}. Clear legible typography, precise letter "
        "spacing, high-fidelity text, no spelling errors, professional design."
    )

    return _image_payload(request.mode, instruction)


def _build_thermal(request: ThermalRequest, enrichment: Enrichment) -> PromptPayload:
    parts = [THERMAL_BASE_PROMPT]

    # Each option contributes its clause independently.
    for table, key in (
        (THERMAL_CATEGORIES, request.category),
        (THERMAL_STYLES, request.style),
        (THERMAL_DETAIL_LEVELS, request.detail_level),
        (THERMAL_OUTLINES, request.outline_thickness),
    ):
        clause = table.get(key)
        if clause:
            parts.append(clause)

    if request.background_removal:
        parts.append(THERMAL_BACKGROUND_REMOVAL)

    paper = THERMAL_PAPER_SIZES.get(request.paper_size)
    if paper:
        parts.append(paper)

    return _image_payload(request.mode, " ".join(parts), (_inline(request.image),))


_BUILDERS: dict[type, Callable[..., PromptPayload]] = {
    ChatRequest: _build_chat,
    TextToImageRequest: _build_text_to_image,
    ImageToImageRequest: _build_image_to_image,
    EditRequest: _build_edit,
    InfographicRequest: _build_infographic,
    TextRenderingRequest: _build_text_rendering,
    ThermalRequest: _build_thermal,
}


def build_payload(
    request: GenerationRequest,
    enrichment: Enrichment | None = None,
) -> PromptPayload:
    """Compile a generation request into the payload sent to the model.

    Args:
        request: Any generation request variant.
        enrichment: Results of the best-effort auxiliary calls.  ``None``
            (or empty fields) means enrichment was skipped or unavailable.

    Returns:
        The assembled :class:`PromptPayload`.

    Raises:
        ValidationError: If a required field is empty.
    """
    validate_request(request)
    builder = _BUILDERS[type(request)]
    return builder(request, enrichment or Enrichment())


def option_catalog() -> dict[str, list[str]]:
    """Return every accepted option value, for the frontend."""
    return {
        "image_styles": list(IMAGE_STYLE_HINTS),
        "aspect_ratios": list(ASPECT_RATIO_HINTS),
        "edit_presets": list(EDIT_PRESETS),
        "infographic_styles": list(INFOGRAPHIC_STYLES),
        "text_styles": list(TEXT_STYLES),
        "thermal_categories": list(THERMAL_CATEGORIES),
        "thermal_styles": list(THERMAL_STYLES),
        "thermal_detail_levels": list(THERMAL_DETAIL_LEVELS),
        "thermal_outlines": list(THERMAL_OUTLINES),
        "thermal_paper_sizes": list(THERMAL_PAPER_SIZES),
        "optimizations": refinements(
            [label for labels in OPTIMIZER_CATEGORIES.values() for label in labels]
        ),
    }
