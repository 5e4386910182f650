"""Value types passed between the prompt builder, model client and normalizer."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_IMAGE_MIME_TYPE = "image/png"


@dataclass(frozen=True)
class InlineImage:
    """Binary image attached to a request or returned by the model."""

    data: bytes
    mime_type: str = DEFAULT_IMAGE_MIME_TYPE


@dataclass(frozen=True)
class PromptPayload:
    """Fully assembled instruction ready for the external model.

    ``instruction`` is the mode template output.  ``directives`` are trailing
    text segments sent after it; for every mode that renders pixels the
    strict "no extraneous text" directive is the last one.

    Attributes:
        mode: Generation mode the payload was built for.
        instruction: Main instruction text.
        directives: Trailing text segments, in order.
        attachments: Inline images sent before the text, in order.
        system_instruction: Optional persona/system text (chat only).
        wants_image: Whether the response must contain an image.
        tools: Gemini tool declarations (e.g. Google Search grounding).
    """

    mode: str
    instruction: str
    directives: tuple[str, ...] = ()
    attachments: tuple[InlineImage, ...] = ()
    system_instruction: str | None = None
    wants_image: bool = False
    tools: tuple[dict, ...] = field(default=())

    @property
    def text(self) -> str:
        """Instruction and directives joined with blank lines."""
        return "\n\n".join(part for part in (self.instruction, *self.directives) if part)


@dataclass(frozen=True)
class RawResponse:
    """Undecoded HTTP response from the model endpoint."""

    status_code: int
    body: str
    content_type: str = "application/json"

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class ModelResult:
    """Normalized model output.

    ``text`` is always trimmed.  ``image`` is ``None`` for text-only results.
    """

    text: str
    image: InlineImage | None = None
