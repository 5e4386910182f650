"""Nanphoto — FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
The application follows a stateless REST pattern:

- **Configuration** comes from :data:`nanphoto.core.config.config`
  (``NANPHOTO_*`` environment variables).
- **Generation** is performed by
  :class:`~nanphoto.api.generation.GenerationService`, which compiles the
  prompt, calls Gemini once through
  :class:`~nanphoto.core.gemini_client.GeminiClient`, and normalizes the
  answer.
- **Gallery persistence** uses the capped store from
  :mod:`nanphoto.api.gallery_store`.  When it is disabled or broken,
  generation keeps working and gallery routes answer 503.
- **Access** is gated by the shared-password session cookie from
  :mod:`nanphoto.api.auth` when ``NANPHOTO_PASSWORD`` is set.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/api/config``               Version, chat models, option tables
POST      ``/api/auth/login``           Password check, sets session cookie
POST      ``/api/auth/logout``          Clears the session cookie
GET       ``/api/auth/status``          Whether auth is on / satisfied
POST      ``/api/generate``             Run any generation mode
POST      ``/api/chat``                 Chat answer as plain text
GET       ``/api/chat/models``          Which allowed chat models answer
POST      ``/api/prompt/compile``       Preview the compiled prompt
GET       ``/api/gallery``              Gallery listing, newest first
POST      ``/api/gallery``              Append an image to the gallery
GET       ``/api/gallery/{id}/image``   Raw image bytes
========  ============================  ====================================

Errors
------
Every :class:`~nanphoto.core.errors.NanphotoError` becomes a JSON body
``{"detail": message, "error": status_class}`` with the status code from
:data:`STATUS_CODES`.

Usage
-----
CLI (installed entry point)::

    nanphoto

Direct invocation::

    python -m nanphoto.api.main
"""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from nanphoto import __version__
from nanphoto.api.auth import (
    check_password,
    clear_session_cookie,
    is_authenticated,
    require_session,
    set_session_cookie,
)
from nanphoto.api.gallery_store import GalleryItem, GalleryStore, create_gallery_store, new_gallery_item
from nanphoto.api.generation import GenerationService
from nanphoto.api.models import (
    ChatModelsResponse,
    ChatModelStatus,
    ChatRequest,
    ChatResponse,
    CompileResponse,
    GalleryAppendRequest,
    GalleryEntry,
    GenerationResponse,
    LoginRequest,
    parse_generation_request,
)
from nanphoto.api.prompt_builder import build_payload, option_catalog
from nanphoto.core.config import NanphotoConfig, config
from nanphoto.core.enrichment import GeminiTextEnricher, TextEnricher
from nanphoto.core.errors import NanphotoError, StoreUnavailable, Unauthorized, ValidationError
from nanphoto.core.gemini_client import GeminiClient

logger = logging.getLogger(__name__)

STATUS_CODES: dict[str, int] = {
    "bad-request": 400,
    "unauthorized": 401,
    "not-found": 404,
    "upstream-failure": 502,
    "store-unavailable": 503,
}

_UNSET: Any = object()


# ---------------------------------------------------------------------------
# Application lifecycle — model client and gallery setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Builds whatever :func:`create_app` was not given: the Gemini client,
        the text enricher, the gallery store, and the generation service.

    On shutdown:
        Closes the Gemini client's HTTP connection pool.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    state = app.state
    app_config: NanphotoConfig = state.config

    # --- Startup -----------------------------------------------------------
    if state.model_client is None:
        state.model_client = GeminiClient(app_config)
    if state.enricher is None:
        state.enricher = GeminiTextEnricher(state.model_client, app_config.text_model)
    if state.gallery is _UNSET:
        state.gallery = create_gallery_store(app_config)

    state.generation = GenerationService(
        app_config,
        state.model_client,
        enricher=state.enricher,
        gallery=state.gallery,
    )
    logger.info(
        f"Nanphoto {__version__} ready (gallery={app_config.gallery_backend if state.gallery else 'disabled'}, "
        f"auth={'on' if app_config.auth_enabled else 'off'})"
    )

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    close = getattr(state.model_client, "aclose", None)
    if close is not None:
        await close()
    logger.info("Model client closed on shutdown.")


# ---------------------------------------------------------------------------
# Error handlers.
# ---------------------------------------------------------------------------


async def nanphoto_error_handler(request: Request, exc: NanphotoError) -> JSONResponse:
    """Render a :class:`NanphotoError` as ``{"detail", "error"}`` JSON."""
    status_code = STATUS_CODES.get(exc.status_class, 500)
    if status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": exc.status_class},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as ``bad-request`` instead of 422."""
    messages = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        messages.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return JSONResponse(
        status_code=400,
        content={"detail": "; ".join(messages) or "Invalid request", "error": "bad-request"},
    )


# ---------------------------------------------------------------------------
# Helpers.
# ---------------------------------------------------------------------------


def _generation_service(request: Request) -> GenerationService:
    return request.app.state.generation


def _gallery(request: Request) -> GalleryStore:
    gallery: GalleryStore | None = request.app.state.gallery
    if gallery is None:
        raise StoreUnavailable(
            "Gallery storage is not configured (set NANPHOTO_GALLERY_BACKEND)."
        )
    return gallery


def _gallery_entry(item: GalleryItem) -> GalleryEntry:
    return GalleryEntry(
        id=item.id,
        url=f"/api/gallery/{item.id}/image",
        mime_type=item.mime_type,
        caption=item.caption,
    )


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    app_config: NanphotoConfig | None = None,
    *,
    model_client: GeminiClient | None = None,
    enricher: TextEnricher | None = None,
    gallery: GalleryStore | None = _UNSET,
) -> FastAPI:
    """Build the FastAPI application.

    Collaborators that are not supplied are created from the configuration
    during startup.  Pass ``gallery=None`` to run without a gallery.

    Args:
        app_config: Configuration; defaults to the global ``config``.
        model_client: Model client (tests pass a fake).
        enricher: Auxiliary text service (tests pass a fake).
        gallery: Gallery store, ``None`` to disable.

    Returns:
        The configured application.
    """
    app = FastAPI(
        title="Nanphoto",
        description="Gemini-backed chat, image generation and image editing API.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = app_config or config
    app.state.model_client = model_client
    app.state.enricher = enricher
    app.state.gallery = gallery

    app.add_exception_handler(NanphotoError, nanphoto_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Allow cross-origin requests so the frontend can be served from a
    # different port during development.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    protected = [Depends(require_session)]

    # -----------------------------------------------------------------------
    # Configuration.
    # -----------------------------------------------------------------------

    @app.get("/api/config")
    async def get_config(request: Request) -> dict:
        """Return the version, chat models, and accepted option values."""
        cfg: NanphotoConfig = request.app.state.config
        return {
            "version": __version__,
            "chat_models": list(cfg.allowed_chat_models),
            "default_chat_model": cfg.chat_model,
            "image_models": list(cfg.image_model_choices),
            "gallery_enabled": request.app.state.gallery is not None,
            "gallery_max_items": cfg.gallery_max_items,
            "auth_enabled": cfg.auth_enabled,
            "options": option_catalog(),
        }

    # -----------------------------------------------------------------------
    # Session.
    # -----------------------------------------------------------------------

    @app.post("/api/auth/login")
    async def login(req: LoginRequest, request: Request) -> JSONResponse:
        """Check the shared password and set the session cookie.

        Raises:
            Unauthorized: If the password is wrong.
        """
        cfg: NanphotoConfig = request.app.state.config
        if not cfg.auth_enabled:
            return JSONResponse({"ok": True})
        if not check_password(req.password, cfg):
            raise Unauthorized("Wrong password")
        response = JSONResponse({"ok": True})
        set_session_cookie(response, cfg)
        return response

    @app.post("/api/auth/logout")
    async def logout() -> JSONResponse:
        """Clear the session cookie."""
        response = JSONResponse({"ok": True})
        clear_session_cookie(response)
        return response

    @app.get("/api/auth/status")
    async def auth_status(request: Request) -> dict:
        """Report whether auth is enabled and satisfied by this request."""
        cfg: NanphotoConfig = request.app.state.config
        return {
            "auth_enabled": cfg.auth_enabled,
            "authenticated": is_authenticated(request, cfg),
        }

    # -----------------------------------------------------------------------
    # Generation.
    # -----------------------------------------------------------------------

    @app.post("/api/generate", dependencies=protected, response_model=GenerationResponse)
    async def generate(request: Request, body: dict[str, Any] = Body(...)) -> GenerationResponse:
        """Run one generation request of any mode.

        The body must carry a ``mode`` field selecting the request variant
        (see :mod:`nanphoto.api.models`).

        Returns:
            The normalized result; images are base64-encoded.

        Raises:
            ValidationError: 400 for an unknown mode or missing field.
            ExternalServiceError: 502 for transport or upstream failures.
            GenerationRejected: 502 when the model declines.
            MissingImage: 502 when an image mode returns no image.
        """
        req = parse_generation_request(body)
        outcome = await _generation_service(request).generate(req)
        image = outcome.result.image
        return GenerationResponse(
            mode=req.mode,
            text=outcome.result.text,
            image=base64.b64encode(image.data).decode("ascii") if image else None,
            mime_type=image.mime_type if image else None,
            gallery_id=outcome.gallery_id,
        )

    @app.post("/api/chat", dependencies=protected, response_model=ChatResponse)
    async def chat(req: ChatRequest, request: Request) -> ChatResponse:
        """Answer a question as text (empty text is a valid answer)."""
        outcome = await _generation_service(request).generate(req)
        return ChatResponse(text=outcome.result.text)

    @app.get("/api/chat/models", dependencies=protected, response_model=ChatModelsResponse)
    async def chat_models(request: Request) -> ChatModelsResponse:
        """Report which allowed chat models the API key can see and use.

        Each listed model gets one minimal generation call.

        Raises:
            ExternalServiceError: 502 if the model listing fails.
        """
        statuses, listed_names = await _generation_service(request).check_chat_models()
        return ChatModelsResponse(
            models=[
                ChatModelStatus(id=status.model, listed=status.listed, works=status.works)
                for status in statuses
            ],
            listed_names=listed_names,
        )

    @app.post("/api/prompt/compile", dependencies=protected, response_model=CompileResponse)
    async def compile_prompt(body: dict[str, Any] = Body(...)) -> CompileResponse:
        """Preview the compiled prompt without enrichment or an external call."""
        req = parse_generation_request(body)
        payload = build_payload(req)
        return CompileResponse(
            mode=req.mode,
            compiled_prompt=payload.text,
            system_instruction=payload.system_instruction,
            attachments=len(payload.attachments),
        )

    # -----------------------------------------------------------------------
    # Gallery.
    # -----------------------------------------------------------------------

    @app.get("/api/gallery", dependencies=protected, response_model=list[GalleryEntry])
    async def get_gallery(request: Request) -> list[GalleryEntry]:
        """Return every gallery item, newest first (no image bytes)."""
        items = await run_in_threadpool(_gallery(request).list_items)
        return [_gallery_entry(item) for item in items]

    @app.post("/api/gallery", dependencies=protected, response_model=list[GalleryEntry])
    async def append_gallery(req: GalleryAppendRequest, request: Request) -> list[GalleryEntry]:
        """Store an image and return the updated listing.

        Raises:
            ValidationError: 400 if the image is empty.
            StoreUnavailable: 503 if the gallery is disabled or broken.
        """
        store = _gallery(request)
        if not req.image:
            raise ValidationError("image is required")
        item = new_gallery_item(req.image, req.mime_type, req.caption)
        items = await run_in_threadpool(store.append, item)
        return [_gallery_entry(stored) for stored in items]

    @app.get("/api/gallery/{item_id}/image", dependencies=protected)
    async def get_gallery_image(item_id: str, request: Request) -> Response:
        """Serve the raw bytes of one gallery image.

        Raises:
            GalleryItemNotFound: 404 if the id is unknown (or was evicted).
        """
        item = await run_in_threadpool(_gallery(request).get_by_id, item_id)
        return Response(
            content=item.image_bytes,
            media_type=item.mime_type,
            headers={"Cache-Control": "public, max-age=86400"},
        )

    return app


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~nanphoto.core.config.config` (which
    loads from ``NANPHOTO_SERVER_HOST`` and ``NANPHOTO_SERVER_PORT``
    environment variables).  Defaults to ``0.0.0.0:7860``.

    This function is registered as the ``nanphoto`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "nanphoto.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
