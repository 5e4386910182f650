"""Nanphoto — FastAPI REST API layer.

This package contains the FastAPI application, Pydantic request/response
models, prompt compilation, generation orchestration, and the gallery store.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
prompt_builder
    Mode-specific prompt compilation.
generation
    Orchestration of enrichment, the model call and normalization.
gallery_store
    Capped newest-first gallery backends (SQLite and in-memory).
auth
    Shared-password session gate.
"""
