"""Fixtures for API integration tests.

The application is built with :func:`nanphoto.api.main.create_app` and a
fake model client, so no request ever leaves the process.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from nanphoto.api.gallery_store import InMemoryGalleryStore
from nanphoto.api.main import create_app


@pytest.fixture
def gallery(test_config) -> InMemoryGalleryStore:
    """In-memory gallery sized from the test configuration."""
    return InMemoryGalleryStore(test_config.gallery_max_items)


@pytest.fixture
def test_client(test_config, fake_client, fake_enricher, gallery):
    """TestClient with lifespan running (open and closed around each test)."""
    app = create_app(
        test_config,
        model_client=fake_client,
        enricher=fake_enricher,
        gallery=gallery,
    )
    with TestClient(app) as client:
        yield client


@pytest.fixture
def no_gallery_client(test_config, fake_client, fake_enricher):
    """TestClient for an application running without a gallery."""
    app = create_app(test_config, model_client=fake_client, enricher=fake_enricher, gallery=None)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def locked_client(test_config, fake_client, fake_enricher, gallery):
    """TestClient for an application protected by the password ``s3cret``."""
    test_config.password = "s3cret"
    app = create_app(
        test_config,
        model_client=fake_client,
        enricher=fake_enricher,
        gallery=gallery,
    )
    with TestClient(app) as client:
        yield client
