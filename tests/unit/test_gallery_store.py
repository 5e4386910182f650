"""Tests for nanphoto.api.gallery_store — capped gallery persistence.

Tests cover:
- Newest-first ordering and eviction beyond capacity (both backends).
- Capacity boundary: exactly ``max_items`` entries evict nothing.
- Concurrent appends never exceed capacity.
- SQLite persistence across store instances.
- Lookup by id and duplicate ids.
- Backend selection from configuration.
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from nanphoto.api.gallery_store import (
    GalleryItem,
    InMemoryGalleryStore,
    SQLiteGalleryStore,
    create_gallery_store,
    new_gallery_id,
    new_gallery_item,
)
from nanphoto.core.config import NanphotoConfig
from nanphoto.core.errors import GalleryItemNotFound, StoreUnavailable, ValidationError

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_item(item_id: str, seconds: int = 0, data: bytes = b"img") -> GalleryItem:
    return GalleryItem(
        id=item_id,
        image_bytes=data,
        mime_type="image/png",
        created_at=BASE_TIME + timedelta(seconds=seconds),
    )


@pytest.fixture(params=["memory", "sqlite"])
def store_factory(request, temp_dir: Path):
    """Build a store of the parametrized backend with a given capacity."""

    def factory(max_items: int):
        if request.param == "memory":
            return InMemoryGalleryStore(max_items)
        return SQLiteGalleryStore(temp_dir / "gallery.db", max_items)

    return factory


class TestOrderingAndEviction:
    """Behaviour shared by every backend."""

    def test_oldest_evicted_when_over_capacity(self, store_factory):
        """With capacity 2, appending A, B, C keeps [C, B]."""
        store = store_factory(2)
        store.append(make_item("A", 0))
        store.append(make_item("B", 1))
        result = store.append(make_item("C", 2))

        assert [item.id for item in result] == ["C", "B"]
        assert [item.id for item in store.list_items()] == ["C", "B"]
        with pytest.raises(GalleryItemNotFound):
            store.get_by_id("A")

    def test_exactly_at_capacity_evicts_nothing(self, store_factory):
        store = store_factory(3)
        for i, item_id in enumerate(["A", "B", "C"]):
            result = store.append(make_item(item_id, i))
        assert [item.id for item in result] == ["C", "B", "A"]

    def test_order_follows_created_at(self, store_factory):
        """An older item appended later still sorts behind newer ones."""
        store = store_factory(5)
        store.append(make_item("new", 10))
        result = store.append(make_item("old", 0))
        assert [item.id for item in result] == ["new", "old"]

    def test_older_item_is_evicted_immediately_when_full(self, store_factory):
        store = store_factory(2)
        store.append(make_item("B", 5))
        store.append(make_item("C", 6))
        result = store.append(make_item("A", 0))
        assert [item.id for item in result] == ["C", "B"]

    def test_same_timestamp_keeps_insertion_order(self, store_factory):
        store = store_factory(5)
        store.append(make_item("first", 0))
        result = store.append(make_item("second", 0))
        assert [item.id for item in result] == ["second", "first"]

    def test_list_does_not_mutate(self, store_factory):
        store = store_factory(2)
        store.append(make_item("A", 0))
        assert store.list_items() == store.list_items()
        assert len(store.list_items()) == 1

    def test_empty_store_lists_nothing(self, store_factory):
        assert store_factory(2).list_items() == []

    def test_get_by_id_returns_bytes(self, store_factory, png_bytes):
        store = store_factory(2)
        store.append(make_item("A", 0, data=png_bytes))
        item = store.get_by_id("A")
        assert item.image_bytes == png_bytes
        assert item.mime_type == "image/png"
        assert item.created_at == BASE_TIME

    def test_duplicate_id_rejected(self, store_factory):
        store = store_factory(2)
        store.append(make_item("A", 0))
        with pytest.raises(ValidationError, match="already exists"):
            store.append(make_item("A", 1))
        assert len(store.list_items()) == 1

    def test_concurrent_appends_respect_capacity(self, store_factory):
        store = store_factory(3)
        errors = []

        def worker(offset: int):
            try:
                for i in range(5):
                    store.append(new_gallery_item(b"img", caption=f"{offset}-{i}"))
            except Exception as e:  # pragma: no cover - surfaced by the assert below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(store.list_items()) == 3

    def test_capacity_must_be_positive(self, store_factory):
        with pytest.raises(ValueError):
            store_factory(0)


class TestSQLiteGalleryStore:
    """Backend-specific behaviour of the SQLite store."""

    def test_items_survive_reopen(self, temp_dir: Path):
        db_path = temp_dir / "gallery.db"
        SQLiteGalleryStore(db_path, 5).append(make_item("A", 0))
        reopened = SQLiteGalleryStore(db_path, 5)
        assert [item.id for item in reopened.list_items()] == ["A"]

    def test_caption_round_trip(self, temp_dir: Path):
        store = SQLiteGalleryStore(temp_dir / "gallery.db", 5)
        item = new_gallery_item(b"img", "image/jpeg", "  A red fox  ")
        store.append(item)
        stored = store.get_by_id(item.id)
        assert stored.caption == "A red fox"
        assert stored.mime_type == "image/jpeg"

    def test_eviction_deletes_rows(self, temp_dir: Path):
        db_path = temp_dir / "gallery.db"
        store = SQLiteGalleryStore(db_path, 1)
        store.append(make_item("A", 0))
        store.append(make_item("B", 1))
        with sqlite3.connect(db_path) as conn:
            rows = conn.execute("SELECT id FROM gallery").fetchall()
        assert rows == [("B",)]

    def test_creates_parent_directory(self, temp_dir: Path):
        db_path = temp_dir / "nested" / "dir" / "gallery.db"
        SQLiteGalleryStore(db_path, 1)
        assert db_path.exists()

    def test_unopenable_database_is_store_unavailable(self, temp_dir: Path):
        # A directory where the database file should be cannot be opened.
        db_path = temp_dir / "gallery.db"
        db_path.mkdir()
        with pytest.raises(StoreUnavailable):
            SQLiteGalleryStore(db_path, 1)


class TestGalleryItems:
    """Item construction helpers."""

    def test_id_format(self):
        item_id = new_gallery_id()
        prefix, millis, suffix = item_id.split("-")
        assert prefix == "img"
        assert millis.isdigit()
        assert len(suffix) == 8

    def test_ids_are_unique(self):
        assert len({new_gallery_id() for _ in range(200)}) == 200

    def test_new_item_defaults(self):
        item = new_gallery_item(b"img", None, "   ")
        assert item.mime_type == "image/png"
        assert item.caption is None
        assert item.created_at.tzinfo is not None


class TestCreateGalleryStore:
    """Backend selection from configuration."""

    def _config(self, temp_dir: Path, backend: str) -> NanphotoConfig:
        return NanphotoConfig(
            _env_file=None,
            gallery_backend=backend,
            data_dir=str(temp_dir / "data"),
            gallery_max_items=7,
        )

    def test_memory_backend(self, temp_dir: Path):
        store = create_gallery_store(self._config(temp_dir, "memory"))
        assert isinstance(store, InMemoryGalleryStore)
        assert store.max_items == 7

    def test_sqlite_backend(self, temp_dir: Path):
        config = self._config(temp_dir, "sqlite")
        store = create_gallery_store(config)
        assert isinstance(store, SQLiteGalleryStore)
        assert store.db_path == config.gallery_db_path

    def test_none_backend(self, temp_dir: Path):
        assert create_gallery_store(self._config(temp_dir, "none")) is None
