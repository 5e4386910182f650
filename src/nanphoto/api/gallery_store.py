"""Capped gallery storage for generated images.

This module isolates gallery persistence from ``nanphoto.api.main`` so route
handlers can focus on HTTP concerns while the store remains testable as a
small unit.

The gallery is intentionally simple:

- at most ``max_items`` entries are kept
- list order is reverse-chronological (newest first)
- when an append pushes the count over the cap, the oldest entries are
  evicted permanently (no soft delete)
- entries are immutable once stored

Two backends implement :class:`GalleryStore`:

``SQLiteGalleryStore``
    One ``gallery`` table.  Each append is a single transaction that inserts
    the new row and deletes every row beyond the newest ``max_items``.

``InMemoryGalleryStore``
    A process-local list, useful for development and tests.

Both serialize appends behind a store-level lock, so two concurrent writers
can never both observe ``max_items - 1`` entries and skip eviction.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from nanphoto.core.config import NanphotoConfig
from nanphoto.core.errors import GalleryItemNotFound, StoreUnavailable, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 40


def new_gallery_id() -> str:
    """Generate an identifier of the form ``img-<epoch ms>-<8 hex chars>``.

    Uniqueness is probabilistic: the millisecond timestamp plus 32 random
    bits make collisions negligible for a gallery of this size.
    """
    return f"img-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class GalleryItem:
    """A stored artifact.

    Attributes:
        id: Opaque unique identifier.
        image_bytes: Raw image data.
        mime_type: MIME type of ``image_bytes``.
        caption: Optional caption (typically the model's accompanying text).
        created_at: Creation time (timezone-aware, UTC).
    """

    id: str
    image_bytes: bytes = field(repr=False)
    mime_type: str
    caption: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def new_gallery_item(
    image_bytes: bytes,
    mime_type: str | None = None,
    caption: str | None = None,
) -> GalleryItem:
    """Build a fresh :class:`GalleryItem` with a generated id and timestamp.

    Empty captions are stored as ``None``; a missing mime type defaults to
    ``image/png``.
    """
    return GalleryItem(
        id=new_gallery_id(),
        image_bytes=image_bytes,
        mime_type=mime_type or "image/png",
        caption=(caption or "").strip() or None,
    )


class GalleryStore(ABC):
    """Interface of a capped, newest-first artifact store."""

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS):
        if max_items < 1:
            raise ValueError(f"max_items must be at least 1, got {max_items}")
        self.max_items = max_items
        self._lock = threading.Lock()

    @abstractmethod
    def append(self, item: GalleryItem) -> list[GalleryItem]:
        """Store *item*, evict the oldest beyond capacity, return newest-first."""

    @abstractmethod
    def list_items(self) -> list[GalleryItem]:
        """Return every stored item, newest-first, without mutation."""

    @abstractmethod
    def get_by_id(self, item_id: str) -> GalleryItem:
        """Return one item.

        Raises:
            GalleryItemNotFound: If no item has this id.
        """


class InMemoryGalleryStore(GalleryStore):
    """Lock-guarded list kept sorted newest-first."""

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS):
        super().__init__(max_items)
        self._items: list[tuple[float, int, GalleryItem]] = []
        self._sequence = 0

    def append(self, item: GalleryItem) -> list[GalleryItem]:
        with self._lock:
            if any(stored.id == item.id for _, _, stored in self._items):
                raise ValidationError(f"Gallery item already exists: {item.id}")

            # The sequence number breaks created_at ties in insertion order.
            self._sequence += 1
            self._items.append((item.created_at.timestamp(), self._sequence, item))
            self._items.sort(key=lambda entry: (entry[0], entry[1]), reverse=True)

            evicted = self._items[self.max_items :]
            del self._items[self.max_items :]
            if evicted:
                logger.info(f"Evicted {len(evicted)} gallery item(s): {[e[2].id for e in evicted]}")

            return [stored for _, _, stored in self._items]

    def list_items(self) -> list[GalleryItem]:
        with self._lock:
            return [stored for _, _, stored in self._items]

    def get_by_id(self, item_id: str) -> GalleryItem:
        with self._lock:
            for _, _, stored in self._items:
                if stored.id == item_id:
                    return stored
        raise GalleryItemNotFound(item_id)


class SQLiteGalleryStore(GalleryStore):
    """Gallery persisted to a single SQLite table.

    Schema::

        gallery(id TEXT PRIMARY KEY, image BLOB, mime_type TEXT,
                caption TEXT NULL, created_at REAL)

    ``created_at`` holds POSIX seconds.  Ties are broken by ``rowid`` so that
    items created in the same instant still read back in insertion order.

    Any ``sqlite3.Error`` other than a duplicate id is reported as
    :class:`StoreUnavailable`.
    """

    def __init__(self, db_path: Path, max_items: int = DEFAULT_MAX_ITEMS):
        super().__init__(max_items)
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info(f"Initialized gallery database at {self.db_path} (max_items={max_items})")

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=10)

    def _initialize_db(self) -> None:
        """Create the schema if it doesn't exist."""
        try:
            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS gallery (
                        id TEXT PRIMARY KEY,
                        image BLOB NOT NULL,
                        mime_type TEXT NOT NULL,
                        caption TEXT,
                        created_at REAL NOT NULL
                    )
                    """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_gallery_created_at
                    ON gallery(created_at DESC)
                    """)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Gallery database unavailable: {e}") from e

    @staticmethod
    def _row_to_item(row: tuple) -> GalleryItem:
        item_id, image, mime_type, caption, created_at = row
        return GalleryItem(
            id=item_id,
            image_bytes=bytes(image),
            mime_type=mime_type,
            caption=caption,
            created_at=datetime.fromtimestamp(created_at, tz=timezone.utc),
        )

    def _select_all(self, conn: sqlite3.Connection) -> list[GalleryItem]:
        cursor = conn.execute("""
            SELECT id, image, mime_type, caption, created_at
            FROM gallery
            ORDER BY created_at DESC, rowid DESC
            """)
        return [self._row_to_item(row) for row in cursor.fetchall()]

    def append(self, item: GalleryItem) -> list[GalleryItem]:
        with self._lock:
            try:
                # Insert and trim commit together or not at all.
                with self._connect() as conn:
                    conn.execute(
                        """
                        INSERT INTO gallery (id, image, mime_type, caption, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (
                            item.id,
                            sqlite3.Binary(item.image_bytes),
                            item.mime_type,
                            item.caption,
                            item.created_at.timestamp(),
                        ),
                    )
                    cursor = conn.execute(
                        """
                        DELETE FROM gallery WHERE id NOT IN (
                            SELECT id FROM gallery
                            ORDER BY created_at DESC, rowid DESC
                            LIMIT ?
                        )
                        """,
                        (self.max_items,),
                    )
                    if cursor.rowcount > 0:
                        logger.info(f"Evicted {cursor.rowcount} gallery item(s)")
                    items = self._select_all(conn)
            except sqlite3.IntegrityError as e:
                raise ValidationError(f"Gallery item already exists: {item.id}") from e
            except sqlite3.Error as e:
                logger.error(f"Error appending gallery item {item.id}: {e}")
                raise StoreUnavailable(f"Gallery database unavailable: {e}") from e

        logger.info(f"Added to gallery: {item.id} ({len(items)}/{self.max_items})")
        return items

    def list_items(self) -> list[GalleryItem]:
        try:
            with self._connect() as conn:
                return self._select_all(conn)
        except sqlite3.Error as e:
            logger.error(f"Error listing gallery: {e}")
            raise StoreUnavailable(f"Gallery database unavailable: {e}") from e

    def get_by_id(self, item_id: str) -> GalleryItem:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    SELECT id, image, mime_type, caption, created_at
                    FROM gallery WHERE id = ? LIMIT 1
                    """,
                    (item_id,),
                )
                row = cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"Error reading gallery item {item_id}: {e}")
            raise StoreUnavailable(f"Gallery database unavailable: {e}") from e

        if row is None:
            raise GalleryItemNotFound(item_id)
        return self._row_to_item(row)


def create_gallery_store(config: NanphotoConfig) -> GalleryStore | None:
    """Build the store selected by ``config.gallery_backend``.

    Returns:
        The configured store, or ``None`` when the backend is ``"none"`` or
        the database cannot be opened (logged; generation keeps working).
    """
    if config.gallery_backend == "memory":
        return InMemoryGalleryStore(config.gallery_max_items)
    if config.gallery_backend == "sqlite":
        try:
            return SQLiteGalleryStore(config.gallery_db_path, config.gallery_max_items)
        except StoreUnavailable as e:
            logger.error(f"Gallery disabled: {e.message}")
            return None
    return None
