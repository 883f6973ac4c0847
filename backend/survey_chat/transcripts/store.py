"""Blob storage for transcript objects.

One object per path, holding plain UTF-8 text. Overwrites are allowed per
call; the store offers no conditional writes beyond "create only".

Document schema (MongoDB)::

    {
        "path": "chat-transcripts/1760000000000-ab12.txt",
        "content": "Chat transcript started\\n...",
        "content_type": "text/plain; charset=utf-8",
        "created_at": "2026-02-08T10:30:00Z",
        "updated_at": "2026-02-08T11:00:00Z"
    }
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import DuplicateKeyError

from survey_chat.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/plain; charset=utf-8"


class BlobExistsError(Exception):
    """A create-only write hit an existing object."""


class BlobStore(Protocol):
    async def initialize(self) -> None: ...

    async def get_text(self, path: str) -> str | None: ...

    async def put_text(self, path: str, text: str, *, allow_overwrite: bool) -> None: ...

    async def ping(self) -> None: ...

    async def close(self) -> None: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MongoBlobStore:
    """Blob store backed by a MongoDB collection.

    Lifecycle:
        store = MongoBlobStore()
        await store.initialize()   # call once at startup
        ...
        await store.close()        # call once at shutdown
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._settings = config or default_settings
        self._client: AsyncIOMotorClient | None = None
        self._collection: AsyncIOMotorCollection | None = None

    async def initialize(self) -> None:
        """Connect to MongoDB and ensure the path index exists."""
        if self._client is not None:
            logger.warning("MongoBlobStore already initialized - skipping")
            return

        logger.info("Connecting to MongoDB at %s", self._settings.mongodb_uri)
        self._client = AsyncIOMotorClient(
            self._settings.mongodb_uri,
            serverSelectionTimeoutMS=5_000,
        )
        db = self._client[self._settings.mongodb_database]
        self._collection = db[self._settings.transcript_collection]
        await self._collection.create_index("path", unique=True)
        logger.info(
            "MongoBlobStore ready (collection=%s)", self._settings.transcript_collection
        )

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._collection = None
            logger.info("MongoDB connection closed")

    @property
    def collection(self) -> AsyncIOMotorCollection:
        if self._collection is None:
            raise RuntimeError("MongoBlobStore not initialized - call initialize() first")
        return self._collection

    async def ping(self) -> None:
        if self._client is None:
            raise RuntimeError("MongoBlobStore not initialized - call initialize() first")
        await self._client.admin.command("ping")

    async def get_text(self, path: str) -> str | None:
        doc = await self.collection.find_one({"path": path}, {"content": 1, "_id": 0})
        if doc is None:
            return None
        return doc.get("content", "")

    async def put_text(self, path: str, text: str, *, allow_overwrite: bool) -> None:
        now = _now_iso()
        if not allow_overwrite:
            try:
                await self.collection.insert_one(
                    {
                        "path": path,
                        "content": text,
                        "content_type": CONTENT_TYPE,
                        "created_at": now,
                        "updated_at": now,
                    }
                )
            except DuplicateKeyError as exc:
                raise BlobExistsError(path) from exc
            return

        await self.collection.update_one(
            {"path": path},
            {
                "$set": {"content": text, "content_type": CONTENT_TYPE, "updated_at": now},
                "$setOnInsert": {"path": path, "created_at": now},
            },
            upsert=True,
        )


class InMemoryBlobStore:
    """Process-local blob store for tests and local runs."""

    def __init__(self) -> None:
        self.objects: dict[str, str] = {}
        self.writes: list[str] = []

    async def initialize(self) -> None:
        return None

    async def get_text(self, path: str) -> str | None:
        return self.objects.get(path)

    async def put_text(self, path: str, text: str, *, allow_overwrite: bool) -> None:
        if not allow_overwrite and path in self.objects:
            raise BlobExistsError(path)
        self.objects[path] = text
        self.writes.append(path)

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None
