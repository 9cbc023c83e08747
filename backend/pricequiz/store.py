"""Optimistic transactions over whole-room documents.

Each room lives in a single document carrying a ``version`` counter. A
transaction reads that document, lets the caller compute the next room value
from the snapshot, and commits with ``find_one_and_replace`` filtered on the
version it read. If another writer got there first the filter matches nothing
and the whole read-compute-commit cycle runs again.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from .db import db, settings
from .errors import ContentionError, RoomNotFoundError, StoreFault
from .models import Room, room_adapter

logger = logging.getLogger("pricequiz.store")

T = TypeVar("T")


def _to_document(room: Room, room_id: str, version: int) -> Dict[str, Any]:
    doc = room.model_dump(mode="json")
    doc["_id"] = room_id
    doc["version"] = version
    return doc


def _from_document(doc: Dict[str, Any]) -> Room:
    try:
        return room_adapter.validate_python(doc)
    except ValidationError as exc:
        raise StoreFault(f"Room document {doc.get('_id')} is corrupt") from exc


class RoomTransaction:
    """One attempt: a single snapshot read and at most one buffered write."""

    def __init__(self, collection: Any, room_id: str):
        self.room_id = room_id
        self._collection = collection
        self._version: Optional[int] = None
        self._snapshot: Optional[Room] = None
        self._pending: Optional[Room] = None

    async def get(self) -> Room:
        if self._snapshot is not None:
            return self._snapshot

        try:
            doc = await self._collection.find_one({"_id": self.room_id})
        except PyMongoError as exc:
            raise StoreFault(f"Failed to read room {self.room_id}") from exc
        if doc is None:
            raise RoomNotFoundError(f"Room {self.room_id} does not exist")

        self._version = int(doc.get("version", 0))
        self._snapshot = _from_document(doc)
        return self._snapshot

    def set(self, room: Room) -> None:
        if self._version is None:
            raise RuntimeError("Read the room before writing it within a transaction")
        if self._pending is not None:
            raise RuntimeError("A transaction writes the room at most once")
        self._pending = room

    async def commit(self) -> bool:
        """Return False when the document changed since it was read."""
        if self._pending is None:
            return True

        assert self._version is not None
        replacement = _to_document(self._pending, self.room_id, self._version + 1)
        try:
            result = await self._collection.find_one_and_replace(
                {"_id": self.room_id, "version": self._version},
                replacement,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise StoreFault(f"Failed to commit room {self.room_id}") from exc
        return result is not None


class RoomStore:
    def __init__(
        self,
        collection: Any = None,
        *,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ):
        self._collection = collection if collection is not None else db.rooms
        self._max_attempts = settings.TRANSACTION_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self._backoff_seconds = settings.TRANSACTION_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds

    async def create_room(self, room: Room) -> str:
        room_id = uuid.uuid4().hex
        try:
            await self._collection.insert_one(_to_document(room, room_id, 1))
        except PyMongoError as exc:
            raise StoreFault("Failed to create room") from exc
        logger.info("Created room %s", room_id)
        return room_id

    async def read_room(self, room_id: str) -> Room:
        return await RoomTransaction(self._collection, room_id).get()

    async def run_transaction(self, room_id: str, fn: Callable[[RoomTransaction], Awaitable[T]]) -> T:
        """Run ``fn`` against a fresh snapshot until its write commits cleanly.

        Errors raised by ``fn`` abort the attempt without writing anything and
        propagate unchanged. Losing ``max_attempts`` commit races in a row
        raises :class:`ContentionError`.
        """
        for attempt in range(1, self._max_attempts + 1):
            tx = RoomTransaction(self._collection, room_id)
            result = await fn(tx)
            if await tx.commit():
                return result

            logger.info("Commit conflict on room %s (attempt %d/%d)", room_id, attempt, self._max_attempts)
            if self._backoff_seconds:
                await asyncio.sleep(self._backoff_seconds * attempt)

        logger.warning("Giving up on room %s after %d conflicting attempts", room_id, self._max_attempts)
        raise ContentionError(f"Room {room_id} is too busy, try again")
