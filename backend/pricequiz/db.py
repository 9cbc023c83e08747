from __future__ import annotations

import asyncio
import copy
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo import AsyncMongoClient, ReturnDocument


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:8080"
    CORS_ORIGIN_REGEX: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    MONGODB_URI: Optional[str] = None
    MONGODB_DATABASE: str = "pricequiz"

    QUESTION_FEED_URL: str = "https://seaffood.com/quizlake"
    QUESTION_FEED_TIMEOUT_SECONDS: float = 10.0

    DEFAULT_TIME_LIMIT_SECONDS: int = 30
    DEFAULT_QUESTION_COUNT: int = 5

    TRANSACTION_MAX_ATTEMPTS: int = 5
    TRANSACTION_BACKOFF_SECONDS: float = 0.05


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


class InMemoryCollection:
    """The slice of a pymongo async collection the room store relies on."""

    def __init__(self):
        self._docs: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            for doc in self._docs:
                if self._matches(doc, query):
                    return copy.deepcopy(doc)
        return None

    async def insert_one(self, document: Dict[str, Any]):
        async with self._lock:
            if any(doc.get("_id") == document.get("_id") for doc in self._docs):
                raise ValueError(f"Duplicate _id: {document.get('_id')}")
            self._docs.append(copy.deepcopy(document))

    async def find_one_and_replace(
        self,
        query: Dict[str, Any],
        replacement: Dict[str, Any],
        *,
        return_document: bool = ReturnDocument.BEFORE,
    ) -> Optional[Dict[str, Any]]:
        async with self._lock:
            for idx, doc in enumerate(self._docs):
                if self._matches(doc, query):
                    original = copy.deepcopy(doc)
                    updated = copy.deepcopy(replacement)
                    updated["_id"] = doc["_id"]
                    self._docs[idx] = updated
                    return copy.deepcopy(updated if return_document == ReturnDocument.AFTER else original)
        return None

    def _matches(self, doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
        for key, expected in (query or {}).items():
            if isinstance(expected, dict):
                raise ValueError(f"Unsupported query operator(s): {expected}")
            if doc.get(key) != expected:
                return False
        return True


class InMemoryDatabase:
    def __init__(self):
        self.rooms = InMemoryCollection()


def build_database(config: Settings = settings) -> Any:
    if config.MONGODB_URI:
        client: AsyncMongoClient = AsyncMongoClient(config.MONGODB_URI)
        return client[config.MONGODB_DATABASE]
    return InMemoryDatabase()


db: Any = build_database()
