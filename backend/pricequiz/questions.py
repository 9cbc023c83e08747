"""Quiz content from the remote product-price feed."""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

import httpx
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .db import settings
from .errors import SourceUnavailableError
from .models import Question

logger = logging.getLogger("pricequiz.questions")


class QuestionSource(Protocol):
    async def fetch_questions(self, count: int) -> List[Question]:
        """Return exactly ``count`` questions or raise SourceUnavailableError."""
        ...


class FeedImage(BaseModel):
    image_url: str = Field(alias="imageUrl")


class FeedProduct(BaseModel):
    quiz: str
    answer: int
    images: List[FeedImage] = Field(default_factory=list)
    affiliatelink: str

    def to_question(self) -> Question:
        return Question(
            title=self.quiz,
            price=self.answer,
            image_url=self.images[0].image_url if self.images else "",
            link_url=self.affiliatelink,
        )


_feed_adapter = TypeAdapter(List[FeedProduct])


class HttpQuestionSource:
    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.QUESTION_FEED_URL
        self.timeout = timeout if timeout is not None else settings.QUESTION_FEED_TIMEOUT_SECONDS
        self._transport = transport

    async def fetch_raw(self, count: int) -> List[FeedProduct]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.url, params={"hits": count})
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Question feed request failed: %s", exc)
            raise SourceUnavailableError("Question feed is unreachable") from exc
        except ValueError as exc:
            logger.warning("Question feed returned invalid JSON: %s", exc)
            raise SourceUnavailableError("Question feed returned invalid JSON") from exc

        try:
            return _feed_adapter.validate_python(payload)
        except ValidationError as exc:
            logger.warning("Question feed payload did not match the expected shape: %s", exc)
            raise SourceUnavailableError("Question feed returned an unexpected payload") from exc

    async def fetch_questions(self, count: int) -> List[Question]:
        products = await self.fetch_raw(count)
        if len(products) != count:
            raise SourceUnavailableError(f"Question feed returned {len(products)} items, expected {count}")
        return [p.to_question() for p in products]
