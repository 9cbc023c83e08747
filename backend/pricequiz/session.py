from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional

from pydantic import ValidationError

from . import room as room_machine
from .errors import (
    ContentUnavailableError,
    InvalidRoomSettingsError,
    RoomError,
    SourceUnavailableError,
    StoreFault,
)
from .models import Question, RoomMember
from .questions import QuestionSource
from .schedule import current_scene, is_finished
from .schemas import OperationResult, PublicRoomOut
from .store import RoomStore, RoomTransaction
from .utils import now_ts

logger = logging.getLogger("pricequiz.session")


class SessionService:
    """Entry points for every room mutation.

    Each operation runs as one store transaction and reports its outcome as an
    :class:`OperationResult`; domain rejections and store faults never escape
    as exceptions. Parameters are expected to be typed and validated already.
    """

    def __init__(
        self,
        store: RoomStore,
        question_source: QuestionSource,
        clock: Callable[[], float] = now_ts,
    ):
        self.store = store
        self.question_source = question_source
        self._clock = clock

    async def create_room(
        self,
        caller_id: str,
        display_name: str,
        time_limit_seconds: int,
        question_count: int,
    ) -> OperationResult:
        async def _create() -> str:
            try:
                owner = RoomMember(user_id=caller_id, display_name=display_name)
                room = room_machine.new_room(owner, time_limit_seconds, question_count, self._clock())
            except ValidationError as exc:
                raise InvalidRoomSettingsError(f"Invalid room settings: {exc.error_count()} field error(s)") from exc
            return await self.store.create_room(room)

        return await self._guard("create_room", None, _create)

    async def join_room(self, room_id: str, caller_id: str, display_name: str) -> OperationResult:
        member = RoomMember(user_id=caller_id, display_name=display_name)

        async def _apply(tx: RoomTransaction) -> None:
            tx.set(room_machine.join(await tx.get(), member))

        return await self._mutate("join_room", room_id, _apply)

    async def leave_room(self, room_id: str, caller_id: str) -> OperationResult:
        async def _apply(tx: RoomTransaction) -> None:
            tx.set(room_machine.leave(await tx.get(), caller_id))

        return await self._mutate("leave_room", room_id, _apply)

    async def set_ready(self, room_id: str, caller_id: str, ready: bool) -> OperationResult:
        async def _apply(tx: RoomTransaction) -> bool:
            room = room_machine.set_ready(await tx.get(), caller_id, ready)
            if not room_machine.all_members_ready(room):
                tx.set(room)
                return False

            questions = await self._fetch_questions(room.question_count)
            tx.set(room_machine.start_game(room, questions, self._clock()))
            return True

        async def _run() -> str:
            started = await self.store.run_transaction(room_id, _apply)
            if started:
                logger.info("Game started in room %s", room_id)
            return room_id

        return await self._guard("set_ready", room_id, _run)

    async def submit_answer(
        self,
        room_id: str,
        caller_id: str,
        question_index: int,
        price: int,
    ) -> OperationResult:
        async def _apply(tx: RoomTransaction) -> bool:
            room = await tx.get()
            updated = room_machine.submit_answer(room, caller_id, question_index, price, self._clock())
            tx.set(updated)
            return updated.schedule != room.schedule

        async def _run() -> str:
            if await self.store.run_transaction(room_id, _apply):
                logger.info("Everyone answered question %d in room %s, revealing early", question_index, room_id)
            return room_id

        return await self._guard("submit_answer", room_id, _run)

    async def describe_room(self, room_id: str) -> PublicRoomOut:
        """Snapshot of a room with its clock-derived scene, for polling clients."""
        room = await self.store.read_room(room_id)
        now = self._clock()
        return PublicRoomOut(
            id=room_id,
            room=room,
            current_scene=current_scene(room.schedule, now),
            finished=is_finished(room.schedule, now),
        )

    async def _fetch_questions(self, count: int) -> List[Question]:
        try:
            return await self.question_source.fetch_questions(count)
        except SourceUnavailableError as exc:
            raise ContentUnavailableError(f"Could not load quiz content: {exc}") from exc
        except Exception as exc:
            logger.exception("Question source failed unexpectedly")
            raise ContentUnavailableError("Could not load quiz content") from exc

    async def _mutate(
        self,
        operation: str,
        room_id: str,
        fn: Callable[[RoomTransaction], Awaitable[None]],
    ) -> OperationResult:
        async def _run() -> str:
            await self.store.run_transaction(room_id, fn)
            return room_id

        return await self._guard(operation, room_id, _run)

    async def _guard(
        self,
        operation: str,
        room_id: Optional[str],
        action: Callable[[], Awaitable[str]],
    ) -> OperationResult:
        try:
            result_room_id = await action()
        except RoomError as exc:
            logger.info("%s rejected for room %s: %s", operation, room_id, exc)
            return OperationResult.failure(room_id, exc.code, str(exc))
        except StoreFault as exc:
            logger.exception("%s failed for room %s", operation, room_id)
            return OperationResult.failure(room_id, exc.code, "The room store is unavailable")
        return OperationResult.success(result_room_id)
