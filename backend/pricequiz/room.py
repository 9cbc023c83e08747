"""Room aggregate transitions.

Every function takes the current snapshot and returns a new room value; none
of them touch the store or the clock. Phase checks dispatch on the room
variant so an operation meant for one phase can never act on the other.
"""

from __future__ import annotations

from typing import List

from . import ledger
from .errors import (
    AlreadyJoinedError,
    ContentUnavailableError,
    InvalidRoomSettingsError,
    NotCurrentQuestionError,
    NotJoinedError,
    QuestionOutOfRangeError,
    WrongPhaseError,
)
from .models import (
    GameStartedRoom,
    InvitingMembersRoom,
    Question,
    QuizSubmitScene,
    Room,
    RoomMember,
)
from .schedule import (
    build_initial_schedule,
    current_scene,
    lobby_schedule,
    reschedule_after_early_completion,
)


def new_room(owner: RoomMember, time_limit_seconds: int, question_count: int, now: float) -> InvitingMembersRoom:
    if time_limit_seconds <= 0 or question_count <= 0:
        raise InvalidRoomSettingsError(
            f"Time limit and question count must be positive, got {time_limit_seconds} and {question_count}"
        )
    return InvitingMembersRoom(
        members=[owner],
        time_limit_seconds=time_limit_seconds,
        question_count=question_count,
        schedule=lobby_schedule(now),
    )


def _require_inviting(room: Room, action: str) -> InvitingMembersRoom:
    if isinstance(room, InvitingMembersRoom):
        return room
    if isinstance(room, GameStartedRoom):
        raise WrongPhaseError(f"Cannot {action}: the game has already started")
    raise TypeError(f"Unknown room variant: {type(room).__name__}")


def _require_started(room: Room, action: str) -> GameStartedRoom:
    if isinstance(room, GameStartedRoom):
        return room
    if isinstance(room, InvitingMembersRoom):
        raise WrongPhaseError(f"Cannot {action}: the game has not started yet")
    raise TypeError(f"Unknown room variant: {type(room).__name__}")


def _is_member(room: Room, user_id: str) -> bool:
    return any(m.user_id == user_id for m in room.members)


def join(room: Room, member: RoomMember) -> InvitingMembersRoom:
    inviting = _require_inviting(room, "join")
    if _is_member(inviting, member.user_id):
        raise AlreadyJoinedError(f"User {member.user_id} already joined this room")
    return inviting.model_copy(update={"members": [*inviting.members, member]})


def leave(room: Room, user_id: str) -> InvitingMembersRoom:
    inviting = _require_inviting(room, "leave")
    if not _is_member(inviting, user_id):
        raise NotJoinedError(f"User {user_id} is not a member of this room")

    members = [m for m in inviting.members if m.user_id != user_id]
    member_ids = {m.user_id for m in members}
    ready_state = {uid: True for uid in inviting.ready_state if uid in member_ids}
    return inviting.model_copy(update={"members": members, "ready_state": ready_state})


def set_ready(room: Room, user_id: str, ready: bool) -> InvitingMembersRoom:
    inviting = _require_inviting(room, "change ready state")
    if not _is_member(inviting, user_id):
        raise NotJoinedError(f"User {user_id} is not a member of this room")

    ready_state = dict(inviting.ready_state)
    if ready:
        ready_state[user_id] = True
    else:
        ready_state.pop(user_id, None)
    return inviting.model_copy(update={"ready_state": ready_state})


def all_members_ready(room: InvitingMembersRoom) -> bool:
    # An empty room never counts as ready, otherwise a game would start with no players.
    return bool(room.members) and all(m.user_id in room.ready_state for m in room.members)


def start_game(room: InvitingMembersRoom, questions: List[Question], now: float) -> GameStartedRoom:
    if len(questions) != room.question_count:
        raise ContentUnavailableError(
            f"Expected {room.question_count} questions, the question source supplied {len(questions)}"
        )
    return GameStartedRoom(
        members=list(room.members),
        time_limit_seconds=room.time_limit_seconds,
        question_count=room.question_count,
        questions=list(questions),
        answers={},
        schedule=build_initial_schedule(room.question_count, room.time_limit_seconds, now),
    )


def submit_answer(room: Room, user_id: str, question_index: int, price: int, now: float) -> GameStartedRoom:
    started = _require_started(room, "submit an answer")
    if not _is_member(started, user_id):
        raise NotJoinedError(f"User {user_id} is not a member of this room")
    if not 0 <= question_index < started.question_count:
        raise QuestionOutOfRangeError(
            f"Question index {question_index} outside 0..{started.question_count - 1}"
        )

    scene = current_scene(started.schedule, now)
    if not (isinstance(scene, QuizSubmitScene) and scene.question_index == question_index):
        raise NotCurrentQuestionError(f"Question {question_index} is not open for answers")

    answers = ledger.record_answer(started.answers, user_id, question_index, price)
    schedule = started.schedule
    if ledger.all_answered(answers, started.members, question_index):
        schedule = reschedule_after_early_completion(
            schedule,
            started.question_count,
            question_index,
            started.time_limit_seconds,
            now,
        )
    return started.model_copy(update={"answers": answers, "schedule": schedule})
