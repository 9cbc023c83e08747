"""Scene timeline for a running game.

The current scene is never stored. It is derived by comparing a caller
supplied ``now`` against the absolute ``starts_at`` of each schedule entry, so
every function here takes the instant explicitly.
"""

from __future__ import annotations

import math
from typing import List, Optional

from .models import (
    GameResultScene,
    LobbyScene,
    QuizAnswerScene,
    QuizSubmitScene,
    Scene,
    Schedule,
    ScheduleEntry,
)

# Pause between a question's answer reveal and the next submit window.
GAME_WAITING_NEXT_QUESTION_SECONDS = 10


def lobby_schedule(created_at: float) -> Schedule:
    return [ScheduleEntry(scene=LobbyScene(), starts_at=created_at)]


def _question_entries(question_index: int, submit_at: float, time_limit_seconds: int) -> List[ScheduleEntry]:
    return [
        ScheduleEntry(scene=QuizSubmitScene(question_index=question_index), starts_at=submit_at),
        ScheduleEntry(
            scene=QuizAnswerScene(question_index=question_index),
            starts_at=submit_at + time_limit_seconds,
        ),
    ]


def _derive_questions(
    first_index: int,
    question_count: int,
    time_limit_seconds: int,
    start_time: float,
    gap: float,
) -> Schedule:
    """Lay out questions ``first_index..question_count-1`` back to back, then the result."""
    per_question = time_limit_seconds + gap
    entries: Schedule = []
    for offset, index in enumerate(range(first_index, question_count)):
        entries.extend(_question_entries(index, start_time + offset * per_question, time_limit_seconds))

    remaining = max(question_count - first_index, 0)
    entries.append(ScheduleEntry(scene=GameResultScene(), starts_at=start_time + remaining * per_question))
    return entries


def build_initial_schedule(
    question_count: int,
    time_limit_seconds: int,
    start_time: float,
    gap: float = GAME_WAITING_NEXT_QUESTION_SECONDS,
) -> Schedule:
    if question_count < 0:
        raise ValueError("question_count must be >= 0")
    if time_limit_seconds <= 0:
        raise ValueError("time_limit_seconds must be > 0")
    return _derive_questions(0, question_count, time_limit_seconds, start_time, gap)


def reschedule_after_early_completion(
    schedule: Schedule,
    question_count: int,
    completed_index: int,
    time_limit_seconds: int,
    now: float,
    gap: float = GAME_WAITING_NEXT_QUESTION_SECONDS,
) -> Schedule:
    """Reveal ``completed_index`` at ``now`` and pull every later question forward.

    Entries up to and including the completed question's submit window are
    kept as they are. The completed question's reveal moves to ``now``, and the
    following questions plus the final result are re-laid starting ``gap``
    seconds later.
    """
    if not 0 <= completed_index < question_count:
        raise ValueError(f"completed_index {completed_index} outside 0..{question_count - 1}")

    kept: Schedule = []
    reveal_at = now
    for entry in schedule:
        scene = entry.scene
        if isinstance(scene, LobbyScene):
            kept.append(entry)
            continue
        if isinstance(scene, GameResultScene):
            continue
        if scene.question_index < completed_index:
            kept.append(entry)
        elif scene.question_index == completed_index and isinstance(scene, QuizSubmitScene):
            kept.append(entry)
            # The reveal must start strictly after its own submit window opens.
            reveal_at = max(reveal_at, math.nextafter(entry.starts_at, math.inf))

    kept.append(ScheduleEntry(scene=QuizAnswerScene(question_index=completed_index), starts_at=reveal_at))
    kept.extend(_derive_questions(completed_index + 1, question_count, time_limit_seconds, reveal_at + gap, gap))
    return kept


def current_entry(schedule: Schedule, now: float) -> Optional[ScheduleEntry]:
    current = None
    for entry in schedule:
        if entry.starts_at <= now and (current is None or entry.starts_at >= current.starts_at):
            current = entry
    return current


def current_scene(schedule: Schedule, now: float) -> Optional[Scene]:
    entry = current_entry(schedule, now)
    return entry.scene if entry else None


def result_starts_at(schedule: Schedule) -> Optional[float]:
    for entry in reversed(schedule):
        if isinstance(entry.scene, GameResultScene):
            return entry.starts_at
    return None


def is_finished(schedule: Schedule, now: float) -> bool:
    ends_at = result_starts_at(schedule)
    return ends_at is not None and now >= ends_at
