from __future__ import annotations

from typing import Iterable

from .errors import InvalidAnswerError
from .models import AnswerLedger, RoomMember


def record_answer(ledger: AnswerLedger, user_id: str, question_index: int, price: int) -> AnswerLedger:
    """Return a copy of ``ledger`` with the (user, question) answer overwritten."""
    if isinstance(price, bool) or not isinstance(price, int):
        raise InvalidAnswerError(f"Answered price must be an integer, got {price!r}")

    updated = {uid: dict(answers) for uid, answers in ledger.items()}
    updated.setdefault(user_id, {})[question_index] = price
    return updated


def all_answered(ledger: AnswerLedger, members: Iterable[RoomMember], question_index: int) -> bool:
    return all(question_index in ledger.get(m.user_id, {}) for m in members)
