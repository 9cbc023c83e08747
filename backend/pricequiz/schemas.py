from pydantic import BaseModel, Field
from typing import List, Optional

from .models import Question, Room, Scene


class CreateRoomIn(BaseModel):
    display_name: str = "default"
    time_limit_seconds: Optional[int] = Field(default=None, gt=0)
    question_count: Optional[int] = Field(default=None, gt=0)


class JoinRoomIn(BaseModel):
    display_name: str = "default"


class ReadyIn(BaseModel):
    ready: bool


class AnswerIn(BaseModel):
    question_index: int = Field(ge=0)
    price: int


class OperationError(BaseModel):
    code: str
    message: str


class OperationResult(BaseModel):
    ok: bool
    room_id: Optional[str] = None
    error: Optional[OperationError] = None

    @classmethod
    def success(cls, room_id: str) -> "OperationResult":
        return cls(ok=True, room_id=room_id)

    @classmethod
    def failure(cls, room_id: Optional[str], code: str, message: str) -> "OperationResult":
        return cls(ok=False, room_id=room_id, error=OperationError(code=code, message=message))


class PublicRoomOut(BaseModel):
    id: str
    room: Room
    current_scene: Optional[Scene]
    finished: bool


class SoloQuestionsOut(BaseModel):
    questions: List[Question]
