from typing import Annotated, Dict, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

QuestionIndex = int

# AnswerLedger[user_id][question_index] = answered price
AnswerLedger = Dict[str, Dict[QuestionIndex, int]]


class RoomMember(BaseModel):
    user_id: str
    display_name: str


class LobbyScene(BaseModel):
    kind: Literal["LOBBY"] = "LOBBY"


class QuizSubmitScene(BaseModel):
    kind: Literal["QUIZ_SUBMIT"] = "QUIZ_SUBMIT"
    question_index: QuestionIndex


class QuizAnswerScene(BaseModel):
    kind: Literal["QUIZ_ANSWER"] = "QUIZ_ANSWER"
    question_index: QuestionIndex


class GameResultScene(BaseModel):
    kind: Literal["GAME_RESULT"] = "GAME_RESULT"


Scene = Annotated[
    Union[LobbyScene, QuizSubmitScene, QuizAnswerScene, GameResultScene],
    Field(discriminator="kind"),
]


class ScheduleEntry(BaseModel):
    scene: Scene
    starts_at: float  # epoch seconds


Schedule = List[ScheduleEntry]


class Question(BaseModel):
    title: str
    price: int
    image_url: str
    link_url: str


# Phases: INVITING_MEMBERS -> GAME_STARTED (once, irreversible)
class InvitingMembersRoom(BaseModel):
    status: Literal["INVITING_MEMBERS"] = "INVITING_MEMBERS"
    members: List[RoomMember] = Field(default_factory=list)
    ready_state: Dict[str, Literal[True]] = Field(default_factory=dict)
    time_limit_seconds: int = Field(gt=0)
    question_count: int = Field(gt=0)
    schedule: Schedule = Field(default_factory=list)


class GameStartedRoom(BaseModel):
    status: Literal["GAME_STARTED"] = "GAME_STARTED"
    members: List[RoomMember]
    time_limit_seconds: int = Field(gt=0)
    question_count: int = Field(gt=0)
    questions: List[Question]
    answers: AnswerLedger = Field(default_factory=dict)
    schedule: Schedule


Room = Annotated[Union[InvitingMembersRoom, GameStartedRoom], Field(discriminator="status")]

room_adapter = TypeAdapter(Room)
