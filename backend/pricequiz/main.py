from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional

from .db import settings
from .errors import RoomNotFoundError, SourceUnavailableError, StoreFault
from .questions import HttpQuestionSource
from .schemas import (
    AnswerIn,
    CreateRoomIn,
    JoinRoomIn,
    OperationResult,
    PublicRoomOut,
    ReadyIn,
    SoloQuestionsOut,
)
from .session import SessionService
from .store import RoomStore
from .utils import configure_logging

configure_logging(settings.LOG_LEVEL)

app = FastAPI(title="Price Quiz API")

origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
origin_regex = settings.CORS_ORIGIN_REGEX or None

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_origin_regex=origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

service = SessionService(RoomStore(), HttpQuestionSource())

ERROR_STATUS = {
    "RoomNotFound": 404,
    "WrongPhase": 409,
    "AlreadyJoined": 409,
    "NotJoined": 409,
    "NotCurrentQuestion": 409,
    "Contention": 409,
    "QuestionOutOfRange": 422,
    "InvalidAnswer": 422,
    "InvalidRoomSettings": 422,
    "ContentUnavailable": 503,
    "StoreFault": 503,
}


def require_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(
            status_code=401,
            detail={"code": "NotAuthenticated", "message": "User authentication failed"},
        )
    return x_user_id


def _unwrap(result: OperationResult) -> dict:
    if not result.ok:
        assert result.error is not None
        raise HTTPException(
            status_code=ERROR_STATUS.get(result.error.code, 400),
            detail=result.error.model_dump(),
        )
    return {"ok": True, "room_id": result.room_id}


@app.post("/api/rooms")
async def create_room(payload: CreateRoomIn, user_id: str = Depends(require_user)):
    result = await service.create_room(
        user_id,
        payload.display_name,
        payload.time_limit_seconds or settings.DEFAULT_TIME_LIMIT_SECONDS,
        payload.question_count or settings.DEFAULT_QUESTION_COUNT,
    )
    return _unwrap(result)


@app.get("/api/rooms/{room_id}", response_model=PublicRoomOut)
async def get_room(room_id: str):
    try:
        return await service.describe_room(room_id)
    except RoomNotFoundError as exc:
        raise HTTPException(404, {"code": exc.code, "message": str(exc)}) from exc
    except StoreFault as exc:
        raise HTTPException(503, {"code": exc.code, "message": "The room store is unavailable"}) from exc


@app.post("/api/rooms/{room_id}/join")
async def join_room(room_id: str, payload: JoinRoomIn, user_id: str = Depends(require_user)):
    return _unwrap(await service.join_room(room_id, user_id, payload.display_name))


@app.post("/api/rooms/{room_id}/leave")
async def leave_room(room_id: str, user_id: str = Depends(require_user)):
    return _unwrap(await service.leave_room(room_id, user_id))


@app.post("/api/rooms/{room_id}/ready")
async def set_ready(room_id: str, payload: ReadyIn, user_id: str = Depends(require_user)):
    return _unwrap(await service.set_ready(room_id, user_id, payload.ready))


@app.post("/api/rooms/{room_id}/answers")
async def submit_answer(room_id: str, payload: AnswerIn, user_id: str = Depends(require_user)):
    result = await service.submit_answer(room_id, user_id, payload.question_index, payload.price)
    return _unwrap(result)


@app.get("/api/solo-questions", response_model=SoloQuestionsOut)
async def solo_questions(count: int = Query(default=5, gt=0, le=50)):
    try:
        questions = await service.question_source.fetch_questions(count)
    except SourceUnavailableError as exc:
        raise HTTPException(503, {"code": exc.code, "message": str(exc)}) from exc
    return SoloQuestionsOut(questions=questions)
