"""Error taxonomy shared by the room state machine, the store and the session layer."""

from __future__ import annotations


class RoomError(Exception):
    """Base class for expected, caller-facing room outcomes."""

    code = "RoomError"


class RoomNotFoundError(RoomError):
    """Raised when no room document exists for the given id."""

    code = "RoomNotFound"


class WrongPhaseError(RoomError):
    """Raised when an operation is not valid for the room's lifecycle phase."""

    code = "WrongPhase"


class InvalidRoomSettingsError(RoomError):
    """Raised when a room is created with a non-positive time limit or question count."""

    code = "InvalidRoomSettings"


class AlreadyJoinedError(RoomError):
    code = "AlreadyJoined"


class NotJoinedError(RoomError):
    code = "NotJoined"


class QuestionOutOfRangeError(RoomError):
    code = "QuestionOutOfRange"


class NotCurrentQuestionError(RoomError):
    """Raised when an answer arrives outside the question's submit window."""

    code = "NotCurrentQuestion"


class InvalidAnswerError(RoomError):
    code = "InvalidAnswer"


class ContentUnavailableError(RoomError):
    """Raised when the question source cannot stock a starting game."""

    code = "ContentUnavailable"


class ContentionError(RoomError):
    """Raised when a transaction keeps losing commit races."""

    code = "Contention"


class StoreFault(Exception):
    """Unexpected store-level failure: connectivity loss or a corrupt document."""

    code = "StoreFault"


class SourceUnavailableError(Exception):
    """Raised by a question source on network, status or parse failure."""

    code = "SourceUnavailable"
