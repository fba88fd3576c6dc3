from enum import Enum


class ErrorKind(str, Enum):
    ROOM_NOT_FOUND = "RoomNotFound"
    NOT_A_PLAYER = "NotAPlayer"
    NOT_YOUR_TURN = "NotYourTurn"
    GAME_ALREADY_FINISHED = "GameAlreadyFinished"
    INVALID_POSITION = "InvalidPosition"
    CELL_OCCUPIED = "CellOccupied"
    INVALID_PAYLOAD = "InvalidPayload"
    RATE_LIMITED = "RateLimited"


ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.ROOM_NOT_FOUND: "Room not found",
    ErrorKind.NOT_A_PLAYER: "You are not a player in this room",
    ErrorKind.NOT_YOUR_TURN: "Not your turn",
    ErrorKind.GAME_ALREADY_FINISHED: "Game already finished",
    ErrorKind.INVALID_POSITION: "Invalid move position",
    ErrorKind.CELL_OCCUPIED: "Cell already occupied",
    ErrorKind.INVALID_PAYLOAD: "Invalid payload",
    ErrorKind.RATE_LIMITED: "Rate limit exceeded",
}


class GameRuleError(ValueError):
    """A caller-local rejection; the room state is left untouched."""

    def __init__(self, kind: ErrorKind) -> None:
        self.kind = kind
        super().__init__(ERROR_MESSAGES[kind])

    @property
    def message(self) -> str:
        return ERROR_MESSAGES[self.kind]


class RoomRegistryError(RuntimeError):
    pass


def error_reply(kind: ErrorKind) -> dict:
    return {"success": False, "error": ERROR_MESSAGES[kind], "code": kind.value}
