from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from infinite_ttt.core.config import get_settings

MAX_ROOM_ID_LENGTH = 32


def _strip(value: object) -> object:
    return value.strip() if isinstance(value, str) else value


class InboundRequest(BaseModel):
    # Clients may send camelCase keys (roomId, displayName) or snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateRoomRequest(InboundRequest):
    display_name: str = Field(min_length=1)

    @field_validator("display_name", mode="before")
    @classmethod
    def _clean_display_name(cls, value: object) -> object:
        return _strip(value)

    @field_validator("display_name")
    @classmethod
    def _limit_display_name(cls, value: str) -> str:
        limit = get_settings().max_display_name_length
        if len(value) > limit:
            raise ValueError(f"display name longer than {limit} characters")
        return value


class RoomActionRequest(InboundRequest):
    room_id: str = Field(min_length=1, max_length=MAX_ROOM_ID_LENGTH)

    @field_validator("room_id", mode="before")
    @classmethod
    def _clean_room_id(cls, value: object) -> object:
        value = _strip(value)
        return value.upper() if isinstance(value, str) else value


class JoinRoomRequest(RoomActionRequest, CreateRoomRequest):
    pass


class MakeMoveRequest(RoomActionRequest):
    # Strict so a JSON boolean is not coerced into cell 0 or 1.
    position: int = Field(strict=True)


class SendMessageRequest(RoomActionRequest):
    text: str


class SeatRead(BaseModel):
    id: str
    name: str


class ChatEntryRead(BaseModel):
    id: str
    sender: str
    role: str
    message: str
    timestamp: datetime


class GameStateRead(BaseModel):
    board: list[str | None]
    currentPlayer: str
    moveHistoryX: list[int]
    moveHistoryO: list[int]
    winner: str | None = None
    winningLine: list[int] | None = None


class RoomRead(BaseModel):
    id: str
    gameState: GameStateRead
    chat: list[ChatEntryRead]
    players: dict[str, SeatRead | None]
    spectators: list[SeatRead]
    status: str
    validMoves: list[int]
    nextRemoval: dict[str, int | None]


class RoomSummaryRead(BaseModel):
    id: str
    players: dict[str, str | None]
    spectatorCount: int
    winner: str | None = None
