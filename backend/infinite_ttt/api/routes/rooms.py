from fastapi import APIRouter, Depends, HTTPException, status

from infinite_ttt.api.deps import get_room_registry
from infinite_ttt.core.errors import ERROR_MESSAGES, ErrorKind
from infinite_ttt.schemas.room import RoomRead, RoomSummaryRead
from infinite_ttt.services.game_engine import MARKS, compute_status_text, next_removal_position, valid_moves
from infinite_ttt.services.room_coordinator import serialize_room
from infinite_ttt.services.room_registry import RoomRegistry

router = APIRouter()


@router.get("/", response_model=list[RoomSummaryRead])
def list_rooms(registry: RoomRegistry = Depends(get_room_registry)) -> list[RoomSummaryRead]:
    return [
        RoomSummaryRead(
            id=room.id,
            players={mark: seat.display_name if seat else None for mark, seat in room.players.items()},
            spectatorCount=len(room.spectators),
            winner=room.game_state.winner,
        )
        for room in registry.list_rooms()
    ]


@router.get("/{room_id}", response_model=RoomRead)
def get_room(room_id: str, registry: RoomRegistry = Depends(get_room_registry)) -> RoomRead:
    room = registry.find(room_id)
    if not room:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ERROR_MESSAGES[ErrorKind.ROOM_NOT_FOUND],
        )
    state = room.game_state
    return RoomRead(
        **serialize_room(room),
        status=compute_status_text(state),
        validMoves=valid_moves(state),
        nextRemoval={mark: next_removal_position(state, mark) for mark in MARKS},
    )
