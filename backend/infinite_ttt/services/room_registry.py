from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
import logging
from uuid import uuid4

from infinite_ttt.core.errors import RoomRegistryError
from infinite_ttt.services.game_engine import MARK_O, MARK_X, GameState, Mark, create_new_game

logger = logging.getLogger(__name__)

ROLE_SPECTATOR = "Spectator"
ROLE_SYSTEM = "System"
SYSTEM_SENDER = "System"


@dataclass
class Seat:
    connection_id: str
    display_name: str


@dataclass
class ChatEntry:
    id: str
    sender: str
    role: str
    message: str
    timestamp: datetime


@dataclass
class Room:
    id: str
    game_state: GameState = field(default_factory=create_new_game)
    chat: list[ChatEntry] = field(default_factory=list)
    players: dict[Mark, Seat | None] = field(default_factory=lambda: {MARK_X: None, MARK_O: None})
    spectators: list[Seat] = field(default_factory=list)
    chat_sequence: int = 0

    def mark_of(self, connection_id: str) -> Mark | None:
        for mark in (MARK_X, MARK_O):
            seat = self.players[mark]
            if seat and seat.connection_id == connection_id:
                return mark
        return None

    def find_spectator(self, connection_id: str) -> Seat | None:
        return next(
            (spectator for spectator in self.spectators if spectator.connection_id == connection_id),
            None,
        )

    def is_member(self, connection_id: str) -> bool:
        return self.mark_of(connection_id) is not None or self.find_spectator(connection_id) is not None

    def first_empty_mark(self) -> Mark | None:
        if self.players[MARK_X] is None:
            return MARK_X
        if self.players[MARK_O] is None:
            return MARK_O
        return None

    @property
    def seats_full(self) -> bool:
        return self.players[MARK_X] is not None and self.players[MARK_O] is not None

    @property
    def is_vacant(self) -> bool:
        return self.players[MARK_X] is None and self.players[MARK_O] is None and not self.spectators

    def append_chat(self, sender: str, role: str, message: str, timestamp: datetime) -> ChatEntry:
        self.chat_sequence += 1
        entry = ChatEntry(
            id=f"{self.id}-{self.chat_sequence}",
            sender=sender,
            role=role,
            message=message,
            timestamp=timestamp,
        )
        self.chat.append(entry)
        return entry


def generate_room_id(length: int) -> str:
    return uuid4().hex[:length].upper()


class RoomRegistry:
    """Live rooms keyed by id.

    Only the coordinator mutates rooms, and it does so from the event loop
    thread, so no lock is held here.
    """

    def __init__(
        self,
        id_length: int = 7,
        max_attempts: int = 32,
        id_factory: Callable[[int], str] = generate_room_id,
    ) -> None:
        self._rooms: dict[str, Room] = {}
        self._id_length = id_length
        self._max_attempts = max(1, max_attempts)
        self._id_factory = id_factory

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def _unique_room_id(self) -> str:
        for _ in range(self._max_attempts):
            room_id = self._id_factory(self._id_length)
            if room_id not in self._rooms:
                return room_id
            logger.debug("Room id collision on %s, retrying", room_id)
        raise RoomRegistryError(f"Unable to allocate a unique room id after {self._max_attempts} attempts")

    def create_room(self) -> Room:
        room = Room(id=self._unique_room_id())
        self._rooms[room.id] = room
        logger.info("Room %s created (%d live)", room.id, len(self._rooms))
        return room

    def find(self, room_id: str | None) -> Room | None:
        if not room_id:
            return None
        return self._rooms.get(room_id.strip().upper())

    def delete(self, room_id: str) -> None:
        if self._rooms.pop(room_id, None) is not None:
            logger.info("Room %s deleted (%d live)", room_id, len(self._rooms))

    def list_rooms(self) -> list[Room]:
        return list(self._rooms.values())
