"""Per-room state machine.

Every public method runs synchronously to completion: it reads the room,
mutates it, and returns an :class:`Outcome` holding the caller's reply and
the events to deliver. Payloads are serialized inside the call, so nothing
handed to the transport can observe a half-applied transition.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging

from infinite_ttt.core.errors import ErrorKind, GameRuleError, error_reply
from infinite_ttt.services.game_engine import (
    MARK_O,
    MARK_X,
    Mark,
    apply_move,
    compute_status_text,
    create_new_game,
    serialize_game_state,
)
from infinite_ttt.services.room_registry import (
    ROLE_SPECTATOR,
    ROLE_SYSTEM,
    SYSTEM_SENDER,
    ChatEntry,
    Room,
    RoomRegistry,
    Seat,
)

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Welcome to the game!"
RESET_MESSAGE = "Game reset"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def serialize_seat(seat: Seat | None) -> dict | None:
    if seat is None:
        return None
    return {"id": seat.connection_id, "name": seat.display_name}


def serialize_chat_entry(entry: ChatEntry) -> dict:
    return {
        "id": entry.id,
        "sender": entry.sender,
        "role": entry.role,
        "message": entry.message,
        "timestamp": entry.timestamp.isoformat(),
    }


def serialize_room(room: Room) -> dict:
    return {
        "id": room.id,
        "gameState": serialize_game_state(room.game_state),
        "chat": [serialize_chat_entry(entry) for entry in room.chat],
        "players": {mark: serialize_seat(room.players[mark]) for mark in (MARK_X, MARK_O)},
        "spectators": [serialize_seat(spectator) for spectator in room.spectators],
    }


@dataclass(frozen=True)
class OutboundEvent:
    event: str
    payload: object
    to: str
    # True when ``to`` is a single connection id rather than a room id.
    targeted: bool = False


@dataclass
class Outcome:
    reply: dict | None = None
    events: list[OutboundEvent] = field(default_factory=list)

    def broadcast(self, room: Room, event: str, payload: object) -> None:
        self.events.append(OutboundEvent(event=event, payload=payload, to=room.id))

    def send_to(self, connection_id: str, event: str, payload: object) -> None:
        self.events.append(OutboundEvent(event=event, payload=payload, to=connection_id, targeted=True))

    def event_names(self) -> list[str]:
        return [outbound.event for outbound in self.events]


class RoomCoordinator:
    def __init__(
        self,
        registry: RoomRegistry,
        *,
        clock: Callable[[], datetime] = _utc_now,
        max_chat_message_length: int = 240,
    ) -> None:
        self.registry = registry
        self._clock = clock
        self._max_chat_message_length = max_chat_message_length

    def _system_message(self, room: Room, outcome: Outcome, message: str) -> ChatEntry:
        entry = room.append_chat(SYSTEM_SENDER, ROLE_SYSTEM, message, self._clock())
        outcome.broadcast(room, "chatMessage", serialize_chat_entry(entry))
        return entry

    def _membership_reply(self, room: Room, connection_id: str) -> dict:
        mark = room.mark_of(connection_id)
        reply = {
            "success": True,
            "roomId": room.id,
            "playerRole": mark,
            "room": serialize_room(room),
        }
        if mark is None:
            reply["isSpectator"] = True
        return reply

    def create_room(self, connection_id: str, display_name: str) -> Outcome:
        room = self.registry.create_room()
        room.players[MARK_X] = Seat(connection_id=connection_id, display_name=display_name)
        room.append_chat(SYSTEM_SENDER, ROLE_SYSTEM, WELCOME_MESSAGE, self._clock())
        logger.info("%s created room %s as Player X", display_name, room.id)
        return Outcome(reply=self._membership_reply(room, connection_id))

    def join_room(self, connection_id: str, room_id: str, display_name: str) -> Outcome:
        room = self.registry.find(room_id)
        if not room:
            return Outcome(reply=error_reply(ErrorKind.ROOM_NOT_FOUND))
        if room.is_member(connection_id):
            return Outcome(reply=self._membership_reply(room, connection_id))

        outcome = Outcome()
        seat = Seat(connection_id=connection_id, display_name=display_name)
        mark = room.first_empty_mark()
        if mark is None:
            room.spectators.append(seat)
            self._system_message(room, outcome, f"{display_name} joined the room as Spectator")
            outcome.broadcast(room, "spectatorJoined", {"displayName": display_name})
            logger.info("%s joined room %s as spectator #%d", display_name, room.id, len(room.spectators))
        else:
            room.players[mark] = seat
            self._system_message(room, outcome, f"{display_name} joined the room as Player {mark}")
            outcome.broadcast(room, "gameStart" if room.seats_full else "roomUpdate", serialize_room(room))
            logger.info("%s joined room %s as Player %s", display_name, room.id, mark)

        outcome.reply = self._membership_reply(room, connection_id)
        return outcome

    def make_move(self, connection_id: str, room_id: str, position: int) -> Outcome:
        room = self.registry.find(room_id)
        if not room:
            return Outcome(reply=error_reply(ErrorKind.ROOM_NOT_FOUND))
        mark = room.mark_of(connection_id)
        if mark is None:
            return Outcome(reply=error_reply(ErrorKind.NOT_A_PLAYER))

        try:
            new_state = apply_move(room.game_state, position, mark)
        except GameRuleError as exc:
            logger.debug("Rejected move %r by %s in room %s: %s", position, mark, room.id, exc.kind.value)
            return Outcome(reply=error_reply(exc.kind))

        room.game_state = new_state
        state_payload = serialize_game_state(new_state)
        outcome = Outcome(reply={"success": True, "gameState": state_payload})
        outcome.broadcast(room, "gameStateUpdate", state_payload)
        if new_state.is_finished:
            status_text = compute_status_text(new_state)
            outcome.broadcast(room, "gameEnd", state_payload)
            self._system_message(room, outcome, status_text)
            logger.info("Room %s finished: %s", room.id, status_text)
        return outcome

    def reset_game(self, connection_id: str, room_id: str) -> Outcome:
        room = self.registry.find(room_id)
        if not room:
            return Outcome(reply=error_reply(ErrorKind.ROOM_NOT_FOUND))
        if room.mark_of(connection_id) is None:
            return Outcome(reply=error_reply(ErrorKind.NOT_A_PLAYER))

        room.game_state = create_new_game()
        outcome = Outcome(reply={"success": True})
        self._system_message(room, outcome, RESET_MESSAGE)
        outcome.broadcast(room, "gameStateUpdate", serialize_game_state(room.game_state))
        return outcome

    def switch_role(self, connection_id: str, room_id: str) -> Outcome:
        room = self.registry.find(room_id)
        if not room:
            return Outcome(reply=error_reply(ErrorKind.ROOM_NOT_FOUND))
        if room.mark_of(connection_id) is None or not room.seats_full:
            return Outcome(reply=error_reply(ErrorKind.NOT_A_PLAYER))

        player_x, player_o = room.players[MARK_X], room.players[MARK_O]
        room.players[MARK_X], room.players[MARK_O] = player_o, player_x
        room.game_state = create_new_game()

        outcome = Outcome(reply={"success": True})
        self._system_message(
            room,
            outcome,
            f"{player_x.display_name} and {player_o.display_name} switched roles!",
        )
        outcome.broadcast(room, "roleSwitch", {"room": serialize_room(room)})
        return outcome

    def send_message(self, connection_id: str, room_id: str, text: str) -> Outcome:
        room = self.registry.find(room_id)
        if not room:
            return Outcome()

        mark = room.mark_of(connection_id)
        if mark is not None:
            sender, role = room.players[mark].display_name, mark
        else:
            spectator = room.find_spectator(connection_id)
            if spectator is None:
                return Outcome()
            sender, role = spectator.display_name, ROLE_SPECTATOR

        message = text.strip()[: self._max_chat_message_length]
        if not message:
            return Outcome()

        entry = room.append_chat(sender, role, message, self._clock())
        payload = serialize_chat_entry(entry)
        outcome = Outcome(reply={"success": True, "message": payload})
        outcome.broadcast(room, "chatMessage", payload)
        return outcome

    def leave_room(self, connection_id: str, room_id: str) -> Outcome:
        room = self.registry.find(room_id)
        if not room:
            return Outcome()

        outcome = Outcome(reply={"success": True})
        mark = room.mark_of(connection_id)
        if mark is not None:
            seat = room.players[mark]
            room.players[mark] = None
            self._system_message(room, outcome, f"{seat.display_name} left the room")
            outcome.broadcast(room, "playerLeft", {"displayName": seat.display_name, "mark": mark})
            logger.info("%s (Player %s) left room %s", seat.display_name, mark, room.id)
            self._promote_spectator(room, outcome)
        else:
            spectator = room.find_spectator(connection_id)
            if spectator is None:
                return Outcome()
            room.spectators.remove(spectator)
            self._system_message(room, outcome, f"{spectator.display_name} left the room")
            logger.info("%s (spectator) left room %s", spectator.display_name, room.id)

        if room.is_vacant:
            self.registry.delete(room.id)
        return outcome

    def _promote_spectator(self, room: Room, outcome: Outcome) -> None:
        mark: Mark | None = room.first_empty_mark()
        if mark is None or not room.spectators:
            return
        spectator = room.spectators.pop(0)
        room.players[mark] = spectator
        snapshot = serialize_room(room)
        outcome.send_to(spectator.connection_id, "becomePlayer", {"room": snapshot, "mark": mark})
        outcome.broadcast(room, "roomUpdate", snapshot)
        self._system_message(room, outcome, f"{spectator.display_name} became Player {mark}")
        logger.info("Spectator %s promoted to Player %s in room %s", spectator.display_name, mark, room.id)
