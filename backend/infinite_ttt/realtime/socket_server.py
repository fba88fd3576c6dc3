import asyncio
import functools
import logging

from pydantic import BaseModel, ValidationError
import socketio

from infinite_ttt.core.config import Settings, get_settings
from infinite_ttt.core.errors import ErrorKind, error_reply
from infinite_ttt.core.request_meta import extract_client_ip_from_environ
from infinite_ttt.schemas.room import (
    CreateRoomRequest,
    JoinRoomRequest,
    MakeMoveRequest,
    RoomActionRequest,
    SendMessageRequest,
)
from infinite_ttt.services.rate_limit_service import RateLimitService, rate_limit_service
from infinite_ttt.services.room_coordinator import Outcome, RoomCoordinator

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")


def room_channel(room_id: str) -> str:
    return f"room:{room_id}"


def _event_payload(args: tuple, *names: str) -> dict:
    """Accept ``emit("joinRoom", roomId, name)`` as well as ``emit("joinRoom", {...})``."""
    if len(args) == 1 and isinstance(args[0], dict):
        return dict(args[0])
    return dict(zip(names, args))


def _parse(model: type[BaseModel], args: tuple, *names: str) -> BaseModel | None:
    try:
        return model.model_validate(_event_payload(args, *names))
    except ValidationError:
        return None


class SessionGateway:
    """Binds socket events to coordinator operations.

    Owns the sid -> room mapping used for disconnect cleanup. Handlers
    apply a change and queue its outbound traffic without suspending in
    between, then return the caller's reply. A single worker drains the
    outbox in FIFO order, so the reply reaches the caller before the
    broadcasts and every recipient sees events in the order the room
    changed. Socket room enter/leave calls ride the same queue so they
    stay in step with the events around them.
    """

    def __init__(
        self,
        server: socketio.AsyncServer,
        coordinator: RoomCoordinator,
        *,
        rate_limiter: RateLimitService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.server = server
        self.coordinator = coordinator
        self.rate_limiter = rate_limiter
        self.settings = settings or get_settings()
        self._sid_rooms: dict[str, str] = {}
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._outbox_task: asyncio.Task | None = None

    def register(self) -> None:
        self.server.on("connect", self.connect)
        self.server.on("disconnect", self.disconnect)
        self.server.on("createRoom", self.create_room)
        self.server.on("joinRoom", self.join_room)
        self.server.on("makeMove", self.make_move)
        self.server.on("resetGame", self.reset_game)
        self.server.on("switchRole", self.switch_role)
        self.server.on("sendMessage", self.send_message)
        self.server.on("leaveRoom", self.leave_room)

    def room_of(self, sid: str) -> str | None:
        return self._sid_rooms.get(sid)

    async def drain(self) -> None:
        """Wait until everything queued so far has been sent."""
        await self._outbox.join()

    async def close(self) -> None:
        if self._outbox_task is not None:
            self._outbox_task.cancel()
            self._outbox_task = None

    def _enqueue(self, action) -> None:
        self._outbox.put_nowait(action)
        if self._outbox_task is None or self._outbox_task.done():
            self._outbox_task = asyncio.get_running_loop().create_task(self._run_outbox())

    async def _run_outbox(self) -> None:
        while True:
            action = await self._outbox.get()
            try:
                await action()
            except Exception:
                logger.exception("Outbound delivery failed")
            finally:
                self._outbox.task_done()

    def _emit(self, event: str, payload: dict, target: str) -> None:
        self._enqueue(functools.partial(self.server.emit, event, payload, room=target))

    def _is_allowed(self, scope: str, identifier: str, *, limit: int, window_seconds: int) -> bool:
        if self.rate_limiter is None or not self.settings.rate_limit_enabled:
            return True
        decision = self.rate_limiter.check(
            f"ws:{scope}:{identifier or 'unknown'}",
            limit=limit,
            window_seconds=window_seconds,
        )
        if not decision.allowed:
            logger.warning("Rate limit hit for %s (%s)", identifier, scope)
        return decision.allowed

    def _rate_limited(self, sid: str, event_name: str) -> bool:
        allowed = self._is_allowed(
            f"event:{event_name}",
            sid,
            limit=self.settings.websocket_event_limit,
            window_seconds=self.settings.websocket_event_window_seconds,
        )
        if not allowed:
            self._emit(
                "rateLimited",
                {"event": event_name, "message": "Too many requests. Slow down."},
                sid,
            )
        return not allowed

    def _deliver(self, outcome: Outcome) -> None:
        for outbound in outcome.events:
            target = outbound.to if outbound.targeted else room_channel(outbound.to)
            self._emit(outbound.event, outbound.payload, target)

    def _attach(self, sid: str, room_id: str) -> None:
        self._sid_rooms[sid] = room_id
        self._enqueue(functools.partial(self.server.enter_room, sid, room_channel(room_id)))

    def _detach(self, sid: str, room_id: str) -> None:
        self._enqueue(functools.partial(self.server.leave_room, sid, room_channel(room_id)))

    def _leave_current_room(self, sid: str, *, detach: bool = True) -> None:
        room_id = self._sid_rooms.pop(sid, None)
        if not room_id:
            return
        self._deliver(self.coordinator.leave_room(sid, room_id))
        if detach:
            self._detach(sid, room_id)

    async def connect(self, sid: str, environ: dict, auth: dict | None = None) -> bool:
        client_ip = extract_client_ip_from_environ(environ or {})
        if not self._is_allowed(
            "connect",
            client_ip,
            limit=self.settings.websocket_connect_limit,
            window_seconds=self.settings.websocket_connect_window_seconds,
        ):
            return False
        logger.info("Connection %s opened from %s", sid, client_ip)
        return True

    async def disconnect(self, sid: str, reason: object = None) -> None:
        logger.info("Connection %s closed", sid)
        # The transport has already dropped the sid from its rooms.
        self._leave_current_room(sid, detach=False)

    async def create_room(self, sid: str, *args) -> dict:
        if self._rate_limited(sid, "createRoom"):
            return error_reply(ErrorKind.RATE_LIMITED)
        request = _parse(CreateRoomRequest, args, "display_name")
        if request is None:
            return error_reply(ErrorKind.INVALID_PAYLOAD)

        self._leave_current_room(sid)
        outcome = self.coordinator.create_room(sid, request.display_name)
        self._attach(sid, outcome.reply["roomId"])
        self._deliver(outcome)
        return outcome.reply

    async def join_room(self, sid: str, *args) -> dict:
        if self._rate_limited(sid, "joinRoom"):
            return error_reply(ErrorKind.RATE_LIMITED)
        request = _parse(JoinRoomRequest, args, "room_id", "display_name")
        if request is None:
            return error_reply(ErrorKind.INVALID_PAYLOAD)

        if self.coordinator.registry.find(request.room_id) is None:
            return error_reply(ErrorKind.ROOM_NOT_FOUND)
        if self._sid_rooms.get(sid) != request.room_id:
            self._leave_current_room(sid)
        outcome = self.coordinator.join_room(sid, request.room_id, request.display_name)
        if outcome.reply.get("success"):
            self._attach(sid, outcome.reply["roomId"])
        self._deliver(outcome)
        return outcome.reply

    async def make_move(self, sid: str, *args) -> dict:
        if self._rate_limited(sid, "makeMove"):
            return error_reply(ErrorKind.RATE_LIMITED)
        request = _parse(MakeMoveRequest, args, "room_id", "position")
        if request is None:
            return error_reply(ErrorKind.INVALID_PAYLOAD)

        outcome = self.coordinator.make_move(sid, request.room_id, request.position)
        self._deliver(outcome)
        return outcome.reply

    async def reset_game(self, sid: str, *args) -> dict | None:
        if self._rate_limited(sid, "resetGame"):
            return None
        request = _parse(RoomActionRequest, args, "room_id")
        if request is None:
            return None

        outcome = self.coordinator.reset_game(sid, request.room_id)
        self._deliver(outcome)
        return outcome.reply

    async def switch_role(self, sid: str, *args) -> dict | None:
        if self._rate_limited(sid, "switchRole"):
            return None
        request = _parse(RoomActionRequest, args, "room_id")
        if request is None:
            return None

        outcome = self.coordinator.switch_role(sid, request.room_id)
        self._deliver(outcome)
        return outcome.reply

    async def send_message(self, sid: str, *args) -> dict | None:
        if self._rate_limited(sid, "sendMessage"):
            return None
        request = _parse(SendMessageRequest, args, "room_id", "text")
        if request is None:
            return None

        outcome = self.coordinator.send_message(sid, request.room_id, request.text)
        self._deliver(outcome)
        return outcome.reply

    async def leave_room(self, sid: str, *args) -> dict | None:
        if self._rate_limited(sid, "leaveRoom"):
            return None
        request = _parse(RoomActionRequest, args, "room_id")
        if request is None:
            return None

        outcome = self.coordinator.leave_room(sid, request.room_id)
        self._deliver(outcome)
        if self._sid_rooms.get(sid) == request.room_id:
            self._sid_rooms.pop(sid, None)
            self._detach(sid, request.room_id)
        return outcome.reply


def build_socket_app(api_app, coordinator: RoomCoordinator) -> socketio.ASGIApp:
    gateway = SessionGateway(sio, coordinator, rate_limiter=rate_limit_service)
    gateway.register()
    return socketio.ASGIApp(sio, other_asgi_app=api_app, socketio_path="socket.io")
