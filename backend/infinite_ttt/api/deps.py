from fastapi import Request

from infinite_ttt.services.room_registry import RoomRegistry


def get_room_registry(request: Request) -> RoomRegistry:
    return request.app.state.room_registry
