from fastapi import APIRouter, Depends

from infinite_ttt.api.deps import get_room_registry
from infinite_ttt.services.room_registry import RoomRegistry

router = APIRouter()


@router.get("/health")
def health(registry: RoomRegistry = Depends(get_room_registry)) -> dict:
    return {"status": "ok", "rooms": len(registry)}
