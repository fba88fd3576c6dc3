import unittest

from fastapi.testclient import TestClient

from infinite_ttt.core.config import Settings
from infinite_ttt.main import create_api_app
from infinite_ttt.services.game_engine import MARK_X
from infinite_ttt.services.rate_limit_service import RateLimitService
from infinite_ttt.services.room_coordinator import RoomCoordinator
from infinite_ttt.services.room_registry import RoomRegistry


class RoomApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = RoomRegistry(id_factory=lambda _length: "HTTP01")
        self.coordinator = RoomCoordinator(self.registry)
        settings = Settings(rate_limit_enabled=False)
        self.client = TestClient(create_api_app(self.registry, settings, RateLimitService()))

    def test_health_reports_live_rooms(self) -> None:
        self.assertEqual(self.client.get("/api/v1/health").json(), {"status": "ok", "rooms": 0})
        self.coordinator.create_room("sid-x", "Xena")
        self.assertEqual(self.client.get("/api/v1/health").json()["rooms"], 1)

    def test_room_detail(self) -> None:
        self.coordinator.create_room("sid-x", "Xena")
        self.coordinator.join_room("sid-o", "HTTP01", "Otto")
        for sid, position in [("sid-x", 0), ("sid-o", 3), ("sid-x", 1), ("sid-o", 4), ("sid-x", 8)]:
            self.coordinator.make_move(sid, "HTTP01", position)

        response = self.client.get("/api/v1/rooms/http01")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["id"], "HTTP01")
        self.assertEqual(body["players"]["X"], {"id": "sid-x", "name": "Xena"})
        self.assertEqual(body["status"], "Player O's turn")
        self.assertEqual(body["nextRemoval"], {"X": 0, "O": None})
        self.assertEqual(body["validMoves"], [2, 5, 6, 7])
        self.assertEqual(body["gameState"]["moveHistoryX"], [0, 1, 8])

    def test_room_list(self) -> None:
        self.coordinator.create_room("sid-x", "Xena")
        body = self.client.get("/api/v1/rooms/").json()
        self.assertEqual(body, [{"id": "HTTP01", "players": {MARK_X: "Xena", "O": None}, "spectatorCount": 0, "winner": None}])

    def test_missing_room_is_404(self) -> None:
        response = self.client.get("/api/v1/rooms/NOPE")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"], "Room not found")

    def test_rate_limit_returns_429(self) -> None:
        client = TestClient(
            create_api_app(
                self.registry,
                Settings(rate_limit_enabled=True, rate_limit_global_limit=1),
                RateLimitService(),
            )
        )
        self.assertEqual(client.get("/api/v1/rooms/").status_code, 200)
        limited = client.get("/api/v1/rooms/")
        self.assertEqual(limited.status_code, 429)
        self.assertIn("Retry-After", limited.headers)


if __name__ == "__main__":
    unittest.main()
