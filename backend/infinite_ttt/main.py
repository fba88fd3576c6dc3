from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from infinite_ttt.api.routes import router as api_router
from infinite_ttt.core.config import Settings, get_settings
from infinite_ttt.core.logging_config import configure_logging
from infinite_ttt.core.request_meta import extract_client_ip
from infinite_ttt.realtime.socket_server import build_socket_app
from infinite_ttt.services.rate_limit_service import RateLimitService, rate_limit_service
from infinite_ttt.services.room_coordinator import RoomCoordinator
from infinite_ttt.services.room_registry import RoomRegistry


class ApiRateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, settings: Settings, limiter: RateLimitService) -> None:
        super().__init__(app)
        self.settings = settings
        self.limiter = limiter

    async def dispatch(self, request, call_next):
        if not self.settings.rate_limit_enabled or request.url.path.endswith("/health"):
            return await call_next(request)

        decision = self.limiter.check(
            f"api:global:{extract_client_ip(request)}",
            limit=self.settings.rate_limit_global_limit,
            window_seconds=self.settings.rate_limit_global_window_seconds,
        )
        headers = {
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": str(decision.remaining),
            "X-RateLimit-Reset-Seconds": str(decision.reset_after_seconds),
        }
        if not decision.allowed:
            headers["Retry-After"] = str(decision.retry_after_seconds)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded"},
                headers=headers,
            )

        response = await call_next(request)
        for key, value in headers.items():
            response.headers[key] = value
        return response


def create_api_app(
    registry: RoomRegistry,
    settings: Settings,
    limiter: RateLimitService = rate_limit_service,
) -> FastAPI:
    api_app = FastAPI(title=settings.app_name, debug=settings.debug)
    api_app.state.room_registry = registry
    api_app.add_middleware(ApiRateLimitMiddleware, settings=settings, limiter=limiter)
    api_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    api_app.include_router(api_router, prefix=settings.api_prefix)
    return api_app


settings = get_settings()
configure_logging(settings.log_level)

room_registry = RoomRegistry(
    id_length=settings.room_id_length,
    max_attempts=settings.room_id_max_attempts,
)
room_coordinator = RoomCoordinator(
    room_registry,
    max_chat_message_length=settings.max_chat_message_length,
)
api_app = create_api_app(room_registry, settings)

app = build_socket_app(api_app, room_coordinator)
