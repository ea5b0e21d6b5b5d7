"""DevBoard Server - FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from devboard import __version__
from devboard.api.access_requests import router as access_requests_router
from devboard.api.devices import router as devices_router
from devboard.api.logs import router as logs_router
from devboard.config import Settings, settings as default_settings
from devboard.services.probe import DeviceProbe, build_probe
from devboard.services.refresher import LivenessRefresher
from devboard.services.state_machine import TransitionPolicy
from devboard.services.store import DeviceStore, seed_demo_devices
from devboard.ws.broadcast import Broadcaster, websocket_events

API_PREFIX = "/api"

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the liveness refresher on startup, stop it on shutdown."""
    app.state.refresher.start()
    logger.info("%s started", app.title)
    yield
    await app.state.refresher.stop()
    await app.state.broadcaster.drain()


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "error": "validation",
                "message": "Invalid request",
                "errors": jsonable_errors(exc),
            }
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]


def create_app(settings: Settings | None = None, probe: DeviceProbe | None = None) -> FastAPI:
    """Build an application with its own store, probe, broadcaster and refresher."""
    settings = settings or default_settings

    store = DeviceStore(
        log_capacity=settings.log_capacity,
        policy=TransitionPolicy(
            allow_approval_override=settings.allow_approval_override,
            require_same_user_for_escalation=settings.require_same_user_for_escalation,
        ),
    )
    if settings.seed_devices:
        seed_demo_devices(store)

    probe = probe or build_probe(settings)
    broadcaster = Broadcaster()

    app = FastAPI(
        title=settings.server_name,
        description="Device reservation dashboard with live updates",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.probe = probe
    app.state.broadcaster = broadcaster
    app.state.refresher = LivenessRefresher(
        store, probe, broadcaster, interval=settings.refresh_interval
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # --- Register API routers ---
    app.include_router(devices_router, prefix=API_PREFIX)
    app.include_router(access_requests_router, prefix=API_PREFIX)
    app.include_router(logs_router, prefix=API_PREFIX)

    # --- WebSocket endpoint ---
    @app.websocket("/ws")
    async def ws_endpoint(ws: WebSocket):
        await websocket_events(ws, broadcaster)

    @app.get("/")
    def root():
        """Server info."""
        return {
            "name": settings.server_name,
            "version": __version__,
            "status": "running",
        }

    return app


app = create_app()
