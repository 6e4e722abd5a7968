"""FastAPI application exposing the room relay over WebSocket."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.responses import PlainTextResponse

from core.config import Settings
from core.connection import WebSocketConnection
from core.room_manager import RoomManager
from core.room_store import RoomStore
from core.session import ChatSession
from core.sweeper import LivenessSweeper

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

HEALTH_BODY = "WebSocket server is running\n"


def create_app(settings: Settings = None) -> FastAPI:
    """
    Build the relay application.

    The room store, manager and sweeper live on `app.state` and are torn
    down with the app's lifespan. Serve it through `RelayServer` (see
    `main`): a bare uvicorn server closes WebSockets with 1012 before
    the lifespan shutdown runs.
    """
    settings = settings or Settings()
    store = RoomStore(history_capacity=settings.history_capacity)
    manager = RoomManager(store, settings)
    sweeper = LivenessSweeper(manager, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        try:
            yield
        finally:
            logger.info("Shutting down WebSocket server...")
            await sweeper.stop()
            await manager.shutdown()
            store.clear()
            logger.info("WebSocket server closed")

    app = FastAPI(title="Room Relay", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.manager = manager
    app.state.sweeper = sweeper

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        """Plain health check on the same listener as the WebSocket endpoint."""
        return HEALTH_BODY

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", **manager.stats()}

    @app.websocket("/")
    async def websocket_endpoint(websocket: WebSocket):
        """
        WebSocket endpoint; the room and nick come from the query string.

        Args:
            websocket: WebSocket connection
        """
        logger.info("New connection attempt")
        connection = WebSocketConnection(websocket)
        await connection.accept()
        session = ChatSession(
            connection,
            manager,
            room_id=websocket.query_params.get("room"),
            identity=websocket.query_params.get("nick"),
        )
        try:
            await session.run()
        finally:
            connection.terminate()

    return app


class RelayServer(uvicorn.Server):
    """uvicorn server that closes every relay connection with 1001 before its own shutdown."""

    def __init__(self, config: uvicorn.Config, manager: RoomManager):
        super().__init__(config)
        self.manager = manager

    async def shutdown(self, sockets=None) -> None:
        logger.info("Shutting down WebSocket server...")
        await self.manager.shutdown()
        await super().shutdown(sockets=sockets)


def build_server(settings: Settings, log_level: str = "info") -> RelayServer:
    """Create the relay app and the uvicorn server that drains it on shutdown."""
    relay = create_app(settings)
    config = uvicorn.Config(
        relay,
        host=settings.host,
        port=settings.port,
        ws_ping_interval=settings.ping_interval,
        ws_ping_timeout=None,
        log_level=log_level
    )
    return RelayServer(config, relay.state.manager)


def main() -> None:
    settings = Settings.from_env()
    logger.info(f"WebSocket server listening on ws://{settings.host}:{settings.port}")
    build_server(settings).run()


if __name__ == "__main__":
    main()
