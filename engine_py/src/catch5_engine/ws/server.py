"""
FastAPI WebSocket gateway for Catch 5 rooms.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

import orjson
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from ..errors import (
    GameError, INTERNAL_ERROR, INVALID_EVENT, InvariantViolation, NOT_IN_ROOM,
    ROOM_NOT_FOUND,
)
from ..registry import RoomRegistry
from ..room import Room
from ..rules import create_rules
from ..settings import Settings, get_settings
from ..stats import StatsTracker, create_stats_store
from .events import (
    ActiveGamesEvent, AddCpuEvent, CreateRoomEvent, JoinRoomEvent, KickPlayerEvent,
    LeaveRoomEvent, LeaveSpectateEvent, ListActiveGamesEvent, PingEvent,
    PlayerActionEvent, PongEvent, PreviewRoomEvent, RandomizeTeamsEvent,
    RemoveCpuEvent, RoomPreviewEvent, SendChatEvent, SpectateRoomEvent,
    StartGameEvent, SwapSeatsEvent, create_error_event, parse_inbound_event,
)

logger = logging.getLogger(__name__)


class WebSocketConnection:
    """Serializes sends to one socket and tears it down on the first failed send."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.send_lock = asyncio.Lock()
        self.closed = False

    async def send(self, event) -> None:
        if self.closed:
            return
        payload = orjson.dumps(event.to_wire()).decode()
        failed = False
        async with self.send_lock:
            try:
                await self.websocket.send_text(payload)
            except Exception as e:
                logger.warning(f"Send failed, closing connection: {e}")
                self.closed = True
                failed = True
        if failed:
            await self.close()

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        try:
            await self.websocket.close(code=code)
        except RuntimeError:
            # Already closed by the peer
            pass


@dataclass
class ClientSession:
    """What one connection is bound to: a seat, a spectator slot, or nothing yet."""
    connection: WebSocketConnection
    room: Optional[Room] = None
    token: Optional[str] = None
    spectator_id: Optional[str] = None

    def require_seat(self):
        if self.room is None or self.token is None:
            raise GameError(NOT_IN_ROOM, "You are not in a room")
        return self.room, self.token


class GameGateway:
    """Routes client events to rooms and reports failures back as error events."""

    def __init__(self, settings: Settings, registry: RoomRegistry):
        self.settings = settings
        self.registry = registry

    async def handle_websocket(self, websocket: WebSocket) -> None:
        await websocket.accept()
        connection = WebSocketConnection(websocket)
        session = ClientSession(connection)
        logger.info("WebSocket connection accepted")

        room_code = websocket.query_params.get("roomCode")
        player_token = websocket.query_params.get("playerToken")

        try:
            if room_code and player_token:
                await self._run(session, self._rejoin(session, room_code, player_token))

            while not connection.closed:
                try:
                    raw = await asyncio.wait_for(
                        websocket.receive_text(), timeout=self.settings.connection_idle_timeout
                    )
                except asyncio.TimeoutError:
                    logger.info("Closing idle connection")
                    await connection.close(code=1001)
                    break
                await self.handle_message(session, raw)
        except WebSocketDisconnect:
            logger.info("WebSocket disconnected")
        finally:
            connection.closed = True
            await self._detach(session)

    async def handle_message(self, session: ClientSession, raw: str) -> None:
        try:
            event = parse_inbound_event(orjson.loads(raw))
        except ValueError as e:
            await session.connection.send(create_error_event(INVALID_EVENT, str(e)))
            return
        await self._run(session, self.handle_event(session, event))

    async def _run(self, session: ClientSession, operation) -> None:
        """Await a handler and turn any failure into an error event for this client."""
        try:
            await operation
        except InvariantViolation as e:
            logger.error(f"Invariant violated: {e.message}")
            await session.connection.send(create_error_event(e.code, e.message))
        except GameError as e:
            await session.connection.send(create_error_event(e.code, e.message, e.clear_session))
        except ValueError as e:
            await session.connection.send(create_error_event(INVALID_EVENT, str(e)))
        except Exception:
            logger.exception("Error handling event")
            await session.connection.send(create_error_event(INTERNAL_ERROR, "Internal server error"))

    async def handle_event(self, session: ClientSession, event) -> None:
        connection = session.connection

        if isinstance(event, PingEvent):
            await connection.send(PongEvent())
        elif isinstance(event, CreateRoomEvent):
            await self._create_room(session, event)
        elif isinstance(event, JoinRoomEvent):
            await self._join_room(session, event)
        elif isinstance(event, StartGameEvent):
            room, token = session.require_seat()
            await room.start_game(token)
        elif isinstance(event, PlayerActionEvent):
            room, token = session.require_seat()
            await room.handle_action(token, event.action, event.data)
        elif isinstance(event, LeaveRoomEvent):
            room, token = session.require_seat()
            await room.leave(token)
            session.room, session.token = None, None
        elif isinstance(event, AddCpuEvent):
            room, token = session.require_seat()
            await room.add_cpu(token, event.seat_index)
        elif isinstance(event, RemoveCpuEvent):
            room, token = session.require_seat()
            await room.remove_cpu(token, event.seat_index)
        elif isinstance(event, KickPlayerEvent):
            room, token = session.require_seat()
            await room.kick_player(token, event.seat_index)
        elif isinstance(event, SwapSeatsEvent):
            room, token = session.require_seat()
            await room.swap_seats(token, event.seat1, event.seat2)
        elif isinstance(event, RandomizeTeamsEvent):
            room, token = session.require_seat()
            await room.randomize_teams(token)
        elif isinstance(event, SendChatEvent):
            await self._send_chat(session, event)
        elif isinstance(event, PreviewRoomEvent):
            await connection.send(self.preview(event.room_code))
        elif isinstance(event, SpectateRoomEvent):
            await self._spectate(session, event)
        elif isinstance(event, LeaveSpectateEvent):
            if session.room is not None and session.spectator_id is not None:
                await session.room.remove_spectator(session.spectator_id)
                session.room, session.spectator_id = None, None
        elif isinstance(event, ListActiveGamesEvent):
            await connection.send(ActiveGamesEvent(games=self.registry.active_games()))
        else:
            raise ValueError(f"Unhandled event type: {event.type}")

    def _find_room(self, code: str, clear_session: bool = False) -> Room:
        room = self.registry.get(code)
        if room is None or room.closed:
            raise GameError(ROOM_NOT_FOUND, f"Room {code} does not exist", clear_session=clear_session)
        return room

    async def _detach(self, session: ClientSession) -> None:
        """Release whatever the connection was bound to."""
        room = session.room
        session.room, session.token, session.spectator_id = None, None, None
        if room is not None:
            await room.disconnect(session.connection)

    async def _create_room(self, session: ClientSession, event: CreateRoomEvent) -> None:
        rules = create_rules(
            self.settings,
            target_score=event.target_score,
            deck_color=event.deck_color,
            auto_claim=event.auto_claim,
        )
        await self._detach(session)
        room = await self.registry.create_room(rules)
        try:
            seat = await room.join(session.connection, event.player_name, user_id=event.user_id, created=True)
        except GameError:
            await self.registry.remove(room.code)
            raise
        session.room, session.token = room, seat.token

    async def _join_room(self, session: ClientSession, event: JoinRoomEvent) -> None:
        room = self._find_room(event.room_code, clear_session=bool(event.player_token))
        if session.room is not room:
            await self._detach(session)
        seat = await room.join(
            session.connection,
            event.player_name,
            token=event.player_token,
            preferred_seat=event.preferred_seat,
            user_id=event.user_id,
        )
        session.room, session.token = room, seat.token

    async def _rejoin(self, session: ClientSession, room_code: str, player_token: str) -> None:
        room = self._find_room(room_code, clear_session=True)
        seat = await room.rejoin(session.connection, player_token)
        session.room, session.token = room, seat.token

    async def _send_chat(self, session: ClientSession, event: SendChatEvent) -> None:
        if session.room is not None and session.token is not None:
            await session.room.send_chat(session.token, event.content, event.chat_type)
        elif session.room is not None and session.spectator_id is not None:
            await session.room.spectator_chat(session.spectator_id, event.content, event.chat_type)
        else:
            raise GameError(NOT_IN_ROOM, "You are not in a room")

    def preview(self, room_code: str) -> RoomPreviewEvent:
        room = self.registry.get(room_code)
        if room is None or room.closed:
            return RoomPreviewEvent(room_code=room_code.upper(), exists=False)
        return RoomPreviewEvent(**room.preview())

    async def _spectate(self, session: ClientSession, event: SpectateRoomEvent) -> None:
        room = self._find_room(event.room_code)
        await self._detach(session)
        spectator = await room.add_spectator(session.connection, event.display_name)
        session.room, session.spectator_id = room, spectator.id


def create_app(settings: Optional[Settings] = None, registry: Optional[RoomRegistry] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        settings: Process settings, read from the environment when omitted
        registry: Room registry; a fresh one backed by the configured stats store when omitted
    """
    settings = settings or get_settings()
    if registry is None:
        registry = RoomRegistry(settings, StatsTracker(create_stats_store(settings.database_url)))
    gateway = GameGateway(settings, registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if registry.stats is not None:
            await registry.stats.store.init()
        logger.info("Catch 5 server ready")
        yield
        await registry.close_all()
        if registry.stats is not None:
            await registry.stats.store.close()
        logger.info("Catch 5 server stopped")

    app = FastAPI(title="Catch 5 Game Server", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = registry
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "rooms": len(registry)}

    @app.get("/api/rooms/{room_code}/preview")
    async def room_preview(room_code: str):
        return gateway.preview(room_code).to_wire()

    @app.get("/api/stats/{user_id}")
    async def player_stats(user_id: str):
        if registry.stats is None:
            raise HTTPException(status_code=404, detail="Stats are disabled")
        stats = await registry.stats.store.get(user_id)
        if stats is None:
            raise HTTPException(status_code=404, detail="No stats recorded for this player")
        return stats

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Main WebSocket endpoint."""
        await gateway.handle_websocket(websocket)

    return app
