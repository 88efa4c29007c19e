"""
WebSocket event models and validation.

Wire keys are camelCase; inbound models accept snake_case too.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..constants import NUM_SEATS


class EventType(str, Enum):
    """Inbound event types."""
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    START_GAME = "start_game"
    PLAYER_ACTION = "player_action"
    LEAVE_ROOM = "leave_room"
    ADD_CPU = "add_cpu"
    REMOVE_CPU = "remove_cpu"
    SWAP_SEATS = "swap_seats"
    RANDOMIZE_TEAMS = "randomize_teams"
    KICK_PLAYER = "kick_player"
    SEND_CHAT = "send_chat"
    PING = "ping"
    PREVIEW_ROOM = "preview_room"
    SPECTATE_ROOM = "spectate_room"
    LEAVE_SPECTATE = "leave_spectate"
    LIST_ACTIVE_GAMES = "list_active_games"


class OutboundEventType(str, Enum):
    """Outbound event types."""
    ROOM_CREATED = "room_created"
    JOINED = "joined"
    REJOINED = "rejoined"
    PLAYER_JOINED = "player_joined"
    PLAYER_RECONNECTED = "player_reconnected"
    PLAYER_DISCONNECTED = "player_disconnected"
    SEATS_UPDATED = "seats_updated"
    GAME_STATE = "game_state"
    CHAT_MESSAGE = "chat_message"
    LEFT = "left"
    KICKED = "kicked"
    ERROR = "error"
    PONG = "pong"
    ROOM_PREVIEW = "room_preview"
    SPECTATING = "spectating"
    SPECTATOR_COUNT_UPDATED = "spectator_count_updated"
    ACTIVE_GAMES = "active_games"
    ROOM_UNAVAILABLE = "room_unavailable"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# Inbound event models
class BaseEvent(WireModel):
    """Base event model."""
    type: EventType


class CreateRoomEvent(BaseEvent):
    type: EventType = EventType.CREATE_ROOM
    player_name: str = Field(..., min_length=1, max_length=50)
    deck_color: Optional[str] = None
    target_score: Optional[int] = Field(default=None, ge=5, le=100)
    auto_claim: Optional[bool] = None
    user_id: Optional[str] = Field(default=None, max_length=100)


class JoinRoomEvent(BaseEvent):
    type: EventType = EventType.JOIN_ROOM
    room_code: str = Field(..., min_length=1, max_length=20)
    player_name: str = Field(..., min_length=1, max_length=50)
    player_token: Optional[str] = None
    preferred_seat: Optional[int] = Field(default=None, ge=0, lt=NUM_SEATS)
    user_id: Optional[str] = Field(default=None, max_length=100)


class StartGameEvent(BaseEvent):
    type: EventType = EventType.START_GAME


class PlayerActionEvent(BaseEvent):
    type: EventType = EventType.PLAYER_ACTION
    action: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('data', mode='before')
    @classmethod
    def default_data(cls, v):
        return {} if v is None else v


class LeaveRoomEvent(BaseEvent):
    type: EventType = EventType.LEAVE_ROOM


class SeatEvent(BaseEvent):
    seat_index: int = Field(..., ge=0, lt=NUM_SEATS)


class AddCpuEvent(SeatEvent):
    type: EventType = EventType.ADD_CPU


class RemoveCpuEvent(SeatEvent):
    type: EventType = EventType.REMOVE_CPU


class KickPlayerEvent(SeatEvent):
    type: EventType = EventType.KICK_PLAYER


class SwapSeatsEvent(BaseEvent):
    type: EventType = EventType.SWAP_SEATS
    seat1: int = Field(..., ge=0, lt=NUM_SEATS)
    seat2: int = Field(..., ge=0, lt=NUM_SEATS)


class RandomizeTeamsEvent(BaseEvent):
    type: EventType = EventType.RANDOMIZE_TEAMS


class SendChatEvent(BaseEvent):
    type: EventType = EventType.SEND_CHAT
    content: str = Field(..., max_length=1000)
    chat_type: str = "text"


class PingEvent(BaseEvent):
    type: EventType = EventType.PING


class PreviewRoomEvent(BaseEvent):
    type: EventType = EventType.PREVIEW_ROOM
    room_code: str = Field(..., min_length=1, max_length=20)


class SpectateRoomEvent(BaseEvent):
    type: EventType = EventType.SPECTATE_ROOM
    room_code: str = Field(..., min_length=1, max_length=20)
    display_name: Optional[str] = Field(default=None, max_length=50)


class LeaveSpectateEvent(BaseEvent):
    type: EventType = EventType.LEAVE_SPECTATE


class ListActiveGamesEvent(BaseEvent):
    type: EventType = EventType.LIST_ACTIVE_GAMES


# Outbound event models
class OutboundEvent(WireModel):
    type: OutboundEventType
    timestamp: float = Field(default_factory=time.time)


class SessionEvent(OutboundEvent):
    """Sent to a client that now holds a seat."""
    room_code: str
    player_token: str
    seat_index: int
    is_host: bool
    seats: List[Dict[str, Any]]
    game_state: Dict[str, Any]
    chat_messages: List[Dict[str, Any]] = Field(default_factory=list)


class SeatNoticeEvent(OutboundEvent):
    seat_index: int
    player_name: str


class SeatsUpdatedEvent(OutboundEvent):
    type: OutboundEventType = OutboundEventType.SEATS_UPDATED
    seats: List[Dict[str, Any]]
    host_seat_index: Optional[int] = None


class GameStateEvent(OutboundEvent):
    type: OutboundEventType = OutboundEventType.GAME_STATE
    game_state: Dict[str, Any]


class ChatMessageEvent(OutboundEvent):
    type: OutboundEventType = OutboundEventType.CHAT_MESSAGE
    message: Dict[str, Any]


class RoomNoticeEvent(OutboundEvent):
    room_code: str
    reason: Optional[str] = None


class ErrorEvent(OutboundEvent):
    type: OutboundEventType = OutboundEventType.ERROR
    code: str
    message: str
    clear_session: Optional[bool] = None


class PongEvent(OutboundEvent):
    type: OutboundEventType = OutboundEventType.PONG


class RoomPreviewEvent(OutboundEvent):
    type: OutboundEventType = OutboundEventType.ROOM_PREVIEW
    room_code: str
    exists: bool
    phase: Optional[str] = None
    seats: List[Dict[str, Any]] = Field(default_factory=list)
    spectator_count: int = 0
    can_join: bool = False


class SpectatingEvent(OutboundEvent):
    type: OutboundEventType = OutboundEventType.SPECTATING
    room_code: str
    spectator_id: str
    seats: List[Dict[str, Any]]
    game_state: Dict[str, Any]
    chat_messages: List[Dict[str, Any]] = Field(default_factory=list)


class SpectatorCountEvent(OutboundEvent):
    type: OutboundEventType = OutboundEventType.SPECTATOR_COUNT_UPDATED
    count: int


class ActiveGamesEvent(OutboundEvent):
    type: OutboundEventType = OutboundEventType.ACTIVE_GAMES
    games: List[Dict[str, Any]]


def parse_inbound_event(data: Dict[str, Any]) -> BaseEvent:
    """
    Parse and validate an inbound event.

    Args:
        data: Raw event data

    Returns:
        Validated event model

    Raises:
        ValueError: If event is invalid
    """
    if not isinstance(data, dict) or "type" not in data:
        raise ValueError("Event must be an object with a type")

    try:
        event_type = EventType(data["type"])
    except ValueError:
        raise ValueError(f"Unknown event type: {data['type']}")

    event_map = {
        EventType.CREATE_ROOM: CreateRoomEvent,
        EventType.JOIN_ROOM: JoinRoomEvent,
        EventType.START_GAME: StartGameEvent,
        EventType.PLAYER_ACTION: PlayerActionEvent,
        EventType.LEAVE_ROOM: LeaveRoomEvent,
        EventType.ADD_CPU: AddCpuEvent,
        EventType.REMOVE_CPU: RemoveCpuEvent,
        EventType.SWAP_SEATS: SwapSeatsEvent,
        EventType.RANDOMIZE_TEAMS: RandomizeTeamsEvent,
        EventType.KICK_PLAYER: KickPlayerEvent,
        EventType.SEND_CHAT: SendChatEvent,
        EventType.PING: PingEvent,
        EventType.PREVIEW_ROOM: PreviewRoomEvent,
        EventType.SPECTATE_ROOM: SpectateRoomEvent,
        EventType.LEAVE_SPECTATE: LeaveSpectateEvent,
        EventType.LIST_ACTIVE_GAMES: ListActiveGamesEvent,
    }

    try:
        return event_map[event_type].model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid {event_type.value} event: {e.errors()[0]['msg']}")


def create_session_event(event_type: OutboundEventType, room_code: str, player_token: str,
                         seat_index: int, is_host: bool, seats: List[Dict[str, Any]],
                         game_state: Dict[str, Any],
                         chat_messages: Optional[List[Dict[str, Any]]] = None) -> SessionEvent:
    """Create a room_created, joined or rejoined event."""
    return SessionEvent(
        type=event_type,
        room_code=room_code,
        player_token=player_token,
        seat_index=seat_index,
        is_host=is_host,
        seats=seats,
        game_state=game_state,
        chat_messages=chat_messages or [],
    )


def create_seat_notice_event(event_type: OutboundEventType, seat_index: int, player_name: str) -> SeatNoticeEvent:
    """Create a player_joined, player_reconnected or player_disconnected event."""
    return SeatNoticeEvent(type=event_type, seat_index=seat_index, player_name=player_name)


def create_room_notice_event(event_type: OutboundEventType, room_code: str,
                             reason: Optional[str] = None) -> RoomNoticeEvent:
    """Create a left, kicked or room_unavailable event."""
    return RoomNoticeEvent(type=event_type, room_code=room_code, reason=reason)


def create_error_event(code: str, message: str, clear_session: bool = False) -> ErrorEvent:
    """Create an error event."""
    return ErrorEvent(code=code, message=message, clear_session=True if clear_session else None)
