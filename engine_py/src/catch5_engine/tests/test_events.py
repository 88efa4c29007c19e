"""
Tests for WebSocket event parsing and wire encoding.
"""

import pytest
from catch5_engine.ws.events import (
    CreateRoomEvent, EventType, JoinRoomEvent, OutboundEventType, PlayerActionEvent,
    SwapSeatsEvent, create_error_event, create_session_event, parse_inbound_event,
)


def test_parse_camel_case_event():
    event = parse_inbound_event({
        "type": "join_room",
        "roomCode": "abc123",
        "playerName": "Alice",
        "playerToken": "tok",
        "preferredSeat": 2,
    })
    assert isinstance(event, JoinRoomEvent)
    assert event.room_code == "abc123"
    assert event.player_token == "tok"
    assert event.preferred_seat == 2


def test_parse_accepts_snake_case():
    event = parse_inbound_event({"type": "create_room", "player_name": "Bob", "target_score": 31})
    assert isinstance(event, CreateRoomEvent)
    assert event.type == EventType.CREATE_ROOM
    assert event.target_score == 31
    assert event.deck_color is None


def test_player_action_data_defaults_to_empty():
    event = parse_inbound_event({"type": "player_action", "action": "continue", "data": None})
    assert isinstance(event, PlayerActionEvent)
    assert event.data == {}


def test_swap_seats_fields():
    event = parse_inbound_event({"type": "swap_seats", "seat1": 0, "seat2": 3})
    assert isinstance(event, SwapSeatsEvent)
    assert (event.seat1, event.seat2) == (0, 3)


@pytest.mark.parametrize("data", [
    {},
    [],
    {"type": "teleport"},
    {"type": "create_room"},
    {"type": "create_room", "playerName": ""},
    {"type": "add_cpu", "seatIndex": 4},
    {"type": "join_room", "playerName": "Al"},
    {"type": "create_room", "playerName": "Al", "targetScore": 2},
])
def test_invalid_events_raise_value_error(data):
    with pytest.raises(ValueError):
        parse_inbound_event(data)


def test_error_event_wire_format():
    wire = create_error_event("ROOM_NOT_FOUND", "gone").to_wire()
    assert wire["type"] == "error"
    assert wire["code"] == "ROOM_NOT_FOUND"
    assert wire["message"] == "gone"
    assert "clearSession" not in wire

    wire = create_error_event("SESSION_EXPIRED", "expired", clear_session=True).to_wire()
    assert wire["clearSession"] is True


def test_session_event_uses_camel_case_keys():
    event = create_session_event(
        OutboundEventType.JOINED,
        room_code="ABC123",
        player_token="tok",
        seat_index=1,
        is_host=False,
        seats=[],
        game_state={"phase": "setup"},
    )
    wire = event.to_wire()
    assert wire["type"] == "joined"
    assert wire["roomCode"] == "ABC123"
    assert wire["playerToken"] == "tok"
    assert wire["seatIndex"] == 1
    assert wire["isHost"] is False
    assert wire["gameState"] == {"phase": "setup"}
    assert wire["chatMessages"] == []
    assert isinstance(wire["timestamp"], float)
