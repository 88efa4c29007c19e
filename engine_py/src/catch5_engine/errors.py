# engine_py/src/catch5_engine/errors.py

class GameError(Exception):
    """Base exception for game-related errors."""
    def __init__(self, code: str, message: str, clear_session: bool = False):
        self.code = code
        self.message = message
        self.clear_session = clear_session
        super().__init__(f"[{code}] {message}")


class InvariantViolation(GameError):
    """Raised when the rules engine detects a corrupted state."""
    def __init__(self, message: str):
        super().__init__(INTERNAL_ERROR, message)


# Protocol errors
INVALID_EVENT = "INVALID_EVENT"
NOT_IN_ROOM = "NOT_IN_ROOM"
UNKNOWN_ACTION = "UNKNOWN_ACTION"

# Session errors
ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
ROOM_FULL = "ROOM_FULL"
GAME_IN_PROGRESS = "GAME_IN_PROGRESS"
SESSION_EXPIRED = "SESSION_EXPIRED"
NAME_REQUIRED = "NAME_REQUIRED"

# Seat management errors
NOT_HOST = "NOT_HOST"
SEAT_TAKEN = "SEAT_TAKEN"
SEAT_EMPTY = "SEAT_EMPTY"
INVALID_SEAT = "INVALID_SEAT"
NOT_ENOUGH_PLAYERS = "NOT_ENOUGH_PLAYERS"
NO_ACTIVE_GAME = "NO_ACTIVE_GAME"

# Illegal-move errors
NOT_YOUR_TURN = "NOT_YOUR_TURN"
WRONG_PHASE = "WRONG_PHASE"
INVALID_BID = "INVALID_BID"
INVALID_SUIT = "INVALID_SUIT"
OWNERSHIP_MISMATCH = "OWNERSHIP_MISMATCH"
MUST_FOLLOW_SUIT = "MUST_FOLLOW_SUIT"
INVALID_DISCARD = "INVALID_DISCARD"
ACTION_NOT_ALLOWED = "ACTION_NOT_ALLOWED"

INTERNAL_ERROR = "INTERNAL"
