"""
Legality checks for player actions.
"""

from typing import Any, Optional

from .comparator import can_play_card
from .constants import (
    MAX_BID, MIN_BID, PHASE_BIDDING, PHASE_DISCARD_TRUMP, PHASE_PLAYING,
    PHASE_TRUMP_SELECTION, SUITS,
)
from .errors import (
    INVALID_BID, INVALID_DISCARD, INVALID_SUIT, MUST_FOLLOW_SUIT, NOT_YOUR_TURN,
    OWNERSHIP_MISMATCH, WRONG_PHASE,
)
from .models import Card, GameState


class ValidationResult:
    """Result of an action validation."""

    def __init__(
        self,
        valid: bool,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        value: Any = None
    ):
        self.valid = valid
        self.error_code = error_code
        self.error_message = error_message
        self.value = value

    @classmethod
    def success(cls, value: Any = None) -> 'ValidationResult':
        """Create a successful validation result."""
        return cls(valid=True, value=value)

    @classmethod
    def error(cls, error_code: str, error_message: str) -> 'ValidationResult':
        """Create an error validation result."""
        return cls(valid=False, error_code=error_code, error_message=error_message)

    def __bool__(self) -> bool:
        return self.valid


def validate_turn(state: GameState, seat_index: int, phase: str) -> ValidationResult:
    """Check that the game is in ``phase`` and ``seat_index`` is the acting seat."""
    if state.phase != phase:
        return ValidationResult.error(WRONG_PHASE, f"Action not allowed during {state.phase}")
    if state.current_player_index != seat_index:
        return ValidationResult.error(NOT_YOUR_TURN, "It's not your turn")
    return ValidationResult.success()


def is_legal_bid_amount(state: GameState, seat_index: int, amount: int) -> bool:
    if amount == 0:
        return True
    if amount < MIN_BID or amount > MAX_BID:
        return False
    if amount > state.high_bid:
        return True
    # Dealer may take the hand at the cap
    return seat_index == state.dealer_index and amount == MAX_BID and state.high_bid == MAX_BID


def validate_bid(state: GameState, seat_index: int, amount: Any) -> ValidationResult:
    """
    Validate a bid.

    Args:
        state: Current game state
        seat_index: Seat placing the bid
        amount: 0 to pass, otherwise 5 to 9

    Returns:
        ValidationResult carrying the bid as an int
    """
    turn = validate_turn(state, seat_index, PHASE_BIDDING)
    if not turn:
        return turn

    if isinstance(amount, bool) or not isinstance(amount, int):
        return ValidationResult.error(INVALID_BID, "Bid must be a whole number")

    if not is_legal_bid_amount(state, seat_index, amount):
        if amount != 0 and (amount < MIN_BID or amount > MAX_BID):
            return ValidationResult.error(INVALID_BID, f"Bid must be between {MIN_BID} and {MAX_BID}, or pass")
        return ValidationResult.error(INVALID_BID, f"Bid must be higher than {state.high_bid}")

    return ValidationResult.success(amount)


def validate_trump(state: GameState, seat_index: int, suit: Any) -> ValidationResult:
    turn = validate_turn(state, seat_index, PHASE_TRUMP_SELECTION)
    if not turn:
        return turn
    if suit not in SUITS:
        return ValidationResult.error(INVALID_SUIT, f"Unknown suit: {suit}")
    return ValidationResult.success(suit)


def _find_in_hand(state: GameState, seat_index: int, card: Card) -> Optional[Card]:
    for held in state.players[seat_index].hand:
        if held.id == card.id:
            return held
    return None


def validate_play(state: GameState, seat_index: int, card: Card) -> ValidationResult:
    """Check ownership and the follow-suit rule for a card play."""
    turn = validate_turn(state, seat_index, PHASE_PLAYING)
    if not turn:
        return turn

    held = _find_in_hand(state, seat_index, card)
    if held is None:
        return ValidationResult.error(OWNERSHIP_MISMATCH, f"You don't hold {card.id}")

    hand = state.players[seat_index].hand
    if not can_play_card(held, hand, state.current_trick, state.trump_suit):
        return ValidationResult.error(MUST_FOLLOW_SUIT, "You must follow suit or play trump")

    return ValidationResult.success(held)


def validate_discard(state: GameState, seat_index: int, card: Card) -> ValidationResult:
    turn = validate_turn(state, seat_index, PHASE_DISCARD_TRUMP)
    if not turn:
        return turn

    if seat_index not in state.players_needing_discard:
        return ValidationResult.error(INVALID_DISCARD, "You don't need to discard")

    held = _find_in_hand(state, seat_index, card)
    if held is None:
        return ValidationResult.error(OWNERSHIP_MISMATCH, f"You don't hold {card.id}")
    if held.suit != state.trump_suit:
        return ValidationResult.error(INVALID_DISCARD, "Only trump cards can be discarded now")

    return ValidationResult.success(held)
