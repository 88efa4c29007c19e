"""Game constants and utilities"""

from typing import Dict, List

SUITS: List[str] = ['Hearts', 'Diamonds', 'Clubs', 'Spades']
RANKS: List[str] = ['2', '3', '4', '5', '6', '7', '8', '9', '10', 'J', 'Q', 'K', 'A']

# Ace high for trick taking
RANK_ORDER: Dict[str, int] = {rank: index for index, rank in enumerate(RANKS)}

# Ace low for the dealer draw
RANK_ORDER_ACE_LOW: Dict[str, int] = {
    'A': 0, '2': 1, '3': 2, '4': 3, '5': 4, '6': 5, '7': 6,
    '8': 7, '9': 8, '10': 9, 'J': 10, 'Q': 11, 'K': 12,
}

# Dealer draw tie-break
DRAW_SUIT_ORDER: Dict[str, int] = {'Clubs': 0, 'Diamonds': 1, 'Hearts': 2, 'Spades': 3}

# Hand sorting (trump is always pulled to the front)
SORT_SUIT_ORDER: Dict[str, int] = {'Spades': 0, 'Hearts': 1, 'Clubs': 2, 'Diamonds': 3}

# Point values used for the "Game" category
CARD_VALUES: Dict[str, int] = {
    '2': 0, '3': 0, '4': 0, '5': 0, '6': 0, '7': 0, '8': 0, '9': 0,
    '10': 10, 'J': 1, 'Q': 2, 'K': 3, 'A': 4,
}

NUM_SEATS = 4
MIN_BID = 5
MAX_BID = 9
INITIAL_HAND_SIZE = 9
FINAL_HAND_SIZE = 6
TOTAL_TRICKS = 6
DEFAULT_TARGET_SCORE = 25

DECK_COLORS: List[str] = ['red', 'blue', 'green', 'purple', 'gold', 'black']
DEFAULT_DECK_COLOR = 'blue'

TEAM_IDS: List[str] = ['team1', 'team2']

# Game phases
PHASE_SETUP = 'setup'
PHASE_DEALER_DRAW = 'dealer-draw'
PHASE_DEALING = 'dealing'
PHASE_BIDDING = 'bidding'
PHASE_TRUMP_SELECTION = 'trump-selection'
PHASE_PURGE_DRAW = 'purge-draw'
PHASE_DISCARD_TRUMP = 'discard-trump'
PHASE_PLAYING = 'playing'
PHASE_SCORING = 'scoring'
PHASE_GAME_OVER = 'game-over'

# Phases in which exactly one seat (current_player_index) must act
TURN_PHASES = (PHASE_BIDDING, PHASE_TRUMP_SELECTION, PHASE_DISCARD_TRUMP, PHASE_PLAYING)

# Player actions
ACTION_BID = 'bid'
ACTION_SELECT_TRUMP = 'select_trump'
ACTION_PURGE_DRAW_COMPLETE = 'purge_draw_complete'
ACTION_DISCARD_TRUMP = 'discard_trump'
ACTION_PLAY_CARD = 'play_card'
ACTION_CONTINUE = 'continue'
ACTION_SORT_HAND = 'sort_hand'
ACTION_FINALIZE_DEALER_DRAW = 'finalize_dealer_draw'

TURN_ACTIONS = (ACTION_BID, ACTION_SELECT_TRUMP, ACTION_DISCARD_TRUMP, ACTION_PLAY_CARD)

CPU_NAMES: List[str] = ['CPU Alpha', 'CPU Beta', 'CPU Gamma', 'CPU Delta']

ROOM_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
ROOM_CODE_LENGTH = 6
NAME_MAX_LENGTH = 50


def team_for_seat(seat_index: int) -> str:
    """Seats 0 and 2 play for team1, seats 1 and 3 for team2."""
    return TEAM_IDS[seat_index % 2]


def player_id_for_seat(seat_index: int) -> str:
    return f"player{seat_index + 1}"


def card_id(rank: str, suit: str) -> str:
    return f"{rank}-{suit}"
