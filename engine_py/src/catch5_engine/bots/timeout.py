"""
Deterministic actions taken for a human seat whose turn timer expired.
"""

from .base import BaseBot, trump_keep_value
from ..constants import SUITS
from ..models import Card, GameState


class TimeoutBot(BaseBot):
    """
    Plays the safest default for an absent human.

    Bidding passes, trump is the most-held suit (ties go to the earlier suit
    in SUITS), the discard is the lowest-value trump and play takes the first
    legal card.
    """

    def choose_bid(self, state: GameState, seat_index: int) -> int:
        return 0

    def choose_trump(self, state: GameState, seat_index: int) -> str:
        counts = self.count_suits(self.get_player_hand(state, seat_index))
        return max(SUITS, key=lambda suit: (counts.get(suit, 0), -SUITS.index(suit)))

    def choose_discard(self, state: GameState, seat_index: int) -> Card:
        return min(self.get_trumps(state, seat_index), key=trump_keep_value)

    def choose_card(self, state: GameState, seat_index: int) -> Card:
        return self.get_legal_cards(state, seat_index)[0]
