"""
Base bot interface and utilities.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..comparator import get_rank_index, legal_cards
from ..constants import (
    ACTION_BID, ACTION_DISCARD_TRUMP, ACTION_PLAY_CARD, ACTION_SELECT_TRUMP,
    NUM_SEATS, PHASE_BIDDING, PHASE_DISCARD_TRUMP, PHASE_PLAYING,
    PHASE_TRUMP_SELECTION,
)
from ..models import Card, GameState, Player

# Trumps worth keeping when a hand must shed one, most precious first
KEEP_PRIORITY: Dict[str, int] = {'5': 100, 'J': 50, 'A': 40, '2': 30, 'K': 20, 'Q': 15}


def trump_keep_value(card: Card) -> int:
    """Higher means more worth keeping. Unlisted ranks fall back to rank order."""
    return KEEP_PRIORITY.get(card.rank, get_rank_index(card.rank))


class BotAction:
    """Represents a bot action."""

    def __init__(self, action_type: str, **kwargs):
        self.type = action_type
        self.data = kwargs

    @classmethod
    def bid(cls, amount: int) -> 'BotAction':
        """Create a bid action (0 = pass)."""
        return cls(ACTION_BID, amount=amount)

    @classmethod
    def select_trump(cls, suit: str) -> 'BotAction':
        return cls(ACTION_SELECT_TRUMP, suit=suit)

    @classmethod
    def discard_trump(cls, card: Card) -> 'BotAction':
        return cls(ACTION_DISCARD_TRUMP, card=card.to_dict())

    @classmethod
    def play_card(cls, card: Card) -> 'BotAction':
        return cls(ACTION_PLAY_CARD, card=card.to_dict())

    def __repr__(self) -> str:
        return f"BotAction({self.type}, {self.data})"


class BaseBot(ABC):
    """Abstract base class for seats the server plays on someone's behalf."""

    def choose_action(self, state: GameState, seat_index: int) -> Optional[BotAction]:
        """
        Choose an action for a seat based on the current game state.

        Args:
            state: Current game state
            seat_index: Seat the bot is acting for

        Returns:
            BotAction to take, or None if the seat has nothing to do
        """
        if state.current_player_index != seat_index:
            return None

        if state.phase == PHASE_BIDDING:
            return BotAction.bid(self.choose_bid(state, seat_index))
        if state.phase == PHASE_TRUMP_SELECTION:
            return BotAction.select_trump(self.choose_trump(state, seat_index))
        if state.phase == PHASE_DISCARD_TRUMP:
            return BotAction.discard_trump(self.choose_discard(state, seat_index))
        if state.phase == PHASE_PLAYING:
            card = self.choose_card(state, seat_index)
            legal = self.get_legal_cards(state, seat_index)
            if card not in legal:
                card = legal[0]
            return BotAction.play_card(card)
        return None

    @abstractmethod
    def choose_bid(self, state: GameState, seat_index: int) -> int:
        pass

    @abstractmethod
    def choose_trump(self, state: GameState, seat_index: int) -> str:
        pass

    @abstractmethod
    def choose_discard(self, state: GameState, seat_index: int) -> Card:
        pass

    @abstractmethod
    def choose_card(self, state: GameState, seat_index: int) -> Card:
        pass

    def get_player(self, state: GameState, seat_index: int) -> Player:
        return state.players[seat_index]

    def get_player_hand(self, state: GameState, seat_index: int) -> List[Card]:
        """Get the seat's current hand."""
        return state.players[seat_index].hand

    def get_trumps(self, state: GameState, seat_index: int) -> List[Card]:
        return [c for c in self.get_player_hand(state, seat_index) if c.suit == state.trump_suit]

    def get_legal_cards(self, state: GameState, seat_index: int) -> List[Card]:
        return legal_cards(self.get_player_hand(state, seat_index), state.current_trick, state.trump_suit)

    def get_teammate_id(self, state: GameState, seat_index: int) -> str:
        return state.players[(seat_index + 2) % NUM_SEATS].id

    def get_players_after(self, state: GameState, seat_index: int) -> List[str]:
        """Ids of seats still to play in the current trick after this one."""
        played = {tc.player_id for tc in state.current_trick}
        after = []
        for offset in range(1, NUM_SEATS):
            player_id = state.players[(seat_index + offset) % NUM_SEATS].id
            if player_id not in played:
                after.append(player_id)
        return after

    def count_suits(self, hand: List[Card]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for card in hand:
            counts[card.suit] = counts.get(card.suit, 0) + 1
        return counts
