"""
Card comparison and follow-suit logic.
"""

from typing import List, Optional

from .constants import RANK_ORDER
from .models import Card, TrickCard


def get_rank_index(rank: str) -> int:
    """Get the ace-high index of a rank."""
    try:
        return RANK_ORDER[rank]
    except KeyError:
        raise ValueError(f"Invalid rank: {rank}")


def compare_cards(card_a: Card, card_b: Card, trump_suit: Optional[str], lead_suit: str) -> int:
    """
    Compare two cards within a trick.

    Returns:
        > 0 if card_a beats card_b
        0 if neither card can win (both off-suit)
        < 0 if card_b beats card_a
    """
    a_trump = card_a.suit == trump_suit
    b_trump = card_b.suit == trump_suit
    if a_trump and not b_trump:
        return 1
    if b_trump and not a_trump:
        return -1
    if a_trump and b_trump:
        return get_rank_index(card_a.rank) - get_rank_index(card_b.rank)

    a_lead = card_a.suit == lead_suit
    b_lead = card_b.suit == lead_suit
    if a_lead and not b_lead:
        return 1
    if b_lead and not a_lead:
        return -1
    if a_lead and b_lead:
        return get_rank_index(card_a.rank) - get_rank_index(card_b.rank)
    return 0


def current_trick_leader(trick: List[TrickCard], trump_suit: Optional[str]) -> Optional[TrickCard]:
    """Return the play currently winning a (possibly partial) trick."""
    if not trick:
        return None
    lead_suit = trick[0].card.suit
    winner = trick[0]
    for play in trick[1:]:
        if compare_cards(play.card, winner.card, trump_suit, lead_suit) > 0:
            winner = play
    return winner


def determine_trick_winner(trick: List[TrickCard], trump_suit: Optional[str]) -> str:
    """Return the player id that wins a completed trick."""
    if not trick:
        raise ValueError("Cannot determine the winner of an empty trick")
    return current_trick_leader(trick, trump_suit).player_id


def can_play_card(card: Card, hand: List[Card], current_trick: List[TrickCard],
                  trump_suit: Optional[str]) -> bool:
    """
    Check the follow-suit rule for a card.

    Trump may always be played. A player holding the led suit must otherwise
    follow it.
    """
    if not current_trick:
        return True

    lead_suit = current_trick[0].card.suit
    if card.suit == lead_suit:
        return True
    if trump_suit and card.suit == trump_suit:
        return True
    return not any(c.suit == lead_suit for c in hand)


def legal_cards(hand: List[Card], current_trick: List[TrickCard], trump_suit: Optional[str]) -> List[Card]:
    return [card for card in hand if can_play_card(card, hand, current_trick, trump_suit)]


def highest(cards: List[Card]) -> Card:
    return max(cards, key=lambda c: get_rank_index(c.rank))


def lowest(cards: List[Card]) -> Card:
    return min(cards, key=lambda c: get_rank_index(c.rank))
