"""
Card shuffling and deck utilities.
"""

import random
from typing import List, Optional

from .constants import RANKS, SUITS
from .models import Card


def create_deck() -> List[Card]:
    """Create a standard 52-card deck in suit-major order."""
    deck = []
    for suit in SUITS:
        for rank in RANKS:
            deck.append(Card(rank, suit))
    return deck


def shuffle_deck(deck: List[Card], rng: Optional[random.Random] = None) -> List[Card]:
    """
    Shuffle a deck, deterministically if an rng is provided.

    Args:
        deck: Cards to shuffle
        rng: Optional seeded random generator

    Returns:
        Shuffled copy of the deck
    """
    deck_copy = deck.copy()
    (rng or random).shuffle(deck_copy)
    return deck_copy


def fresh_shuffled_deck(rng: Optional[random.Random] = None) -> List[Card]:
    return shuffle_deck(create_deck(), rng)
