"""
Heuristic CPU player.

Bidding estimates the strongest suit in hand. Card play walks an ordered table
of named strategies; the first one that returns a card wins.
"""

import logging
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .base import BaseBot, trump_keep_value
from ..comparator import current_trick_leader, get_rank_index, highest, lowest
from ..constants import MAX_BID, MIN_BID, SUITS
from ..models import Card, GameState, TrickCard
from ..rules import CpuTuning
from ..validate import is_legal_bid_amount

logger = logging.getLogger(__name__)

# Trump ranks that score when captured (the Ace also wins High)
POINT_RANKS = ('5', 'J', '2', 'A')

# Order in which a captured point card is worth chasing
POINT_PRIORITY: Dict[str, int] = {'5': 0, 'J': 1, '2': 2, 'A': 3}

# Per-card weights used to pick trump
TRUMP_WEIGHTS: Dict[str, int] = {'5': 6, 'J': 2, 'A': 4, 'K': 2, 'Q': 1}


@dataclass
class SuitStrength:
    suit: str
    trump_count: int = 0
    has_ace: bool = False
    has_king: bool = False
    has_queen: bool = False
    has_jack: bool = False
    has_five: bool = False
    has_deuce: bool = False
    estimated_bid: int = 0


def estimate_suit_strength(hand: List[Card], suit: str) -> SuitStrength:
    """
    Estimate the bid a hand could make with ``suit`` as trump.

    Returns:
        SuitStrength with ``estimated_bid`` of 0 (not biddable) or 5 to 9
    """
    ranks = {card.rank for card in hand if card.suit == suit}
    strength = SuitStrength(
        suit=suit,
        trump_count=sum(1 for card in hand if card.suit == suit),
        has_ace='A' in ranks,
        has_king='K' in ranks,
        has_queen='Q' in ranks,
        has_jack='J' in ranks,
        has_five='5' in ranks,
        has_deuce='2' in ranks,
    )
    count, ace, king, five = strength.trump_count, strength.has_ace, strength.has_king, strength.has_five

    if count == 0:
        bid = 0
    elif count == 1:
        bid = 5 if ace else 0
    elif count == 2:
        if ace and (king or five):
            bid = 6
        elif ace or (king and five):
            bid = 5
        else:
            bid = 0
    elif count == 3:
        if ace and (five or king):
            bid = 7
        elif ace or (king and five):
            bid = 6
        else:
            bid = 5
    else:
        if ace and (five or king):
            bid = 8
        elif ace or five:
            bid = 7
        else:
            bid = 6

    if (strength.has_jack or strength.has_deuce) and bid > 0:
        bid = min(MAX_BID, bid + 1)

    # Without the Ace, High is never safe
    if not ace and bid >= 8:
        bid = 7

    # A short unprotected Five is likely to be caught
    if five and not ace and count <= 2 and bid > 5:
        bid = 5

    strength.estimated_bid = bid
    return strength


def best_suit_strength(hand: List[Card]) -> SuitStrength:
    best = SuitStrength(suit=SUITS[0])
    for suit in SUITS:
        strength = estimate_suit_strength(hand, suit)
        if strength.estimated_bid > best.estimated_bid:
            best = strength
    return best


@dataclass
class PlayContext:
    """Everything the play strategies look at, computed once per decision."""
    hand: List[Card]
    trick: List[TrickCard]
    trump: Optional[str]
    trumps: List[Card]
    is_bidder: bool
    teammate_id: str
    players_after: List[str]

    @property
    def leading(self) -> bool:
        return not self.trick

    @property
    def lead_suit(self) -> Optional[str]:
        return self.trick[0].card.suit if self.trick else None

    @property
    def follow_cards(self) -> List[Card]:
        return [c for c in self.hand if c.suit == self.lead_suit]

    @property
    def opponents_after(self) -> List[str]:
        return [pid for pid in self.players_after if pid != self.teammate_id]

    @property
    def winner(self) -> Optional[TrickCard]:
        return current_trick_leader(self.trick, self.trump)

    @property
    def teammate_winning(self) -> bool:
        winner = self.winner
        return winner is not None and winner.player_id == self.teammate_id

    @property
    def point_card_in_trick(self) -> Optional[TrickCard]:
        points = [tc for tc in self.trick if tc.card.suit == self.trump and tc.card.rank in POINT_RANKS]
        points.sort(key=lambda tc: POINT_PRIORITY[tc.card.rank])
        return points[0] if points else None

    @property
    def highest_trick_trump(self) -> int:
        ranks = [get_rank_index(tc.card.rank) for tc in self.trick if tc.card.suit == self.trump]
        return max(ranks) if ranks else -1

    def trump_of_rank(self, rank: str) -> Optional[Card]:
        return next((c for c in self.trumps if c.rank == rank), None)


def _non_point(cards: List[Card]) -> List[Card]:
    """Cards that are safe to spend: anything but 5, J and 2 (the Ace wins its own point)."""
    return [c for c in cards if c.rank not in POINT_RANKS or c.rank == 'A']


# Leading strategies

def lead_ace_as_bidder(ctx: PlayContext) -> Optional[Card]:
    return ctx.trump_of_rank('A') if ctx.is_bidder else None


def lead_king_as_bidder(ctx: PlayContext) -> Optional[Card]:
    if ctx.is_bidder and len(ctx.trumps) >= 2:
        return ctx.trump_of_rank('K')
    return None


def lead_safe_trump(ctx: PlayContext) -> Optional[Card]:
    safe = [c for c in ctx.trumps if c.rank not in ('5', '2', 'J')]
    if not safe:
        return None
    return highest(safe) if ctx.is_bidder else lowest(safe)


def lead_desperate_trump(ctx: PlayContext) -> Optional[Card]:
    # Never lead the Five or the Two
    rest = [c for c in ctx.trumps if c.rank not in ('5', '2')]
    return highest(rest) if rest else None


def lead_lowest_trump(ctx: PlayContext) -> Optional[Card]:
    return lowest(ctx.trumps) if ctx.trumps else None


def lead_highest_card(ctx: PlayContext) -> Optional[Card]:
    return highest(ctx.hand)


# Following strategies

def drop_points_to_partner(ctx: PlayContext) -> Optional[Card]:
    """Partner is winning and no opponent plays after us: bank the Five or the Two."""
    if not (ctx.teammate_winning and not ctx.opponents_after):
        return None
    return ctx.trump_of_rank('5') or ctx.trump_of_rank('2')


def capture_point_card(ctx: PlayContext) -> Optional[Card]:
    """An opponent's trump point card is in the trick: take it as cheaply as possible."""
    point = ctx.point_card_in_trick
    if point is None or point.player_id == ctx.teammate_id:
        return None

    follow = ctx.follow_cards
    if follow and ctx.lead_suit == ctx.trump:
        target = get_rank_index(point.card.rank)
        winners = [c for c in follow if get_rank_index(c.rank) > target]
        if winners:
            return lowest(_non_point(winners) or winners)

    if not follow and ctx.trumps:
        winners = [c for c in ctx.trumps if get_rank_index(c.rank) > ctx.highest_trick_trump]
        if winners:
            cheap = _non_point(winners)
            if cheap:
                return lowest(cheap)
            return ctx.trump_of_rank('A') or lowest(winners)
    return None


def follow_trump_lead(ctx: PlayContext) -> Optional[Card]:
    follow = ctx.follow_cards
    if not follow or ctx.lead_suit != ctx.trump:
        return None

    safe = _non_point(follow)
    winner = ctx.winner
    if winner is not None and not ctx.teammate_winning:
        beating = [c for c in safe if get_rank_index(c.rank) > get_rank_index(winner.card.rank)]
        if beating:
            return lowest(beating)
    if safe:
        return lowest(safe)

    if ctx.teammate_winning and not ctx.opponents_after:
        five = next((c for c in follow if c.rank == '5'), None)
        if five:
            return five

    for rank in ('2', 'J', '5'):
        card = next((c for c in follow if c.rank == rank), None)
        if card:
            return card
    return lowest(follow)


def follow_plain_lead(ctx: PlayContext) -> Optional[Card]:
    follow = ctx.follow_cards
    if not follow:
        return None
    return lowest(follow) if ctx.teammate_winning else highest(follow)


def trump_in(ctx: PlayContext) -> Optional[Card]:
    """Void in the led suit: protect the Five where needed, otherwise spend a cheap trump."""
    if not ctx.trumps:
        return None

    should_protect = (
        ctx.trump_of_rank('5') is None
        and ctx.point_card_in_trick is None
        and ctx.lead_suit != ctx.trump
        and ctx.opponents_after
        and not ctx.teammate_winning
    )
    if should_protect:
        protective = [
            c for c in ctx.trumps
            if get_rank_index(c.rank) > get_rank_index('5') and c.rank != 'A'
            and get_rank_index(c.rank) > ctx.highest_trick_trump
        ]
        if protective:
            return lowest(protective)
        ace = ctx.trump_of_rank('A')
        if ace:
            return ace

    plain = [c for c in ctx.trumps if c.rank not in POINT_RANKS]
    if plain:
        return lowest(plain)
    return ctx.trump_of_rank('A') or lowest(ctx.trumps)


def discard_lowest(ctx: PlayContext) -> Optional[Card]:
    return lowest(ctx.hand)


Strategy = Tuple[str, Callable[[PlayContext], Optional[Card]]]

LEAD_STRATEGIES: List[Strategy] = [
    ('lead_ace_as_bidder', lead_ace_as_bidder),
    ('lead_king_as_bidder', lead_king_as_bidder),
    ('lead_safe_trump', lead_safe_trump),
    ('lead_desperate_trump', lead_desperate_trump),
    ('lead_lowest_trump', lead_lowest_trump),
    ('lead_highest_card', lead_highest_card),
]

FOLLOW_STRATEGIES: List[Strategy] = [
    ('drop_points_to_partner', drop_points_to_partner),
    ('capture_point_card', capture_point_card),
    ('follow_trump_lead', follow_trump_lead),
    ('follow_plain_lead', follow_plain_lead),
    ('trump_in', trump_in),
    ('discard_lowest', discard_lowest),
]


class HeuristicBot(BaseBot):
    """
    CPU player built on hand-tuned rules.

    Strategy:
    - Bid the estimate of the strongest suit, with a random confidence roll
    - Pick trump by weighted suit score, or dig for a void suit when forced
    - Keep 5, J, A, 2, K and Q of trump when shedding
    - Play from the ordered lead/follow strategy tables
    """

    def __init__(self, tuning: Optional[CpuTuning] = None, rng: Optional[random.Random] = None):
        self.tuning = tuning or CpuTuning()
        self.rng = rng or random.Random()

    def choose_bid(self, state: GameState, seat_index: int) -> int:
        hand = self.get_player_hand(state, seat_index)
        is_dealer = seat_index == state.dealer_index
        others_passed = all(
            p.bid == 0 for i, p in enumerate(state.players) if i != seat_index
        )

        if is_dealer and others_passed:
            return MIN_BID

        strength = best_suit_strength(hand).estimated_bid
        if strength == 0:
            return 0

        if is_dealer:
            if state.high_bid == MAX_BID and strength >= MAX_BID:
                bid = MAX_BID
            elif strength > state.high_bid:
                bid = min(MAX_BID, max(MIN_BID, state.high_bid + 1))
            else:
                bid = 0
        elif strength > state.high_bid:
            confidence = (strength - state.high_bid) / self.tuning.bid_confidence_divisor
            bid = strength if self.rng.random() < self.tuning.bid_confidence_base + confidence else 0
        else:
            bid = 0

        if not is_legal_bid_amount(state, seat_index, bid):
            return 0
        return bid

    def choose_trump(self, state: GameState, seat_index: int) -> str:
        hand = self.get_player_hand(state, seat_index)
        scores = {suit: 0 for suit in SUITS}
        counts = self.count_suits(hand)
        for card in hand:
            scores[card.suit] += 1 + TRUMP_WEIGHTS.get(card.rank, 0)

        if self._was_forced(state, seat_index):
            if max(scores.values()) <= self.tuning.desperate_dig_threshold:
                void_suits = [suit for suit in SUITS if counts.get(suit, 0) == 0]
                if void_suits:
                    suit = self.rng.choice(void_suits)
                    logger.info(f"Seat {seat_index} forced with a weak hand, digging for {suit}")
                    return suit

        return max(SUITS, key=lambda suit: (scores[suit], -SUITS.index(suit)))

    def choose_discard(self, state: GameState, seat_index: int) -> Card:
        return min(self.get_trumps(state, seat_index), key=trump_keep_value)

    def choose_card(self, state: GameState, seat_index: int) -> Card:
        ctx = PlayContext(
            hand=list(self.get_player_hand(state, seat_index)),
            trick=list(state.current_trick),
            trump=state.trump_suit,
            trumps=self.get_trumps(state, seat_index),
            is_bidder=state.players[seat_index].id == state.bidder_id,
            teammate_id=self.get_teammate_id(state, seat_index),
            players_after=self.get_players_after(state, seat_index),
        )
        table = LEAD_STRATEGIES if ctx.leading else FOLLOW_STRATEGIES
        for name, strategy in table:
            card = strategy(ctx)
            if card is not None:
                logger.debug(f"Seat {seat_index} plays {card.id} via {name}")
                return card
        return self.get_legal_cards(state, seat_index)[0]

    def _was_forced(self, state: GameState, seat_index: int) -> bool:
        """The dealer took the minimum because everyone else passed."""
        if seat_index != state.dealer_index:
            return False
        return all(p.bid == 0 for i, p in enumerate(state.players) if i != seat_index)
