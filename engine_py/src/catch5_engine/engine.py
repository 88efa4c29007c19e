"""
Catch 5 rules engine.

Every function takes a GameState and returns a new one. The input state is
never mutated, so a rejected or failed action leaves the caller's state as it
was.
"""

import copy
import logging
import random
from typing import List, Optional

from .comparator import determine_trick_winner, get_rank_index, legal_cards
from .constants import (
    DEFAULT_DECK_COLOR, DEFAULT_TARGET_SCORE, DRAW_SUIT_ORDER, FINAL_HAND_SIZE,
    INITIAL_HAND_SIZE, MAX_BID, MIN_BID, NUM_SEATS, PHASE_BIDDING,
    PHASE_DEALER_DRAW, PHASE_DISCARD_TRUMP, PHASE_GAME_OVER, PHASE_PLAYING,
    PHASE_PURGE_DRAW, PHASE_SCORING, PHASE_SETUP, PHASE_TRUMP_SELECTION,
    RANK_ORDER_ACE_LOW, SORT_SUIT_ORDER, TEAM_IDS, TOTAL_TRICKS,
    player_id_for_seat, team_for_seat,
)
from .errors import GameError, INVALID_BID, InvariantViolation, WRONG_PHASE
from .models import Card, GameState, Player, Team, TrickCard
from .scoring import apply_round_result, calculate_round_scores, check_game_over
from .shuffle import create_deck, fresh_shuffled_deck, shuffle_deck
from .validate import validate_discard, validate_play, validate_trump

logger = logging.getLogger(__name__)

DEFAULT_TEAM_NAMES = {'team1': 'Team 1', 'team2': 'Team 2'}


def _require(result):
    if not result.valid:
        raise GameError(result.error_code, result.error_message)
    return result.value


def _require_phase(state: GameState, *phases: str):
    if state.phase not in phases:
        raise GameError(WRONG_PHASE, f"Action not allowed during {state.phase}")


def _advance(state: GameState) -> GameState:
    new_state = copy.deepcopy(state)
    new_state.version += 1
    return new_state


def initialize_game(deck_color: str = DEFAULT_DECK_COLOR,
                    target_score: int = DEFAULT_TARGET_SCORE,
                    names: Optional[List[str]] = None,
                    humans: Optional[List[bool]] = None) -> GameState:
    """
    Create a fresh game with four seats and two fixed teams.

    Args:
        deck_color: Cosmetic card-back colour
        target_score: Score that ends the game
        names: Optional display names per seat
        humans: Optional human flag per seat

    Returns:
        GameState in the ``setup`` phase
    """
    players = []
    for seat in range(NUM_SEATS):
        players.append(Player(
            id=player_id_for_seat(seat),
            name=names[seat] if names else f"Player {seat + 1}",
            team_id=team_for_seat(seat),
            is_human=humans[seat] if humans else False,
        ))

    teams = [
        Team(
            id=team_id,
            name=DEFAULT_TEAM_NAMES[team_id],
            player_ids=[p.id for p in players if p.team_id == team_id],
        )
        for team_id in TEAM_IDS
    ]

    return GameState(
        players=players,
        teams=teams,
        phase=PHASE_SETUP,
        target_score=target_score,
        deck_color=deck_color,
    )


def update_player_identity(state: GameState, seat_index: int, name: str, is_human: bool) -> GameState:
    """Rename a seat or hand it between a human and the CPU. Hands and score are kept."""
    new_state = copy.deepcopy(state)
    player = new_state.players[seat_index]
    player.name = name
    player.is_human = is_human
    return new_state


def start_dealer_draw(state: GameState, rng: Optional[random.Random] = None) -> GameState:
    """Every seat draws one card from a fresh deck to pick the first dealer."""
    new_state = _advance(state)
    deck = fresh_shuffled_deck(rng)
    new_state.dealer_draw_cards = [
        TrickCard(player_id=player.id, card=deck[index])
        for index, player in enumerate(new_state.players)
    ]
    new_state.phase = PHASE_DEALER_DRAW
    return new_state


def _dealer_draw_value(card: Card) -> int:
    return RANK_ORDER_ACE_LOW[card.rank] * 10 + DRAW_SUIT_ORDER[card.suit]


def finalize_dealer_draw(state: GameState) -> GameState:
    """The lowest drawn card deals. Aces are low; ties break Clubs < Diamonds < Hearts < Spades."""
    _require_phase(state, PHASE_DEALER_DRAW)
    new_state = _advance(state)
    if not new_state.dealer_draw_cards:
        new_state.dealer_index = 0
        return new_state

    lowest_index = 0
    lowest_value = _dealer_draw_value(new_state.dealer_draw_cards[0].card)
    for index, draw in enumerate(new_state.dealer_draw_cards[1:], start=1):
        value = _dealer_draw_value(draw.card)
        if value < lowest_value:
            lowest_value = value
            lowest_index = index

    new_state.dealer_index = lowest_index
    return new_state


def deal_cards(state: GameState, rng: Optional[random.Random] = None) -> GameState:
    """
    Deal nine cards to each seat and open the bidding left of the dealer.

    Hands go out in seat order starting left of the dealer. The remaining
    16 cards become the stock used by the purge-and-draw.
    """
    new_state = _advance(state)
    deck = fresh_shuffled_deck(rng)
    first_bidder = (new_state.dealer_index + 1) % NUM_SEATS

    for offset in range(NUM_SEATS):
        player = new_state.players[(first_bidder + offset) % NUM_SEATS]
        player.hand = deck[offset * INITIAL_HAND_SIZE:(offset + 1) * INITIAL_HAND_SIZE]
        player.bid = None
        player.tricks_won = []

    new_state.stock = deck[NUM_SEATS * INITIAL_HAND_SIZE:]
    new_state.discard_pile = []
    new_state.slept_cards = []
    new_state.players_needing_discard = []
    new_state.phase = PHASE_BIDDING
    new_state.current_player_index = first_bidder
    new_state.lead_player_index = first_bidder
    new_state.trump_suit = None
    new_state.high_bid = 0
    new_state.bidder_id = None
    new_state.current_trick = []
    new_state.last_trick = []
    new_state.last_trick_winner_id = None
    new_state.trick_number = 1
    new_state.round_scores = {}
    new_state.round_score_details = None
    new_state.auto_claimer_id = None

    validate_deck(new_state)
    return new_state


def process_bid(state: GameState, amount: int) -> GameState:
    """
    Record a bid (0 = pass) for the acting seat.

    The dealer may match a bid of 9 to take the hand. Any other bid that does
    not beat the high bid is recorded like a pass. When everyone passes the
    dealer is forced to the minimum bid. Closing the bidding moves to
    trump selection with the bid winner to act.
    """
    _require_phase(state, PHASE_BIDDING)
    seat = state.current_player_index
    if isinstance(amount, bool) or not isinstance(amount, int) or (
            amount != 0 and not MIN_BID <= amount <= MAX_BID):
        raise GameError(INVALID_BID, f"Bid must be between {MIN_BID} and {MAX_BID}, or pass")

    new_state = _advance(state)
    bidder = new_state.players[seat]
    is_dealer = seat == new_state.dealer_index
    bidder.bid = amount

    if amount > new_state.high_bid:
        new_state.high_bid = amount
        new_state.bidder_id = bidder.id
    elif is_dealer and amount == MAX_BID and new_state.high_bid == MAX_BID:
        new_state.bidder_id = bidder.id

    if all(player.bid is not None for player in new_state.players):
        if new_state.high_bid == 0:
            dealer = new_state.players[new_state.dealer_index]
            dealer.bid = MIN_BID
            new_state.high_bid = MIN_BID
            new_state.bidder_id = dealer.id
            logger.info(f"All passed, dealer {dealer.id} forced to bid {MIN_BID}")

        new_state.phase = PHASE_TRUMP_SELECTION
        new_state.current_player_index = new_state.index_of(new_state.bidder_id)
        return new_state

    new_state.current_player_index = (seat + 1) % NUM_SEATS
    return new_state


def select_trump(state: GameState, suit: str) -> GameState:
    _require(validate_trump(state, state.current_player_index, suit))
    new_state = _advance(state)
    new_state.trump_suit = suit
    new_state.phase = PHASE_PURGE_DRAW
    return new_state


def _draw_to_full(state: GameState, rng: Optional[random.Random]) -> None:
    """Refill every hand to six starting with the bidder, then open play."""
    bidder_index = state.index_of(state.bidder_id)
    stock = state.stock
    discard_pile = state.discard_pile

    for offset in range(NUM_SEATS):
        player = state.players[(bidder_index + offset) % NUM_SEATS]
        for _ in range(FINAL_HAND_SIZE - len(player.hand)):
            if not stock and discard_pile:
                stock = shuffle_deck(discard_pile, rng)
                discard_pile = []
            if stock:
                player.hand.append(stock.pop())

    state.stock = stock
    state.discard_pile = discard_pile
    state.slept_cards = list(stock)
    state.players_needing_discard = []
    state.phase = PHASE_PLAYING
    state.current_player_index = bidder_index
    state.lead_player_index = bidder_index


def perform_purge_and_draw(state: GameState, rng: Optional[random.Random] = None) -> GameState:
    """
    Discard every non-trump card, then draw back up to six.

    Seats left holding more than six trumps must first discard down to six
    one at a time in the ``discard-trump`` phase.
    """
    _require_phase(state, PHASE_PURGE_DRAW)
    new_state = _advance(state)
    trump = new_state.trump_suit

    needing_discard = []
    for index, player in enumerate(new_state.players):
        kept = [card for card in player.hand if card.suit == trump]
        new_state.discard_pile.extend(card for card in player.hand if card.suit != trump)
        player.hand = kept
        if len(kept) > FINAL_HAND_SIZE:
            needing_discard.append(index)

    if needing_discard:
        new_state.phase = PHASE_DISCARD_TRUMP
        new_state.players_needing_discard = needing_discard
        new_state.current_player_index = needing_discard[0]
        validate_deck(new_state)
        return new_state

    _draw_to_full(new_state, rng)
    validate_deck(new_state)
    return new_state


def discard_trump_card(state: GameState, card: Card, rng: Optional[random.Random] = None) -> GameState:
    """Discard one excess trump for the acting seat."""
    seat = state.current_player_index
    held = _require(validate_discard(state, seat, card))

    new_state = _advance(state)
    player = new_state.players[seat]
    player.hand = [c for c in player.hand if c.id != held.id]
    new_state.discard_pile.append(held)

    remaining = [
        index for index in new_state.players_needing_discard
        if len(new_state.players[index].hand) > FINAL_HAND_SIZE
    ]
    if remaining:
        new_state.players_needing_discard = remaining
        new_state.current_player_index = remaining[0]
        validate_deck(new_state)
        return new_state

    _draw_to_full(new_state, rng)
    validate_deck(new_state)
    return new_state


def _should_end_early(state: GameState, team_points) -> bool:
    """
    A round can stop before the last trick once the outcome is fixed.

    The non-bidders reaching the target can never be set. The bidders reaching
    the target having already made their bid cannot be set either.
    """
    bidder_team_id = state.bidder_team_id
    for team in state.teams:
        running = team.score + team_points.get(team.id, 0)
        if team.id != bidder_team_id and running >= state.target_score:
            return True
        if (team.id == bidder_team_id and running >= state.target_score
                and team_points.get(team.id, 0) >= state.high_bid):
            return True
    return False


def play_card(state: GameState, card: Card) -> GameState:
    """
    Play a card for the acting seat and resolve the trick when it completes.

    The trick winner leads next. The round ends after the sixth trick, or
    earlier when the early-termination rule applies, with scores applied and
    the phase moved to ``scoring`` or ``game-over``.
    """
    seat = state.current_player_index
    held = _require(validate_play(state, seat, card))

    new_state = _advance(state)
    player = new_state.players[seat]
    player.hand = [c for c in player.hand if c.id != held.id]
    new_state.current_trick.append(TrickCard(player_id=player.id, card=held))

    if len(new_state.current_trick) < NUM_SEATS:
        new_state.current_player_index = (seat + 1) % NUM_SEATS
        validate_deck(new_state)
        return new_state

    trick = new_state.current_trick
    winner_id = determine_trick_winner(trick, new_state.trump_suit)
    winner_index = new_state.index_of(winner_id)
    new_state.players[winner_index].tricks_won.extend(tc.card for tc in trick)
    new_state.last_trick = trick
    new_state.last_trick_winner_id = winner_id
    new_state.current_trick = []
    new_state.trick_number += 1

    score = calculate_round_scores(new_state.players, new_state.teams, new_state.trump_suit)
    round_over = new_state.trick_number > TOTAL_TRICKS
    ends_early = not round_over and _should_end_early(new_state, score.team_points)

    if round_over or ends_early:
        apply_round_result(
            new_state.teams, score, new_state.bidder_team_id, new_state.high_bid,
            apply_set_penalty=not ends_early,
        )
        new_state.round_scores = dict(score.team_points)
        new_state.round_score_details = score
        new_state.phase = PHASE_GAME_OVER if check_game_over(new_state) else PHASE_SCORING
        if ends_early:
            logger.info(f"Round ended early after trick {new_state.trick_number - 1}")
    else:
        new_state.current_player_index = winner_index
        new_state.lead_player_index = winner_index

    validate_deck(new_state)
    return new_state


def start_new_round(state: GameState, rng: Optional[random.Random] = None) -> GameState:
    """Pass the deal to the left and deal a new hand."""
    _require_phase(state, PHASE_SCORING)
    rotated = copy.deepcopy(state)
    rotated.dealer_index = (rotated.dealer_index + 1) % NUM_SEATS
    return deal_cards(rotated, rng)


def check_auto_claim(state: GameState) -> Optional[str]:
    """
    Return the id of a seat that can claim every remaining trick.

    The stock must be empty and one seat must hold every trump still in play
    and nothing but trumps.
    """
    if state.phase != PHASE_PLAYING or not state.trump_suit:
        return None
    if state.stock or state.current_trick:
        return None

    trump = state.trump_suit
    total_trumps = sum(1 for p in state.players for c in p.hand if c.suit == trump)
    if total_trumps == 0:
        return None

    for player in state.players:
        if not player.hand:
            continue
        trumps_held = sum(1 for c in player.hand if c.suit == trump)
        if trumps_held == total_trumps and trumps_held == len(player.hand):
            return player.id
    return None


def apply_auto_claim(state: GameState, claimer_id: str) -> GameState:
    """Play the remaining tricks out with the claimer taking each one."""
    if check_auto_claim(state) != claimer_id:
        raise GameError(WRONG_PHASE, "Auto-claim is not available")

    new_state = state
    while new_state.phase == PHASE_PLAYING:
        acting = new_state.current_player
        playable = legal_cards(acting.hand, new_state.current_trick, new_state.trump_suit)
        new_state = play_card(new_state, playable[0])

    new_state.auto_claimer_id = claimer_id
    logger.info(f"{claimer_id} claimed the remaining tricks")
    return new_state


def sort_hand(state: GameState, seat_index: int) -> GameState:
    """
    Sort a seat's hand: trump first, then Spades, Hearts, Clubs, Diamonds, high to low.

    Sorting does not count as game progress, so the version is unchanged.
    """
    new_state = copy.deepcopy(state)
    trump = new_state.trump_suit
    player = new_state.players[seat_index]
    player.hand.sort(key=lambda c: (
        0 if c.suit == trump else 1,
        SORT_SUIT_ORDER[c.suit],
        -get_rank_index(c.rank),
    ))
    return new_state


def validate_deck(state: GameState) -> None:
    """
    Check that the cards in play form exactly one 52-card deck.

    ``last_trick``, ``slept_cards`` and ``dealer_draw_cards`` are display
    copies and are not counted.

    Raises:
        InvariantViolation: if a card is missing or duplicated
    """
    if state.phase in (PHASE_SETUP, PHASE_DEALER_DRAW):
        return

    cards = list(state.stock) + list(state.discard_pile)
    for player in state.players:
        cards.extend(player.hand)
        cards.extend(player.tricks_won)
    cards.extend(tc.card for tc in state.current_trick)

    ids = [card.id for card in cards]
    expected = {card.id for card in create_deck()}
    if len(ids) != len(expected) or set(ids) != expected:
        missing = expected - set(ids)
        duplicated = len(ids) - len(set(ids))
        raise InvariantViolation(
            f"Deck conservation broken: {len(ids)} cards, {len(missing)} missing, {duplicated} duplicated"
        )
