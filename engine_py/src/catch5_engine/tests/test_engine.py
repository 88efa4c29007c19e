"""
Tests for the rules engine: dealing, bidding, the purge-and-draw and trick play.
"""

import random

import pytest
from catch5_engine import engine
from catch5_engine.comparator import legal_cards
from catch5_engine.constants import (
    MIN_BID, PHASE_BIDDING, PHASE_DEALER_DRAW, PHASE_DISCARD_TRUMP, PHASE_GAME_OVER,
    PHASE_PLAYING, PHASE_PURGE_DRAW, PHASE_SCORING, PHASE_SETUP, PHASE_TRUMP_SELECTION,
)
from catch5_engine.errors import (
    GameError, INVALID_BID, InvariantViolation, MUST_FOLLOW_SUIT,
    OWNERSHIP_MISMATCH, WRONG_PHASE,
)
from catch5_engine.models import Card, TrickCard
from catch5_engine.scoring import get_winning_team
from catch5_engine.shuffle import create_deck, fresh_shuffled_deck


def cards(*ids):
    return [Card.from_id(card_id) for card_id in ids]


def dealt_state(seed=1, dealer=0):
    state = engine.initialize_game()
    state = engine.start_dealer_draw(state, random.Random(seed))
    state.dealer_index = dealer
    return engine.deal_cards(state, random.Random(seed))


def playing_state(hands, trump='Hearts', bidder_seat=0, high_bid=5, leader=0):
    """Build a mid-round state; every card not in a hand sits in the discard pile."""
    state = engine.initialize_game()
    state.phase = PHASE_PLAYING
    state.trump_suit = trump
    state.bidder_id = state.players[bidder_seat].id
    state.high_bid = high_bid
    state.current_player_index = leader
    state.lead_player_index = leader
    held = set()
    for player, hand in zip(state.players, hands):
        player.hand = cards(*hand)
        held.update(hand)
    state.discard_pile = [card for card in create_deck() if card.id not in held]
    return state


def purge_state(hands, stock, trump='Hearts', bidder_seat=0):
    state = engine.initialize_game()
    state.phase = PHASE_PURGE_DRAW
    state.trump_suit = trump
    state.bidder_id = state.players[bidder_seat].id
    state.high_bid = MIN_BID
    for player, hand in zip(state.players, hands):
        player.hand = list(hand)
    state.stock = list(stock)
    return state


def test_initialize_game():
    state = engine.initialize_game(deck_color='red', target_score=31, names=['A', 'B', 'C', 'D'])
    assert state.phase == PHASE_SETUP
    assert state.version == 0
    assert [p.id for p in state.players] == ['player1', 'player2', 'player3', 'player4']
    assert [p.name for p in state.players] == ['A', 'B', 'C', 'D']
    assert [p.team_id for p in state.players] == ['team1', 'team2', 'team1', 'team2']
    assert state.get_team('team1').player_ids == ['player1', 'player3']
    assert state.target_score == 31
    assert state.deck_color == 'red'


def test_dealer_draw_lowest_card_deals():
    state = engine.start_dealer_draw(engine.initialize_game(), random.Random(3))
    assert state.phase == PHASE_DEALER_DRAW
    assert len(state.dealer_draw_cards) == 4

    state.dealer_draw_cards = [
        TrickCard('player1', Card('A', 'Spades')),
        TrickCard('player2', Card('2', 'Clubs')),
        TrickCard('player3', Card('A', 'Clubs')),
        TrickCard('player4', Card('K', 'Hearts')),
    ]
    state = engine.finalize_dealer_draw(state)
    # Aces are low and Clubs break ties first
    assert state.dealer_index == 2


def test_finalize_dealer_draw_requires_phase():
    with pytest.raises(GameError) as exc:
        engine.finalize_dealer_draw(engine.initialize_game())
    assert exc.value.code == WRONG_PHASE


def test_deal_cards():
    state = dealt_state(dealer=2)
    assert state.phase == PHASE_BIDDING
    assert all(len(p.hand) == 9 for p in state.players)
    assert len(state.stock) == 16
    assert state.current_player_index == 3
    assert state.high_bid == 0
    assert all(p.bid is None for p in state.players)


def test_deal_is_reproducible_with_seed():
    first = dealt_state(seed=11)
    second = dealt_state(seed=11)
    assert [p.hand for p in first.players] == [p.hand for p in second.players]


def test_deal_starts_left_of_dealer():
    deck = fresh_shuffled_deck(random.Random(11))
    state = dealt_state(seed=11, dealer=2)

    assert state.players[3].hand == deck[0:9]
    assert state.players[0].hand == deck[9:18]
    assert state.players[1].hand == deck[18:27]
    assert state.players[2].hand == deck[27:36]
    assert state.stock == deck[36:]


def test_bidding_round():
    state = dealt_state(dealer=0)
    version = state.version
    for amount in (5, 0, 6, 7):
        state = engine.process_bid(state, amount)

    assert state.phase == PHASE_TRUMP_SELECTION
    assert state.high_bid == 7
    assert state.bidder_id == 'player1'
    assert state.current_player_index == 0
    assert state.version == version + 4


def test_dealer_steals_at_nine():
    state = dealt_state(dealer=0)
    for amount in (9, 0, 0, 9):
        state = engine.process_bid(state, amount)
    assert state.bidder_id == 'player1'
    assert state.high_bid == 9


def test_all_pass_forces_dealer():
    state = dealt_state(dealer=1)
    for _ in range(4):
        state = engine.process_bid(state, 0)
    assert state.phase == PHASE_TRUMP_SELECTION
    assert state.bidder_id == 'player2'
    assert state.high_bid == MIN_BID
    assert state.players[1].bid == MIN_BID
    assert state.current_player_index == 1


def test_low_bid_is_recorded_as_a_pass():
    state = dealt_state(dealer=3)
    state = engine.process_bid(state, 7)
    state = engine.process_bid(state, 5)

    assert state.high_bid == 7
    assert state.bidder_id == 'player1'
    assert state.players[1].bid == 5
    assert state.current_player_index == 2


def test_out_of_range_bid_leaves_state_untouched():
    state = dealt_state(dealer=0)
    state = engine.process_bid(state, 6)
    before = state.version

    for amount in (4, 10, 'six'):
        with pytest.raises(GameError) as exc:
            engine.process_bid(state, amount)
        assert exc.value.code == INVALID_BID
    assert state.version == before
    assert state.current_player_index == 2


def test_select_trump():
    state = dealt_state(dealer=0)
    for amount in (5, 0, 0, 0):
        state = engine.process_bid(state, amount)
    state = engine.select_trump(state, 'Spades')
    assert state.trump_suit == 'Spades'
    assert state.phase == PHASE_PURGE_DRAW

    with pytest.raises(GameError):
        engine.select_trump(state, 'Spades')


def test_purge_and_draw():
    deck = create_deck()
    hands = [[deck[j] for j in range(seat, 36, 4)] for seat in range(4)]
    state = purge_state(hands, deck[36:])
    kept_trumps = [card for hand in hands for card in hand if card.suit == 'Hearts']

    state = engine.perform_purge_and_draw(state)

    assert state.phase == PHASE_PLAYING
    assert all(len(p.hand) == 6 for p in state.players)
    assert state.current_player_index == 0
    assert state.lead_player_index == 0
    held = {card.id for p in state.players for card in p.hand}
    assert all(card.id in held for card in kept_trumps)
    assert len(state.stock) == 5
    assert state.slept_cards == state.stock
    assert not any(card.suit == 'Hearts' for card in state.discard_pile)


def test_short_stock_reshuffles_the_discard_pile():
    deck = create_deck()
    hands = [[deck[j] for j in range(seat, 36, 4)] for seat in range(4)]
    state = purge_state(hands, deck[36:40])
    state.discard_pile = deck[40:]

    state = engine.perform_purge_and_draw(state, random.Random(5))

    assert state.phase == PHASE_PLAYING
    assert all(len(p.hand) == 6 for p in state.players)
    engine.validate_deck(state)
    assert state.discard_pile == []
    assert len(state.stock) == 52 - 24
    assert state.slept_cards == state.stock


def test_excess_trumps_must_be_discarded():
    deck = create_deck()
    hands = [deck[0:9], deck[9:18], deck[18:27], deck[27:36]]
    state = purge_state(hands, deck[36:])

    state = engine.perform_purge_and_draw(state)
    assert state.phase == PHASE_DISCARD_TRUMP
    assert state.players_needing_discard == [0]
    assert state.current_player_index == 0
    assert len(state.players[0].hand) == 9

    with pytest.raises(GameError) as exc:
        engine.discard_trump_card(state, Card('A', 'Spades'))
    assert exc.value.code == OWNERSHIP_MISMATCH

    for rank in ('2', '3', '4'):
        state = engine.discard_trump_card(state, Card(rank, 'Hearts'))

    assert state.phase == PHASE_PLAYING
    assert all(len(p.hand) == 6 for p in state.players)
    assert Card('5', 'Hearts') in state.players[0].hand


def test_play_card_enforces_turn_and_suit():
    hands = [
        ['3-Clubs', '4-Clubs'],
        ['J-Hearts', '2-Diamonds'],
        ['2-Clubs', '5-Spades'],
        ['8-Diamonds', '9-Diamonds'],
    ]
    state = playing_state(hands)
    state = engine.play_card(state, Card('3', 'Clubs'))
    assert state.current_player_index == 1
    assert [tc.card.id for tc in state.current_trick] == ['3-Clubs']

    with pytest.raises(GameError) as exc:
        engine.play_card(state, Card('4', 'Clubs'))
    assert exc.value.code == OWNERSHIP_MISMATCH

    state = engine.play_card(state, Card('2', 'Diamonds'))
    with pytest.raises(GameError) as exc:
        engine.play_card(state, Card('5', 'Spades'))
    assert exc.value.code == MUST_FOLLOW_SUIT


def test_trick_resolution():
    hands = [
        ['3-Clubs', '4-Clubs'],
        ['J-Hearts', '2-Diamonds'],
        ['2-Clubs', '5-Spades'],
        ['8-Diamonds', '9-Diamonds'],
    ]
    state = playing_state(hands)
    for card_id in ('3-Clubs', 'J-Hearts', '2-Clubs', '8-Diamonds'):
        state = engine.play_card(state, Card.from_id(card_id))

    assert state.current_trick == []
    assert state.last_trick_winner_id == 'player2'
    assert len(state.last_trick) == 4
    assert len(state.players[1].tricks_won) == 4
    assert state.current_player_index == 1
    assert state.trick_number == 2


def test_round_ends_early_when_opponents_reach_target():
    hands = [
        ['3-Clubs', '4-Clubs', '6-Clubs', '7-Clubs', '8-Clubs', '9-Clubs'],
        ['J-Hearts', '2-Diamonds', '3-Diamonds', '4-Diamonds', '6-Diamonds', '7-Diamonds'],
        ['2-Clubs', '5-Clubs', '10-Clubs', 'J-Clubs', 'Q-Clubs', 'K-Clubs'],
        ['8-Diamonds', '9-Diamonds', '10-Diamonds', 'J-Diamonds', 'Q-Diamonds', 'K-Diamonds'],
    ]
    state = playing_state(hands, bidder_seat=0, high_bid=5)
    state.get_team('team2').score = 24

    for card_id in ('3-Clubs', 'J-Hearts', '2-Clubs', '8-Diamonds'):
        state = engine.play_card(state, Card.from_id(card_id))

    assert state.phase == PHASE_GAME_OVER
    assert state.get_team('team2').score == 28
    # No set penalty when the round is cut short
    assert state.get_team('team1').score == 0
    assert get_winning_team(state).id == 'team2'


BIDDER_TAKES_FIVE = [
    ['A-Hearts', '6-Clubs'],
    ['3-Clubs', '7-Clubs'],
    ['5-Hearts', '8-Clubs'],
    ['4-Clubs', '9-Clubs'],
]


def test_round_ends_early_when_bidders_reach_target_having_made_the_bid():
    state = playing_state(BIDDER_TAKES_FIVE, bidder_seat=0, high_bid=5)
    state.get_team('team1').score = 20

    for card_id in ('A-Hearts', '3-Clubs', '5-Hearts', '4-Clubs'):
        state = engine.play_card(state, Card.from_id(card_id))

    # High, low, five and game all go to the bidders: 8 points
    assert state.phase == PHASE_GAME_OVER
    assert state.round_scores['team1'] == 8
    assert state.get_team('team1').score == 28
    assert get_winning_team(state).id == 'team1'


def test_bidders_at_target_short_of_the_bid_play_on():
    state = playing_state(BIDDER_TAKES_FIVE, bidder_seat=0, high_bid=9)
    state.get_team('team1').score = 20

    for card_id in ('A-Hearts', '3-Clubs', '5-Hearts', '4-Clubs'):
        state = engine.play_card(state, Card.from_id(card_id))

    assert state.phase == PHASE_PLAYING
    assert state.trick_number == 2
    assert state.current_player_index == 0
    assert state.get_team('team1').score == 20


def test_full_round_reaches_scoring():
    deck = create_deck()
    hands = [[deck[j] for j in range(seat, 36, 4)] for seat in range(4)]
    state = purge_state(hands, deck[36:])
    state = engine.perform_purge_and_draw(state)

    while state.phase == PHASE_PLAYING:
        acting = state.current_player
        state = engine.play_card(state, legal_cards(acting.hand, state.current_trick, state.trump_suit)[0])

    assert state.phase == PHASE_SCORING
    assert state.trick_number == 7
    assert all(not p.hand for p in state.players)
    assert sum(len(p.tricks_won) for p in state.players) == 24
    assert state.round_score_details is not None

    team1 = state.get_team('team1')
    made = state.round_scores['team1'] >= state.high_bid
    assert team1.score == (state.round_scores['team1'] if made else -state.high_bid)
    assert state.get_team('team2').score == state.round_scores['team2']


def test_start_new_round_rotates_dealer():
    state = dealt_state(dealer=3)
    with pytest.raises(GameError) as exc:
        engine.start_new_round(state)
    assert exc.value.code == WRONG_PHASE

    state.phase = PHASE_SCORING
    state = engine.start_new_round(state, random.Random(5))
    assert state.dealer_index == 0
    assert state.phase == PHASE_BIDDING
    assert state.current_player_index == 1


def test_auto_claim():
    hands = [
        ['A-Hearts', 'K-Hearts'],
        ['2-Clubs', '3-Clubs'],
        ['4-Clubs', '5-Clubs'],
        ['6-Clubs', '7-Clubs'],
    ]
    state = playing_state(hands)
    state.trick_number = 5

    assert engine.check_auto_claim(state) == 'player1'
    state = engine.apply_auto_claim(state, 'player1')

    assert state.phase == PHASE_SCORING
    assert state.auto_claimer_id == 'player1'
    assert len(state.players[0].tricks_won) == 8


def test_auto_claim_needs_empty_stock():
    hands = [['A-Hearts'], ['2-Clubs'], ['4-Clubs'], ['6-Clubs']]
    state = playing_state(hands)
    state.stock = [state.discard_pile.pop()]
    assert engine.check_auto_claim(state) is None

    with pytest.raises(GameError):
        engine.apply_auto_claim(state, 'player1')


def test_sort_hand():
    hands = [['2-Diamonds', 'K-Clubs', '3-Hearts', 'A-Spades', '9-Clubs', '4-Spades'], [], [], []]
    state = playing_state(hands, trump='Clubs')
    version = state.version

    state = engine.sort_hand(state, 0)
    assert [card.id for card in state.players[0].hand] == [
        'K-Clubs', '9-Clubs', 'A-Spades', '4-Spades', '3-Hearts', '2-Diamonds',
    ]
    assert state.version == version


def test_actions_do_not_mutate_input():
    hands = [['3-Clubs'], ['J-Hearts'], ['2-Clubs'], ['8-Diamonds']]
    state = playing_state(hands)
    new_state = engine.play_card(state, Card('3', 'Clubs'))

    assert new_state.version == state.version + 1
    assert state.players[0].hand == [Card('3', 'Clubs')]
    assert state.current_trick == []


def test_engine_acts_for_the_current_seat():
    state = dealt_state(dealer=0)
    state.current_player_index = 2
    with pytest.raises(GameError) as exc:
        engine.discard_trump_card(state, state.players[2].hand[0])
    assert exc.value.code == WRONG_PHASE

    state.phase = PHASE_PLAYING
    state.current_player_index = 1
    state.players_needing_discard = []
    with pytest.raises(GameError) as exc:
        engine.play_card(state, state.players[2].hand[0])
    assert exc.value.code == OWNERSHIP_MISMATCH


def test_validate_deck_detects_duplicates():
    state = dealt_state()
    engine.validate_deck(state)

    state.players[0].hand.append(state.players[1].hand[0])
    with pytest.raises(InvariantViolation):
        engine.validate_deck(state)


def test_update_player_identity_keeps_hand():
    state = dealt_state()
    hand = list(state.players[2].hand)
    updated = engine.update_player_identity(state, 2, 'Carol (CPU)', False)
    assert updated.players[2].name == 'Carol (CPU)'
    assert not updated.players[2].is_human
    assert updated.players[2].hand == hand
    assert updated.version == state.version
