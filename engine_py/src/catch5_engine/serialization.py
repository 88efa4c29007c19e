"""
State serialization and sanitization utilities.
"""

from typing import Any, Dict, List, Optional

from .constants import PHASE_GAME_OVER, PHASE_SCORING
from .models import CategoryAward, Card, GameState, RoundScore, TrickCard

HIDDEN_CARD = {'rank': '2', 'suit': 'Spades', 'id': 'hidden'}


def serialize_cards(cards: List[Card]) -> List[Dict[str, str]]:
    return [card.to_dict() for card in cards]


def serialize_trick(trick: List[TrickCard]) -> List[Dict[str, Any]]:
    return [{'playerId': tc.player_id, 'card': tc.card.to_dict()} for tc in trick]


def _serialize_award(award: Optional[CategoryAward]) -> Optional[Dict[str, Any]]:
    if award is None:
        return None
    data: Dict[str, Any] = {'teamId': award.team_id}
    if award.card is not None:
        data['card'] = award.card.to_dict()
    if award.points is not None:
        data['points'] = award.points
    return data


def serialize_round_score(score: Optional[RoundScore]) -> Optional[Dict[str, Any]]:
    """Convert a round breakdown to the wire format used by the score screen."""
    if score is None:
        return None
    return {
        'teamPoints': dict(score.team_points),
        'high': _serialize_award(score.high),
        'low': _serialize_award(score.low),
        'jack': _serialize_award(score.jack),
        'five': _serialize_award(score.five),
        'game': _serialize_award(score.game),
        'gameBreakdown': {
            team_id: {
                'aces': b.aces,
                'kings': b.kings,
                'queens': b.queens,
                'jacks': b.jacks,
                'tens': b.tens,
                'total': b.total,
            }
            for team_id, b in score.game_breakdown.items()
        },
        'details': {team_id: list(lines) for team_id, lines in score.details.items()},
    }


def sanitize_state(state: GameState, viewer_seat: Optional[int] = None) -> Dict[str, Any]:
    """
    Sanitize game state for transmission to clients.

    Args:
        state: Game state to sanitize
        viewer_seat: Seat whose hand may be shown, or None for spectators

    Returns:
        Sanitized state dictionary safe for JSON transmission
    """
    show_slept = state.phase in (PHASE_SCORING, PHASE_GAME_OVER)

    players = []
    for index, player in enumerate(state.players):
        sanitized_player: Dict[str, Any] = {
            'id': player.id,
            'name': player.name,
            'isHuman': player.is_human,
            'teamId': player.team_id,
            'bid': player.bid,
            'tricksWon': serialize_cards(player.tricks_won),
        }

        # Show full hand only to the viewer
        if index == viewer_seat:
            sanitized_player['hand'] = serialize_cards(player.hand)
        else:
            sanitized_player['hand'] = [dict(HIDDEN_CARD) for _ in player.hand]
            if state.trump_suit:
                sanitized_player['trumpCount'] = sum(1 for c in player.hand if c.suit == state.trump_suit)

        players.append(sanitized_player)

    return {
        'version': state.version,
        'phase': state.phase,
        'players': players,
        'teams': [
            {'id': t.id, 'name': t.name, 'score': t.score, 'playerIds': list(t.player_ids)}
            for t in state.teams
        ],
        'currentPlayerIndex': state.current_player_index,
        'dealerIndex': state.dealer_index,
        'leadPlayerIndex': state.lead_player_index,
        'trumpSuit': state.trump_suit,
        'highBid': state.high_bid,
        'bidderId': state.bidder_id,
        'currentTrick': serialize_trick(state.current_trick),
        'lastTrick': serialize_trick(state.last_trick),
        'lastTrickWinnerId': state.last_trick_winner_id,
        'trickNumber': state.trick_number,
        'stockCount': len(state.stock),
        'discardCount': len(state.discard_pile),
        'sleptCards': serialize_cards(state.slept_cards) if show_slept else [],
        'playersNeedingDiscard': list(state.players_needing_discard),
        'roundScores': dict(state.round_scores),
        'roundScoreDetails': serialize_round_score(state.round_score_details),
        'targetScore': state.target_score,
        'deckColor': state.deck_color,
        'dealerDrawCards': serialize_trick(state.dealer_draw_cards),
        'turnStartTime': state.turn_start_time,
        'autoClaimerId': state.auto_claimer_id,
    }


def serialize_state_for_seat(state: GameState, seat_index: int) -> Dict[str, Any]:
    return sanitize_state(state, viewer_seat=seat_index)


def serialize_state_for_spectator(state: GameState) -> Dict[str, Any]:
    return sanitize_state(state, viewer_seat=None)
