"""
Round scoring for Catch 5.

Five categories are awarded per round to the team that captured them:
High, Low, Jack and Game are worth one point each, the Five of trump is worth
five. Game goes to the team with the larger card-point total and is withheld
on a tie.
"""

from typing import Dict, List, Optional

from .comparator import get_rank_index
from .constants import CARD_VALUES
from .models import CategoryAward, GameBreakdown, GameState, Player, RoundScore, Team


def _game_breakdown(cards) -> GameBreakdown:
    breakdown = GameBreakdown()
    for card in cards:
        if card.rank == 'A':
            breakdown.aces += 1
        elif card.rank == 'K':
            breakdown.kings += 1
        elif card.rank == 'Q':
            breakdown.queens += 1
        elif card.rank == 'J':
            breakdown.jacks += 1
        elif card.rank == '10':
            breakdown.tens += 1
        breakdown.total += CARD_VALUES[card.rank]
    return breakdown


def calculate_round_scores(players: List[Player], teams: List[Team], trump_suit: str) -> RoundScore:
    """
    Score the cards each team has captured so far this round.

    Args:
        players: Players with their captured ``tricks_won``
        teams: The two teams
        trump_suit: Trump for the round

    Returns:
        RoundScore with per-team points and the category winners
    """
    score = RoundScore()
    for team in teams:
        score.team_points[team.id] = 0
        score.details[team.id] = []

    captured: Dict[str, list] = {team.id: [] for team in teams}
    for player in players:
        captured.setdefault(player.team_id, []).extend(player.tricks_won)

    trumps = []
    for team_id, cards in captured.items():
        for card in cards:
            if card.suit != trump_suit:
                continue
            trumps.append((team_id, card))
            if card.rank == '5':
                score.five = CategoryAward(team_id=team_id, card=card)
                score.team_points[team_id] += 5
                score.details[team_id].append('Caught the 5! (+5)')
            elif card.rank == 'J':
                score.jack = CategoryAward(team_id=team_id, card=card)
                score.team_points[team_id] += 1
                score.details[team_id].append('Won the Jack (+1)')

    if trumps:
        trumps.sort(key=lambda entry: get_rank_index(entry[1].rank))
        low_team, low_card = trumps[0]
        high_team, high_card = trumps[-1]
        score.high = CategoryAward(team_id=high_team, card=high_card)
        score.team_points[high_team] += 1
        score.details[high_team].append(f'Won High with {high_card.rank} (+1)')
        score.low = CategoryAward(team_id=low_team, card=low_card)
        score.team_points[low_team] += 1
        score.details[low_team].append(f'Won Low with {low_card.rank} (+1)')

    best_total = -1
    game_winner: Optional[str] = None
    for team_id, cards in captured.items():
        breakdown = _game_breakdown(cards)
        score.game_breakdown[team_id] = breakdown
        if breakdown.total > best_total:
            best_total = breakdown.total
            game_winner = team_id
        elif breakdown.total == best_total:
            game_winner = None

    if game_winner is not None:
        score.game = CategoryAward(team_id=game_winner, points=best_total)
        score.team_points[game_winner] += 1
        score.details[game_winner].append(f'Won Game ({best_total} pts) (+1)')

    return score


def apply_round_result(teams: List[Team], score: RoundScore, bidder_team_id: Optional[str],
                       high_bid: int, apply_set_penalty: bool = True) -> List[Team]:
    """
    Add a round's points to the cumulative team scores.

    A bidding team that captured fewer points than its bid loses the full bid
    instead. Opponents always keep what they captured.
    """
    for team in teams:
        points = score.team_points.get(team.id, 0)
        if apply_set_penalty and team.id == bidder_team_id and points < high_bid:
            points = -high_bid
        team.score += points
    return teams


def check_game_over(state: GameState) -> bool:
    """Any team at or above the target score ends the game."""
    return any(team.score >= state.target_score for team in state.teams)


def get_winning_team(state: GameState) -> Optional[Team]:
    """
    Decide the winner of a finished game.

    If both teams reached the target, the bidding team wins when it made its
    bid this round. Otherwise the higher score wins and a tie goes to the
    non-bidders.
    """
    at_target = [team for team in state.teams if team.score >= state.target_score]

    if not at_target:
        best = max(team.score for team in state.teams)
        leaders = [team for team in state.teams if team.score == best]
        return leaders[0] if len(leaders) == 1 else None

    if len(at_target) == 1:
        return at_target[0]

    bidder_team_id = state.bidder_team_id
    bidder_team = next((t for t in at_target if t.id == bidder_team_id), None)
    other_team = next((t for t in at_target if t.id != bidder_team_id), None)

    if bidder_team is not None and state.round_scores.get(bidder_team.id, 0) >= state.high_bid:
        return bidder_team
    if bidder_team is not None and other_team is not None:
        return bidder_team if bidder_team.score > other_team.score else other_team
    return at_target[0]
