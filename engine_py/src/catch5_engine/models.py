"""Game models and data structures"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional

from .constants import DEFAULT_DECK_COLOR, DEFAULT_TARGET_SCORE, PHASE_SETUP


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    @property
    def id(self) -> str:
        return f"{self.rank}-{self.suit}"

    def to_dict(self) -> dict:
        return {'rank': self.rank, 'suit': self.suit, 'id': self.id}

    @classmethod
    def from_dict(cls, data: dict) -> 'Card':
        return cls(rank=str(data['rank']), suit=str(data['suit']))

    @classmethod
    def from_id(cls, card_id: str) -> 'Card':
        rank, _, suit = card_id.partition('-')
        return cls(rank=rank, suit=suit)


@dataclass
class Player:
    id: str
    name: str
    team_id: str
    is_human: bool = False
    hand: List[Card] = field(default_factory=list)
    bid: Optional[int] = None  # None until the seat has acted, 0 = pass
    tricks_won: List[Card] = field(default_factory=list)  # captured cards, flat


@dataclass
class Team:
    id: str
    name: str
    score: int = 0
    player_ids: List[str] = field(default_factory=list)


@dataclass
class TrickCard:
    player_id: str
    card: Card


@dataclass
class CategoryAward:
    """Winner of one scoring category (High, Low, Jack, Five or Game)."""
    team_id: str
    card: Optional[Card] = None
    points: Optional[int] = None  # game-point total, Game category only


@dataclass
class GameBreakdown:
    aces: int = 0
    kings: int = 0
    queens: int = 0
    jacks: int = 0
    tens: int = 0
    total: int = 0


@dataclass
class RoundScore:
    team_points: Dict[str, int] = field(default_factory=dict)
    high: Optional[CategoryAward] = None
    low: Optional[CategoryAward] = None
    jack: Optional[CategoryAward] = None
    five: Optional[CategoryAward] = None
    game: Optional[CategoryAward] = None
    game_breakdown: Dict[str, GameBreakdown] = field(default_factory=dict)
    details: Dict[str, List[str]] = field(default_factory=dict)  # human-readable lines per team


@dataclass
class GameState:
    players: List[Player]
    teams: List[Team]
    phase: str = PHASE_SETUP
    version: int = 0
    current_player_index: int = 0
    dealer_index: int = 0
    lead_player_index: int = 0
    trump_suit: Optional[str] = None
    high_bid: int = 0
    bidder_id: Optional[str] = None
    current_trick: List[TrickCard] = field(default_factory=list)
    last_trick: List[TrickCard] = field(default_factory=list)
    last_trick_winner_id: Optional[str] = None
    trick_number: int = 1
    stock: List[Card] = field(default_factory=list)
    discard_pile: List[Card] = field(default_factory=list)
    slept_cards: List[Card] = field(default_factory=list)  # display copy of the stock left after the draw
    players_needing_discard: List[int] = field(default_factory=list)
    round_scores: Dict[str, int] = field(default_factory=dict)
    round_score_details: Optional[RoundScore] = None
    target_score: int = DEFAULT_TARGET_SCORE
    deck_color: str = DEFAULT_DECK_COLOR
    dealer_draw_cards: List[TrickCard] = field(default_factory=list)
    turn_start_time: Optional[float] = None
    auto_claimer_id: Optional[str] = None

    def get_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def index_of(self, player_id: Optional[str]) -> int:
        for index, player in enumerate(self.players):
            if player.id == player_id:
                return index
        return -1

    def get_team(self, team_id: Optional[str]) -> Optional[Team]:
        for team in self.teams:
            if team.id == team_id:
                return team
        return None

    @property
    def current_player(self) -> Player:
        return self.players[self.current_player_index]

    @property
    def bidder_team_id(self) -> Optional[str]:
        bidder = self.get_player(self.bidder_id) if self.bidder_id else None
        return bidder.team_id if bidder else None
