"""
Per-player statistics recorded when a round or game finishes.

Stats are keyed by the client's out-of-band user id when it sent one, falling
back to the seat's reconnect token. Write failures are logged and never reach
the game.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Set, Tuple

from sqlalchemy import Integer, String, select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .constants import PHASE_GAME_OVER, PHASE_SCORING
from .models import GameState

logger = logging.getLogger(__name__)

STAT_FIELDS = (
    'totalPointsScored', 'bidsMade', 'bidsSucceeded', 'timesSet',
    'highestBid', 'highestBidMade', 'gamesPlayed', 'gamesWon',
)

# Fields that keep the maximum instead of adding up
MAX_FIELDS = ('highestBid', 'highestBidMade')


def empty_stats() -> Dict[str, int]:
    return {name: 0 for name in STAT_FIELDS}


def merge_increments(current: Dict[str, int], increments: Dict[str, int]) -> Dict[str, int]:
    merged = dict(current)
    for name, value in increments.items():
        if name in MAX_FIELDS:
            merged[name] = max(merged.get(name, 0), value)
        else:
            merged[name] = merged.get(name, 0) + value
    return merged


class StatsStore(ABC):
    @abstractmethod
    async def increment(self, user_id: str, increments: Dict[str, int]) -> None:
        pass

    @abstractmethod
    async def get(self, user_id: str) -> Optional[Dict[str, int]]:
        pass

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        pass


class MemoryStatsStore(StatsStore):
    def __init__(self):
        self._stats: Dict[str, Dict[str, int]] = {}

    async def increment(self, user_id: str, increments: Dict[str, int]) -> None:
        self._stats[user_id] = merge_increments(self._stats.get(user_id, empty_stats()), increments)

    async def get(self, user_id: str) -> Optional[Dict[str, int]]:
        stats = self._stats.get(user_id)
        return dict(stats) if stats is not None else None


class Base(DeclarativeBase):
    pass


class PlayerStats(Base):
    __tablename__ = "player_stats"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    total_points_scored: Mapped[int] = mapped_column(Integer, default=0)
    bids_made: Mapped[int] = mapped_column(Integer, default=0)
    bids_succeeded: Mapped[int] = mapped_column(Integer, default=0)
    times_set: Mapped[int] = mapped_column(Integer, default=0)
    highest_bid: Mapped[int] = mapped_column(Integer, default=0)
    highest_bid_made: Mapped[int] = mapped_column(Integer, default=0)
    games_played: Mapped[int] = mapped_column(Integer, default=0)
    games_won: Mapped[int] = mapped_column(Integer, default=0)


COLUMN_FOR_FIELD = {
    'totalPointsScored': 'total_points_scored',
    'bidsMade': 'bids_made',
    'bidsSucceeded': 'bids_succeeded',
    'timesSet': 'times_set',
    'highestBid': 'highest_bid',
    'highestBidMade': 'highest_bid_made',
    'gamesPlayed': 'games_played',
    'gamesWon': 'games_won',
}


class SqlStatsStore(StatsStore):
    """Stats in a SQL database through async SQLAlchemy (e.g. sqlite+aiosqlite)."""

    def __init__(self, database_url: str):
        self.engine: AsyncEngine = create_async_engine(database_url, echo=False)
        self.session_maker = async_sessionmaker(self.engine, expire_on_commit=False)

    async def init(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Stats database initialized")

    async def close(self) -> None:
        await self.engine.dispose()

    @staticmethod
    def _to_dict(row: PlayerStats) -> Dict[str, int]:
        return {name: getattr(row, column) or 0 for name, column in COLUMN_FOR_FIELD.items()}

    async def increment(self, user_id: str, increments: Dict[str, int]) -> None:
        async with self.session_maker() as session:
            result = await session.execute(select(PlayerStats).where(PlayerStats.user_id == user_id))
            row = result.scalar_one_or_none()
            if row is None:
                row = PlayerStats(user_id=user_id, **{column: 0 for column in COLUMN_FOR_FIELD.values()})
                session.add(row)

            merged = merge_increments(self._to_dict(row), increments)
            for name, value in merged.items():
                setattr(row, COLUMN_FOR_FIELD[name], value)
            await session.commit()

    async def get(self, user_id: str) -> Optional[Dict[str, int]]:
        async with self.session_maker() as session:
            result = await session.execute(select(PlayerStats).where(PlayerStats.user_id == user_id))
            row = result.scalar_one_or_none()
            return self._to_dict(row) if row is not None else None


def create_stats_store(database_url: Optional[str]) -> StatsStore:
    if database_url:
        return SqlStatsStore(database_url)
    return MemoryStatsStore()


class StatsTracker:
    """Turns finished rounds into stat increments, at most once per round."""

    def __init__(self, store: StatsStore):
        self.store = store
        self._processed: Set[Tuple[str, int, int]] = set()

    def build_increments(self, state: GameState, seat_index: int) -> Dict[str, int]:
        player = state.players[seat_index]
        team_points = state.round_scores.get(player.team_id, 0)
        bidder_points = state.round_scores.get(state.bidder_team_id, 0) if state.bidder_team_id else 0
        bid_made = bidder_points >= state.high_bid

        increments = {'totalPointsScored': team_points}
        if player.id == state.bidder_id:
            increments['bidsMade'] = 1
            increments['highestBid'] = state.high_bid
            if bid_made:
                increments['bidsSucceeded'] = 1
                increments['highestBidMade'] = state.high_bid
            else:
                increments['timesSet'] = 1

        # Games only count when every seat is human
        if state.phase == PHASE_GAME_OVER and all(p.is_human for p in state.players):
            team = state.get_team(player.team_id)
            increments['gamesPlayed'] = 1
            if team is not None and team.score >= state.target_score:
                increments['gamesWon'] = 1
        return increments

    async def record_round(self, room_code: str, game_instance: int, state: GameState,
                           seats: Iterable[Tuple[int, str]]) -> None:
        """
        Record the round that just finished.

        Args:
            room_code: Room the game belongs to
            game_instance: Counter that changes with every new game in the room
            state: State in ``scoring`` or ``game-over``
            seats: (seat_index, stats key) for every human seat to credit
        """
        if state.phase not in (PHASE_SCORING, PHASE_GAME_OVER):
            return
        key = (room_code, game_instance, state.version)
        if key in self._processed:
            logger.debug(f"Skipping duplicate stats update for {key}")
            return
        self._processed.add(key)

        for seat_index, stats_key in seats:
            if not state.players[seat_index].is_human:
                continue
            try:
                await self.store.increment(stats_key, self.build_increments(state, seat_index))
            except Exception:
                logger.exception(f"Failed to update stats for {stats_key}")

    def forget_room(self, room_code: str) -> None:
        self._processed = {key for key in self._processed if key[0] != room_code}
