"""
A single game room: seats, sessions, turn scheduling, chat and spectators.

Every mutation happens under the room's asyncio.Lock, and the resulting
broadcast is sent before the lock is released so every client sees updates in
commit order.
"""

import asyncio
import logging
import random
import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from . import engine
from .bots.base import BaseBot
from .bots.heuristic import HeuristicBot
from .bots.timeout import TimeoutBot
from .chat import ChatLog
from .constants import (
    ACTION_BID, ACTION_CONTINUE, ACTION_DISCARD_TRUMP, ACTION_FINALIZE_DEALER_DRAW,
    ACTION_PURGE_DRAW_COMPLETE, ACTION_SELECT_TRUMP,
    ACTION_SORT_HAND, CPU_NAMES, NAME_MAX_LENGTH, NUM_SEATS, PHASE_DEALER_DRAW,
    PHASE_GAME_OVER, PHASE_PLAYING, PHASE_PURGE_DRAW, PHASE_SCORING, PHASE_SETUP,
    TURN_ACTIONS, TURN_PHASES,
)
from .errors import (
    ACTION_NOT_ALLOWED, GAME_IN_PROGRESS, GameError, INVALID_EVENT, INVALID_SEAT,
    NAME_REQUIRED, NO_ACTIVE_GAME, NOT_ENOUGH_PLAYERS, NOT_HOST, NOT_IN_ROOM,
    ROOM_FULL, SEAT_EMPTY, SEAT_TAKEN, SESSION_EXPIRED, UNKNOWN_ACTION,
)
from .models import Card, GameState
from .rules import RuleConfig
from .serialization import serialize_state_for_seat, serialize_state_for_spectator
from .settings import Settings
from .stats import StatsTracker
from .validate import validate_bid, validate_discard, validate_play, validate_trump
from .ws.events import (
    ChatMessageEvent, GameStateEvent, OutboundEventType, SeatsUpdatedEvent,
    SpectatingEvent, SpectatorCountEvent, create_room_notice_event,
    create_seat_notice_event, create_session_event,
)

logger = logging.getLogger(__name__)

SEAT_EMPTY_KIND = 'empty'
SEAT_HUMAN = 'human'
SEAT_CPU = 'cpu'


@dataclass
class Seat:
    index: int
    kind: str = SEAT_EMPTY_KIND
    name: str = ''
    token: Optional[str] = None
    user_id: Optional[str] = None
    connection: Any = None
    disconnected_at: Optional[float] = None

    @property
    def is_human(self) -> bool:
        return self.kind == SEAT_HUMAN

    @property
    def connected(self) -> bool:
        return self.is_human and self.connection is not None

    def clear(self) -> None:
        self.kind = SEAT_EMPTY_KIND
        self.name = ''
        self.token = None
        self.user_id = None
        self.connection = None
        self.disconnected_at = None

    def make_cpu(self, name: str) -> None:
        self.clear()
        self.kind = SEAT_CPU
        self.name = name


@dataclass
class Spectator:
    id: str
    name: str
    connection: Any


def clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise GameError(NAME_REQUIRED, "A player name is required")
    return name.strip()[:NAME_MAX_LENGTH]


def _parse_card(raw: Any) -> Card:
    """Accept a card as {rank, suit}, {id} or an id string."""
    try:
        if isinstance(raw, str):
            return Card.from_id(raw)
        if isinstance(raw, dict):
            if 'rank' in raw and 'suit' in raw:
                return Card.from_dict(raw)
            if 'id' in raw:
                return Card.from_id(str(raw['id']))
    except (KeyError, TypeError):
        pass
    raise GameError(INVALID_EVENT, "A card must be given as {rank, suit}")


class Room:
    def __init__(self, code: str, settings: Settings, rules: RuleConfig,
                 stats: Optional[StatsTracker] = None,
                 on_expire: Optional[Callable[[str], Awaitable[None]]] = None,
                 rng: Optional[random.Random] = None):
        self.code = code
        self.id = uuid.uuid4().hex
        self.settings = settings
        self.rules = rules
        self.stats = stats
        self.on_expire = on_expire
        self.rng = rng or random.Random()

        self.seats: List[Seat] = [Seat(index=i) for i in range(NUM_SEATS)]
        self.host_token: Optional[str] = None
        self.spectators: Dict[str, Spectator] = {}
        self.chat = ChatLog(settings.chat_history_limit, settings.chat_max_length)
        self.game_state: GameState = engine.initialize_game(rules.deck_color, rules.target_score)
        self.game_instance = 0

        self.created_at = time.time()
        self.last_activity = self.created_at
        self.lock = asyncio.Lock()
        self.closed = False

        self.cpu_bot: BaseBot = HeuristicBot(rules.cpu, self.rng)
        self.timeout_bot: BaseBot = TimeoutBot()
        self.turn_task: Optional[asyncio.Task] = None
        self.idle_task: Optional[asyncio.Task] = None
        self.grace_tasks: Dict[int, asyncio.Task] = {}

    # Queries

    @property
    def started(self) -> bool:
        return self.game_state.phase != PHASE_SETUP

    def seat_for_token(self, token: Optional[str]) -> Optional[Seat]:
        if not token:
            return None
        for seat in self.seats:
            if seat.is_human and seat.token == token:
                return seat
        return None

    def host_seat_index(self) -> Optional[int]:
        seat = self.seat_for_token(self.host_token)
        return seat.index if seat else None

    def seats_view(self) -> List[Dict[str, Any]]:
        host_index = self.host_seat_index()
        return [
            {
                'seatIndex': seat.index,
                'kind': seat.kind,
                'playerName': seat.name or None,
                'connected': seat.connected if seat.is_human else seat.kind == SEAT_CPU,
                'isHost': seat.index == host_index,
            }
            for seat in self.seats
        ]

    def has_connected_human(self) -> bool:
        return any(seat.connected for seat in self.seats)

    def preview(self) -> Dict[str, Any]:
        open_seat = any(seat.kind != SEAT_HUMAN for seat in self.seats)
        return {
            'room_code': self.code,
            'exists': True,
            'phase': self.game_state.phase,
            'seats': self.seats_view(),
            'spectator_count': len(self.spectators),
            'can_join': not self.started and open_seat,
        }

    def summary(self) -> Dict[str, Any]:
        """Listing entry for spectators browsing live games."""
        return {
            'roomCode': self.code,
            'phase': self.game_state.phase,
            'players': [seat.name for seat in self.seats],
            'scores': {team.id: team.score for team in self.game_state.teams},
            'spectatorCount': len(self.spectators),
        }

    # Messaging

    async def _send(self, connection, event) -> None:
        if connection is None:
            return
        try:
            await connection.send(event)
        except Exception:
            logger.exception(f"Room {self.code}: failed to send {event.type}")

    async def _broadcast(self, event, exclude=None) -> None:
        for seat in self.seats:
            if seat.connected and seat.connection is not exclude:
                await self._send(seat.connection, event)
        for spectator in list(self.spectators.values()):
            if spectator.connection is not exclude:
                await self._send(spectator.connection, event)

    async def _broadcast_seats(self) -> None:
        await self._broadcast(SeatsUpdatedEvent(seats=self.seats_view(), host_seat_index=self.host_seat_index()))

    async def _send_state_to_seat(self, seat: Seat) -> None:
        if seat.connected:
            state = serialize_state_for_seat(self.game_state, seat.index)
            await self._send(seat.connection, GameStateEvent(game_state=state))

    async def _broadcast_state(self) -> None:
        for seat in self.seats:
            await self._send_state_to_seat(seat)
        if self.spectators:
            event = GameStateEvent(game_state=serialize_state_for_spectator(self.game_state))
            for spectator in list(self.spectators.values()):
                await self._send(spectator.connection, event)

    def _session_event(self, event_type: OutboundEventType, seat: Seat):
        return create_session_event(
            event_type,
            room_code=self.code,
            player_token=seat.token,
            seat_index=seat.index,
            is_host=seat.token == self.host_token,
            seats=self.seats_view(),
            game_state=serialize_state_for_seat(self.game_state, seat.index),
            chat_messages=self.chat.history(),
        )

    def _touch(self) -> None:
        self.last_activity = time.time()

    # Seat management

    def _require_host(self, token: Optional[str]) -> Seat:
        seat = self.seat_for_token(token)
        if seat is None:
            raise GameError(NOT_IN_ROOM, "You are not seated in this room")
        if token != self.host_token:
            raise GameError(NOT_HOST, "Only the host can do that")
        return seat

    def _require_lobby(self) -> None:
        if self.started:
            raise GameError(GAME_IN_PROGRESS, "The game has already started")

    @staticmethod
    def _check_seat_index(seat_index: Any) -> int:
        if isinstance(seat_index, bool) or not isinstance(seat_index, int) or not 0 <= seat_index < NUM_SEATS:
            raise GameError(INVALID_SEAT, f"Seat must be between 0 and {NUM_SEATS - 1}")
        return seat_index

    def _pick_seat(self, preferred: Optional[int]) -> Seat:
        if preferred is not None:
            seat = self.seats[self._check_seat_index(preferred)]
            if seat.kind != SEAT_HUMAN:
                return seat
        for seat in self.seats:
            if seat.kind == SEAT_EMPTY_KIND:
                return seat
        for seat in self.seats:
            if seat.kind == SEAT_CPU:
                return seat
        raise GameError(ROOM_FULL, "This room is full")

    def _refresh_lobby_state(self) -> None:
        """Rebuild the pre-game state so names and seat kinds match the seats."""
        if self.started:
            return
        self.game_state = engine.initialize_game(
            self.rules.deck_color,
            self.rules.target_score,
            names=[seat.name or f"Seat {seat.index + 1}" for seat in self.seats],
            humans=[seat.is_human for seat in self.seats],
        )

    def _next_cpu_name(self) -> str:
        taken = {seat.name for seat in self.seats}
        for name in CPU_NAMES:
            if name not in taken:
                return name
        return f"CPU {self.rng.randint(100, 999)}"

    def _transfer_host(self) -> None:
        if self.seat_for_token(self.host_token) is not None:
            return
        candidates = [s for s in self.seats if s.connected] or [s for s in self.seats if s.is_human]
        self.host_token = candidates[0].token if candidates else None
        if candidates:
            logger.info(f"Room {self.code}: host passed to seat {candidates[0].index}")

    def _hand_seat_to_cpu(self, seat: Seat) -> None:
        """Convert a human seat to a CPU mid-game; hand and score stay with the seat."""
        cpu_name = f"{seat.name} (CPU)" if seat.name else self._next_cpu_name()
        self._cancel_grace(seat.index)
        seat.make_cpu(cpu_name)
        self.game_state = engine.update_player_identity(self.game_state, seat.index, cpu_name, False)
        self._transfer_host()

    async def join(self, connection, name: Any, token: Optional[str] = None,
                   preferred_seat: Optional[int] = None, user_id: Optional[str] = None,
                   created: bool = False) -> Seat:
        """
        Seat a player, or rebind them if ``token`` still owns a seat.

        Joining a game in progress is only possible as a reconnect.
        """
        async with self.lock:
            existing = self.seat_for_token(token)
            if existing is not None:
                await self._rebind(existing, connection)
                return existing
            if any(seat.is_human and seat.connection is connection for seat in self.seats):
                raise GameError(ACTION_NOT_ALLOWED, "You already hold a seat in this room")
            if self.started:
                if token:
                    raise GameError(SESSION_EXPIRED, "Your seat in this game is no longer available", clear_session=True)
                raise GameError(GAME_IN_PROGRESS, "The game has already started")

            player_name = clean_name(name)
            seat = self._pick_seat(preferred_seat)
            seat.clear()
            seat.kind = SEAT_HUMAN
            seat.name = player_name
            seat.token = secrets.token_urlsafe(24)
            seat.user_id = user_id
            seat.connection = connection
            if self.host_token is None or self.seat_for_token(self.host_token) is None:
                self.host_token = seat.token
            self._refresh_lobby_state()
            self._touch()
            logger.info(f"Room {self.code}: {player_name} joined seat {seat.index}")

            event_type = OutboundEventType.ROOM_CREATED if created else OutboundEventType.JOINED
            await self._send(connection, self._session_event(event_type, seat))
            await self._broadcast(
                create_seat_notice_event(OutboundEventType.PLAYER_JOINED, seat.index, player_name),
                exclude=connection,
            )
            await self._broadcast_seats()
            self._update_idle_timer()
            return seat

    async def rejoin(self, connection, token: Optional[str]) -> Seat:
        """Rebind a reconnecting client to its seat. Turn and score are untouched."""
        async with self.lock:
            seat = self.seat_for_token(token)
            if seat is None:
                raise GameError(SESSION_EXPIRED, "Your session has expired", clear_session=True)
            await self._rebind(seat, connection)
            return seat

    async def _rebind(self, seat: Seat, connection) -> None:
        previous = seat.connection
        seat.connection = connection
        seat.disconnected_at = None
        self._cancel_grace(seat.index)
        self._touch()
        logger.info(f"Room {self.code}: {seat.name} rejoined seat {seat.index}")

        if previous is not None and previous is not connection:
            await self._send(previous, create_room_notice_event(
                OutboundEventType.KICKED, self.code, "Signed in from another connection"))

        await self._send(connection, self._session_event(OutboundEventType.REJOINED, seat))
        await self._broadcast(
            create_seat_notice_event(OutboundEventType.PLAYER_RECONNECTED, seat.index, seat.name),
            exclude=connection,
        )
        await self._broadcast_seats()
        self._update_idle_timer()

    async def leave(self, token: Optional[str]) -> None:
        async with self.lock:
            seat = self.seat_for_token(token)
            if seat is None:
                raise GameError(NOT_IN_ROOM, "You are not seated in this room")
            connection = seat.connection
            name = seat.name
            if self.started:
                self._hand_seat_to_cpu(seat)
            else:
                self._cancel_grace(seat.index)
                seat.clear()
                self._transfer_host()
                self._refresh_lobby_state()
            self._touch()
            logger.info(f"Room {self.code}: {name} left seat {seat.index}")

            await self._send(connection, create_room_notice_event(OutboundEventType.LEFT, self.code))
            await self._broadcast_seats()
            if self.started:
                await self._broadcast_state()
                self._schedule_turn()
            self._update_idle_timer()

    async def add_cpu(self, token: Optional[str], seat_index: Any) -> None:
        async with self.lock:
            self._require_host(token)
            self._require_lobby()
            seat = self.seats[self._check_seat_index(seat_index)]
            if seat.kind != SEAT_EMPTY_KIND:
                raise GameError(SEAT_TAKEN, "That seat is taken")
            seat.make_cpu(self._next_cpu_name())
            self._refresh_lobby_state()
            self._touch()
            logger.info(f"Room {self.code}: {seat.name} added to seat {seat.index}")
            await self._broadcast_seats()

    async def remove_cpu(self, token: Optional[str], seat_index: Any) -> None:
        async with self.lock:
            self._require_host(token)
            self._require_lobby()
            seat = self.seats[self._check_seat_index(seat_index)]
            if seat.kind != SEAT_CPU:
                raise GameError(SEAT_EMPTY, "There is no CPU in that seat")
            seat.clear()
            self._refresh_lobby_state()
            self._touch()
            await self._broadcast_seats()

    def _swap(self, first: int, second: int) -> None:
        a, b = self.seats[first], self.seats[second]
        self._cancel_grace(first)
        self._cancel_grace(second)
        fields = ('kind', 'name', 'token', 'user_id', 'connection', 'disconnected_at')
        for field_name in fields:
            value_a, value_b = getattr(a, field_name), getattr(b, field_name)
            setattr(a, field_name, value_b)
            setattr(b, field_name, value_a)

    async def swap_seats(self, token: Optional[str], seat1: Any, seat2: Any) -> None:
        async with self.lock:
            self._require_host(token)
            self._require_lobby()
            first, second = self._check_seat_index(seat1), self._check_seat_index(seat2)
            if first != second:
                self._swap(first, second)
                self._refresh_lobby_state()
            self._touch()
            await self._broadcast_seats()
            await self._send_seat_positions()

    async def randomize_teams(self, token: Optional[str]) -> None:
        async with self.lock:
            self._require_host(token)
            self._require_lobby()
            order = list(range(NUM_SEATS))
            self.rng.shuffle(order)
            snapshot = [
                (s.kind, s.name, s.token, s.user_id, s.connection, s.disconnected_at)
                for s in self.seats
            ]
            for index in range(NUM_SEATS):
                self._cancel_grace(index)
            for seat_index, source in enumerate(order):
                seat = self.seats[seat_index]
                (seat.kind, seat.name, seat.token, seat.user_id,
                 seat.connection, seat.disconnected_at) = snapshot[source]
            self._refresh_lobby_state()
            self._touch()
            logger.info(f"Room {self.code}: teams randomized")
            await self._broadcast_seats()
            await self._send_seat_positions()

    async def _send_seat_positions(self) -> None:
        """Tell each human their (possibly new) seat after a reshuffle."""
        for seat in self.seats:
            if seat.connected:
                await self._send(seat.connection, self._session_event(OutboundEventType.JOINED, seat))

    async def kick_player(self, token: Optional[str], seat_index: Any) -> None:
        """
        Remove a player.

        Before the game any non-host seat can be cleared. During a game only a
        human seat disconnected for longer than the grace period can be kicked,
        and the CPU takes it over.
        """
        async with self.lock:
            host = self._require_host(token)
            seat = self.seats[self._check_seat_index(seat_index)]
            if seat.index == host.index:
                raise GameError(ACTION_NOT_ALLOWED, "You can't kick yourself")
            if seat.kind == SEAT_EMPTY_KIND:
                raise GameError(SEAT_EMPTY, "That seat is empty")

            connection = seat.connection
            name = seat.name
            if not self.started:
                self._cancel_grace(seat.index)
                seat.clear()
                self._refresh_lobby_state()
            else:
                if not seat.is_human or seat.connected or seat.disconnected_at is None:
                    raise GameError(ACTION_NOT_ALLOWED, "Only disconnected players can be removed during a game")
                if time.time() - seat.disconnected_at < self.settings.disconnect_grace_period:
                    raise GameError(ACTION_NOT_ALLOWED, "Give them a little longer to reconnect")
                self._hand_seat_to_cpu(seat)
            self._touch()
            logger.info(f"Room {self.code}: {name} was kicked from seat {seat.index}")

            await self._send(connection, create_room_notice_event(
                OutboundEventType.KICKED, self.code, "Removed by the host"))
            await self._broadcast_seats()
            if self.started:
                await self._broadcast_state()
                self._schedule_turn()

    async def start_game(self, token: Optional[str]) -> None:
        async with self.lock:
            self._require_host(token)
            self._require_lobby()
            if any(seat.kind == SEAT_EMPTY_KIND for seat in self.seats):
                raise GameError(NOT_ENOUGH_PLAYERS, "All four seats must be filled")
            self._start_new_game()
            self._touch()
            logger.info(f"Room {self.code}: game {self.game_instance} started")
            await self._broadcast_seats()
            await self._broadcast_state()

    def _start_new_game(self) -> None:
        self.game_instance += 1
        fresh = engine.initialize_game(
            self.rules.deck_color,
            self.rules.target_score,
            names=[seat.name for seat in self.seats],
            humans=[seat.is_human for seat in self.seats],
        )
        self.game_state = engine.start_dealer_draw(fresh, self.rng)

    # Game actions

    async def handle_action(self, token: Optional[str], action: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Apply a player action for the seat that owns ``token``."""
        async with self.lock:
            seat = self.seat_for_token(token)
            if seat is None:
                raise GameError(NOT_IN_ROOM, "You are not seated in this room")
            if not self.started:
                raise GameError(NO_ACTIVE_GAME, "The game has not started")
            self._touch()
            try:
                await self._apply_action(seat.index, action, data or {})
            except GameError as e:
                logger.warning(f"Room {self.code}: seat {seat.index} {action} rejected: {e.message}")
                raise

    async def _apply_action(self, seat_index: int, action: str, data: Dict[str, Any]) -> None:
        state = self.game_state

        if action == ACTION_SORT_HAND:
            self.game_state = engine.sort_hand(state, seat_index)
            await self._send_state_to_seat(self.seats[seat_index])
            return

        if action in TURN_ACTIONS:
            new_state = self._apply_turn_action(state, seat_index, action, data)
        elif action == ACTION_PURGE_DRAW_COMPLETE:
            if state.phase != PHASE_PURGE_DRAW:
                raise GameError(ACTION_NOT_ALLOWED, "Nothing to draw right now")
            new_state = engine.perform_purge_and_draw(state, self.rng)
        elif action in (ACTION_CONTINUE, ACTION_FINALIZE_DEALER_DRAW):
            new_state = self._continue(state, action)
        else:
            raise GameError(UNKNOWN_ACTION, f"Unknown action: {action}")

        await self._commit(new_state)

    def _apply_turn_action(self, state: GameState, seat_index: int, action: str,
                           data: Dict[str, Any]) -> GameState:
        if action == ACTION_BID:
            amount = data.get('amount', data.get('bid'))
            result = validate_bid(state, seat_index, amount)
            if not result:
                raise GameError(result.error_code, result.error_message)
            return engine.process_bid(state, result.value)

        if action == ACTION_SELECT_TRUMP:
            result = validate_trump(state, seat_index, data.get('suit'))
            if not result:
                raise GameError(result.error_code, result.error_message)
            return engine.select_trump(state, result.value)

        card = _parse_card(data.get('card'))
        if action == ACTION_DISCARD_TRUMP:
            result = validate_discard(state, seat_index, card)
            if not result:
                raise GameError(result.error_code, result.error_message)
            return engine.discard_trump_card(state, result.value, self.rng)

        result = validate_play(state, seat_index, card)
        if not result:
            raise GameError(result.error_code, result.error_message)
        new_state = engine.play_card(state, result.value)
        if self.rules.auto_claim and new_state.phase == PHASE_PLAYING and not new_state.current_trick:
            claimer = engine.check_auto_claim(new_state)
            if claimer is not None:
                new_state = engine.apply_auto_claim(new_state, claimer)
        return new_state

    def _continue(self, state: GameState, action: str) -> GameState:
        if state.phase == PHASE_DEALER_DRAW:
            return engine.deal_cards(engine.finalize_dealer_draw(state), self.rng)
        if action == ACTION_CONTINUE and state.phase == PHASE_SCORING:
            return engine.start_new_round(state, self.rng)
        if action == ACTION_CONTINUE and state.phase == PHASE_GAME_OVER:
            self.game_instance += 1
            fresh = engine.initialize_game(
                self.rules.deck_color,
                self.rules.target_score,
                names=[p.name for p in state.players],
                humans=[p.is_human for p in state.players],
            )
            return engine.start_dealer_draw(fresh, self.rng)
        raise GameError(ACTION_NOT_ALLOWED, f"Can't continue during {state.phase}")

    async def _commit(self, new_state: GameState) -> None:
        previous_phase = self.game_state.phase
        if new_state.phase in TURN_PHASES or new_state.phase == PHASE_PURGE_DRAW:
            new_state.turn_start_time = time.time()
        else:
            new_state.turn_start_time = None
        self.game_state = new_state

        if new_state.phase != previous_phase:
            logger.info(f"Room {self.code}: {previous_phase} -> {new_state.phase}")

        await self._broadcast_state()
        await self._record_stats(previous_phase)
        self._schedule_turn()

    async def _record_stats(self, previous_phase: str) -> None:
        state = self.game_state
        if self.stats is None or state.phase not in (PHASE_SCORING, PHASE_GAME_OVER):
            return
        if previous_phase in (PHASE_SCORING, PHASE_GAME_OVER):
            return
        seats = [(seat.index, seat.user_id or seat.token) for seat in self.seats if seat.is_human]
        await self.stats.record_round(self.code, self.game_instance, state, seats)

    # Turn scheduling

    def _cancel_turn_task(self) -> None:
        task = self.turn_task
        self.turn_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _turn_delay(self, state: GameState, seat_index: int, is_cpu: bool) -> Optional[float]:
        if not is_cpu:
            return self.rules.human_turn_delay()
        delay = self.rules.cpu_delay + self.rng.uniform(0, self.rules.cpu_jitter)
        if state.phase == PHASE_PLAYING and not state.current_trick and state.last_trick:
            delay += self.rules.trick_pause
        return delay

    def _schedule_turn(self) -> None:
        """Replace the pending turn task with one for whoever acts now."""
        self._cancel_turn_task()
        state = self.game_state
        if self.closed:
            return

        if state.phase == PHASE_PURGE_DRAW:
            bidder_index = state.index_of(state.bidder_id)
            is_cpu = not state.players[bidder_index].is_human
            delay = self._turn_delay(state, bidder_index, is_cpu)
            action = ACTION_PURGE_DRAW_COMPLETE
            seat_index = bidder_index
        elif state.phase in TURN_PHASES:
            seat_index = state.current_player_index
            is_cpu = not state.players[seat_index].is_human
            delay = self._turn_delay(state, seat_index, is_cpu)
            action = None
        else:
            return

        if delay is None:
            return
        self.turn_task = asyncio.create_task(
            self._run_turn(state.version, seat_index, is_cpu, delay, action)
        )

    async def _run_turn(self, version: int, seat_index: int, is_cpu: bool, delay: float,
                        action: Optional[str]) -> None:
        await asyncio.sleep(delay)
        async with self.lock:
            state = self.game_state
            if self.closed or state.version != version:
                return
            if action is None and state.current_player_index != seat_index:
                return

            if action is None:
                bot = self.cpu_bot if is_cpu else self.timeout_bot
                bot_action = bot.choose_action(state, seat_index)
                if bot_action is None:
                    return
                action, data = bot_action.type, bot_action.data
                if is_cpu:
                    logger.info(f"Room {self.code}: CPU seat {seat_index} {bot_action}")
                else:
                    logger.info(f"Room {self.code}: seat {seat_index} timed out, auto {bot_action}")
            else:
                data = {}
                logger.info(f"Room {self.code}: auto {action}")

            try:
                await self._apply_action(seat_index, action, data)
            except GameError as e:
                logger.warning(f"Room {self.code}: scheduled {action} for seat {seat_index} rejected: {e.message}")
            except Exception:
                logger.exception(f"Room {self.code}: scheduled {action} for seat {seat_index} failed")

    # Chat and spectators

    async def send_chat(self, token: Optional[str], content: Any, chat_type: str = 'text') -> None:
        async with self.lock:
            seat = self.seat_for_token(token)
            if seat is None:
                raise GameError(NOT_IN_ROOM, "You are not seated in this room")
            message = self.chat.add(f"player{seat.index + 1}", seat.name, content, chat_type)
            if message is None:
                return
            self._touch()
            await self._broadcast(ChatMessageEvent(message=message.to_dict()))

    async def spectator_chat(self, spectator_id: str, content: Any, chat_type: str = 'text') -> None:
        async with self.lock:
            spectator = self.spectators.get(spectator_id)
            if spectator is None:
                raise GameError(NOT_IN_ROOM, "You are not watching this room")
            message = self.chat.add(f"spectator_{spectator.id}", spectator.name, content, chat_type)
            if message is None:
                return
            await self._broadcast(ChatMessageEvent(message=message.to_dict()))

    async def add_spectator(self, connection, name: Optional[str]) -> Spectator:
        async with self.lock:
            if not self.started:
                raise GameError(NO_ACTIVE_GAME, "There is no game to watch yet")
            spectator_id = uuid.uuid4().hex[:8]
            display = name.strip()[:NAME_MAX_LENGTH] if name and name.strip() else f"Spectator {spectator_id[:4]}"
            spectator = Spectator(id=spectator_id, name=display, connection=connection)
            self.spectators[spectator_id] = spectator
            logger.info(f"Room {self.code}: {display} is spectating")

            await self._send(connection, SpectatingEvent(
                room_code=self.code,
                spectator_id=spectator_id,
                seats=self.seats_view(),
                game_state=serialize_state_for_spectator(self.game_state),
                chat_messages=self.chat.history(),
            ))
            await self._broadcast(SpectatorCountEvent(count=len(self.spectators)))
            return spectator

    async def remove_spectator(self, spectator_id: str) -> None:
        async with self.lock:
            if self.spectators.pop(spectator_id, None) is not None:
                await self._broadcast(SpectatorCountEvent(count=len(self.spectators)))

    # Disconnects and expiry

    async def disconnect(self, connection) -> None:
        """A connection closed. Only the seat still bound to it is marked disconnected."""
        async with self.lock:
            if self.closed:
                return
            for spectator_id, spectator in list(self.spectators.items()):
                if spectator.connection is connection:
                    del self.spectators[spectator_id]
                    await self._broadcast(SpectatorCountEvent(count=len(self.spectators)))

            seat = next((s for s in self.seats if s.is_human and s.connection is connection), None)
            if seat is None:
                return

            seat.connection = None
            seat.disconnected_at = time.time()
            logger.info(f"Room {self.code}: {seat.name} disconnected from seat {seat.index}")
            await self._broadcast(create_seat_notice_event(
                OutboundEventType.PLAYER_DISCONNECTED, seat.index, seat.name))
            await self._broadcast_seats()

            if not self.started:
                self._cancel_grace(seat.index)
                self.grace_tasks[seat.index] = asyncio.create_task(
                    self._lobby_grace(seat.index, seat.token)
                )
            self._update_idle_timer()

    def _cancel_grace(self, seat_index: int) -> None:
        task = self.grace_tasks.pop(seat_index, None)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _lobby_grace(self, seat_index: int, token: Optional[str]) -> None:
        await asyncio.sleep(self.settings.lobby_grace_period)
        async with self.lock:
            self.grace_tasks.pop(seat_index, None)
            seat = self.seats[seat_index]
            if self.started or seat.token != token or seat.connected:
                return
            logger.info(f"Room {self.code}: freeing seat {seat_index} after lobby grace period")
            seat.clear()
            self._transfer_host()
            self._refresh_lobby_state()
            await self._broadcast_seats()

    def _update_idle_timer(self) -> None:
        if self.has_connected_human():
            if self.idle_task is not None and not self.idle_task.done():
                self.idle_task.cancel()
            self.idle_task = None
        elif self.idle_task is None or self.idle_task.done():
            self.idle_task = asyncio.create_task(self._idle_expiry())

    async def _idle_expiry(self) -> None:
        await asyncio.sleep(self.settings.room_idle_expiry)
        async with self.lock:
            if self.has_connected_human() or self.closed:
                return
            logger.info(f"Room {self.code}: expired after {self.settings.room_idle_expiry:.0f}s without players")
            await self._shutdown("expired")
        if self.on_expire is not None:
            await self.on_expire(self.code)

    async def _shutdown(self, reason: str) -> None:
        self.closed = True
        self._cancel_turn_task()
        for index in list(self.grace_tasks):
            self._cancel_grace(index)
        if self.idle_task is not None and self.idle_task is not asyncio.current_task() and not self.idle_task.done():
            self.idle_task.cancel()
        await self._broadcast(create_room_notice_event(OutboundEventType.ROOM_UNAVAILABLE, self.code, reason))

    async def close(self, reason: str = "closed") -> None:
        async with self.lock:
            if not self.closed:
                await self._shutdown(reason)
