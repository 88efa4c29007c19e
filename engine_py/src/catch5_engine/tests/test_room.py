"""
Tests for the room session state machine, scheduling, chat and spectators.
"""

import asyncio
import random

import pytest
from catch5_engine import engine
from catch5_engine.constants import (
    PHASE_BIDDING, PHASE_DEALER_DRAW, PHASE_GAME_OVER, PHASE_SCORING,
)
from catch5_engine.errors import (
    ACTION_NOT_ALLOWED, GAME_IN_PROGRESS, GameError, INVALID_BID, INVALID_SEAT, NAME_REQUIRED,
    NO_ACTIVE_GAME, NOT_ENOUGH_PLAYERS, NOT_HOST, NOT_IN_ROOM, NOT_YOUR_TURN, ROOM_FULL,
    SEAT_EMPTY, SEAT_TAKEN, SESSION_EXPIRED, UNKNOWN_ACTION,
)
from catch5_engine.room import Room
from catch5_engine.rules import create_rules
from catch5_engine.settings import Settings
from catch5_engine.stats import MemoryStatsStore, StatsTracker

pytestmark = pytest.mark.asyncio


class FakeConnection:
    """Records every event sent to it in wire form."""

    def __init__(self):
        self.events = []

    async def send(self, event):
        self.events.append(event.to_wire())

    def of_type(self, event_type):
        return [e for e in self.events if e['type'] == event_type]

    def last(self, event_type):
        found = self.of_type(event_type)
        return found[-1] if found else None


def fast_settings(**overrides):
    values = dict(
        turn_timeout=0,
        turn_timeout_buffer=0,
        cpu_delay=0,
        cpu_jitter=0,
        trick_pause=0,
        lobby_grace_period=0.05,
        disconnect_grace_period=0,
        room_idle_expiry=60,
    )
    values.update(overrides)
    return Settings(**values)


async def wait_until(predicate, timeout=10.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
async def make_room():
    rooms = []

    def factory(settings=None, stats=None, on_expire=None):
        settings = settings or fast_settings()
        room = Room('TEST01', settings, create_rules(settings), stats=stats,
                    on_expire=on_expire, rng=random.Random(42))
        rooms.append(room)
        return room

    yield factory
    for room in rooms:
        await room.close()


async def seat_humans(room, *names):
    connections = []
    for index, name in enumerate(names):
        conn = FakeConnection()
        await room.join(conn, name, created=index == 0)
        connections.append(conn)
    return connections


async def start_with_cpus(room, name='Alice', user_id=None):
    conn = FakeConnection()
    seat = await room.join(conn, name, user_id=user_id, created=True)
    for index in (1, 2, 3):
        await room.add_cpu(seat.token, index)
    await room.start_game(seat.token)
    return conn, seat


async def start_four_humans(room):
    conns = await seat_humans(room, 'Alice', 'Bob', 'Carol', 'Dave')
    await room.start_game(room.seats[0].token)
    await room.handle_action(room.seats[0].token, 'continue')
    assert room.game_state.phase == PHASE_BIDDING
    return conns


async def test_first_player_becomes_host(make_room):
    room = make_room()
    alice = FakeConnection()
    seat = await room.join(alice, 'Alice', created=True)

    assert seat.index == 0
    assert room.host_token == seat.token
    created = alice.events[0]
    assert created['type'] == 'room_created'
    assert created['isHost'] is True
    assert created['playerToken'] == seat.token
    assert created['gameState']['phase'] == 'setup'
    assert alice.last('seats_updated')['hostSeatIndex'] == 0


async def test_join_notifies_other_players(make_room):
    room = make_room()
    alice, bob = await seat_humans(room, 'Alice', 'Bob')

    joined = alice.last('player_joined')
    assert joined['seatIndex'] == 1
    assert joined['playerName'] == 'Bob'
    assert bob.events[0]['type'] == 'joined'
    assert bob.events[0]['isHost'] is False
    assert bob.of_type('player_joined') == []
    assert room.game_state.players[1].name == 'Bob'
    assert room.game_state.players[1].is_human


async def test_preferred_seat_and_full_room(make_room):
    room = make_room()
    conn = FakeConnection()
    seat = await room.join(conn, 'Alice', preferred_seat=3)
    assert seat.index == 3

    await seat_humans(room, 'Bob', 'Carol', 'Dave')
    with pytest.raises(GameError) as exc:
        await room.join(FakeConnection(), 'Eve')
    assert exc.value.code == ROOM_FULL

    with pytest.raises(GameError) as exc:
        await room.join(FakeConnection(), 'Eve', preferred_seat=9)
    assert exc.value.code == INVALID_SEAT


async def test_join_replaces_a_cpu_when_no_seat_is_empty(make_room):
    room = make_room()
    alice = FakeConnection()
    seat = await room.join(alice, 'Alice')
    for index in (1, 2, 3):
        await room.add_cpu(seat.token, index)

    bob = await room.join(FakeConnection(), 'Bob')
    assert bob.index == 1
    assert room.seats[1].is_human


async def test_name_required(make_room):
    room = make_room()
    with pytest.raises(GameError) as exc:
        await room.join(FakeConnection(), '   ')
    assert exc.value.code == NAME_REQUIRED


async def test_host_only_seat_management(make_room):
    room = make_room()
    await seat_humans(room, 'Alice', 'Bob')
    host, guest = room.seats[0].token, room.seats[1].token

    with pytest.raises(GameError) as exc:
        await room.add_cpu(guest, 2)
    assert exc.value.code == NOT_HOST

    with pytest.raises(GameError) as exc:
        await room.add_cpu(host, 1)
    assert exc.value.code == SEAT_TAKEN

    await room.add_cpu(host, 2)
    assert room.seats[2].kind == 'cpu'
    assert room.seats[2].name == 'CPU Alpha'

    await room.remove_cpu(host, 2)
    assert room.seats[2].kind == 'empty'
    with pytest.raises(GameError) as exc:
        await room.remove_cpu(host, 2)
    assert exc.value.code == SEAT_EMPTY

    with pytest.raises(GameError) as exc:
        await room.add_cpu(host, 7)
    assert exc.value.code == INVALID_SEAT


async def test_start_game(make_room):
    room = make_room()
    alice = FakeConnection()
    seat = await room.join(alice, 'Alice')

    with pytest.raises(GameError) as exc:
        await room.start_game(seat.token)
    assert exc.value.code == NOT_ENOUGH_PLAYERS

    bob = await room.join(FakeConnection(), 'Bob')
    await room.add_cpu(seat.token, 2)
    await room.add_cpu(seat.token, 3)

    with pytest.raises(GameError) as exc:
        await room.start_game(bob.token)
    assert exc.value.code == NOT_HOST

    await room.start_game(seat.token)
    assert room.game_state.phase == PHASE_DEALER_DRAW
    assert alice.last('game_state')['gameState']['phase'] == PHASE_DEALER_DRAW
    assert [p.is_human for p in room.game_state.players] == [True, True, False, False]

    with pytest.raises(GameError) as exc:
        await room.start_game(seat.token)
    assert exc.value.code == GAME_IN_PROGRESS


async def test_turn_gating_and_private_hands(make_room):
    room = make_room()
    conns = await start_four_humans(room)
    state = room.game_state
    current = state.current_player_index
    other = (current + 1) % 4

    with pytest.raises(GameError) as exc:
        await room.handle_action(room.seats[other].token, 'bid', {'amount': 5})
    assert exc.value.code == NOT_YOUR_TURN

    with pytest.raises(GameError) as exc:
        await room.handle_action(room.seats[current].token, 'bid', {'amount': 'lots'})
    assert exc.value.code == INVALID_BID

    version = room.game_state.version
    await room.handle_action(room.seats[current].token, 'bid', {'amount': 5})
    assert room.game_state.version == version + 1
    assert room.game_state.high_bid == 5

    for index, conn in enumerate(conns):
        players = conn.last('game_state')['gameState']['players']
        for seat_index, player in enumerate(players):
            hidden = all(card['id'] == 'hidden' for card in player['hand'])
            assert len(player['hand']) == 9
            assert hidden == (seat_index != index)


async def test_bid_that_does_not_beat_the_high_bid_is_rejected(make_room):
    room = make_room()
    await start_four_humans(room)
    first = room.game_state.current_player_index
    await room.handle_action(room.seats[first].token, 'bid', {'amount': 6})
    version = room.game_state.version
    second = room.game_state.current_player_index

    with pytest.raises(GameError) as exc:
        await room.handle_action(room.seats[second].token, 'bid', {'amount': 6})
    assert exc.value.code == INVALID_BID
    assert room.game_state.version == version
    assert room.game_state.current_player_index == second


async def test_sort_hand_goes_only_to_that_seat(make_room):
    room = make_room()
    alice, bob, carol, dave = await start_four_humans(room)
    version = room.game_state.version
    alice_states = len(alice.of_type('game_state'))
    bob_states = len(bob.of_type('game_state'))

    await room.handle_action(room.seats[0].token, 'sort_hand')

    assert len(alice.of_type('game_state')) == alice_states + 1
    assert len(bob.of_type('game_state')) == bob_states
    assert room.game_state.version == version


async def test_action_errors(make_room):
    room = make_room()
    conns = await seat_humans(room, 'Alice', 'Bob', 'Carol', 'Dave')
    token = room.seats[0].token

    with pytest.raises(GameError) as exc:
        await room.handle_action(token, 'continue')
    assert exc.value.code == NO_ACTIVE_GAME

    with pytest.raises(GameError) as exc:
        await room.handle_action('not-a-token', 'continue')
    assert exc.value.code == NOT_IN_ROOM

    await room.start_game(token)
    await room.handle_action(token, 'finalize_dealer_draw')
    assert room.game_state.phase == PHASE_BIDDING

    for action in ('continue', 'purge_draw_complete'):
        with pytest.raises(GameError) as exc:
            await room.handle_action(token, action)
        assert exc.value.code == ACTION_NOT_ALLOWED

    with pytest.raises(GameError) as exc:
        await room.handle_action(token, 'shuffle_the_deck')
    assert exc.value.code == UNKNOWN_ACTION
    assert len(conns) == 4


async def test_stale_turn_task_is_discarded(make_room):
    room = make_room()
    await start_four_humans(room)
    state = room.game_state
    current = state.current_player_index

    await room._run_turn(state.version - 1, current, False, 0, None)
    assert room.game_state is state

    await room._run_turn(state.version, current, False, 0, None)
    assert room.game_state.version == state.version + 1
    assert room.game_state.players[current].bid == 0


async def test_cpus_and_timeouts_finish_a_round(make_room):
    store = MemoryStatsStore()
    room = make_room(settings=fast_settings(turn_timeout=0.01), stats=StatsTracker(store))
    conn, seat = await start_with_cpus(room, user_id='alice-id')
    await room.handle_action(seat.token, 'continue')

    await wait_until(lambda: room.game_state.phase in (PHASE_SCORING, PHASE_GAME_OVER))

    engine.validate_deck(room.game_state)
    assert conn.last('game_state')['gameState']['phase'] in (PHASE_SCORING, PHASE_GAME_OVER)
    stats = await store.get('alice-id')
    assert stats is not None
    assert 'totalPointsScored' in stats


async def test_leaving_mid_game_hands_the_seat_to_the_cpu(make_room):
    room = make_room()
    conns = await start_four_humans(room)
    current = room.game_state.current_player_index
    token = room.seats[current].token

    await room.leave(token)

    assert conns[current].last('left') is not None
    assert room.seats[current].kind == 'cpu'
    assert not room.game_state.players[current].is_human
    assert room.game_state.players[current].name.endswith('(CPU)')

    await wait_until(lambda: room.game_state.players[current].bid is not None)

    with pytest.raises(GameError) as exc:
        await room.handle_action(token, 'sort_hand')
    assert exc.value.code == NOT_IN_ROOM

    with pytest.raises(GameError) as exc:
        await room.rejoin(FakeConnection(), token)
    assert exc.value.code == SESSION_EXPIRED
    assert exc.value.clear_session


async def test_leaving_the_lobby_moves_the_host(make_room):
    room = make_room()
    alice, bob = await seat_humans(room, 'Alice', 'Bob')

    await room.leave(room.seats[0].token)

    assert room.seats[0].kind == 'empty'
    assert room.host_seat_index() == 1
    assert bob.last('seats_updated')['hostSeatIndex'] == 1


async def test_rejoin_restores_seat_and_chat(make_room):
    room = make_room()
    alice, bob = await seat_humans(room, 'Alice', 'Bob')
    token = room.seats[0].token
    await room.send_chat(token, 'hello there')

    await room.disconnect(alice)
    assert bob.last('player_disconnected')['seatIndex'] == 0
    assert not room.seats[0].connected

    alice2 = FakeConnection()
    seat = await room.rejoin(alice2, token)

    rejoined = alice2.events[0]
    assert rejoined['type'] == 'rejoined'
    assert rejoined['seatIndex'] == seat.index == 0
    assert rejoined['isHost'] is True
    assert [m['content'] for m in rejoined['chatMessages']] == ['hello there']
    assert bob.last('player_reconnected')['playerName'] == 'Alice'

    # Past the lobby grace period the seat is still held
    await asyncio.sleep(0.1)
    assert room.seats[0].is_human


async def test_a_connection_holds_only_one_seat(make_room):
    room = make_room()
    alice, bob = await seat_humans(room, 'Alice', 'Bob')

    with pytest.raises(GameError) as exc:
        await room.join(bob, 'Bob')
    assert exc.value.code == ACTION_NOT_ALLOWED
    assert [seat.kind for seat in room.seats] == ['human', 'human', 'empty', 'empty']

    await room.disconnect(bob)
    assert not any(seat.connected for seat in room.seats[1:])


async def test_second_connection_replaces_the_first(make_room):
    room = make_room()
    alice, = await seat_humans(room, 'Alice')
    await room.rejoin(FakeConnection(), room.seats[0].token)
    assert alice.last('kicked') is not None


async def test_lobby_grace_frees_the_seat(make_room):
    room = make_room()
    alice, bob = await seat_humans(room, 'Alice', 'Bob')
    await room.disconnect(bob)
    await wait_until(lambda: room.seats[1].kind == 'empty', timeout=2.0)
    assert alice.last('seats_updated')['seats'][1]['kind'] == 'empty'


async def test_join_after_start(make_room):
    room = make_room()
    conn, seat = await start_with_cpus(room)

    with pytest.raises(GameError) as exc:
        await room.join(FakeConnection(), 'Late')
    assert exc.value.code == GAME_IN_PROGRESS

    with pytest.raises(GameError) as exc:
        await room.join(FakeConnection(), 'Late', token='stale-token')
    assert exc.value.code == SESSION_EXPIRED
    assert exc.value.clear_session

    again = FakeConnection()
    rebound = await room.join(again, 'Alice', token=seat.token)
    assert rebound.index == 0
    assert again.events[0]['type'] == 'rejoined'


async def test_kick_player(make_room):
    room = make_room()
    alice, bob = await seat_humans(room, 'Alice', 'Bob')
    host = room.seats[0].token

    with pytest.raises(GameError) as exc:
        await room.kick_player(host, 0)
    assert exc.value.code == ACTION_NOT_ALLOWED

    await room.kick_player(host, 1)
    assert bob.last('kicked') is not None
    assert room.seats[1].kind == 'empty'


async def test_kick_during_game_needs_a_disconnected_player(make_room):
    room = make_room()
    alice, bob, carol, dave = await seat_humans(room, 'Alice', 'Bob', 'Carol', 'Dave')
    host = room.seats[0].token
    await room.start_game(host)

    with pytest.raises(GameError) as exc:
        await room.kick_player(host, 1)
    assert exc.value.code == ACTION_NOT_ALLOWED

    await room.disconnect(bob)
    await room.kick_player(host, 1)
    assert room.seats[1].kind == 'cpu'
    assert not room.game_state.players[1].is_human


async def test_swap_and_randomize(make_room):
    room = make_room()
    alice, bob = await seat_humans(room, 'Alice', 'Bob')
    host, guest = room.seats[0].token, room.seats[1].token

    with pytest.raises(GameError) as exc:
        await room.swap_seats(guest, 0, 1)
    assert exc.value.code == NOT_HOST

    await room.swap_seats(host, 0, 1)
    assert room.seats[0].name == 'Bob'
    assert room.seats[1].token == host
    assert alice.last('joined')['seatIndex'] == 1
    assert room.host_seat_index() == 1

    await room.add_cpu(host, 2)
    await room.randomize_teams(host)
    assert sorted(seat.name for seat in room.seats if seat.name) == ['Alice', 'Bob', 'CPU Alpha']
    assert [p.name for p in room.game_state.players].count('Alice') == 1


async def test_chat(make_room):
    room = make_room(settings=fast_settings(chat_max_length=10))
    alice, bob = await seat_humans(room, 'Alice', 'Bob')
    token = room.seats[0].token

    await room.send_chat(token, '   ')
    assert bob.of_type('chat_message') == []

    await room.send_chat(token, '  a long message indeed  ')
    message = bob.last('chat_message')['message']
    assert message['content'] == 'a long mes'
    assert message['senderName'] == 'Alice'
    assert message['type'] == 'text'

    await room.send_chat(token, ':)', 'emoji')
    assert bob.last('chat_message')['message']['type'] == 'emoji'
    await room.send_chat(token, 'hi', 'shout')
    assert bob.last('chat_message')['message']['type'] == 'text'
    assert len(alice.of_type('chat_message')) == 3

    with pytest.raises(GameError) as exc:
        await room.send_chat('nobody', 'hi')
    assert exc.value.code == NOT_IN_ROOM


async def test_spectators(make_room):
    room = make_room()
    with pytest.raises(GameError) as exc:
        await room.add_spectator(FakeConnection(), 'Watcher')
    assert exc.value.code == NO_ACTIVE_GAME

    alice, seat = await start_with_cpus(room)
    await room.handle_action(seat.token, 'continue')

    watcher = FakeConnection()
    spectator = await room.add_spectator(watcher, 'Watcher')

    spectating = watcher.events[0]
    assert spectating['type'] == 'spectating'
    for player in spectating['gameState']['players']:
        assert len(player['hand']) == 9
        assert all(card['id'] == 'hidden' for card in player['hand'])
    assert alice.last('spectator_count_updated')['count'] == 1

    await room.spectator_chat(spectator.id, 'go team')
    assert alice.last('chat_message')['message']['senderName'] == 'Watcher'

    await room.remove_spectator(spectator.id)
    assert alice.last('spectator_count_updated')['count'] == 0


async def test_idle_room_expires(make_room):
    expired = []

    async def on_expire(code):
        expired.append(code)

    room = make_room(settings=fast_settings(room_idle_expiry=0.05), on_expire=on_expire)
    alice, seat = await start_with_cpus(room)
    watcher = FakeConnection()
    await room.add_spectator(watcher, None)

    await room.disconnect(alice)
    await wait_until(lambda: expired, timeout=2.0)

    assert expired == ['TEST01']
    assert room.closed
    assert watcher.last('room_unavailable') is not None


async def test_preview(make_room):
    room = make_room()
    conn, seat = await start_with_cpus(room)
    preview = room.preview()
    assert preview['exists'] is True
    assert preview['can_join'] is False
    assert preview['phase'] == PHASE_DEALER_DRAW
    assert [s['kind'] for s in preview['seats']] == ['human', 'cpu', 'cpu', 'cpu']
