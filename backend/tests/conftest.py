import os
import sys
import pytest

# Ensure the backend root (containing the `rivals` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from rivals import create_app, socketio
from rivals.errors import SettlementError
from rivals.registry import ConnectionRegistry
from rivals.server import RoomServer, run_inline
from rivals.settlement import SettlementService, TournamentReceipt
from rivals.store import RoomStore


HOST_ADDR = '0x' + 'a1' * 20
GUEST_ADDR = '0x' + 'b2' * 20


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    CORS_ORIGINS = ['http://localhost:3000']
    LOG_LEVEL = 'DEBUG'
    HOST_GRACE_PERIOD_SEC = 0.2
    ROOM_CODE_ATTEMPTS = 5
    SETTLEMENT_RPC_URL = ''
    SETTLEMENT_CONTRACT_ADDRESS = ''
    SETTLEMENT_OWNER_PRIVATE_KEY = ''
    REQUIRE_SETTLEMENT = False


class FakeSettlement(SettlementService):
    """In-memory stand-in for the escrow contract."""

    def __init__(self):
        self.calls = []
        self.next_id = 1001
        self.create_error = None
        self.deposited = True
        self.deposit_error = None
        self.announce_error = None

    def create_tournament(self, participant_a, participant_b, id_hint=None):
        self.calls.append(('create_tournament', participant_a, participant_b, id_hint))
        if self.create_error:
            raise SettlementError(self.create_error)
        tournament_id = id_hint or self.next_id
        self.next_id += 1
        return TournamentReceipt(tournament_id=tournament_id, tx_hash=f'0xcreate{tournament_id}')

    def both_deposited(self, tournament_id):
        self.calls.append(('both_deposited', tournament_id))
        if self.deposit_error:
            raise SettlementError(self.deposit_error)
        return self.deposited

    def announce_winner(self, tournament_id, winner_address):
        self.calls.append(('announce_winner', tournament_id, winner_address))
        if self.announce_error:
            raise SettlementError(self.announce_error)
        return f'0xwinner{tournament_id}'

    def get_tournament(self, tournament_id):
        self.calls.append(('get_tournament', tournament_id))
        return {'tournamentId': str(tournament_id), 'participant1': HOST_ADDR, 'participant2': GUEST_ADDR}

    def count(self, name):
        return sum(1 for c in self.calls if c[0] == name)


class ManualScheduler:
    def __init__(self):
        self.pending = []

    def __call__(self, delay, fn, *args):
        self.pending.append((delay, fn, args))

    def run_all(self):
        jobs, self.pending = self.pending, []
        for _, fn, args in jobs:
            fn(*args)


class Harness:
    """RoomServer wired to a recording transport."""

    def __init__(self, settlement, spawn=None):
        self.settlement = settlement
        self.scheduler = ManualScheduler()
        self.sent = []
        self.store = RoomStore()
        self.registry = ConnectionRegistry()
        self.server = RoomServer(
            store=self.store,
            registry=self.registry,
            settlement=settlement,
            deliver=lambda conn, payload: self.sent.append((conn.id, payload)),
            schedule=self.scheduler,
            grace_period=300.0,
            spawn=spawn or run_inline,
        )

    def connect(self, conn_id):
        return self.server.connect(conn_id)

    def send(self, conn_id, msg_type, **fields):
        message = {'type': msg_type}
        message.update(fields)
        self.server.handle_message(conn_id, message)

    def events(self, conn_id):
        return [p for c, p in self.sent if c == conn_id]

    def types(self, conn_id):
        return [p['type'] for p in self.events(conn_id)]

    def last(self, conn_id):
        events = self.events(conn_id)
        return events[-1] if events else None

    def clear(self):
        self.sent.clear()

    def create_room(self, host='host', stake=1.5, bet='LONG', **extra):
        host_data = {'stake': stake, 'bet': bet, 'address': HOST_ADDR}
        host_data.update(extra)
        self.send(host, 'CREATE_ROOM', hostData=host_data)
        return self.last(host)['roomId']

    def joined_room(self, host='host', guest='guest', **extra):
        code = self.create_room(host, **extra)
        self.send(guest, 'JOIN_ROOM', roomId=code, guestData={'stake': 1.5, 'bet': 'LONG', 'address': GUEST_ADDR})
        return code

    def accepted_room(self, host='host', guest='guest', **extra):
        code = self.joined_room(host, guest, **extra)
        self.send(host, 'HANDSHAKE_ACCEPT', roomId=code)
        return code


@pytest.fixture()
def settlement():
    return FakeSettlement()


@pytest.fixture()
def harness(settlement):
    h = Harness(settlement)
    h.connect('host')
    h.connect('guest')
    h.connect('other')
    return h


@pytest.fixture()
def flask_app(settlement):
    application = create_app(TestConfig, settlement=settlement)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        clients.append(test_client)
        return test_client

    yield _make
    for c in clients:
        try:
            if c.is_connected('/ws'):
                c.disconnect(namespace='/ws')
        except Exception:
            pass
