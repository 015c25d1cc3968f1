from conftest import GUEST_ADDR, HOST_ADDR
from rivals.models import RoomStatus


def test_create_room_acks_with_code(harness):
    code = harness.create_room(stake=1.5, bet='LONG')
    ack = harness.last('host')
    assert ack['type'] == 'ROOM_CREATED'
    assert ack['hostData']['stake'] == 1.5
    assert len(code) == 8
    assert harness.registry.lookup('host').room_code == code
    assert harness.registry.lookup('host').is_host


def test_room_info_for_fresh_room(harness):
    code = harness.create_room(stake=1.5, bet='LONG')
    harness.send('guest', 'GET_ROOM_INFO', roomId=code)
    info = harness.last('guest')
    assert info['type'] == 'ROOM_INFO_SUCCESS'
    assert info['requiredStake'] == 1.5
    assert info['betType'] == 'LONG'
    assert info['hostData']['address'] == HOST_ADDR
    assert info['tournamentId'] is None
    room = harness.store.get_room(code)
    assert room.status == RoomStatus.WAITING
    assert not room.has_guest()


def test_room_info_unknown_and_missing_id(harness):
    harness.send('guest', 'GET_ROOM_INFO', roomId='FFFFFFFF')
    assert harness.last('guest') == {'type': 'ROOM_INFO_FAILED', 'roomId': 'FFFFFFFF', 'error': 'Room not found'}
    harness.send('guest', 'GET_ROOM_INFO')
    assert harness.last('guest')['type'] == 'ROOM_INFO_FAILED'


def test_room_info_full_without_tournament_fails(harness):
    code = harness.joined_room()
    harness.send('other', 'GET_ROOM_INFO', roomId=code)
    assert harness.last('other')['type'] == 'ROOM_INFO_FAILED'
    assert harness.last('other')['error'] == 'Room is full'


def test_room_info_full_with_tournament_resyncs(harness):
    code = harness.accepted_room()
    harness.send('guest', 'GET_ROOM_INFO', roomId=code)
    info = harness.last('guest')
    assert info['type'] == 'ROOM_INFO_SUCCESS'
    assert info['tournamentId'] == 1001


def test_join_success_notifies_both(harness):
    code = harness.joined_room()
    assert harness.types('guest') == ['JOIN_ROOM_SUCCESS']
    assert harness.types('host')[-2:] == ['GUEST_JOINED', 'HANDSHAKE_REQUEST']
    assert harness.last('host')['guestData']['address'] == GUEST_ADDR
    success = harness.last('guest')
    assert success['betType'] == 'LONG'
    assert success['requiredStake'] == 1.5
    assert harness.store.get_room(code).status == RoomStatus.HANDSHAKING


def test_join_stake_mismatch_reports_required_values(harness):
    code = harness.create_room(stake=1.5, bet='LONG')
    harness.send('guest', 'JOIN_ROOM', roomId=code, guestData={'stake': 2, 'bet': 'LONG'})
    failed = harness.last('guest')
    assert failed['type'] == 'JOIN_ROOM_FAILED'
    assert failed['error'] == 'Stake amount must be $1.5'
    assert failed['requiredStake'] == 1.5
    assert failed['betType'] == 'LONG'
    room = harness.store.get_room(code)
    assert room.guest_conn is None
    assert room.status == RoomStatus.WAITING
    # the host hears nothing about failed attempts
    assert harness.types('host') == ['ROOM_CREATED']


def test_join_bet_mismatch_then_corrected_retry(harness):
    code = harness.create_room(stake=1.5, bet='SHORT')
    harness.send('guest', 'JOIN_ROOM', roomId=code, guestData={'stake': 1.5, 'bet': 'LONG'})
    failed = harness.last('guest')
    assert failed['type'] == 'JOIN_ROOM_FAILED'
    assert 'requires SHORT' in failed['error']
    harness.send('guest', 'JOIN_ROOM', roomId=code, guestData={'stake': failed['requiredStake'], 'bet': failed['betType']})
    assert harness.last('guest')['type'] == 'JOIN_ROOM_SUCCESS'


def test_join_full_room(harness):
    code = harness.joined_room()
    harness.send('other', 'JOIN_ROOM', roomId=code, guestData={'stake': 1.5, 'bet': 'LONG'})
    assert harness.last('other')['error'] == 'Room is full'
    assert harness.store.get_room(code).guest_conn == 'guest'


def test_host_cannot_join_own_room(harness):
    code = harness.create_room()
    harness.send('host', 'JOIN_ROOM', roomId=code, guestData={'stake': 1.5, 'bet': 'LONG'})
    assert harness.last('host')['type'] == 'JOIN_ROOM_FAILED'
    assert harness.store.get_room(code).guest_conn is None


def test_accept_from_non_host_is_ignored(harness, settlement):
    code = harness.joined_room()
    harness.clear()
    harness.send('guest', 'HANDSHAKE_ACCEPT', roomId=code)
    assert harness.sent == []
    assert harness.store.get_room(code).status == RoomStatus.HANDSHAKING
    assert settlement.count('create_tournament') == 0


def test_accept_sends_handshake_then_tournament(harness, settlement):
    code = harness.joined_room()
    harness.clear()
    harness.send('host', 'HANDSHAKE_ACCEPT', roomId=code)
    assert harness.types('guest') == ['HANDSHAKE_ACCEPTED', 'TOURNAMENT_CREATED']
    assert harness.types('host') == ['HANDSHAKE_COMPLETE', 'TOURNAMENT_CREATED']
    assert harness.store.get_room(code).status == RoomStatus.ACCEPTED
    assert settlement.calls[0] == ('create_tournament', HOST_ADDR, GUEST_ADDR, None)


def test_duplicate_accept_creates_one_tournament(harness, settlement):
    code = harness.accepted_room()
    harness.clear()
    harness.send('host', 'HANDSHAKE_ACCEPT', roomId=code)
    assert harness.sent == []
    assert settlement.count('create_tournament') == 1


def test_reject_returns_room_to_waiting(harness):
    code = harness.joined_room()
    harness.send('host', 'HANDSHAKE_REJECT', roomId=code, reason='not today')
    assert harness.last('guest') == {'type': 'HANDSHAKE_REJECTED', 'roomId': code, 'reason': 'not today'}
    room = harness.store.get_room(code)
    assert room.status == RoomStatus.WAITING
    assert room.guest_conn is None
    assert room.guest_payload is None
    assert harness.registry.lookup('guest').room_code is None
    # a new guest can now join
    harness.send('other', 'JOIN_ROOM', roomId=code, guestData={'stake': 1.5, 'bet': 'LONG'})
    assert harness.last('other')['type'] == 'JOIN_ROOM_SUCCESS'


def test_reject_default_reason_and_non_host(harness):
    code = harness.joined_room()
    harness.send('guest', 'HANDSHAKE_REJECT', roomId=code)
    assert harness.store.get_room(code).guest_conn == 'guest'
    harness.send('host', 'HANDSHAKE_REJECT', roomId=code)
    assert harness.last('guest')['reason'] == 'Host rejected the connection'


def test_player_ready_starts_tournament_when_both_ready(harness):
    code = harness.accepted_room()
    harness.clear()
    harness.send('host', 'PLAYER_READY', roomId=code)
    assert harness.sent == []
    harness.send('guest', 'PLAYER_READY', roomId=code)
    assert harness.types('host') == ['TOURNAMENT_START']
    assert harness.types('guest') == ['TOURNAMENT_START']
    start = harness.last('guest')
    assert start['hostData']['address'] == HOST_ADDR
    assert start['guestData']['address'] == GUEST_ADDR
    assert harness.store.get_room(code).status == RoomStatus.TOURNAMENT


def test_player_ready_from_stranger_is_ignored(harness):
    code = harness.accepted_room()
    harness.clear()
    harness.send('other', 'PLAYER_READY', roomId=code)
    assert harness.sent == []


def test_malformed_messages_get_error(harness):
    harness.server.handle_message('guest', '{broken')
    assert harness.last('guest')['type'] == 'ERROR'
    harness.send('guest', 'FLY_AWAY')
    assert 'Unknown message type' in harness.last('guest')['error']
    harness.send('guest', 'PLAYER_READY')
    assert harness.last('guest') == {'type': 'ERROR', 'error': 'roomId is required'}
    harness.send('guest', 'HANDSHAKE_ACCEPT', roomId='00000000')
    assert harness.last('guest')['error'] == 'Room not found'


def test_player_ready_before_accept_is_ignored(harness, settlement):
    code = harness.create_room()
    harness.send('host', 'PLAYER_READY', roomId=code)
    harness.send('guest', 'JOIN_ROOM', roomId=code, guestData={'stake': 1.5, 'bet': 'LONG', 'address': GUEST_ADDR})
    harness.send('guest', 'PLAYER_READY', roomId=code)
    assert 'TOURNAMENT_START' not in harness.types('guest')
    room = harness.store.get_room(code)
    assert room.status == RoomStatus.HANDSHAKING
    assert not room.host_ready and not room.guest_ready

    # the handshake still goes through afterwards
    harness.send('host', 'HANDSHAKE_ACCEPT', roomId=code)
    assert room.status == RoomStatus.ACCEPTED
    assert settlement.count('create_tournament') == 1


def test_host_readiness_does_not_carry_over_to_next_guest(harness):
    code = harness.accepted_room()
    harness.send('host', 'PLAYER_READY', roomId=code)
    harness.server.disconnect('guest')
    assert not harness.store.get_room(code).host_ready


def test_second_create_from_same_connection_is_refused(harness):
    code = harness.create_room()
    harness.send('host', 'CREATE_ROOM', hostData={'stake': 1, 'address': HOST_ADDR})
    failed = harness.last('host')
    assert failed['type'] == 'ROOM_CREATION_FAILED'
    assert code in failed['error']
    assert harness.store.codes() == [code]


def test_guest_cannot_join_a_second_room(harness):
    first = harness.joined_room()
    harness.send('other', 'CREATE_ROOM', hostData={'stake': 1.5, 'bet': 'LONG'})
    second = harness.last('other')['roomId']
    harness.send('guest', 'JOIN_ROOM', roomId=second, guestData={'stake': 1.5, 'bet': 'LONG'})
    assert harness.last('guest')['type'] == 'JOIN_ROOM_FAILED'
    assert first in harness.last('guest')['error']
    assert harness.store.get_room(second).guest_conn is None

    # rejected guests are free again
    harness.send('host', 'HANDSHAKE_REJECT', roomId=first)
    harness.send('guest', 'JOIN_ROOM', roomId=second, guestData={'stake': 1.5, 'bet': 'LONG'})
    assert harness.last('guest')['type'] == 'JOIN_ROOM_SUCCESS'
