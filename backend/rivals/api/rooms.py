from flask import Blueprint, current_app, jsonify

from rivals.errors import SettlementError

rooms = Blueprint('rooms', __name__)


def _room_or_none(code):
    return current_app.extensions['rivals'].store.get_room(code)


@rooms.route('/<string:code>', methods=['GET'])
def get_room(code):
    room = _room_or_none(code)
    if not room:
        return jsonify({'error': 'Room not found'}), 404
    payload = room.public_info()
    payload['status'] = room.status.value
    payload['hasGuest'] = room.has_guest()
    return jsonify(payload)


@rooms.route('/<string:code>/tournament', methods=['GET'])
def get_room_tournament(code):
    server = current_app.extensions['rivals']
    room = _room_or_none(code)
    if not room:
        return jsonify({'error': 'Room not found'}), 404
    if room.tournament_id is None:
        return jsonify({'error': 'Tournament has not been created'}), 404
    if server.settlement is None:
        return jsonify({'error': 'Tournament service not available'}), 503
    try:
        record = server.settlement.get_tournament(room.tournament_id)
    except SettlementError as exc:
        current_app.logger.error(f"[tournament-read-failed] room={room.code} tournament={room.tournament_id} error={exc}")
        return jsonify({'error': str(exc) or 'Failed to read tournament'}), 502
    return jsonify({'roomId': room.code, 'tournamentId': room.tournament_id, 'tournament': record})
