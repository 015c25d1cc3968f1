from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Rivals room server!'})


@main.route('/health')
def health():
    server = current_app.extensions['rivals']
    payload = {'status': 'healthy'}
    payload.update(server.stats())
    payload['settlement'] = 'available' if server.settlement is not None else 'unavailable'
    payload['timestamp'] = datetime.now(timezone.utc).isoformat()
    return jsonify(payload)
