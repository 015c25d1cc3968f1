from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from config import Config

cors = CORS()
# Events run in arrival order on each client's reader; RoomServer hands
# room work to background tasks after taking the room's lane ticket.
socketio = SocketIO(async_mode=None, async_handlers=False)


def create_app(config_class=Config, settlement=None):
    """Build the room server app.

    ``settlement`` overrides the contract client built from config (tests
    pass a fake). When neither yields a client the server runs degraded:
    rooms and handshakes work, chain-backed steps reply with *_FAILED.
    """
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    origins = flask_app.config.get('CORS_ORIGINS') or '*'
    cors.init_app(flask_app, supports_credentials=True, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from rivals.registry import ConnectionRegistry
    from rivals.server import RoomServer
    from rivals.settlement import build_settlement_service
    from rivals.socketio_events import (
        emit_to_connection, register_socketio_handlers, run_in_background, schedule_later,
    )
    from rivals.store import RoomStore

    if settlement is None:
        # Raises SettlementUnavailable when REQUIRE_SETTLEMENT is set
        settlement = build_settlement_service(flask_app.config)
    if settlement is None:
        flask_app.logger.warning('[startup] settlement unavailable; running in degraded mode')

    flask_app.extensions['rivals'] = RoomServer(
        store=RoomStore(max_attempts=flask_app.config.get('ROOM_CODE_ATTEMPTS', 5)),
        registry=ConnectionRegistry(),
        settlement=settlement,
        deliver=emit_to_connection,
        schedule=schedule_later,
        grace_period=float(flask_app.config.get('HOST_GRACE_PERIOD_SEC', 300)),
        spawn=run_in_background,
    )

    from rivals.main import main
    flask_app.register_blueprint(main)

    from rivals.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    # Register Socket.IO event handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('settlement-check')
    def settlement_check_command():
        """Builds the settlement client from config and reads the contract owner."""
        from rivals.errors import SettlementError
        from rivals.settlement import Web3SettlementService

        cfg = flask_app.config
        try:
            client = Web3SettlementService(
                rpc_url=cfg.get('SETTLEMENT_RPC_URL'),
                contract_address=cfg.get('SETTLEMENT_CONTRACT_ADDRESS'),
                owner_private_key=cfg.get('SETTLEMENT_OWNER_PRIVATE_KEY'),
                chain_id=cfg.get('SETTLEMENT_CHAIN_ID'),
            )
            owner = client.owner()
        except SettlementError as exc:
            raise click.ClickException(f'Settlement check failed: {exc}')
        click.echo(f'Contract owner: {owner}')
        click.echo(f'Signer:         {client.owner_address}')
        if owner.lower() != client.owner_address.lower():
            raise click.ClickException('Signer is not the contract owner')

    flask_app.cli.add_command(settlement_check_command)

    return flask_app
