import os

from dotenv import load_dotenv

# .env.local wins over .env; real environment variables win over both
load_dotenv('.env.local')
load_dotenv()


def _flag(name, default='0'):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    PORT = int(os.environ.get('PORT', '8001'))
    CORS_ORIGINS = [
        o.strip() for o in os.environ.get(
            'CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000'
        ).split(',') if o.strip()
    ]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Delay between a host disconnect and room deletion (seconds)
    HOST_GRACE_PERIOD_SEC = float(os.environ.get('HOST_GRACE_PERIOD_SEC', '300'))
    # Attempts at drawing an unused room code before giving up
    ROOM_CODE_ATTEMPTS = int(os.environ.get('ROOM_CODE_ATTEMPTS', '5'))
    # Settlement contract (tournament escrow)
    SETTLEMENT_RPC_URL = os.environ.get('SETTLEMENT_RPC_URL', 'https://node.ghostnet.etherlink.com')
    SETTLEMENT_CONTRACT_ADDRESS = os.environ.get('SETTLEMENT_CONTRACT_ADDRESS', '')
    SETTLEMENT_OWNER_PRIVATE_KEY = os.environ.get('SETTLEMENT_OWNER_PRIVATE_KEY', '')
    SETTLEMENT_CHAIN_ID = int(os.environ['SETTLEMENT_CHAIN_ID']) if os.environ.get('SETTLEMENT_CHAIN_ID') else None
    SETTLEMENT_RECEIPT_TIMEOUT_SEC = float(os.environ.get('SETTLEMENT_RECEIPT_TIMEOUT_SEC', '120'))
    SETTLEMENT_MAX_RETRIES = int(os.environ.get('SETTLEMENT_MAX_RETRIES', '3'))
    SETTLEMENT_RETRY_BASE_DELAY_SEC = float(os.environ.get('SETTLEMENT_RETRY_BASE_DELAY_SEC', '1.0'))
    # Refuse to start when the settlement contract client cannot be built.
    # Off: the server runs degraded and chain-backed actions reply *_FAILED.
    REQUIRE_SETTLEMENT = _flag('REQUIRE_SETTLEMENT')
