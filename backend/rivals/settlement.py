"""Settlement collaborator: the tournament escrow contract.

The room server only depends on ``SettlementService``. The web3
implementation signs owner-only transactions (createTournament,
announceWinner) and reads deposit state. Every failure surfaces as
``SettlementError``; the caller decides what to tell clients.
"""
import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from eth_account import Account
from web3 import Web3
from web3.exceptions import Web3Exception

from rivals.errors import SettlementError, SettlementUnavailable

log = logging.getLogger(__name__)

RATE_LIMIT_CODE = -32005

TOURNAMENT_ABI = [
    {
        'type': 'function', 'name': 'createTournament', 'stateMutability': 'nonpayable',
        'inputs': [
            {'name': '_tournamentId', 'type': 'uint256'},
            {'name': '_participant1', 'type': 'address'},
            {'name': '_participant2', 'type': 'address'},
        ],
        'outputs': [],
    },
    {
        'type': 'function', 'name': 'announceWinner', 'stateMutability': 'nonpayable',
        'inputs': [
            {'name': '_tournamentId', 'type': 'uint256'},
            {'name': '_winner', 'type': 'address'},
        ],
        'outputs': [],
    },
    {
        'type': 'function', 'name': 'getTournament', 'stateMutability': 'view',
        'inputs': [{'name': '_tournamentId', 'type': 'uint256'}],
        'outputs': [{
            'name': '', 'type': 'tuple',
            'components': [
                {'name': 'tournamentId', 'type': 'uint256'},
                {'name': 'participant1', 'type': 'address'},
                {'name': 'participant2', 'type': 'address'},
                {'name': 'token1', 'type': 'address'},
                {'name': 'token2', 'type': 'address'},
                {'name': 'winner', 'type': 'address'},
                {'name': 'amount1', 'type': 'uint256'},
                {'name': 'amount2', 'type': 'uint256'},
                {'name': 'isCompleted', 'type': 'bool'},
                {'name': 'timestamp', 'type': 'uint256'},
            ],
        }],
    },
    {
        'type': 'function', 'name': 'bothParticipantsDeposited', 'stateMutability': 'view',
        'inputs': [{'name': '_tournamentId', 'type': 'uint256'}],
        'outputs': [{'name': '', 'type': 'bool'}],
    },
    {
        'type': 'function', 'name': 'owner', 'stateMutability': 'view',
        'inputs': [],
        'outputs': [{'name': '', 'type': 'address'}],
    },
]

_TOURNAMENT_FIELDS = (
    'tournamentId', 'participant1', 'participant2', 'token1', 'token2',
    'winner', 'amount1', 'amount2', 'isCompleted', 'timestamp',
)


@dataclass
class TournamentReceipt:
    tournament_id: int
    tx_hash: str


class SettlementService:
    """Interface the room server consumes.

    Calls may block for a long time (block confirmation); each one
    either returns or raises SettlementError.
    """

    def create_tournament(self, participant_a: str, participant_b: str, id_hint: Optional[int] = None) -> TournamentReceipt:
        raise NotImplementedError

    def both_deposited(self, tournament_id: int) -> bool:
        raise NotImplementedError

    def announce_winner(self, tournament_id: int, winner_address: str) -> str:
        raise NotImplementedError

    def get_tournament(self, tournament_id: int) -> Dict[str, Any]:
        raise NotImplementedError


def is_rate_limited(exc: BaseException) -> bool:
    payload = getattr(exc, 'rpc_response', None)
    if payload is None and exc.args and isinstance(exc.args[0], dict):
        payload = exc.args[0]
    if isinstance(payload, dict):
        err = payload.get('error', payload)
        if isinstance(err, dict) and err.get('code') == RATE_LIMIT_CODE:
            return True
    return 'rate limited' in str(exc).lower()


def call_with_backoff(operation: Callable[[], Any], max_retries: int = 3, base_delay: float = 1.0,
                      sleep: Callable[[float], None] = time.sleep, label: str = 'rpc'):
    """Run ``operation``, retrying rate-limit failures with exponential backoff.

    Waits ``base_delay * 2**attempt`` between tries. Anything that is not
    a rate-limit error, or the last failure once retries are spent, is
    re-raised unchanged.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as exc:
            if attempt >= max_retries or not is_rate_limited(exc):
                raise
            delay = base_delay * (2 ** attempt)
            log.warning(f"[rpc-backoff] op={label} attempt={attempt + 1}/{max_retries + 1} delay={delay}s")
            sleep(delay)
            attempt += 1


def generate_tournament_id() -> int:
    return int(time.time() * 1000) + random.randint(0, 999)


class Web3SettlementService(SettlementService):

    def __init__(self, rpc_url: str, contract_address: str, owner_private_key: str,
                 chain_id: Optional[int] = None, receipt_timeout: float = 120.0,
                 max_retries: int = 3, base_delay: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep, web3: Optional[Web3] = None):
        if not rpc_url:
            raise SettlementUnavailable('Settlement RPC URL is not configured')
        if not contract_address or not Web3.is_address(contract_address):
            raise SettlementUnavailable(f'Invalid settlement contract address: {contract_address!r}')
        if not owner_private_key:
            raise SettlementUnavailable('Settlement owner private key is not configured')
        try:
            self._account = Account.from_key(owner_private_key)
        except (ValueError, TypeError) as exc:
            raise SettlementUnavailable(f'Invalid owner private key: {exc}') from exc
        self._w3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={'timeout': 30}))
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=TOURNAMENT_ABI
        )
        self._chain_id = chain_id
        self._receipt_timeout = receipt_timeout
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._sleep = sleep
        # Owner nonces are allocated one transaction at a time
        self._send_lock = threading.Lock()
        log.info(f"[settlement-init] contract={contract_address} rpc={rpc_url} owner={self._account.address}")

    @property
    def owner_address(self) -> str:
        return self._account.address

    def _retry(self, operation, label):
        return call_with_backoff(operation, self._max_retries, self._base_delay, self._sleep, label)

    def _transact(self, fn_name: str, *args) -> str:
        fn = getattr(self._contract.functions, fn_name)(*args)
        try:
            with self._send_lock:
                if self._chain_id is None:
                    self._chain_id = self._retry(lambda: self._w3.eth.chain_id, 'chain_id')
                nonce = self._retry(
                    lambda: self._w3.eth.get_transaction_count(self._account.address, 'pending'), 'nonce'
                )
                tx = self._retry(lambda: fn.build_transaction({
                    'from': self._account.address,
                    'nonce': nonce,
                    'chainId': self._chain_id,
                }), f'{fn_name}.build')
                signed = self._account.sign_transaction(tx)
                tx_hash = self._retry(lambda: self._w3.eth.send_raw_transaction(signed.raw_transaction), f'{fn_name}.send')
            log.info(f"[settlement-tx] fn={fn_name} tx={Web3.to_hex(tx_hash)} waiting for receipt")
            receipt = self._retry(
                lambda: self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout),
                f'{fn_name}.receipt',
            )
        except (Web3Exception, ValueError, OSError) as exc:
            raise SettlementError(str(exc) or exc.__class__.__name__) from exc
        if receipt.get('status') != 1:
            raise SettlementError(f'{fn_name} transaction reverted: {Web3.to_hex(tx_hash)}')
        log.info(f"[settlement-tx] fn={fn_name} tx={Web3.to_hex(tx_hash)} gas={receipt.get('gasUsed')}")
        return Web3.to_hex(tx_hash)

    def _view(self, fn_name: str, *args):
        fn = getattr(self._contract.functions, fn_name)(*args)
        try:
            return self._retry(fn.call, fn_name)
        except (Web3Exception, ValueError, OSError) as exc:
            raise SettlementError(str(exc) or exc.__class__.__name__) from exc

    def create_tournament(self, participant_a, participant_b, id_hint=None):
        if not participant_a or not participant_b:
            raise SettlementError('Both participant addresses are required')
        if not Web3.is_address(participant_a) or not Web3.is_address(participant_b):
            raise SettlementError('Invalid participant addresses provided')
        if participant_a.lower() == participant_b.lower():
            raise SettlementError('Participant addresses must be different')
        tournament_id = id_hint or generate_tournament_id()
        log.info(
            f"[settlement-create] tournament={tournament_id} "
            f"source={'hint' if id_hint else 'generated'} a={participant_a} b={participant_b}"
        )
        tx_hash = self._transact(
            'createTournament', tournament_id,
            Web3.to_checksum_address(participant_a), Web3.to_checksum_address(participant_b),
        )
        return TournamentReceipt(tournament_id=tournament_id, tx_hash=tx_hash)

    def both_deposited(self, tournament_id):
        return bool(self._view('bothParticipantsDeposited', int(tournament_id)))

    def announce_winner(self, tournament_id, winner_address):
        if not tournament_id or not winner_address:
            raise SettlementError('Tournament ID and winner address are required')
        if not Web3.is_address(winner_address):
            raise SettlementError('Invalid winner address provided')
        return self._transact('announceWinner', int(tournament_id), Web3.to_checksum_address(winner_address))

    def get_tournament(self, tournament_id):
        record = self._view('getTournament', int(tournament_id))
        info = dict(zip(_TOURNAMENT_FIELDS, record))
        # uint256 values overflow JSON number precision in clients
        for key in ('tournamentId', 'amount1', 'amount2', 'timestamp'):
            info[key] = str(info[key])
        return info

    def owner(self) -> str:
        return self._view('owner')


def build_settlement_service(config) -> Optional[SettlementService]:
    """Settlement client from app config, or None (degraded mode).

    With REQUIRE_SETTLEMENT set, a configuration failure is raised
    instead.
    """
    try:
        return Web3SettlementService(
            rpc_url=config.get('SETTLEMENT_RPC_URL'),
            contract_address=config.get('SETTLEMENT_CONTRACT_ADDRESS'),
            owner_private_key=config.get('SETTLEMENT_OWNER_PRIVATE_KEY'),
            chain_id=config.get('SETTLEMENT_CHAIN_ID'),
            receipt_timeout=float(config.get('SETTLEMENT_RECEIPT_TIMEOUT_SEC', 120)),
            max_retries=int(config.get('SETTLEMENT_MAX_RETRIES', 3)),
            base_delay=float(config.get('SETTLEMENT_RETRY_BASE_DELAY_SEC', 1.0)),
        )
    except SettlementUnavailable as exc:
        if config.get('REQUIRE_SETTLEMENT'):
            raise
        log.error(f"[settlement-unavailable] {exc}; tournament creation and winner payout are disabled")
        return None
