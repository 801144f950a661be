# rpc.py (read-only Solana queries with endpoint fallback; nothing here signs or submits)

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
from urllib.parse import urlsplit

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature

from .backoff import BackoffPolicy
from .errors import NetworkError

logger = logging.getLogger(__name__)


def endpoint_label(endpoint: str) -> str:
    """Host part of an endpoint URL; keeps API keys in paths/queries out of logs."""
    parts = urlsplit(endpoint)
    return parts.netloc or endpoint


class RpcPool:
    def __init__(
        self,
        endpoints: List[str],
        timeout: float = 25.0,
        backoff: Optional[BackoffPolicy] = None,
        client_factory: Callable[..., Client] = Client,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not endpoints:
            raise ValueError("At least one RPC endpoint is required")
        self.endpoints = list(endpoints)
        self.timeout = timeout
        self.backoff = backoff or BackoffPolicy(base_delay=1.0, multiplier=1.0, max_delay=1.0)
        self._client_factory = client_factory
        self._sleep = sleep
        self._clients: Dict[str, Client] = {}

    def client(self, endpoint: str) -> Client:
        if endpoint not in self._clients:
            self._clients[endpoint] = self._client_factory(endpoint, commitment=Confirmed, timeout=self.timeout)
        return self._clients[endpoint]

    def call(self, operation: str, fn: Callable[[Client], object]):
        """Run ``fn(client)`` against each endpoint in order until one succeeds."""
        failures = []
        for i, endpoint in enumerate(self.endpoints):
            label = endpoint_label(endpoint)
            try:
                result = fn(self.client(endpoint))
                if failures:
                    logger.info(f"{operation} succeeded on fallback endpoint {label}")
                return result
            except Exception as e:
                reason = str(e) or type(e).__name__
                failures.append((label, reason))
                logger.warning(f"{operation} failed on {label} ({i + 1}/{len(self.endpoints)}): {reason}")
                if i < len(self.endpoints) - 1:
                    self._sleep(self.backoff.delay(i))
        raise NetworkError(operation, failures)


@dataclass
class LedgerInstruction:
    program_id: str
    accounts: List[str]


@dataclass
class LedgerTransaction:
    """The parts of a confirmed transaction the payment verifier looks at."""

    signature: str
    account_keys: List[str]
    instructions: List[LedgerInstruction]
    pre_balances: List[int]
    post_balances: List[int]
    err: Optional[str] = None
    block_time: Optional[int] = None
    slot: Optional[int] = None

    @property
    def fee_payer(self) -> Optional[str]:
        return self.account_keys[0] if self.account_keys else None

    def balance_delta(self, address: str) -> int:
        index = self.account_keys.index(address)
        return self.post_balances[index] - self.pre_balances[index]


@dataclass
class Blockhash:
    blockhash: Hash
    last_valid_block_height: int = field(default=0)


def to_ledger_transaction(signature: str, value) -> LedgerTransaction:
    """Flatten a ``getTransaction`` (json encoding) result."""
    encoded = value.transaction
    meta = encoded.meta
    message = encoded.transaction.message

    account_keys = [str(key) for key in message.account_keys]
    # v0 transactions append looked-up addresses after the static keys
    if meta is not None and meta.loaded_addresses:
        account_keys += [str(key) for key in meta.loaded_addresses.writable]
        account_keys += [str(key) for key in meta.loaded_addresses.readonly]

    instructions = [
        LedgerInstruction(
            program_id=account_keys[ix.program_id_index],
            accounts=[account_keys[index] for index in ix.accounts],
        )
        for ix in message.instructions
    ]
    return LedgerTransaction(
        signature=signature,
        account_keys=account_keys,
        instructions=instructions,
        pre_balances=list(meta.pre_balances) if meta else [],
        post_balances=list(meta.post_balances) if meta else [],
        err=str(meta.err) if meta is not None and meta.err is not None else None,
        block_time=value.block_time,
        slot=value.slot,
    )


class SolanaLedger:
    def __init__(self, pool: RpcPool):
        self.pool = pool

    def probe(self) -> Blockhash:
        """Fail fast with NetworkError when no endpoint answers at all."""
        return self.latest_blockhash()

    def minimum_balance(self, size: int) -> int:
        return self.pool.call(
            "getMinimumBalanceForRentExemption",
            lambda client: client.get_minimum_balance_for_rent_exemption(size).value,
        )

    def latest_blockhash(self) -> Blockhash:
        def fetch(client):
            value = client.get_latest_blockhash(Confirmed).value
            return Blockhash(value.blockhash, value.last_valid_block_height)

        return self.pool.call("getLatestBlockhash", fetch)

    def get_balance(self, address: Pubkey) -> int:
        return self.pool.call("getBalance", lambda client: client.get_balance(address).value)

    def get_transaction(self, signature: str) -> Optional[LedgerTransaction]:
        sig = Signature.from_string(signature)

        def fetch(client):
            resp = client.get_transaction(
                sig, encoding="json", commitment=Confirmed, max_supported_transaction_version=0
            )
            if resp.value is None:
                return None
            return to_ledger_transaction(signature, resp.value)

        return self.pool.call("getTransaction", fetch)
