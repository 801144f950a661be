from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import Mock

import base58
import pytest
from solders.hash import Hash
from solders.pubkey import Pubkey

from tokenforge.backoff import BackoffPolicy
from tokenforge.config import Settings
from tokenforge.descriptor import AuthorityOptions, TokenDescriptor
from tokenforge.payment import SYSTEM_PROGRAM
from tokenforge.rpc import Blockhash, LedgerInstruction, LedgerTransaction

FEE_LAMPORTS = 300_000_000
RENT_LAMPORTS = 1_461_600
IMAGE_URL = "https://gateway.pinata.cloud/ipfs/QmImageHash"
METADATA_URL = "https://gateway.pinata.cloud/ipfs/QmMetadataHash"
FIXED_TIME = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_signature(seed=1):
    return base58.b58encode(bytes([seed]) * 64).decode()


def make_address():
    return str(Pubkey.new_unique())


class FakeLedger:
    """In-memory stand-in for SolanaLedger that records every query."""

    def __init__(self, rent=RENT_LAMPORTS, transactions=None, balance=5_000_000_000):
        self.rent = rent
        self.balance = balance
        self.blockhash = Hash.default()
        self.transactions = dict(transactions or {})
        self.calls = []

    def probe(self):
        self.calls.append("probe")
        return Blockhash(self.blockhash, 1000)

    def minimum_balance(self, size):
        self.calls.append(("minimum_balance", size))
        return self.rent

    def latest_blockhash(self):
        self.calls.append("latest_blockhash")
        return Blockhash(self.blockhash, 1000)

    def get_balance(self, address):
        self.calls.append(("get_balance", str(address)))
        return self.balance

    def get_transaction(self, signature):
        self.calls.append(("get_transaction", signature))
        result = self.transactions.get(signature)
        if isinstance(result, list):
            result = result.pop(0) if result else None
        if isinstance(result, Exception):
            raise result
        return result


def make_payment_transaction(signature, payer, fee_recipient, lamports, err=None, program_id=SYSTEM_PROGRAM):
    keys = [payer, fee_recipient, SYSTEM_PROGRAM]
    return LedgerTransaction(
        signature=signature,
        account_keys=keys,
        instructions=[LedgerInstruction(program_id=program_id, accounts=[payer, fee_recipient])],
        pre_balances=[10_000_000_000, 2_000_000, 1],
        post_balances=[10_000_000_000 - lamports - 5000, 2_000_000 + lamports, 1],
        err=err,
    )


@pytest.fixture
def recipient():
    return make_address()


@pytest.fixture
def mint_address():
    return make_address()


@pytest.fixture
def fee_recipient():
    return make_address()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def storage():
    storage = Mock()
    storage.upload_file.return_value = IMAGE_URL
    storage.upload_json.return_value = METADATA_URL
    return storage


@pytest.fixture
def descriptor(recipient, mint_address):
    return TokenDescriptor(
        name="Pepe Coin",
        symbol="PEPE",
        decimals=9,
        supply=1_000_000,
        recipient_address=recipient,
        mint_address=mint_address,
        authority_options=AuthorityOptions(),
    )


@pytest.fixture
def settings(fee_recipient):
    return Settings(
        rpc_urls=["https://rpc.test"],
        pinata_api_key="key",
        pinata_secret_api_key="secret",
        fee_sol=Decimal("0.3"),
        fee_recipient=fee_recipient,
        verify_backoff=BackoffPolicy(base_delay=2.0, multiplier=1.2, max_delay=8.0, max_attempts=3),
        rate_limit_requests=100,
        rate_limit_window=60.0,
        database_url="sqlite:///:memory:",
    )
