# payment.py (confirms a fee payment landed on-chain before a request is honored)

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

import base58
from solders.system_program import ID as SYS_PROGRAM_ID

from .backoff import BackoffPolicy
from .config import LAMPORTS_PER_SOL
from .descriptor import parse_address, short
from .errors import (
    NetworkError,
    OnChainFailureError,
    PaymentMismatchError,
    ValidationError,
    VerificationTimeout,
)

logger = logging.getLogger(__name__)

SYSTEM_PROGRAM = str(SYS_PROGRAM_ID)


def utcnow():
    return datetime.now(timezone.utc)


def validate_signature(signature) -> str:
    if not isinstance(signature, str) or not signature.strip():
        raise ValidationError("Missing required field: signature")
    signature = signature.strip()
    try:
        raw = base58.b58decode(signature)
    except ValueError:
        raise ValidationError("Invalid transaction signature format")
    if len(raw) != 64:
        raise ValidationError("Invalid transaction signature format")
    return signature


@dataclass
class PaymentRecord:
    signature: str
    payer: str
    recipient: str
    lamports: int
    verified: bool = True
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def amount(self) -> Decimal:
        return Decimal(self.lamports) / LAMPORTS_PER_SOL

    def to_dict(self):
        return {
            "verified": self.verified,
            "signature": self.signature,
            "amount": float(self.amount),
            "lamports": self.lamports,
            "payer": self.payer,
            "recipient": self.recipient,
            "timestamp": self.timestamp.isoformat(),
        }


class PaymentVerifier:
    """Polls for a claimed fee transaction; a found transaction is final, so failed checks are never retried."""

    def __init__(self, ledger, fee_recipient, fee_lamports, tolerance=Decimal("0.001"),
                 backoff=None, sleep=time.sleep, clock=utcnow):
        self.ledger = ledger
        self.fee_recipient = str(parse_address(fee_recipient, "fee_recipient"))
        self.fee_lamports = int(fee_lamports)
        self.tolerance = Decimal(tolerance)
        self.backoff = backoff or BackoffPolicy()
        self._sleep = sleep
        self._clock = clock

    @property
    def minimum_lamports(self) -> Decimal:
        return Decimal(self.fee_lamports) * (1 - self.tolerance)

    def verify(self, signature, expected_payer) -> PaymentRecord:
        signature = validate_signature(signature)
        payer = str(parse_address(expected_payer, "expectedPayer"))

        logger.info(
            f"Verifying payment {short(signature, 20)} from {short(payer)} "
            f"expecting {self.fee_lamports} lamports to {short(self.fee_recipient)}"
        )
        self.ledger.probe()

        attempts = self.backoff.max_attempts
        for attempt in range(attempts):
            try:
                transaction = self.ledger.get_transaction(signature)
            except NetworkError as e:
                logger.warning(f"Attempt {attempt + 1}/{attempts}: transaction lookup failed: {e}")
                transaction = None

            if transaction is not None:
                return self.check(transaction, payer)

            if attempt < attempts - 1:
                delay = self.backoff.delay(attempt)
                logger.debug(f"Attempt {attempt + 1}/{attempts}: not found, waiting {delay:.1f}s")
                self._sleep(delay)

        raise VerificationTimeout(
            f"Could not confirm payment {short(signature, 20)} within {attempts} attempts. "
            "The transaction may not be confirmed yet or may be on a different network."
        )

    def check(self, transaction, expected_payer) -> PaymentRecord:
        """Validate a located transaction; every failure here is final."""
        if transaction.err is not None:
            raise OnChainFailureError(f"The payment transaction failed on-chain: {transaction.err}")

        signer = transaction.fee_payer
        if signer != expected_payer:
            raise PaymentMismatchError(f"Payer does not match. Expected {expected_payer}, got {signer}")

        transfer = next(
            (ix for ix in transaction.instructions if ix.program_id == SYSTEM_PROGRAM), None
        )
        if transfer is None:
            raise PaymentMismatchError("No System Program transfer instruction found in the transaction")
        if len(transfer.accounts) < 2:
            raise PaymentMismatchError("Transfer instruction has no destination account")

        recipient = transfer.accounts[1]
        if recipient != self.fee_recipient:
            raise PaymentMismatchError(
                f"Fee recipient is not correct. Expected {self.fee_recipient}, got {recipient}"
            )

        lamports = transaction.balance_delta(recipient)
        if lamports < self.minimum_lamports:
            raise PaymentMismatchError(
                f"Insufficient fee amount. Expected {self.fee_lamports} lamports, got {lamports}"
            )

        logger.info(f"Payment verified: {lamports} lamports from {short(signer)} to {short(recipient)}")
        return PaymentRecord(
            signature=transaction.signature,
            payer=signer,
            recipient=recipient,
            lamports=lamports,
            timestamp=self._clock(),
        )
