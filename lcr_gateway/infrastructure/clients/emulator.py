"""In-process card network emulator with seedable failures and latency"""

import logging
import random
import string
import threading
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from lcr_gateway.domain.models import ZERO, AuthorizationResult, CardDetails, CardNetwork

logger = logging.getLogger(__name__)

RRN_LENGTH = 12
_RRN_ALPHABET = string.ascii_uppercase + string.digits


class TransactionStatus(str, Enum):
    AUTHORIZED = "AUTHORIZED"
    CAPTURED = "CAPTURED"
    VOIDED = "VOIDED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


@dataclass
class TransactionState:
    """What the network remembers about one authorization"""

    transaction_id: str
    amount: Decimal
    currency: str
    network: CardNetwork
    auth_code: str
    status: TransactionStatus
    captured_amount: Decimal = ZERO
    refunded_amount: Decimal = ZERO


def generate_auth_code(rng: random.Random) -> str:
    return f"{rng.randrange(1_000_000):06d}"


def generate_rrn(rng: random.Random) -> str:
    return "".join(rng.choice(_RRN_ALPHABET) for _ in range(RRN_LENGTH))


class EmulatedCardProcessor:
    """
    Card processor that approves most requests.

    Each call first rolls for a network error (failure_rate); authorizations
    additionally roll for an issuer decline (decline_rate). Pass a seeded
    rng for reproducible runs and set latency to (0, 0) to skip sleeping.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        failure_rate: float = 0.05,
        decline_rate: float = 0.10,
        latency_ms: Tuple[int, int] = (50, 500),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._rng = rng or random.Random()
        self.failure_rate = failure_rate
        self.decline_rate = decline_rate
        self.latency_ms = latency_ms
        self._sleep = sleep
        self._lock = threading.Lock()
        self._transactions: Dict[str, TransactionState] = {}

    def authorize(
        self, card: CardDetails, amount: Decimal, currency: str, network: CardNetwork
    ) -> AuthorizationResult:
        transaction_id = str(uuid.uuid4())
        self._simulate_latency()

        with self._lock:
            if self._rng.random() < self.failure_rate:
                logger.warning("Network error processing transaction %s", transaction_id)
                return AuthorizationResult.failed("Network error processing transaction")
            if self._rng.random() < self.decline_rate:
                logger.warning("Authorization declined for transaction %s", transaction_id)
                return AuthorizationResult.failed("Authorization declined by issuer")

            auth_code = generate_auth_code(self._rng)
            rrn = generate_rrn(self._rng)
            self._transactions[transaction_id] = TransactionState(
                transaction_id=transaction_id,
                amount=amount,
                currency=currency,
                network=network,
                auth_code=auth_code,
                status=TransactionStatus.AUTHORIZED,
            )

        logger.info("Authorization successful for transaction %s: %s %s", transaction_id, amount, currency)
        return AuthorizationResult.approved(auth_code, rrn, transaction_id, network)

    def capture(self, transaction_id: str, amount: Decimal, currency: str) -> bool:
        self._simulate_latency()
        with self._lock:
            state = self._expect(transaction_id, TransactionStatus.AUTHORIZED)
            if state is None or amount > state.amount or self._network_error("Capture", transaction_id):
                return False
            state.status = TransactionStatus.CAPTURED
            state.captured_amount = amount
        logger.info("Capture successful for transaction %s: %s %s", transaction_id, amount, currency)
        return True

    def void(self, transaction_id: str) -> bool:
        self._simulate_latency()
        with self._lock:
            state = self._expect(transaction_id, TransactionStatus.AUTHORIZED)
            if state is None or self._network_error("Void", transaction_id):
                return False
            state.status = TransactionStatus.VOIDED
        logger.info("Void successful for transaction %s", transaction_id)
        return True

    def refund(self, transaction_id: str, amount: Decimal, currency: str) -> bool:
        self._simulate_latency()
        with self._lock:
            state = self._expect(
                transaction_id, TransactionStatus.CAPTURED, TransactionStatus.PARTIALLY_REFUNDED
            )
            if state is None:
                return False
            remaining = state.captured_amount - state.refunded_amount
            if amount > remaining:
                logger.error("Refund amount %s exceeds refundable amount %s", amount, remaining)
                return False
            if self._network_error("Refund", transaction_id):
                return False
            state.refunded_amount += amount
            if state.refunded_amount == state.captured_amount:
                state.status = TransactionStatus.REFUNDED
            else:
                state.status = TransactionStatus.PARTIALLY_REFUNDED
        logger.info("Refund successful for transaction %s: %s %s", transaction_id, amount, currency)
        return True

    def transaction(self, transaction_id: str) -> Optional[TransactionState]:
        with self._lock:
            return self._transactions.get(transaction_id)

    def _expect(self, transaction_id: str, *statuses: TransactionStatus) -> Optional[TransactionState]:
        state = self._transactions.get(transaction_id)
        if state is None:
            logger.error("Transaction %s not found", transaction_id)
            return None
        if state.status not in statuses:
            logger.error("Transaction %s is in %s state", transaction_id, state.status.value)
            return None
        return state

    def _network_error(self, operation: str, transaction_id: str) -> bool:
        if self._rng.random() < self.failure_rate:
            logger.warning("%s failed for transaction %s", operation, transaction_id)
            return True
        return False

    def _simulate_latency(self) -> None:
        low, high = self.latency_ms
        if high <= 0:
            return
        with self._lock:
            delay_ms = self._rng.randint(low, high)
        self._sleep(delay_ms / 1000)
