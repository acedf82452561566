"""In-process payment and token stores"""

import copy
import itertools
import threading
from typing import Dict, List, Optional

from lcr_gateway.domain.exceptions import ConcurrentModificationError
from lcr_gateway.domain.models import CardToken, Payment

PAYMENT_ID_PREFIX = "PMT"
FIRST_PAYMENT_SEQUENCE = 1000


class InMemoryPaymentStore:
    """
    Thread-safe payment store. Records are copied on the way in and out so
    callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._payments: Dict[str, Payment] = {}
        self._sequence = itertools.count(FIRST_PAYMENT_SEQUENCE)

    def save(self, payment: Payment) -> Payment:
        """Insert or update. Updates must carry the version they were read at."""
        with self._lock:
            if payment.id is None:
                payment.id = f"{PAYMENT_ID_PREFIX}{next(self._sequence)}"
            stored = self._payments.get(payment.id)
            if stored is not None and stored.version != payment.version:
                raise ConcurrentModificationError(
                    f"Payment {payment.id} was modified concurrently "
                    f"(stored version {stored.version}, write version {payment.version})"
                )
            payment.version += 1
            self._payments[payment.id] = copy.deepcopy(payment)
        return payment

    def find_by_id(self, payment_id: str) -> Optional[Payment]:
        with self._lock:
            payment = self._payments.get(payment_id)
            return copy.deepcopy(payment) if payment else None

    def find_by_id_and_merchant(self, payment_id: str, merchant_id: str) -> Optional[Payment]:
        payment = self.find_by_id(payment_id)
        if payment is None or payment.merchant_id != merchant_id:
            return None
        return payment

    def exists_by_merchant_ref(self, merchant_reference: str, merchant_id: str) -> bool:
        with self._lock:
            return any(
                p.merchant_reference == merchant_reference and p.merchant_id == merchant_id
                for p in self._payments.values()
            )

    def find_all(self) -> List[Payment]:
        with self._lock:
            return [copy.deepcopy(p) for p in self._payments.values()]

    def delete_by_id(self, payment_id: str) -> None:
        with self._lock:
            self._payments.pop(payment_id, None)

    def delete_all(self) -> None:
        with self._lock:
            self._payments.clear()


class InMemoryTokenStore:
    """Token store with reference and value indexes updated under one lock"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_reference: Dict[str, CardToken] = {}
        self._reference_by_value: Dict[str, str] = {}

    def save(self, token: CardToken) -> CardToken:
        with self._lock:
            previous = self._by_reference.get(token.token_reference)
            if previous is not None and previous.token_value != token.token_value:
                self._reference_by_value.pop(previous.token_value, None)
            self._by_reference[token.token_reference] = copy.deepcopy(token)
            self._reference_by_value[token.token_value] = token.token_reference
        return token

    def find_by_reference(self, token_reference: str) -> Optional[CardToken]:
        with self._lock:
            token = self._by_reference.get(token_reference)
            return copy.deepcopy(token) if token else None

    def find_by_value(self, token_value: str) -> Optional[CardToken]:
        with self._lock:
            reference = self._reference_by_value.get(token_value)
            if reference is None:
                return None
            return copy.deepcopy(self._by_reference[reference])

    def exists_by_reference(self, token_reference: str) -> bool:
        with self._lock:
            return token_reference in self._by_reference

    def exists_by_value(self, token_value: str) -> bool:
        with self._lock:
            return token_value in self._reference_by_value

    def delete_by_reference(self, token_reference: str) -> None:
        with self._lock:
            token = self._by_reference.pop(token_reference, None)
            if token is not None:
                self._reference_by_value.pop(token.token_value, None)

    def clear(self) -> None:
        with self._lock:
            self._by_reference.clear()
            self._reference_by_value.clear()
