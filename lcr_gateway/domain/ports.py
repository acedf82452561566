"""Contracts for the collaborators the payment core depends on"""

from decimal import Decimal
from typing import List, Optional, Protocol

from lcr_gateway.domain.models import AuthorizationResult, CardDetails, CardNetwork, CardToken, Payment


class CardProcessor(Protocol):
    """
    Card network backend. Calls are synchronous with unknown latency; any of
    them may return a negative result or raise.
    """

    def authorize(
        self, card: CardDetails, amount: Decimal, currency: str, network: CardNetwork
    ) -> AuthorizationResult: ...

    def capture(self, transaction_id: str, amount: Decimal, currency: str) -> bool: ...

    def void(self, transaction_id: str) -> bool: ...

    def refund(self, transaction_id: str, amount: Decimal, currency: str) -> bool: ...


class PaymentStore(Protocol):
    """
    Payment persistence. `save` assigns an id when absent and rejects a
    write whose version does not match the stored one.
    """

    def save(self, payment: Payment) -> Payment: ...

    def find_by_id(self, payment_id: str) -> Optional[Payment]: ...

    def find_by_id_and_merchant(self, payment_id: str, merchant_id: str) -> Optional[Payment]: ...

    def exists_by_merchant_ref(self, merchant_reference: str, merchant_id: str) -> bool: ...

    def find_all(self) -> List[Payment]: ...

    def delete_by_id(self, payment_id: str) -> None: ...

    def delete_all(self) -> None: ...


class TokenStore(Protocol):
    """Token persistence indexed by reference and by value; both indexes change together"""

    def save(self, token: CardToken) -> CardToken: ...

    def find_by_reference(self, token_reference: str) -> Optional[CardToken]: ...

    def find_by_value(self, token_value: str) -> Optional[CardToken]: ...

    def exists_by_reference(self, token_reference: str) -> bool: ...

    def exists_by_value(self, token_value: str) -> bool: ...

    def delete_by_reference(self, token_reference: str) -> None: ...

    def clear(self) -> None: ...
