"""Pytest fixtures for testing"""

import random
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from lcr_gateway.api.dependencies import Container, get_container
from lcr_gateway.api.main import create_app
from lcr_gateway.domain.bin_lookup import BinResolver
from lcr_gateway.domain.models import AuthorizationResult, CardDetails, CardNetwork, PaymentRequest
from lcr_gateway.domain.orchestrator import PaymentOrchestrator
from lcr_gateway.domain.risk import NoRiskSignals, RiskScorer
from lcr_gateway.domain.routing import RoutingOptimizer
from lcr_gateway.domain.token_vault import TokenVault
from lcr_gateway.infrastructure.database.memory import InMemoryPaymentStore, InMemoryTokenStore
from lcr_gateway.infrastructure.database.session import build_session_factory


class RecordingProcessor:
    """Card processor stub: answers with fixed results and records every call"""

    def __init__(self, approve: bool = True, confirm: bool = True):
        self.approve = approve
        self.confirm = confirm
        self.calls: List[Tuple] = []
        self._sequence = 0

    def authorize(self, card: CardDetails, amount: Decimal, currency: str, network: CardNetwork) -> AuthorizationResult:
        self.calls.append(("authorize", card.card_number, amount, currency, network))
        if not self.approve:
            return AuthorizationResult.failed("Authorization declined by issuer")
        self._sequence += 1
        return AuthorizationResult.approved(
            auth_code=f"{self._sequence:06d}",
            rrn=f"RRN{self._sequence:09d}",
            transaction_id=f"txn-{self._sequence}",
            network=network,
        )

    def capture(self, transaction_id: str, amount: Decimal, currency: str) -> bool:
        self.calls.append(("capture", transaction_id, amount, currency))
        return self.confirm

    def void(self, transaction_id: str) -> bool:
        self.calls.append(("void", transaction_id))
        return self.confirm

    def refund(self, transaction_id: str, amount: Decimal, currency: str) -> bool:
        self.calls.append(("refund", transaction_id, amount, currency))
        return self.confirm

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def processor() -> RecordingProcessor:
    return RecordingProcessor()


@pytest.fixture
def payment_store() -> InMemoryPaymentStore:
    return InMemoryPaymentStore()


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def token_vault(token_store: InMemoryTokenStore) -> TokenVault:
    return TokenVault(token_store, rng=random.Random(42))


@pytest.fixture
def orchestrator(
    payment_store: InMemoryPaymentStore,
    token_vault: TokenVault,
    processor: RecordingProcessor,
) -> PaymentOrchestrator:
    """Orchestrator with reference BIN/fee tables, no risk signals and an always-approving processor"""
    return PaymentOrchestrator(
        payment_store=payment_store,
        token_vault=token_vault,
        bin_resolver=BinResolver(),
        routing_optimizer=RoutingOptimizer(),
        risk_scorer=RiskScorer(NoRiskSignals()),
        card_processor=processor,
    )


@pytest.fixture
def visa_card() -> CardDetails:
    """Plain Visa credit card (BIN 400000)"""
    return CardDetails("4000001234567899", "Jane Doe", 12, 2030, "123")


@pytest.fixture
def cobadged_card() -> CardDetails:
    """Visa debit card co-badged with Accel (BIN 453200)"""
    return CardDetails("4532001234567890", "Sam Lee", 6, 2031, "456")


@pytest.fixture
def card_request(visa_card: CardDetails):
    """Factory for card authorization requests"""

    def _make(reference: str = "order-1", amount: str = "100.00", **overrides) -> PaymentRequest:
        fields = {
            "merchant_reference": reference,
            "amount": Decimal(amount),
            "currency": "USD",
            "card": visa_card,
        }
        fields.update(overrides)
        return PaymentRequest(**fields)

    return _make


@pytest.fixture
def sql_session_factory() -> sessionmaker:
    """Fresh in-memory SQLite database per test"""
    return build_session_factory("sqlite://")


@pytest.fixture
def client(orchestrator: PaymentOrchestrator, token_vault: TokenVault) -> TestClient:
    """Create FastAPI test client wired to the test orchestrator"""
    app = create_app()
    container = Container(
        orchestrator=orchestrator,
        token_vault=token_vault,
        bin_resolver=orchestrator.bin_resolver,
        routing_optimizer=orchestrator.routing_optimizer,
    )
    app.dependency_overrides[get_container] = lambda: container
    return TestClient(app)
