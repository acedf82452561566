"""Dependency injection for FastAPI endpoints"""

import random
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, Header, Request

from lcr_gateway.config import Settings, settings
from lcr_gateway.domain.bin_lookup import BinResolver
from lcr_gateway.domain.models import CardNetwork
from lcr_gateway.domain.orchestrator import PaymentOrchestrator
from lcr_gateway.domain.risk import CountryMismatchSignals, NoRiskSignals, RiskScorer, SampledRiskSignals
from lcr_gateway.domain.routing import RoutingOptimizer
from lcr_gateway.domain.token_vault import TokenVault
from lcr_gateway.infrastructure.clients.card_network import HttpCardProcessor
from lcr_gateway.infrastructure.clients.emulator import EmulatedCardProcessor
from lcr_gateway.infrastructure.database.memory import InMemoryPaymentStore, InMemoryTokenStore
from lcr_gateway.infrastructure.database.repositories import SqlPaymentStore, SqlTokenStore
from lcr_gateway.infrastructure.database.session import build_session_factory


@dataclass
class Container:
    """Long-lived components shared by every request"""

    orchestrator: PaymentOrchestrator
    token_vault: TokenVault
    bin_resolver: BinResolver
    routing_optimizer: RoutingOptimizer


def build_container(config: Settings) -> Container:
    """Wire stores, card processor and domain services from configuration"""
    if config.storage_backend == "database":
        session_factory = build_session_factory(config.database_url)
        payment_store = SqlPaymentStore(session_factory)
        token_store = SqlTokenStore(session_factory)
    else:
        payment_store = InMemoryPaymentStore()
        token_store = InMemoryTokenStore()

    rng = random.Random(config.emulator_seed) if config.emulator_seed is not None else random.Random()

    if config.processor_backend == "http":
        processor = HttpCardProcessor(config.card_network_base, config.http_timeout_seconds)
    else:
        processor = EmulatedCardProcessor(
            rng=rng,
            failure_rate=config.emulator_failure_rate,
            decline_rate=config.emulator_decline_rate,
            latency_ms=(config.emulator_min_latency_ms, config.emulator_max_latency_ms),
        )

    if config.risk_signal_mode == "sampled":
        signals = SampledRiskSignals(rng)
    elif config.risk_signal_mode == "country":
        signals = CountryMismatchSignals()
    else:
        signals = NoRiskSignals()

    token_vault = TokenVault(
        token_store,
        validity_months=config.token_validity_months,
        reference_network=CardNetwork(config.default_token_network),
    )
    bin_resolver = BinResolver()
    routing_optimizer = RoutingOptimizer()
    orchestrator = PaymentOrchestrator(
        payment_store=payment_store,
        token_vault=token_vault,
        bin_resolver=bin_resolver,
        routing_optimizer=routing_optimizer,
        risk_scorer=RiskScorer(signals),
        card_processor=processor,
    )
    return Container(
        orchestrator=orchestrator,
        token_vault=token_vault,
        bin_resolver=bin_resolver,
        routing_optimizer=routing_optimizer,
    )


@lru_cache
def get_container() -> Container:
    """Build the process-wide container on first use"""
    return build_container(settings)


def get_orchestrator(container: Container = Depends(get_container)) -> PaymentOrchestrator:
    return container.orchestrator


def get_token_vault(container: Container = Depends(get_container)) -> TokenVault:
    return container.token_vault


def get_bin_resolver(container: Container = Depends(get_container)) -> BinResolver:
    return container.bin_resolver


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_merchant_id(x_merchant_id: str = Header(..., min_length=1)) -> str:
    """Merchant identity comes from the X-Merchant-Id header"""
    return x_merchant_id
