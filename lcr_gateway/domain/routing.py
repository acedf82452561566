"""Least-cost routing - picks the network/representation with the lowest expected cost"""

import logging
import threading
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from lcr_gateway.domain.exceptions import PaymentValidationError, RoutingError
from lcr_gateway.domain.models import (
    ZERO,
    CardNetwork,
    NoRoute,
    Representation,
    RoutingCost,
    RoutingResult,
    to_decimal,
)

logger = logging.getLogger(__name__)

FeeKey = Tuple[CardNetwork, Representation]

# (network, fixed fee, percentage fee, authorization probability) for PAN, then TOKEN
_REFERENCE_FEES = [
    (CardNetwork.VISA, ("0.10", "0.015", "0.82"), ("0.09", "0.014", "0.85")),
    (CardNetwork.MASTERCARD, ("0.12", "0.014", "0.83"), ("0.11", "0.013", "0.86")),
    (CardNetwork.AMEX, ("0.15", "0.022", "0.80"), ("0.14", "0.021", "0.83")),
    (CardNetwork.DISCOVER, ("0.10", "0.016", "0.85"), ("0.09", "0.015", "0.87")),
    (CardNetwork.ACCEL, ("0.05", "0.005", "0.80"), ("0.04", "0.0045", "0.82")),
    (CardNetwork.STAR, ("0.04", "0.004", "0.79"), ("0.03", "0.0035", "0.81")),
    (CardNetwork.NYCE, ("0.03", "0.003", "0.77"), ("0.025", "0.0025", "0.79")),
    (CardNetwork.PULSE, ("0.03", "0.0035", "0.84"), ("0.025", "0.003", "0.86")),
    (CardNetwork.MAESTRO, ("0.08", "0.01", "0.83"), ("0.07", "0.009", "0.85")),
]


def default_fee_table() -> List[RoutingCost]:
    """Reference fee schedule. Token routing is slightly cheaper and more likely to authorize."""
    table = []
    for network, pan, token in _REFERENCE_FEES:
        table.append(RoutingCost(network, Representation.PAN, *(Decimal(v) for v in pan)))
        table.append(RoutingCost(network, Representation.TOKEN, *(Decimal(v) for v in token)))
    return table


def _snapshot(fees: Iterable[RoutingCost]) -> Mapping[FeeKey, RoutingCost]:
    return MappingProxyType({fee.key: fee for fee in fees})


class RoutingOptimizer:
    """
    Chooses where to send an authorization.

    The decision space is every candidate network crossed with {PAN, TOKEN},
    restricted to pairs that have a fee entry. Networks without any fee entry
    are skipped, only an empty intersection yields NoRoute.

    The fee table is a read-only snapshot replaced wholesale by `set_fee`.
    """

    def __init__(self, fees: Optional[Iterable[RoutingCost]] = None):
        self._write_lock = threading.Lock()
        self._fees = _snapshot(default_fee_table() if fees is None else fees)

    def fees(self) -> Mapping[FeeKey, RoutingCost]:
        return self._fees

    def fee_for(self, network: CardNetwork, representation: Representation) -> Optional[RoutingCost]:
        return self._fees.get((network, representation))

    def set_fee(self, cost: RoutingCost) -> None:
        with self._write_lock:
            updated = dict(self._fees)
            updated[cost.key] = cost
            self._fees = MappingProxyType(updated)
        logger.info(
            "Fee for %s/%s set to %s + %s, p=%s",
            cost.network.value,
            cost.representation.value,
            cost.fixed_fee,
            cost.percentage_fee,
            cost.authorization_probability,
        )

    def select_network(
        self,
        amount,
        currency: str,
        candidates: Iterable[CardNetwork],
        token_available: bool = True,
        token_networks: Optional[Iterable[CardNetwork]] = None,
    ) -> Union[RoutingResult, NoRoute]:
        """
        Return the option with the lowest expected cost.

        Ties keep the first option seen: candidates in input order, PAN before
        TOKEN within a network. TOKEN options are only considered when the
        caller holds a token for the card, and only on `token_networks` when
        that is given.
        """
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise PaymentValidationError("Amount must be greater than zero")

        networks: List[CardNetwork] = []
        for network in candidates or ():
            if network not in networks:
                networks.append(network)

        representations = [Representation.PAN]
        if token_available:
            representations.append(Representation.TOKEN)

        token_allowed = None if token_networks is None else frozenset(token_networks)

        snapshot = self._fees
        best: Optional[Tuple[Decimal, RoutingCost]] = None
        by_network: Dict[CardNetwork, Decimal] = {}

        for network in networks:
            for representation in representations:
                token_blocked = token_allowed is not None and network not in token_allowed
                if representation == Representation.TOKEN and token_blocked:
                    continue
                fee = snapshot.get((network, representation))
                if fee is None:
                    continue
                cost = fee.expected_cost(amount)
                if network not in by_network or cost < by_network[network]:
                    by_network[network] = cost
                if best is None or cost < best[0]:
                    best = (cost, fee)

        if best is None:
            logger.warning(
                "No routing option for %s %s across %s",
                amount,
                currency,
                ",".join(n.value for n in networks) or "no candidates",
            )
            return NoRoute(amount=amount, currency=currency, candidates=tuple(networks))

        cost, fee = best
        logger.debug(
            "Selected %s/%s at expected cost %s for %s %s",
            fee.network.value,
            fee.representation.value,
            cost,
            amount,
            currency,
        )
        return RoutingResult(
            network=fee.network,
            representation=fee.representation,
            expected_cost=cost,
            amount=amount,
            currency=currency,
            options_by_network=by_network,
        )

    def network_cost(self, network: CardNetwork, amount) -> Decimal:
        """Nominal PAN cost of one network, without probability weighting"""
        fee = self._fees.get((network, Representation.PAN))
        if fee is None:
            raise RoutingError(f"No fee configured for network {network.value}")
        return fee.nominal_cost(to_decimal(amount))
