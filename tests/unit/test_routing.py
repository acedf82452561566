"""Unit tests for least-cost routing"""

from decimal import Decimal

import pytest

from lcr_gateway.domain.exceptions import PaymentValidationError, RoutingError
from lcr_gateway.domain.models import CardNetwork, NoRoute, Representation, RoutingCost, RoutingResult
from lcr_gateway.domain.routing import RoutingOptimizer, default_fee_table


@pytest.fixture
def optimizer() -> RoutingOptimizer:
    return RoutingOptimizer()


def test_single_candidate_returns_that_network(optimizer: RoutingOptimizer):
    result = optimizer.select_network(Decimal("100"), "USD", [CardNetwork.AMEX])

    assert isinstance(result, RoutingResult)
    assert result.network == CardNetwork.AMEX


def test_token_cheaper_than_pan_when_available(optimizer: RoutingOptimizer):
    """Visa $100: PAN (0.10 + 1.50) / 0.82 vs TOKEN (0.09 + 1.40) / 0.85"""
    result = optimizer.select_network(Decimal("100"), "USD", [CardNetwork.VISA])

    assert result.representation == Representation.TOKEN
    assert result.expected_cost == (Decimal("0.09") + Decimal("100") * Decimal("0.014")) / Decimal("0.85")


def test_pan_only_without_token(optimizer: RoutingOptimizer):
    result = optimizer.select_network(Decimal("100"), "USD", [CardNetwork.VISA], token_available=False)

    assert result.representation == Representation.PAN
    assert result.expected_cost == Decimal("1.60") / Decimal("0.82")
    assert not result.use_token


def test_debit_rail_beats_signature_network(optimizer: RoutingOptimizer):
    result = optimizer.select_network(Decimal("100"), "USD", [CardNetwork.VISA, CardNetwork.ACCEL])
    assert result.network == CardNetwork.ACCEL


@pytest.mark.parametrize("amount", ["0.50", "12.34", "100", "2500", "99999.99"])
def test_selected_option_is_global_minimum(optimizer: RoutingOptimizer, amount):
    candidates = list(CardNetwork)
    value = Decimal(amount)

    result = optimizer.select_network(value, "USD", candidates)

    every_cost = [fee.expected_cost(value) for fee in default_fee_table()]
    assert result.expected_cost == min(every_cost)
    assert all(result.expected_cost <= cost for cost in result.options_by_network.values())


def test_options_by_network_keeps_best_per_network(optimizer: RoutingOptimizer):
    result = optimizer.select_network(Decimal("100"), "USD", [CardNetwork.VISA, CardNetwork.STAR])

    assert set(result.options_by_network) == {CardNetwork.VISA, CardNetwork.STAR}
    visa_token = (Decimal("0.09") + Decimal("1.4")) / Decimal("0.85")
    assert result.options_by_network[CardNetwork.VISA] == visa_token


def test_ties_go_to_first_candidate():
    fees = [
        RoutingCost(CardNetwork.STAR, Representation.PAN, "0.05", "0.01", "0.8"),
        RoutingCost(CardNetwork.PULSE, Representation.PAN, "0.05", "0.01", "0.8"),
    ]
    optimizer = RoutingOptimizer(fees)

    assert optimizer.select_network(Decimal("10"), "USD", [CardNetwork.PULSE, CardNetwork.STAR]).network == CardNetwork.PULSE
    assert optimizer.select_network(Decimal("10"), "USD", [CardNetwork.STAR, CardNetwork.PULSE]).network == CardNetwork.STAR


def test_pan_wins_tie_within_network():
    fees = [
        RoutingCost(CardNetwork.STAR, Representation.PAN, "0.05", "0.01", "0.8"),
        RoutingCost(CardNetwork.STAR, Representation.TOKEN, "0.05", "0.01", "0.8"),
    ]
    result = RoutingOptimizer(fees).select_network(Decimal("10"), "USD", [CardNetwork.STAR])
    assert result.representation == Representation.PAN


def test_empty_candidates_is_no_route(optimizer: RoutingOptimizer):
    result = optimizer.select_network(Decimal("100"), "USD", [])

    assert isinstance(result, NoRoute)
    assert result.candidates == ()


def test_unpriced_candidates_are_skipped():
    optimizer = RoutingOptimizer([RoutingCost(CardNetwork.VISA, Representation.PAN, "0.1", "0.01", "0.9")])

    result = optimizer.select_network(Decimal("100"), "USD", [CardNetwork.NYCE, CardNetwork.VISA])
    assert result.network == CardNetwork.VISA

    assert isinstance(optimizer.select_network(Decimal("100"), "USD", [CardNetwork.NYCE]), NoRoute)


def test_token_options_limited_to_token_networks(optimizer: RoutingOptimizer):
    """PULSE is cheaper by token, but the token is only valid on VISA"""
    result = optimizer.select_network(
        Decimal("100"), "USD", [CardNetwork.VISA, CardNetwork.PULSE], token_networks=[CardNetwork.VISA]
    )

    assert result.network == CardNetwork.PULSE
    assert result.representation == Representation.PAN
    assert result.options_by_network[CardNetwork.VISA] == (Decimal("0.09") + Decimal("1.4")) / Decimal("0.85")


def test_token_only_fee_not_used_without_token():
    optimizer = RoutingOptimizer([RoutingCost(CardNetwork.VISA, Representation.TOKEN, "0.1", "0.01", "0.9")])

    assert isinstance(
        optimizer.select_network(Decimal("100"), "USD", [CardNetwork.VISA], token_available=False), NoRoute
    )


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
def test_non_positive_amount_rejected_before_candidates(optimizer: RoutingOptimizer, amount):
    with pytest.raises(PaymentValidationError):
        optimizer.select_network(amount, "USD", [])


def test_zero_probability_floors_at_one_percent():
    fee = RoutingCost(CardNetwork.STAR, Representation.PAN, "0.10", "0", "0")
    assert fee.expected_cost(Decimal("1")) == Decimal("10")


def test_probability_outside_unit_interval_rejected():
    with pytest.raises(ValueError):
        RoutingCost(CardNetwork.STAR, Representation.PAN, "0.10", "0", "1.2")


def test_set_fee_replaces_snapshot(optimizer: RoutingOptimizer):
    before = optimizer.fees()
    optimizer.set_fee(RoutingCost(CardNetwork.VISA, Representation.PAN, "0", "0", "1"))

    result = optimizer.select_network(Decimal("100"), "USD", [CardNetwork.VISA, CardNetwork.STAR])

    assert result.network == CardNetwork.VISA
    assert result.expected_cost == Decimal("0")
    assert before[(CardNetwork.VISA, Representation.PAN)].fixed_fee == Decimal("0.10")


def test_fee_snapshot_is_read_only(optimizer: RoutingOptimizer):
    with pytest.raises(TypeError):
        optimizer.fees()[(CardNetwork.VISA, Representation.PAN)] = None


def test_network_cost_is_nominal_pan_fee(optimizer: RoutingOptimizer):
    assert optimizer.network_cost(CardNetwork.MASTERCARD, Decimal("200")) == Decimal("0.12") + Decimal("2.800")
    assert optimizer.fee_for(CardNetwork.NYCE, Representation.TOKEN).fixed_fee == Decimal("0.025")


def test_network_cost_unpriced_network():
    with pytest.raises(RoutingError):
        RoutingOptimizer([]).network_cost(CardNetwork.VISA, Decimal("1"))


def test_duplicate_candidates_collapsed(optimizer: RoutingOptimizer):
    result = optimizer.select_network(Decimal("5"), "USD", [CardNetwork.VISA, CardNetwork.VISA])
    assert list(result.options_by_network) == [CardNetwork.VISA]
