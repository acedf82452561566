"""Risk scoring engine - rates a transaction from 0.0 (safe) to 1.0 (block)"""

import random
from decimal import Decimal
from typing import Callable, Optional, Protocol

from lcr_gateway.domain.models import RiskAssessment, RiskBand, RiskTransaction, to_decimal
from lcr_gateway.utils.date_utils import utc_now

BEHAVIOR_CAP = 0.3
MERCHANT_CAP = 0.25
DEVICE_LOCATION_CAP = 0.2

_LOW_RISK_MCC = {"5411", "5412"}  # grocery
_ELEVATED_RISK_MCC = {"5944", "5941"}  # jewelry, sporting goods
_HIGH_RISK_MCC = {"4829", "6051"}  # money transfer, quasi-cash


class RiskSignals(Protocol):
    """Fraud signal oracle consulted for device/location risk"""

    def is_suspicious_ip(self, transaction: RiskTransaction) -> bool: ...

    def is_new_or_risky_device(self, transaction: RiskTransaction) -> bool: ...

    def has_location_mismatch(self, transaction: RiskTransaction) -> bool: ...


class NoRiskSignals:
    """Reports nothing suspicious"""

    def is_suspicious_ip(self, transaction: RiskTransaction) -> bool:
        return False

    def is_new_or_risky_device(self, transaction: RiskTransaction) -> bool:
        return False

    def has_location_mismatch(self, transaction: RiskTransaction) -> bool:
        return False


class CountryMismatchSignals(NoRiskSignals):
    """Flags only a billing country that differs from the IP's country"""

    def has_location_mismatch(self, transaction: RiskTransaction) -> bool:
        billing, ip = transaction.billing_country, transaction.ip_country
        if not billing or not ip:
            return False
        return billing.strip().upper() != ip.strip().upper()


class SampledRiskSignals:
    """Demo oracle: raises each flag at a fixed rate. Seed the rng for reproducible runs."""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        suspicious_ip_rate: float = 0.10,
        risky_device_rate: float = 0.05,
        location_mismatch_rate: float = 0.08,
    ):
        self._rng = rng or random.Random()
        self.suspicious_ip_rate = suspicious_ip_rate
        self.risky_device_rate = risky_device_rate
        self.location_mismatch_rate = location_mismatch_rate

    def is_suspicious_ip(self, transaction: RiskTransaction) -> bool:
        return self._rng.random() < self.suspicious_ip_rate

    def is_new_or_risky_device(self, transaction: RiskTransaction) -> bool:
        return self._rng.random() < self.risky_device_rate

    def has_location_mismatch(self, transaction: RiskTransaction) -> bool:
        return self._rng.random() < self.location_mismatch_rate


def calculate_amount_risk(amount) -> float:
    """Larger tickets are riskier, stepwise: <100, <1k, <5k, <10k, above"""
    value = to_decimal(amount)
    if value < Decimal("100"):
        return 0.1
    if value < Decimal("1000"):
        return 0.15
    if value < Decimal("5000"):
        return 0.2
    if value < Decimal("10000"):
        return 0.3
    return 0.35


def calculate_behavior_risk(transaction: RiskTransaction) -> float:
    """
    Payer history risk, capped at 0.3.

    - No prior successful transactions: 0.2 (unknown payer)
    - Success rate below 70%: +0.25
    - Success rate above 95%: +0.05
    - Each prior chargeback: +0.1
    """
    successes = transaction.previous_successful_transactions
    if successes == 0:
        return 0.2

    score = 0.0
    success_rate = successes / (successes + transaction.previous_failed_transactions)
    if success_rate < 0.7:
        score += 0.25
    elif success_rate > 0.95:
        score += 0.05

    if transaction.previous_chargebacks > 0:
        score += 0.1 * transaction.previous_chargebacks

    return min(BEHAVIOR_CAP, score)


def calculate_merchant_risk(merchant_category_code: Optional[str]) -> float:
    if merchant_category_code in _LOW_RISK_MCC:
        return 0.05
    if merchant_category_code in _ELEVATED_RISK_MCC:
        return 0.15
    if merchant_category_code in _HIGH_RISK_MCC:
        return MERCHANT_CAP
    return 0.1


def calculate_device_location_risk(transaction: RiskTransaction, signals: RiskSignals) -> float:
    score = 0.0
    if signals.is_suspicious_ip(transaction):
        score += 0.15
    if signals.is_new_or_risky_device(transaction):
        score += 0.1
    if signals.has_location_mismatch(transaction):
        score += 0.15
    return min(DEVICE_LOCATION_CAP, score)


def band_for_score(score: float) -> RiskBand:
    """
    Map a score to its band. Lower bounds are inclusive:
    [0, 0.3) LOW, [0.3, 0.7) MEDIUM, [0.7, 0.9) HIGH, [0.9, 1] CRITICAL.
    Anything outside [0, 1] is treated as CRITICAL.
    """
    if not 0.0 <= score <= 1.0:
        return RiskBand.CRITICAL
    if score < 0.3:
        return RiskBand.LOW
    if score < 0.7:
        return RiskBand.MEDIUM
    if score < 0.9:
        return RiskBand.HIGH
    return RiskBand.CRITICAL


class RiskScorer:
    """Sums the four components, clamps to [0, 1] and rounds to 3 decimals"""

    def __init__(self, signals: Optional[RiskSignals] = None, clock: Callable = utc_now):
        self.signals = signals or NoRiskSignals()
        self._clock = clock

    def assess(self, transaction: RiskTransaction) -> RiskAssessment:
        components = {
            "amount": calculate_amount_risk(transaction.amount),
            "behavior": calculate_behavior_risk(transaction),
            "merchant": calculate_merchant_risk(transaction.merchant_category_code),
            "device_location": calculate_device_location_risk(transaction, self.signals),
        }
        score = round(min(1.0, max(0.0, sum(components.values()))), 3)
        return RiskAssessment(
            score=score,
            band=band_for_score(score),
            components=components,
            assessed_at=self._clock(),
        )
