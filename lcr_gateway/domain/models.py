"""Domain models - pure Python dataclasses representing business entities"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Optional

from lcr_gateway.domain.exceptions import PaymentValidationError

_CURRENCY_PATTERN = re.compile(r"[A-Za-z]{3}")
_DIGITS_PATTERN = re.compile(r"[0-9]+")

ZERO = Decimal("0")
# Decimal places kept by the SQL money columns
MONEY_SCALE = 6


class CardNetwork(str, Enum):
    """Processing networks a card transaction can be routed through"""

    VISA = "VISA"
    MASTERCARD = "MASTERCARD"
    AMEX = "AMEX"
    DISCOVER = "DISCOVER"
    ACCEL = "ACCEL"
    STAR = "STAR"
    NYCE = "NYCE"
    PULSE = "PULSE"
    MAESTRO = "MAESTRO"

    @property
    def display_name(self) -> str:
        return _NETWORK_DISPLAY_NAMES[self]


_NETWORK_DISPLAY_NAMES = {
    CardNetwork.VISA: "Visa",
    CardNetwork.MASTERCARD: "Mastercard",
    CardNetwork.AMEX: "American Express",
    CardNetwork.DISCOVER: "Discover",
    CardNetwork.ACCEL: "Accel",
    CardNetwork.STAR: "Star",
    CardNetwork.NYCE: "NYCE",
    CardNetwork.PULSE: "Pulse",
    CardNetwork.MAESTRO: "Maestro",
}


def to_decimal(value) -> Decimal:
    """Coerce int/str/Decimal to Decimal. Floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise PaymentValidationError("Amount must be a number") from e


def exceeds_money_scale(value: Decimal) -> bool:
    """More significant decimal places than the stores keep"""
    return value.is_finite() and value.normalize().as_tuple().exponent < -MONEY_SCALE


@dataclass(frozen=True)
class Money:
    """Exact monetary amount with an ISO 4217 currency code"""

    value: Decimal
    currency: str

    def __post_init__(self) -> None:
        value = to_decimal(self.value)
        if not value.is_finite() or value < ZERO:
            raise PaymentValidationError("Amount value must be a non-negative number")
        if exceeds_money_scale(value):
            raise PaymentValidationError(f"Amount supports at most {MONEY_SCALE} decimal places")
        if not isinstance(self.currency, str) or not _CURRENCY_PATTERN.fullmatch(self.currency.strip()):
            raise PaymentValidationError("Currency must be a 3-letter code")
        object.__setattr__(self, "value", value)
        object.__setattr__(self, "currency", self.currency.strip().upper())

    def add(self, other: "Money") -> "Money":
        if self.currency != other.currency:
            raise PaymentValidationError("Cannot add amounts with different currencies")
        return Money(self.value + other.value, self.currency)

    def subtract(self, other: "Money") -> "Money":
        if self.currency != other.currency:
            raise PaymentValidationError("Cannot subtract amounts with different currencies")
        if other.value > self.value:
            raise PaymentValidationError("Resulting amount cannot be negative")
        return Money(self.value - other.value, self.currency)

    def with_value(self, value) -> "Money":
        """Same currency, new value"""
        return Money(to_decimal(value), self.currency)


@dataclass
class CardDetails:
    """Raw card data as supplied by the payer. PAN and CVV are kept out of repr."""

    card_number: str = field(repr=False)
    cardholder_name: Optional[str]
    expiry_month: int
    expiry_year: int
    cvv: Optional[str] = field(default=None, repr=False)

    @property
    def bin(self) -> str:
        return self.card_number[:6] if len(self.card_number) >= 6 else ""

    @property
    def last_four(self) -> str:
        return self.card_number[-4:] if len(self.card_number) >= 4 else ""

    def is_expired(self, today: date) -> bool:
        """A card stays valid through the last day of its expiry month"""
        return (self.expiry_year, self.expiry_month) < (today.year, today.month)

    def has_valid_number(self) -> bool:
        return bool(_DIGITS_PATTERN.fullmatch(self.card_number or "")) and 12 <= len(self.card_number) <= 19


@dataclass(frozen=True)
class BinRange:
    """Range of fixed-width card prefixes identifying one network/issuer"""

    start_bin: str
    end_bin: str
    network: CardNetwork
    card_type: str = "CREDIT"
    issuer: Optional[str] = None
    issuer_name: Optional[str] = None
    country_code: Optional[str] = None
    product_type: Optional[str] = None
    prepaid: bool = False
    corporate: bool = False
    commercial: bool = False

    def __post_init__(self) -> None:
        for value in (self.start_bin, self.end_bin):
            if not isinstance(value, str) or not _DIGITS_PATTERN.fullmatch(value):
                raise ValueError(f"BIN bounds must be numeric strings, got {value!r}")
        if len(self.start_bin) != len(self.end_bin):
            raise ValueError("BIN range bounds must have the same width")
        if self.start_bin > self.end_bin:
            raise ValueError(f"BIN range start {self.start_bin} is after end {self.end_bin}")

    @property
    def width(self) -> int:
        return len(self.start_bin)

    @property
    def key(self) -> tuple[str, str]:
        return (self.start_bin, self.end_bin)


@dataclass(frozen=True)
class CardBinInfo:
    """Card attributes derived from a BIN lookup"""

    bin: str
    network: CardNetwork
    card_type: Optional[str]
    issuer: Optional[str]
    issuer_name: Optional[str]
    country_code: Optional[str]
    product_type: Optional[str] = None
    prepaid: bool = False
    corporate: bool = False
    commercial: bool = False

    @property
    def is_debit(self) -> bool:
        return self.card_type == "DEBIT"


class TokenStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    EXPIRED = "EXPIRED"
    DELETED = "DELETED"


@dataclass
class CardToken:
    """Surrogate card identifier stored in the token vault"""

    token_reference: str
    token_value: str
    networks: List[CardNetwork]
    last_four: str
    expiry_month: int
    expiry_year: int
    protected_pan: str = field(repr=False)
    status: TokenStatus
    created_at: datetime
    expires_at: Optional[datetime]

    def __post_init__(self) -> None:
        if not self.networks:
            raise ValueError("A card token must support at least one network")

    @property
    def token_bin(self) -> str:
        return self.token_value[:6]

    def is_active(self, now: datetime) -> bool:
        return self.status == TokenStatus.ACTIVE and (self.expires_at is None or self.expires_at > now)

    def is_past_expiry(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def supports(self, network: CardNetwork) -> bool:
        return network in self.networks

    def add_network(self, network: CardNetwork) -> None:
        if network not in self.networks:
            self.networks.append(network)


class Representation(str, Enum):
    """How the card is presented to the network"""

    PAN = "PAN"
    TOKEN = "TOKEN"


MIN_AUTHORIZATION_PROBABILITY = Decimal("0.01")


@dataclass(frozen=True)
class RoutingCost:
    """Fee structure of one (network, representation) pair"""

    network: CardNetwork
    representation: Representation
    fixed_fee: Decimal
    percentage_fee: Decimal
    authorization_probability: Decimal

    def __post_init__(self) -> None:
        probability = to_decimal(self.authorization_probability)
        if not ZERO <= probability <= Decimal("1"):
            raise ValueError("Authorization probability must be within [0, 1]")
        object.__setattr__(self, "authorization_probability", probability)
        object.__setattr__(self, "fixed_fee", to_decimal(self.fixed_fee))
        object.__setattr__(self, "percentage_fee", to_decimal(self.percentage_fee))

    @property
    def key(self) -> tuple[CardNetwork, Representation]:
        return (self.network, self.representation)

    def nominal_cost(self, amount: Decimal) -> Decimal:
        return self.fixed_fee + amount * self.percentage_fee

    def expected_cost(self, amount: Decimal) -> Decimal:
        """Nominal cost scaled by the inverse authorization probability"""
        return self.nominal_cost(amount) / max(MIN_AUTHORIZATION_PROBABILITY, self.authorization_probability)


@dataclass(frozen=True)
class RoutingResult:
    network: CardNetwork
    representation: Representation
    expected_cost: Decimal
    amount: Decimal
    currency: str
    options_by_network: Dict[CardNetwork, Decimal]

    @property
    def use_token(self) -> bool:
        return self.representation == Representation.TOKEN


@dataclass(frozen=True)
class NoRoute:
    """No priced option exists for the candidate networks"""

    amount: Decimal
    currency: str
    candidates: tuple
    reason: str = "No routing option available for this transaction"


class RiskBand(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass
class RiskTransaction:
    """Transaction attributes consumed by the risk scorer"""

    amount: Decimal
    currency: str
    merchant_id: str
    merchant_category_code: Optional[str] = None
    ip_address: Optional[str] = None
    device_id: Optional[str] = None
    billing_country: Optional[str] = None
    ip_country: Optional[str] = None
    previous_successful_transactions: int = 0
    previous_failed_transactions: int = 0
    previous_chargebacks: int = 0
    card_bin: Optional[str] = None


@dataclass(frozen=True)
class RiskAssessment:
    score: float
    band: RiskBand
    components: Dict[str, float]
    assessed_at: datetime

    @property
    def blocks_transaction(self) -> bool:
        return self.band == RiskBand.CRITICAL


class PaymentStatus(str, Enum):
    CREATED = "CREATED"
    AUTHORIZED = "AUTHORIZED"
    CAPTURED = "CAPTURED"
    PARTIALLY_CAPTURED = "PARTIALLY_CAPTURED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


@dataclass
class Payment:
    """Payment record owned and mutated by the orchestrator"""

    merchant_id: str
    merchant_reference: str
    amount: Money
    status: PaymentStatus = PaymentStatus.CREATED
    id: Optional[str] = None
    failure_reason: Optional[str] = None
    auth_code: Optional[str] = None
    rrn: Optional[str] = None
    transaction_id: Optional[str] = None
    selected_network: Optional[CardNetwork] = None
    representation: Optional[Representation] = None
    routing_cost: Optional[Decimal] = None
    risk_score: Optional[float] = None
    risk_band: Optional[RiskBand] = None
    token_reference: Optional[str] = None
    card_bin: Optional[str] = None
    card_last_four: Optional[str] = None
    captured_amount: Decimal = ZERO
    refunded_amount: Decimal = ZERO
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def currency(self) -> str:
        return self.amount.currency

    @property
    def used_token(self) -> bool:
        return self.representation == Representation.TOKEN


@dataclass
class PaymentRequest:
    """Validated-on-use authorization request"""

    merchant_reference: str
    amount: Decimal
    currency: str
    card: Optional[CardDetails] = None
    token_reference: Optional[str] = None
    merchant_category_code: Optional[str] = None
    customer_ip: Optional[str] = None
    device_id: Optional[str] = None
    billing_country: Optional[str] = None
    ip_country: Optional[str] = None
    previous_successful_transactions: int = 0
    previous_failed_transactions: int = 0
    previous_chargebacks: int = 0

    @property
    def has_card(self) -> bool:
        return self.card is not None

    @property
    def has_token(self) -> bool:
        return bool(self.token_reference)


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of a processor authorization call"""

    success: bool
    auth_code: Optional[str] = None
    rrn: Optional[str] = None
    transaction_id: Optional[str] = None
    network: Optional[CardNetwork] = None
    error_message: Optional[str] = None

    @classmethod
    def approved(
        cls, auth_code: str, rrn: str, transaction_id: str, network: CardNetwork
    ) -> "AuthorizationResult":
        return cls(True, auth_code=auth_code, rrn=rrn, transaction_id=transaction_id, network=network)

    @classmethod
    def failed(cls, message: str) -> "AuthorizationResult":
        return cls(False, error_message=message)


@dataclass
class PaymentOutcome:
    """Result of an authorization attempt; payment is None if it was never created"""

    success: bool
    message: str
    merchant_reference: str
    amount: Decimal
    currency: str
    payment: Optional[Payment] = None

    @property
    def payment_id(self) -> Optional[str]:
        return self.payment.id if self.payment else None

    @property
    def status(self) -> PaymentStatus:
        return self.payment.status if self.payment else PaymentStatus.FAILED

    @property
    def used_token(self) -> bool:
        return bool(self.payment and self.payment.used_token)
