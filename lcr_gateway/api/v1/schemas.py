"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from lcr_gateway.domain.models import (
    CardBinInfo,
    CardDetails,
    CardNetwork,
    CardToken,
    Payment,
    PaymentOutcome,
    PaymentRequest,
    PaymentStatus,
    Representation,
    RiskBand,
    TokenStatus,
)


class CardSchema(BaseModel):
    """Raw card data; never echoed back in a response"""

    card_number: str = Field(..., pattern=r"^[0-9]{12,19}$", description="Primary account number")
    cardholder_name: Optional[str] = None
    expiry_month: int = Field(..., ge=1, le=12)
    expiry_year: int = Field(..., ge=2000, le=2100)
    cvv: Optional[str] = Field(None, pattern=r"^[0-9]{3,4}$")

    def to_domain(self) -> CardDetails:
        return CardDetails(
            card_number=self.card_number,
            cardholder_name=self.cardholder_name,
            expiry_month=self.expiry_month,
            expiry_year=self.expiry_year,
            cvv=self.cvv,
        )


class AuthorizeRequest(BaseModel):
    """Request body for POST /v1/payments/authorize. Supply exactly one of card or token_reference."""

    merchant_reference: str = Field(..., min_length=1, description="Merchant's idempotency key")
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(..., pattern=r"^[A-Za-z]{3}$")
    card: Optional[CardSchema] = None
    token_reference: Optional[str] = None
    merchant_category_code: Optional[str] = None
    customer_ip: Optional[str] = None
    device_id: Optional[str] = None
    billing_country: Optional[str] = None
    ip_country: Optional[str] = None
    previous_successful_transactions: int = Field(0, ge=0)
    previous_failed_transactions: int = Field(0, ge=0)
    previous_chargebacks: int = Field(0, ge=0)

    def to_domain(self) -> PaymentRequest:
        return PaymentRequest(
            merchant_reference=self.merchant_reference,
            amount=self.amount,
            currency=self.currency,
            card=self.card.to_domain() if self.card else None,
            token_reference=self.token_reference,
            merchant_category_code=self.merchant_category_code,
            customer_ip=self.customer_ip,
            device_id=self.device_id,
            billing_country=self.billing_country,
            ip_country=self.ip_country,
            previous_successful_transactions=self.previous_successful_transactions,
            previous_failed_transactions=self.previous_failed_transactions,
            previous_chargebacks=self.previous_chargebacks,
        )


class AuthorizeResponse(BaseModel):
    """Response for POST /v1/payments/authorize"""

    success: bool
    message: str
    payment_id: Optional[str] = None
    status: PaymentStatus
    merchant_reference: str
    amount: Decimal
    currency: str
    network: Optional[CardNetwork] = None
    representation: Optional[Representation] = None
    used_token: bool = False
    auth_code: Optional[str] = None
    rrn: Optional[str] = None
    routing_cost: Optional[Decimal] = None
    risk_band: Optional[RiskBand] = None

    @classmethod
    def from_outcome(cls, outcome: PaymentOutcome) -> "AuthorizeResponse":
        payment = outcome.payment
        return cls(
            success=outcome.success,
            message=outcome.message,
            payment_id=outcome.payment_id,
            status=outcome.status,
            merchant_reference=outcome.merchant_reference,
            amount=outcome.amount,
            currency=outcome.currency.upper(),
            network=payment.selected_network if payment else None,
            representation=payment.representation if payment else None,
            used_token=outcome.used_token,
            auth_code=payment.auth_code if payment else None,
            rrn=payment.rrn if payment else None,
            routing_cost=payment.routing_cost if payment else None,
            risk_band=payment.risk_band if payment else None,
        )


class AmountRequest(BaseModel):
    """Body for capture and refund; omit amount for the full remaining balance"""

    amount: Optional[Decimal] = Field(None, gt=0)


class ModifyAmountRequest(BaseModel):
    """Body for PUT /v1/payments/{payment_id}/modify"""

    amount: Decimal = Field(..., gt=0)


class PaymentResponse(BaseModel):
    """Response for payment lookups and lifecycle operations"""

    payment_id: str
    merchant_reference: str
    status: PaymentStatus
    amount: Decimal
    currency: str
    captured_amount: Decimal
    refunded_amount: Decimal
    network: Optional[CardNetwork] = None
    representation: Optional[Representation] = None
    routing_cost: Optional[Decimal] = None
    risk_score: Optional[float] = None
    risk_band: Optional[RiskBand] = None
    auth_code: Optional[str] = None
    rrn: Optional[str] = None
    card_last_four: Optional[str] = None
    token_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            payment_id=payment.id,
            merchant_reference=payment.merchant_reference,
            status=payment.status,
            amount=payment.amount.value,
            currency=payment.currency,
            captured_amount=payment.captured_amount,
            refunded_amount=payment.refunded_amount,
            network=payment.selected_network,
            representation=payment.representation,
            routing_cost=payment.routing_cost,
            risk_score=payment.risk_score,
            risk_band=payment.risk_band,
            auth_code=payment.auth_code,
            rrn=payment.rrn,
            card_last_four=payment.card_last_four,
            token_reference=payment.token_reference,
            failure_reason=payment.failure_reason,
            created_at=payment.created_at,
            updated_at=payment.updated_at,
        )


class PaymentStatusResponse(BaseModel):
    payment_id: str
    status: PaymentStatus


class TokenizeRequest(BaseModel):
    """Request body for POST /v1/tokens. `networks` wins over `network`; neither means the default network."""

    card: CardSchema
    network: Optional[CardNetwork] = None
    networks: Optional[List[CardNetwork]] = None


class TokenResponse(BaseModel):
    """Token metadata; the protected PAN never leaves the vault"""

    token_reference: str
    token_value: str
    token_bin: str
    networks: List[CardNetwork]
    last_four: str
    expiry_month: int
    expiry_year: int
    status: TokenStatus
    created_at: datetime
    expires_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, token: CardToken) -> "TokenResponse":
        return cls(
            token_reference=token.token_reference,
            token_value=token.token_value,
            token_bin=token.token_bin,
            networks=list(token.networks),
            last_four=token.last_four,
            expiry_month=token.expiry_month,
            expiry_year=token.expiry_year,
            status=token.status,
            created_at=token.created_at,
            expires_at=token.expires_at,
        )


class TokenStatusRequest(BaseModel):
    status: TokenStatus


class TokenNetworkRequest(BaseModel):
    network: CardNetwork


class TokenRefreshRequest(BaseModel):
    extra_months: int = Field(..., gt=0, le=120)


class BinInfoSchema(BaseModel):
    """Single network match for a prefix"""

    bin: str
    network: CardNetwork
    network_name: str
    card_type: Optional[str] = None
    debit: bool = False
    issuer: Optional[str] = None
    issuer_name: Optional[str] = None
    country_code: Optional[str] = None
    product_type: Optional[str] = None
    prepaid: bool = False
    corporate: bool = False
    commercial: bool = False

    @classmethod
    def from_domain(cls, info: CardBinInfo) -> "BinInfoSchema":
        return cls(
            bin=info.bin,
            network=info.network,
            network_name=info.network.display_name,
            card_type=info.card_type,
            debit=info.is_debit,
            issuer=info.issuer,
            issuer_name=info.issuer_name,
            country_code=info.country_code,
            product_type=info.product_type,
            prepaid=info.prepaid,
            corporate=info.corporate,
            commercial=info.commercial,
        )


class BinLookupResponse(BaseModel):
    """Response for GET /v1/bins/{prefix}; co-badged prefixes list every network"""

    prefix: str
    matches: List[BinInfoSchema]
