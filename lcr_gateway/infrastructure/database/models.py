"""SQLAlchemy ORM models for payments and card tokens"""

from sqlalchemy import Column, DateTime, Float, Integer, JSON, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

# Monetary columns keep 6 decimal places so routing costs round-trip unchanged
MONEY = Numeric(precision=19, scale=6, asdecimal=True)


class PaymentRecord(Base):
    """Payment row; (merchant_id, merchant_reference) is the idempotency key"""

    __tablename__ = "payment"
    __table_args__ = (UniqueConstraint("merchant_id", "merchant_reference", name="uq_payment_merchant_ref"),)

    id = Column(String(32), primary_key=True)
    merchant_id = Column(Text, nullable=False, index=True)
    merchant_reference = Column(Text, nullable=False)
    amount = Column(MONEY, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(32), nullable=False)
    failure_reason = Column(Text, nullable=True)
    auth_code = Column(String(16), nullable=True)
    rrn = Column(String(32), nullable=True)
    transaction_id = Column(String(64), nullable=True)
    selected_network = Column(String(16), nullable=True)
    representation = Column(String(8), nullable=True)
    routing_cost = Column(MONEY, nullable=True)
    risk_score = Column(Float, nullable=True)
    risk_band = Column(String(16), nullable=True)
    token_reference = Column(String(36), nullable=True)
    card_bin = Column(String(8), nullable=True)
    card_last_four = Column(String(4), nullable=True)
    captured_amount = Column(MONEY, nullable=False, default=0)
    refunded_amount = Column(MONEY, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CardTokenRecord(Base):
    """Vaulted card token; protected_pan holds the codec output, never the raw PAN"""

    __tablename__ = "card_token"

    token_reference = Column(String(36), primary_key=True)
    token_value = Column(String(19), nullable=False, unique=True, index=True)
    networks = Column(JSON, nullable=False)
    last_four = Column(String(4), nullable=False)
    expiry_month = Column(Integer, nullable=False)
    expiry_year = Column(Integer, nullable=False)
    protected_pan = Column(Text, nullable=False)
    status = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
