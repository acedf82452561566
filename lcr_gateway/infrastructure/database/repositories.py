"""Data access layer for payments and card tokens"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from lcr_gateway.domain.exceptions import ConcurrentModificationError, PaymentValidationError
from lcr_gateway.domain.models import (
    CardNetwork,
    CardToken,
    Money,
    Payment,
    PaymentStatus,
    Representation,
    RiskBand,
    TokenStatus,
)
from lcr_gateway.infrastructure.database.models import CardTokenRecord, PaymentRecord
from lcr_gateway.utils.date_utils import utc_now

PAYMENT_ID_PREFIX = "PMT"


def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; stored values are always UTC
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _enum_or_none(enum_type, value):
    return enum_type(value) if value is not None else None


class SqlPaymentStore:
    """
    Payment store backed by a relational database.

    Updates are conditional on the version the caller read, so a stale
    write from another worker raises ConcurrentModificationError instead of
    silently overwriting.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def save(self, payment: Payment) -> Payment:
        with self.session_factory.begin() as db:
            if payment.id is None or db.get(PaymentRecord, payment.id) is None:
                self._insert(db, payment)
            else:
                self._update(db, payment)
        payment.version += 1
        return payment

    def _insert(self, db: Session, payment: Payment) -> None:
        if payment.id is None:
            payment.id = f"{PAYMENT_ID_PREFIX}{uuid.uuid4().hex[:16].upper()}"
        payment.created_at = payment.created_at or utc_now()
        payment.updated_at = payment.updated_at or payment.created_at
        db.add(PaymentRecord(id=payment.id, version=payment.version + 1, **self._columns(payment)))
        try:
            db.flush()
        except IntegrityError as e:
            raise PaymentValidationError(f"Duplicate merchant reference: {payment.merchant_reference}") from e

    def _update(self, db: Session, payment: Payment) -> None:
        result = db.execute(
            update(PaymentRecord)
            .where(PaymentRecord.id == payment.id, PaymentRecord.version == payment.version)
            .values(version=payment.version + 1, **self._columns(payment))
        )
        if result.rowcount == 0:
            raise ConcurrentModificationError(f"Payment {payment.id} was modified concurrently")

    @staticmethod
    def _columns(payment: Payment) -> dict:
        return {
            "merchant_id": payment.merchant_id,
            "merchant_reference": payment.merchant_reference,
            "amount": payment.amount.value,
            "currency": payment.amount.currency,
            "status": payment.status.value,
            "failure_reason": payment.failure_reason,
            "auth_code": payment.auth_code,
            "rrn": payment.rrn,
            "transaction_id": payment.transaction_id,
            "selected_network": payment.selected_network.value if payment.selected_network else None,
            "representation": payment.representation.value if payment.representation else None,
            "routing_cost": payment.routing_cost,
            "risk_score": payment.risk_score,
            "risk_band": payment.risk_band.value if payment.risk_band else None,
            "token_reference": payment.token_reference,
            "card_bin": payment.card_bin,
            "card_last_four": payment.card_last_four,
            "captured_amount": payment.captured_amount,
            "refunded_amount": payment.refunded_amount,
            "created_at": payment.created_at,
            "updated_at": payment.updated_at,
        }

    @staticmethod
    def _to_domain(record: PaymentRecord) -> Payment:
        return Payment(
            id=record.id,
            merchant_id=record.merchant_id,
            merchant_reference=record.merchant_reference,
            amount=Money(record.amount, record.currency),
            status=PaymentStatus(record.status),
            failure_reason=record.failure_reason,
            auth_code=record.auth_code,
            rrn=record.rrn,
            transaction_id=record.transaction_id,
            selected_network=_enum_or_none(CardNetwork, record.selected_network),
            representation=_enum_or_none(Representation, record.representation),
            routing_cost=record.routing_cost,
            risk_score=record.risk_score,
            risk_band=_enum_or_none(RiskBand, record.risk_band),
            token_reference=record.token_reference,
            card_bin=record.card_bin,
            card_last_four=record.card_last_four,
            captured_amount=record.captured_amount,
            refunded_amount=record.refunded_amount,
            version=record.version,
            created_at=_as_utc(record.created_at),
            updated_at=_as_utc(record.updated_at),
        )

    def find_by_id(self, payment_id: str) -> Optional[Payment]:
        with self.session_factory() as db:
            record = db.get(PaymentRecord, payment_id)
            return self._to_domain(record) if record else None

    def find_by_id_and_merchant(self, payment_id: str, merchant_id: str) -> Optional[Payment]:
        with self.session_factory() as db:
            record = db.scalars(
                select(PaymentRecord).where(PaymentRecord.id == payment_id, PaymentRecord.merchant_id == merchant_id)
            ).first()
            return self._to_domain(record) if record else None

    def exists_by_merchant_ref(self, merchant_reference: str, merchant_id: str) -> bool:
        with self.session_factory() as db:
            found = db.scalars(
                select(PaymentRecord.id).where(
                    PaymentRecord.merchant_reference == merchant_reference,
                    PaymentRecord.merchant_id == merchant_id,
                )
            ).first()
            return found is not None

    def find_all(self) -> List[Payment]:
        with self.session_factory() as db:
            records = db.scalars(select(PaymentRecord).order_by(PaymentRecord.created_at)).all()
            return [self._to_domain(r) for r in records]

    def delete_by_id(self, payment_id: str) -> None:
        with self.session_factory.begin() as db:
            record = db.get(PaymentRecord, payment_id)
            if record is not None:
                db.delete(record)

    def delete_all(self) -> None:
        with self.session_factory.begin() as db:
            db.query(PaymentRecord).delete()


class SqlTokenStore:
    """Token store; a token is one row, so both lookup keys change in one statement"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def save(self, token: CardToken) -> CardToken:
        with self.session_factory.begin() as db:
            db.merge(
                CardTokenRecord(
                    token_reference=token.token_reference,
                    token_value=token.token_value,
                    networks=[n.value for n in token.networks],
                    last_four=token.last_four,
                    expiry_month=token.expiry_month,
                    expiry_year=token.expiry_year,
                    protected_pan=token.protected_pan,
                    status=token.status.value,
                    created_at=token.created_at,
                    expires_at=token.expires_at,
                )
            )
        return token

    @staticmethod
    def _to_domain(record: CardTokenRecord) -> CardToken:
        return CardToken(
            token_reference=record.token_reference,
            token_value=record.token_value,
            networks=[CardNetwork(n) for n in record.networks],
            last_four=record.last_four,
            expiry_month=record.expiry_month,
            expiry_year=record.expiry_year,
            protected_pan=record.protected_pan,
            status=TokenStatus(record.status),
            created_at=_as_utc(record.created_at),
            expires_at=_as_utc(record.expires_at),
        )

    def find_by_reference(self, token_reference: str) -> Optional[CardToken]:
        with self.session_factory() as db:
            record = db.get(CardTokenRecord, token_reference)
            return self._to_domain(record) if record else None

    def find_by_value(self, token_value: str) -> Optional[CardToken]:
        with self.session_factory() as db:
            record = db.scalars(select(CardTokenRecord).where(CardTokenRecord.token_value == token_value)).first()
            return self._to_domain(record) if record else None

    def exists_by_reference(self, token_reference: str) -> bool:
        return self.find_by_reference(token_reference) is not None

    def exists_by_value(self, token_value: str) -> bool:
        with self.session_factory() as db:
            found = db.scalars(
                select(CardTokenRecord.token_reference).where(CardTokenRecord.token_value == token_value)
            ).first()
            return found is not None

    def delete_by_reference(self, token_reference: str) -> None:
        with self.session_factory.begin() as db:
            record = db.get(CardTokenRecord, token_reference)
            if record is not None:
                db.delete(record)

    def clear(self) -> None:
        with self.session_factory.begin() as db:
            db.query(CardTokenRecord).delete()
