"""Payment orchestration - authorization flow and post-authorization lifecycle"""

import logging
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from lcr_gateway.domain.bin_lookup import BinResolver
from lcr_gateway.domain.exceptions import (
    InvalidPaymentStateError,
    PaymentNotFoundError,
    PaymentValidationError,
    ProcessorError,
    RiskRejectedError,
    RoutingError,
    TokenError,
)
from lcr_gateway.domain.models import (
    MONEY_SCALE,
    ZERO,
    CardDetails,
    CardNetwork,
    CardToken,
    Money,
    NoRoute,
    Payment,
    PaymentOutcome,
    PaymentRequest,
    PaymentStatus,
    RiskTransaction,
    exceeds_money_scale,
    to_decimal,
)
from lcr_gateway.domain.ports import CardProcessor, PaymentStore
from lcr_gateway.domain.risk import RiskScorer
from lcr_gateway.domain.routing import RoutingOptimizer
from lcr_gateway.domain.state_machine import validate_transition
from lcr_gateway.domain.token_vault import TokenVault
from lcr_gateway.utils.date_utils import utc_now
from lcr_gateway.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

AUTHORIZED_MESSAGE = "Payment authorized successfully"
HIGH_RISK_MESSAGE = "Transaction rejected due to high risk"
SYSTEM_ERROR_MESSAGE = "System error occurred"
ROUTING_COST_PRECISION = Decimal("0.000001")

_REFUNDABLE_STATUSES = (
    PaymentStatus.CAPTURED,
    PaymentStatus.PARTIALLY_CAPTURED,
    PaymentStatus.PARTIALLY_REFUNDED,
)

# Failures turned into a persisted FAILED payment during authorization
_AUTHORIZATION_FAILURES = (
    TokenError,
    PaymentValidationError,
    RiskRejectedError,
    RoutingError,
    ProcessorError,
)


class PaymentOrchestrator:
    """
    Drives a payment from request to terminal state.

    Mutations of one payment are serialized on a per-id lock; the duplicate
    check and creation are serialized per (merchant id, merchant reference).
    The card processor is called at most once per operation and never
    retried. A payment is only mutated after the processor confirms.
    """

    def __init__(
        self,
        payment_store: PaymentStore,
        token_vault: TokenVault,
        bin_resolver: BinResolver,
        routing_optimizer: RoutingOptimizer,
        risk_scorer: RiskScorer,
        card_processor: CardProcessor,
        clock: Callable = utc_now,
    ):
        self.payment_store = payment_store
        self.token_vault = token_vault
        self.bin_resolver = bin_resolver
        self.routing_optimizer = routing_optimizer
        self.risk_scorer = risk_scorer
        self.card_processor = card_processor
        self._clock = clock
        self._payment_locks = KeyedLock()
        self._reference_locks = KeyedLock()

    # -- authorization ----------------------------------------------------

    def authorize(self, request: PaymentRequest, merchant_id: str) -> PaymentOutcome:
        """
        Authorize a payment. Never raises for business failures.

        Requests that fail shape validation or reuse a merchant reference
        return an outcome without a payment. Everything after creation ends
        in a persisted AUTHORIZED or FAILED payment.
        """
        try:
            amount = self._validate_request(request)
        except PaymentValidationError as e:
            logger.warning("Rejected authorization request %s: %s", request.merchant_reference, e)
            return self._rejected(request, str(e))

        with self._reference_locks.hold((merchant_id, request.merchant_reference)):
            if self.payment_store.exists_by_merchant_ref(request.merchant_reference, merchant_id):
                logger.warning(
                    "Duplicate merchant reference %s for merchant %s", request.merchant_reference, merchant_id
                )
                return self._rejected(request, f"Duplicate merchant reference: {request.merchant_reference}")

            now = self._clock()
            payment = Payment(
                merchant_id=merchant_id,
                merchant_reference=request.merchant_reference,
                amount=amount,
                created_at=now,
                updated_at=now,
            )
            try:
                self.payment_store.save(payment)
            except PaymentValidationError as e:
                # another worker won the race on a shared store
                return self._rejected(request, str(e))

        with self._payment_locks.hold(payment.id):
            try:
                self._run_authorization(payment, request)
            except _AUTHORIZATION_FAILURES as e:
                self._fail(payment, str(e))
            except Exception as e:
                logger.exception("Unexpected error authorizing payment %s", payment.id)
                self._fail_unexpected(payment, e)

        success = payment.status == PaymentStatus.AUTHORIZED
        return PaymentOutcome(
            success=success,
            message=AUTHORIZED_MESSAGE if success else payment.failure_reason,
            merchant_reference=request.merchant_reference,
            amount=amount.value,
            currency=amount.currency,
            payment=payment,
        )

    def _validate_request(self, request: PaymentRequest) -> Money:
        if request.has_card == request.has_token:
            raise PaymentValidationError("Request must contain either card details or token reference, but not both")
        if not request.merchant_reference or not request.merchant_reference.strip():
            raise PaymentValidationError("Merchant reference is required")

        amount = Money(request.amount, request.currency)
        if amount.value <= ZERO:
            raise PaymentValidationError("Amount must be greater than zero")

        if request.has_card:
            if not request.card.has_valid_number():
                raise PaymentValidationError("Invalid card number")
            if request.card.is_expired(self._clock().date()):
                raise PaymentValidationError("Card has expired")
        return amount

    def _run_authorization(self, payment: Payment, request: PaymentRequest) -> None:
        card, candidates, token = self._resolve_identity(payment, request)

        assessment = self.risk_scorer.assess(self._risk_transaction(payment, request))
        payment.risk_score = assessment.score
        payment.risk_band = assessment.band
        if assessment.blocks_transaction:
            raise RiskRejectedError(HIGH_RISK_MESSAGE, score=assessment.score)

        token_networks = self.token_vault.issuing_networks(token) if token is not None else []
        route = self.routing_optimizer.select_network(
            payment.amount.value,
            payment.currency,
            candidates,
            token_available=bool(token_networks),
            token_networks=token_networks,
        )
        if isinstance(route, NoRoute):
            raise RoutingError(route.reason)

        payment.selected_network = route.network
        payment.representation = route.representation
        payment.routing_cost = route.expected_cost.quantize(ROUTING_COST_PRECISION)
        if route.use_token:
            payment.token_reference = token.token_reference
        self._save(payment)

        if route.use_token:
            card = CardDetails(
                card_number=token.token_value,
                cardholder_name=card.cardholder_name,
                expiry_month=card.expiry_month,
                expiry_year=card.expiry_year,
                cvv=card.cvv,
            )

        try:
            result = self.card_processor.authorize(card, payment.amount.value, payment.currency, route.network)
        except Exception as e:
            raise ProcessorError(f"Authorization failed: {e}") from e
        if not result.success:
            raise ProcessorError(result.error_message or "Authorization declined")

        validate_transition(payment.status, PaymentStatus.AUTHORIZED)
        payment.status = PaymentStatus.AUTHORIZED
        payment.auth_code = result.auth_code
        payment.rrn = result.rrn
        payment.transaction_id = result.transaction_id
        self._save(payment)
        logger.info(
            "Payment %s authorized via %s/%s",
            payment.id,
            route.network.value,
            route.representation.value,
        )

    def _resolve_identity(
        self, payment: Payment, request: PaymentRequest
    ) -> Tuple[CardDetails, List[CardNetwork], Optional[CardToken]]:
        """Card to present, candidate networks, and the token when one was supplied"""
        if request.has_token:
            reference = request.token_reference
            token = self.token_vault.get_by_reference(reference)
            if token is None:
                raise TokenError("Invalid token reference")
            if not self.token_vault.is_active(reference):
                raise TokenError(f"Token is not active: {reference}")
            card = self.token_vault.detokenize(reference)
            if card is None:
                raise TokenError(f"Token is not active: {reference}")
            payment.card_bin = card.bin
            payment.card_last_four = token.last_four
            return card, list(token.networks), token

        card = request.card
        payment.card_bin = card.bin
        payment.card_last_four = card.last_four
        candidates = self.bin_resolver.networks_for(card.bin)
        if not candidates:
            raise PaymentValidationError("Invalid card number: No BIN information found")
        return card, candidates, None

    def _risk_transaction(self, payment: Payment, request: PaymentRequest) -> RiskTransaction:
        return RiskTransaction(
            amount=payment.amount.value,
            currency=payment.currency,
            merchant_id=payment.merchant_id,
            merchant_category_code=request.merchant_category_code,
            ip_address=request.customer_ip,
            device_id=request.device_id,
            billing_country=request.billing_country,
            ip_country=request.ip_country,
            previous_successful_transactions=request.previous_successful_transactions,
            previous_failed_transactions=request.previous_failed_transactions,
            previous_chargebacks=request.previous_chargebacks,
            card_bin=payment.card_bin,
        )

    def _fail_unexpected(self, payment: Payment, error: Exception) -> None:
        """Fail against the stored record; the in-memory copy may be ahead of what was saved"""
        stored = self.payment_store.find_by_id(payment.id)
        if stored is not None:
            payment.status = stored.status
            payment.version = stored.version
        self._fail(payment, f"{SYSTEM_ERROR_MESSAGE}: {error}")

    def _fail(self, payment: Payment, reason: str) -> None:
        validate_transition(payment.status, PaymentStatus.FAILED)
        payment.status = PaymentStatus.FAILED
        payment.failure_reason = reason
        self._save(payment)
        logger.info("Payment %s failed: %s", payment.id, reason)

    def _rejected(self, request: PaymentRequest, message: str) -> PaymentOutcome:
        return PaymentOutcome(
            success=False,
            message=message,
            merchant_reference=request.merchant_reference,
            amount=request.amount,
            currency=request.currency,
        )

    # -- lifecycle --------------------------------------------------------

    def capture(self, payment_id: str, merchant_id: str, amount=None) -> Payment:
        """Capture all (default) or part of the authorized amount"""
        with self._payment_locks.hold(payment_id):
            payment = self._load(payment_id, merchant_id)
            if payment.status != PaymentStatus.AUTHORIZED:
                raise InvalidPaymentStateError("Only authorized payments can be captured")

            authorized = payment.amount.value
            capture_amount = authorized if amount is None else _positive(amount, "Capture amount must be positive")
            if capture_amount > authorized:
                raise PaymentValidationError("Capture amount exceeds authorized amount")

            new_status = PaymentStatus.CAPTURED if capture_amount == authorized else PaymentStatus.PARTIALLY_CAPTURED
            validate_transition(payment.status, new_status)
            self._call_processor("Capture", self.card_processor.capture, payment.transaction_id, capture_amount, payment.currency)

            payment.status = new_status
            payment.captured_amount = capture_amount
            self._save(payment)
        logger.info("Payment %s captured %s %s", payment_id, capture_amount, payment.currency)
        return payment

    def modify_amount(self, payment_id: str, merchant_id: str, new_amount) -> Payment:
        with self._payment_locks.hold(payment_id):
            payment = self._load(payment_id, merchant_id)
            if payment.status != PaymentStatus.AUTHORIZED:
                raise InvalidPaymentStateError("Only authorized payments can be modified")
            value = _positive(new_amount, "New amount must be positive")
            payment.amount = payment.amount.with_value(value)
            self._save(payment)
        logger.info("Payment %s amount changed to %s %s", payment_id, value, payment.currency)
        return payment

    def cancel(self, payment_id: str, merchant_id: str) -> Payment:
        with self._payment_locks.hold(payment_id):
            payment = self._load(payment_id, merchant_id)
            if payment.status != PaymentStatus.AUTHORIZED:
                raise InvalidPaymentStateError("Only authorized payments can be cancelled")
            validate_transition(payment.status, PaymentStatus.CANCELLED)
            self._call_processor("Void", self.card_processor.void, payment.transaction_id)

            payment.status = PaymentStatus.CANCELLED
            self._save(payment)
        logger.info("Payment %s cancelled", payment_id)
        return payment

    def refund(self, payment_id: str, merchant_id: str, amount=None) -> Payment:
        """Refund the remaining balance (default) or part of it. Fully refunded payments become REFUNDED."""
        with self._payment_locks.hold(payment_id):
            payment = self._load(payment_id, merchant_id)
            if payment.status not in _REFUNDABLE_STATUSES:
                raise InvalidPaymentStateError("Only captured payments can be refunded")

            captured = Money(payment.captured_amount, payment.currency)
            already_refunded = Money(payment.refunded_amount, payment.currency)
            remaining = captured.subtract(already_refunded).value
            refund_amount = remaining if amount is None else _positive(amount, "Refund amount must be positive")
            if refund_amount <= ZERO or refund_amount > remaining:
                raise PaymentValidationError("Refund amount exceeds refundable balance")

            refunded = already_refunded.add(Money(refund_amount, payment.currency)).value
            new_status = (
                PaymentStatus.REFUNDED if refunded == payment.captured_amount else PaymentStatus.PARTIALLY_REFUNDED
            )
            validate_transition(payment.status, new_status)
            self._call_processor("Refund", self.card_processor.refund, payment.transaction_id, refund_amount, payment.currency)

            payment.status = new_status
            payment.refunded_amount = refunded
            self._save(payment)
        logger.info("Payment %s refunded %s %s", payment_id, refund_amount, payment.currency)
        return payment

    def get_payment(self, payment_id: str, merchant_id: str) -> Payment:
        return self._load(payment_id, merchant_id)

    def get_status(self, payment_id: str, merchant_id: str) -> PaymentStatus:
        return self._load(payment_id, merchant_id).status

    # -- helpers ----------------------------------------------------------

    def _load(self, payment_id: str, merchant_id: str) -> Payment:
        payment = self.payment_store.find_by_id_and_merchant(payment_id, merchant_id)
        if payment is None:
            raise PaymentNotFoundError(f"Payment not found: {payment_id}")
        return payment

    def _save(self, payment: Payment) -> None:
        payment.updated_at = self._clock()
        self.payment_store.save(payment)

    @staticmethod
    def _call_processor(operation: str, call: Callable[..., bool], *args) -> None:
        try:
            confirmed = call(*args)
        except Exception as e:
            logger.error("%s call to card processor raised: %s", operation, e)
            raise ProcessorError(f"{operation} failed: {e}") from e
        if not confirmed:
            raise ProcessorError(f"{operation} failed")


def _positive(value, message: str) -> Decimal:
    amount = to_decimal(value)
    if not amount.is_finite() or amount <= ZERO:
        raise PaymentValidationError(message)
    if exceeds_money_scale(amount):
        raise PaymentValidationError(f"Amount supports at most {MONEY_SCALE} decimal places")
    return amount
