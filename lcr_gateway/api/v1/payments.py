"""Payment endpoints - authorization and post-authorization lifecycle"""

import logging
import time
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Request

from lcr_gateway.api.dependencies import get_merchant_id, get_orchestrator, get_request_id
from lcr_gateway.api.v1.schemas import (
    AmountRequest,
    AuthorizeRequest,
    AuthorizeResponse,
    ModifyAmountRequest,
    PaymentResponse,
    PaymentStatusResponse,
)
from lcr_gateway.domain.exceptions import (
    ConcurrentModificationError,
    InvalidPaymentStateError,
    PaymentNotFoundError,
    PaymentValidationError,
    ProcessorError,
)
from lcr_gateway.domain.models import Payment
from lcr_gateway.domain.orchestrator import PaymentOrchestrator
from lcr_gateway.infrastructure.observability.logging import log_payment_event
from lcr_gateway.infrastructure.observability.metrics import record_authorization, record_payment_operation

router = APIRouter()


@router.post("/payments/authorize", response_model=AuthorizeResponse)
def authorize_payment(
    request_body: AuthorizeRequest,
    request: Request,
    merchant_id: str = Depends(get_merchant_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """
    Authorize a card or token payment through the cheapest network.

    Business failures (duplicate reference, inactive token, high risk,
    no route, issuer decline) still return 200 with success=false and the
    reason in `message`.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        outcome = orchestrator.authorize(request_body.to_domain(), merchant_id)
    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    payment = outcome.payment
    duration_ms = (time.time() - start_time) * 1000
    record_authorization(
        success=outcome.success,
        has_payment=payment is not None,
        network=payment.selected_network.value if payment and payment.selected_network else None,
        representation=payment.representation.value if payment and payment.representation else None,
        risk_band=payment.risk_band.value if payment and payment.risk_band else None,
    )
    log_payment_event(
        request_id,
        merchant_id,
        "authorize",
        outcome.payment_id,
        outcome.status.value,
        duration_ms,
        network=payment.selected_network.value if payment and payment.selected_network else None,
        reason=None if outcome.success else outcome.message,
    )
    return AuthorizeResponse.from_outcome(outcome)


def _run_operation(operation: str, request: Request, merchant_id: str, call: Callable[[], Payment]) -> PaymentResponse:
    """Run a lifecycle operation and map domain errors to HTTP status codes"""
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        payment = call()
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidPaymentStateError, ConcurrentModificationError) as e:
        record_payment_operation(operation, success=False)
        logging.warning(f"{operation} rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))
    except PaymentValidationError as e:
        record_payment_operation(operation, success=False)
        logging.warning(f"{operation} rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))
    except ProcessorError as e:
        record_payment_operation(operation, success=False)
        logging.error(f"Card network error during {operation}: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    duration_ms = (time.time() - start_time) * 1000
    record_payment_operation(operation, success=True)
    log_payment_event(request_id, merchant_id, operation, payment.id, payment.status.value, duration_ms)
    return PaymentResponse.from_domain(payment)


@router.post("/payments/{payment_id}/capture", response_model=PaymentResponse)
def capture_payment(
    payment_id: str,
    request: Request,
    request_body: AmountRequest | None = None,
    merchant_id: str = Depends(get_merchant_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    amount = request_body.amount if request_body else None
    return _run_operation(
        "capture", request, merchant_id, lambda: orchestrator.capture(payment_id, merchant_id, amount)
    )


@router.put("/payments/{payment_id}/modify", response_model=PaymentResponse)
def modify_payment(
    payment_id: str,
    request_body: ModifyAmountRequest,
    request: Request,
    merchant_id: str = Depends(get_merchant_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    return _run_operation(
        "modify",
        request,
        merchant_id,
        lambda: orchestrator.modify_amount(payment_id, merchant_id, request_body.amount),
    )


@router.post("/payments/{payment_id}/cancel", response_model=PaymentResponse)
def cancel_payment(
    payment_id: str,
    request: Request,
    merchant_id: str = Depends(get_merchant_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    return _run_operation("cancel", request, merchant_id, lambda: orchestrator.cancel(payment_id, merchant_id))


@router.post("/payments/{payment_id}/refund", response_model=PaymentResponse)
def refund_payment(
    payment_id: str,
    request: Request,
    request_body: AmountRequest | None = None,
    merchant_id: str = Depends(get_merchant_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    amount = request_body.amount if request_body else None
    return _run_operation(
        "refund", request, merchant_id, lambda: orchestrator.refund(payment_id, merchant_id, amount)
    )


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
def get_payment(
    payment_id: str,
    merchant_id: str = Depends(get_merchant_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    try:
        return PaymentResponse.from_domain(orchestrator.get_payment(payment_id, merchant_id))
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/payments/{payment_id}/status", response_model=PaymentStatusResponse)
def get_payment_status(
    payment_id: str,
    merchant_id: str = Depends(get_merchant_id),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    try:
        status = orchestrator.get_status(payment_id, merchant_id)
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return PaymentStatusResponse(payment_id=payment_id, status=status)
