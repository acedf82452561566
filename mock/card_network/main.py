from decimal import Decimal
import os
import random

from fastapi import FastAPI
from pydantic import BaseModel

from lcr_gateway.domain.models import CardDetails, CardNetwork
from lcr_gateway.infrastructure.clients.emulator import EmulatedCardProcessor

app = FastAPI(title="Mock Card Network", version="1.0.0")

_seed = os.environ.get("CARD_NETWORK_SEED")
processor = EmulatedCardProcessor(
    rng=random.Random(int(_seed)) if _seed else None,
    failure_rate=float(os.environ.get("CARD_NETWORK_FAILURE_RATE", "0.05")),
    decline_rate=float(os.environ.get("CARD_NETWORK_DECLINE_RATE", "0.10")),
)


class AuthorizeBody(BaseModel):
    card_number: str
    expiry_month: int
    expiry_year: int
    amount: Decimal
    currency: str
    network: CardNetwork


class AmountBody(BaseModel):
    amount: Decimal
    currency: str


@app.get("/health")
def health(): return {"status": "ok"}

@app.post("/network/authorize")
def authorize(body: AuthorizeBody):
    card = CardDetails(body.card_number, None, body.expiry_month, body.expiry_year)
    result = processor.authorize(card, body.amount, body.currency, body.network)
    return {
        "approved": result.success,
        "auth_code": result.auth_code,
        "rrn": result.rrn,
        "transaction_id": result.transaction_id,
        "message": result.error_message,
    }

@app.post("/network/transactions/{transaction_id}/capture")
def capture(transaction_id: str, body: AmountBody):
    return {"success": processor.capture(transaction_id, body.amount, body.currency)}

@app.post("/network/transactions/{transaction_id}/void")
def void(transaction_id: str):
    return {"success": processor.void(transaction_id)}

@app.post("/network/transactions/{transaction_id}/refund")
def refund(transaction_id: str, body: AmountBody):
    return {"success": processor.refund(transaction_id, body.amount, body.currency)}
