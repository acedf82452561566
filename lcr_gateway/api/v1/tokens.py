"""Token vault endpoints"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from lcr_gateway.api.dependencies import get_request_id, get_token_vault
from lcr_gateway.api.v1.schemas import (
    TokenizeRequest,
    TokenNetworkRequest,
    TokenRefreshRequest,
    TokenResponse,
    TokenStatusRequest,
)
from lcr_gateway.config import settings
from lcr_gateway.domain.exceptions import TokenError
from lcr_gateway.domain.models import CardNetwork, CardToken
from lcr_gateway.domain.token_vault import TokenVault
from lcr_gateway.infrastructure.observability.metrics import token_operation_counter

router = APIRouter()


def _found(token: CardToken | None, token_reference: str) -> TokenResponse:
    if token is None:
        raise HTTPException(status_code=404, detail=f"Token not found: {token_reference}")
    return TokenResponse.from_domain(token)


@router.post("/tokens", response_model=TokenResponse, status_code=201)
def create_token(
    request_body: TokenizeRequest,
    request: Request,
    vault: TokenVault = Depends(get_token_vault),
):
    """Tokenize a card for one network, or for several with `networks`"""
    networks = request_body.networks or [request_body.network or CardNetwork(settings.default_token_network)]
    card = request_body.card.to_domain()

    try:
        if len(networks) > 1:
            token = vault.tokenize_multi(card, networks)
        else:
            token = vault.tokenize(card, networks[0])
    except TokenError as e:
        logging.warning(f"Tokenization rejected: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=422, detail=str(e))

    token_operation_counter.labels(operation="tokenize").inc()
    return TokenResponse.from_domain(token)


@router.get("/tokens/{token_reference}", response_model=TokenResponse)
def get_token(token_reference: str, vault: TokenVault = Depends(get_token_vault)):
    return _found(vault.get_by_reference(token_reference), token_reference)


@router.patch("/tokens/{token_reference}/status", response_model=TokenResponse)
def update_token_status(
    token_reference: str,
    request_body: TokenStatusRequest,
    vault: TokenVault = Depends(get_token_vault),
):
    try:
        token = vault.set_status(token_reference, request_body.status)
    except TokenError as e:
        raise HTTPException(status_code=409, detail=str(e))
    token_operation_counter.labels(operation="set_status").inc()
    return _found(token, token_reference)


@router.post("/tokens/{token_reference}/networks", response_model=TokenResponse)
def add_token_network(
    token_reference: str,
    request_body: TokenNetworkRequest,
    vault: TokenVault = Depends(get_token_vault),
):
    token = vault.add_network(token_reference, request_body.network)
    token_operation_counter.labels(operation="add_network").inc()
    return _found(token, token_reference)


@router.post("/tokens/{token_reference}/refresh", response_model=TokenResponse)
def refresh_token(
    token_reference: str,
    request_body: TokenRefreshRequest,
    vault: TokenVault = Depends(get_token_vault),
):
    try:
        token = vault.refresh(token_reference, request_body.extra_months)
    except TokenError as e:
        raise HTTPException(status_code=422, detail=str(e))
    token_operation_counter.labels(operation="refresh").inc()
    return _found(token, token_reference)


@router.delete("/tokens/{token_reference}", status_code=204)
def delete_token(token_reference: str, vault: TokenVault = Depends(get_token_vault)):
    if not vault.delete(token_reference):
        raise HTTPException(status_code=404, detail=f"Token not found: {token_reference}")
    token_operation_counter.labels(operation="delete").inc()
    return Response(status_code=204)
