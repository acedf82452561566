"""Card network HTTP client"""

from decimal import Decimal
from typing import Any, Dict

import httpx

from lcr_gateway.config import settings
from lcr_gateway.domain.exceptions import ProcessorError
from lcr_gateway.domain.models import AuthorizationResult, CardDetails, CardNetwork
from lcr_gateway.infrastructure.observability.metrics import (
    card_network_failures_counter,
    card_network_latency_histogram,
)


class HttpCardProcessor:
    """
    Client for the external card network service.

    Calls are never retried here: capture, void and refund move money, so
    repeating one is the caller's decision.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ):
        self.base_url = (base_url or settings.card_network_base).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self._client = client or httpx.Client(timeout=self.timeout)

    def authorize(
        self, card: CardDetails, amount: Decimal, currency: str, network: CardNetwork
    ) -> AuthorizationResult:
        data = self._post(
            "authorize",
            "/network/authorize",
            {
                "card_number": card.card_number,
                "expiry_month": card.expiry_month,
                "expiry_year": card.expiry_year,
                "amount": str(amount),
                "currency": currency,
                "network": network.value,
            },
        )
        try:
            if not data["approved"]:
                return AuthorizationResult.failed(data.get("message") or "Authorization declined")
            return AuthorizationResult.approved(
                auth_code=data["auth_code"],
                rrn=data["rrn"],
                transaction_id=data["transaction_id"],
                network=network,
            )
        except (KeyError, TypeError) as e:
            raise ProcessorError(f"Invalid authorization response from card network: {e}") from e

    def capture(self, transaction_id: str, amount: Decimal, currency: str) -> bool:
        data = self._post(
            "capture",
            f"/network/transactions/{transaction_id}/capture",
            {"amount": str(amount), "currency": currency},
        )
        return bool(data.get("success"))

    def void(self, transaction_id: str) -> bool:
        data = self._post("void", f"/network/transactions/{transaction_id}/void", {})
        return bool(data.get("success"))

    def refund(self, transaction_id: str, amount: Decimal, currency: str) -> bool:
        data = self._post(
            "refund",
            f"/network/transactions/{transaction_id}/refund",
            {"amount": str(amount), "currency": currency},
        )
        return bool(data.get("success"))

    def close(self) -> None:
        self._client.close()

    def _post(self, operation: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST to the card network.

        Raises:
            ProcessorError: On timeout, HTTP errors, or a non-JSON body
        """
        try:
            with card_network_latency_histogram.labels(operation=operation).time():
                response = self._client.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            card_network_failures_counter.labels(operation=operation).inc()
            raise ProcessorError(f"Card network timeout after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            card_network_failures_counter.labels(operation=operation).inc()
            raise ProcessorError(f"Card network error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            card_network_failures_counter.labels(operation=operation).inc()
            raise ProcessorError(f"Card network unreachable: {e}") from e
        except ValueError as e:
            raise ProcessorError(f"Invalid response from card network: {e}") from e
