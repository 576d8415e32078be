"""Midtrans Snap / Core API client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from roomstay.config import get_env, get_env_bool
from roomstay.errors import PaymentGatewayError

logger = logging.getLogger(__name__)

SNAP_BASE_URLS = {
    False: "https://app.sandbox.midtrans.com",
    True: "https://app.midtrans.com",
}
API_BASE_URLS = {
    False: "https://api.sandbox.midtrans.com",
    True: "https://api.midtrans.com",
}


@dataclass
class SnapTransaction:
    token: str
    redirect_url: str | None


class MidtransClient:
    """Creates Snap transactions and queries transaction status."""

    def __init__(
        self,
        server_key: str | None = None,
        client_key: str | None = None,
        is_production: bool | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.server_key = server_key if server_key is not None else get_env("MIDTRANS_SERVER_KEY", "")
        self.client_key = client_key if client_key is not None else get_env("MIDTRANS_CLIENT_KEY", "")
        if is_production is None:
            is_production = get_env_bool("MIDTRANS_IS_PRODUCTION")
        self.is_production = is_production
        self._client = http_client or httpx.Client(timeout=30)

    @property
    def is_configured(self) -> bool:
        return bool(self.server_key and self.client_key)

    @property
    def snap_base_url(self) -> str:
        return SNAP_BASE_URLS[self.is_production]

    @property
    def api_base_url(self) -> str:
        return API_BASE_URLS[self.is_production]

    def create_transaction(
        self,
        order_id: str,
        gross_amount: int,
        *,
        customer: dict[str, Any] | None = None,
        items: list[dict[str, Any]] | None = None,
        finish_url: str | None = None,
    ) -> SnapTransaction:
        """Register a payment with Snap and return its token and redirect URL."""
        payload: dict[str, Any] = {
            "transaction_details": {"order_id": order_id, "gross_amount": gross_amount},
            "credit_card": {"secure": True},
        }
        if customer:
            payload["customer_details"] = customer
        if items:
            payload["item_details"] = items
        if finish_url:
            payload["callbacks"] = {"finish": finish_url, "error": finish_url, "pending": finish_url}

        data = self._request("POST", f"{self.snap_base_url}/snap/v1/transactions", json=payload)
        token = data.get("token")
        if not token:
            raise PaymentGatewayError("Payment gateway did not return a transaction token")
        logger.info("Created gateway transaction for order %s", order_id)
        return SnapTransaction(token=token, redirect_url=data.get("redirect_url"))

    def get_status(self, order_id: str) -> dict[str, Any]:
        """Fetch the current transaction status of an order."""
        return self._request("GET", f"{self.api_base_url}/v2/{order_id}/status")

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        if not self.server_key:
            raise PaymentGatewayError("Payment gateway credentials are not configured")
        try:
            response = self._client.request(
                method,
                url,
                auth=(self.server_key, ""),
                headers={"Accept": "application/json"},
                **kwargs,
            )
        except httpx.HTTPError as exc:
            logger.exception("Payment gateway request failed: %s %s", method, url)
            raise PaymentGatewayError(f"Payment gateway unreachable: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code >= 400:
            message = (
                data.get("status_message")
                or (data.get("error_messages") or [None])[0]
                or f"HTTP {response.status_code}"
            )
            logger.warning("Payment gateway rejected %s %s: %s", method, url, message)
            raise PaymentGatewayError(f"Payment gateway error: {message}")
        return data
