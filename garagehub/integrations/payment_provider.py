"""Minimal Chapa-style payment provider client: initialize checkout, verify by reference."""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from garagehub.config import settings

logger = logging.getLogger(__name__)


class PaymentProviderError(RuntimeError):
    """Raised when the provider cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None, error_body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_body = error_body


class PaymentProviderClient:
    """Thin client for the provider's transaction API."""

    name = "Chapa"

    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str = "https://api.chapa.co/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def initialize(self, **payload: Any) -> Dict[str, Any]:
        """Start a hosted checkout. Returns the ``data`` object, which carries ``checkout_url``."""
        body = {key: value for key, value in payload.items() if value is not None}
        response = self.request("POST", "/transaction/initialize", json_body=body)
        data = response.get("data") or {}
        if not data.get("checkout_url"):
            raise PaymentProviderError("Provider did not return a checkout URL", error_body=response)
        return data

    def verify(self, tx_ref: str) -> Dict[str, Any]:
        """Look up a transaction. The returned ``data.status`` is ``success`` once paid."""
        if not tx_ref:
            raise ValueError("tx_ref must be provided")
        response = self.request("GET", f"/transaction/verify/{tx_ref}")
        return response.get("data") or {}

    def request(self, method: str, path: str, *, json_body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        with httpx.Client(
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self._secret_key}",
                "Accept": "application/json",
            },
        ) as client:
            try:
                response = client.request(method, url, json=json_body)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                logger.error("Payment provider error %s for %s %s: %s", status, method, path, exc.response.text[:500])
                raise PaymentProviderError(
                    f"Payment provider responded with status {status}",
                    status_code=status,
                    error_body=exc.response.text,
                ) from exc
            except httpx.RequestError as exc:
                logger.error("Payment provider request failure for %s %s: %s", method, path, str(exc))
                raise PaymentProviderError("Failed to reach payment provider") from exc

        try:
            return response.json()
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON from payment provider for %s %s: %s", method, path, response.text)
            raise PaymentProviderError("Received malformed JSON from payment provider") from exc


def get_payment_provider() -> PaymentProviderClient:
    """FastAPI dependency; tests override it with a client on an ``httpx.MockTransport``."""
    return PaymentProviderClient(
        secret_key=settings.PAYMENT_PROVIDER_SECRET_KEY,
        base_url=settings.PAYMENT_PROVIDER_BASE_URL,
    )
