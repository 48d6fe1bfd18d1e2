"""PayPal REST API client."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx

from config import PayPalOptions
from errors import PaymentProviderError

logger = logging.getLogger(__name__)


class PayPalClient:
    """
    Thin authenticated transport for the PayPal REST API.

    Holds an OAuth2 client-credentials token and refreshes it a minute before the
    lifetime PayPal reports. Responses are returned as-is; interpreting status
    codes and bodies is up to the caller.
    """

    TOKEN_PATH = "/v1/oauth2/token"
    TOKEN_SAFETY_MARGIN = 60
    MIN_TOKEN_LIFETIME = 30

    def __init__(self, options: PayPalOptions, http: Optional[httpx.AsyncClient] = None) -> None:
        """
        Initialize the PayPal client.

        Args:
            options: PayPal credentials, API root and checkout currency
            http: Preconfigured async client; one pointed at options.base_url is created if omitted
        """
        self.options = options
        self.http = http or httpx.AsyncClient(base_url=options.base_url.rstrip("/"), timeout=30.0)
        self._token: Optional[str] = None
        self._token_expires_at: datetime = datetime.min

    async def get_access_token(self) -> str:
        """Return the cached bearer token, fetching a new one when it is missing or stale."""
        if self._token is not None and datetime.utcnow() < self._token_expires_at:
            return self._token

        response = await self.http.post(
            self.TOKEN_PATH,
            data={"grant_type": "client_credentials"},
            auth=(self.options.client_id, self.options.secret),
            headers={"Accept": "application/json"},
        )
        if response.status_code >= 400:
            logger.error(f"PayPal token request failed: status={response.status_code}")
            raise PaymentProviderError("PayPal authentication failed", response.status_code)

        try:
            doc = response.json()
            token = doc["access_token"]
            expires_in = int(doc.get("expires_in", 0))
        except (ValueError, KeyError, TypeError):
            raise PaymentProviderError("PayPal returned an unreadable token response", response.status_code)

        lifetime = max(self.MIN_TOKEN_LIFETIME, expires_in - self.TOKEN_SAFETY_MARGIN)
        self._token = token
        self._token_expires_at = datetime.utcnow() + timedelta(seconds=lifetime)
        logger.info(f"Obtained PayPal access token, valid for {lifetime}s")
        return token

    async def post(self, path: str, body: Any, idempotency_key: Optional[str] = None) -> httpx.Response:
        """
        POST a JSON body.

        Args:
            path: API path, e.g. /v2/checkout/orders
            body: JSON-serializable payload
            idempotency_key: Sent as PayPal-Request-Id so retried calls are deduplicated
        """
        token = await self.get_access_token()
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        if idempotency_key and idempotency_key.strip():
            headers["PayPal-Request-Id"] = idempotency_key.strip()
        return await self.http.post(path, json=body, headers=headers)

    async def get(self, path: str) -> httpx.Response:
        token = await self.get_access_token()
        return await self.http.get(path, headers={"Authorization": f"Bearer {token}"})

    async def aclose(self) -> None:
        await self.http.aclose()
