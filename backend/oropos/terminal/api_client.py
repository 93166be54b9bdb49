# HTTP client for the Oro POS API.

"""
Thin httpx wrapper used by the register and the customer display.

Every failure is mapped to one of three kinds:

- TransientNetworkError: transport errors, timeouts, 5xx, 408, 429
- AuthenticationRequired: 401, the token is missing, expired or revoked
- PermanentRejection: any other non-2xx, with the server's error code,
  message and details
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .config import TerminalConfig
from .errors import AuthenticationRequired, PermanentRejection, TransientNetworkError

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 429}


class PosApiClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
        tenant_code: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.tenant_code = tenant_code
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config: TerminalConfig) -> "PosApiClient":
        return cls(
            config.api_url,
            token=config.api_token,
            timeout=config.request_timeout,
            tenant_code=config.tenant_code,
        )

    def _headers(self, extra: Optional[Dict] = None) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, path: str, *, json: Any = None, params: Optional[Dict] = None,
                 headers: Optional[Dict] = None, timeout: Optional[float] = None) -> Dict:
        kwargs: Dict[str, Any] = {"headers": self._headers(headers), "json": json, "params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransientNetworkError(f"{method} {path}: {e}") from e

        if response.is_success:
            return response.json() if response.content else {}

        status = response.status_code
        if status >= 500 or status in TRANSIENT_STATUS_CODES:
            raise TransientNetworkError(f"{method} {path}: HTTP {status}", status_code=status)

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.pop("error", None) or f"HTTP {status}"
        code = body.pop("code", None)
        if status == 401:
            raise AuthenticationRequired(f"{method} {path}: {message}")
        raise PermanentRejection(status, code, message, body)

    # -- auth ---------------------------------------------------------------

    def login(self, username: str, password: str) -> Dict:
        data = self._request("POST", "/api/auth/login", json={"username": username, "password": password})
        self.token = data.get("token")
        return data

    # -- transactions -------------------------------------------------------

    def commit_sale(self, payload: Dict, idempotency_key: str) -> Dict:
        return self._request(
            "POST", "/api/pos/transactions",
            json=payload,
            headers={"Idempotency-Key": idempotency_key},
        )

    def process_refund(self, payload: Dict, idempotency_key: str) -> Dict:
        return self._request(
            "POST", "/api/pos/refund",
            json=payload,
            headers={"Idempotency-Key": idempotency_key},
        )

    # -- customer display ---------------------------------------------------

    def get_display_state(self, station_id: str, since: Optional[int] = None, wait: Optional[float] = None) -> Dict:
        params: Dict[str, Any] = {"stationId": station_id}
        if self.tenant_code:
            params["tenantCode"] = self.tenant_code
        timeout = None
        if since is not None and wait:
            params["since"] = since
            params["wait"] = wait
            timeout = wait + 5
        return self._request("GET", "/api/pos/display-sync", params=params, timeout=timeout)

    def publish_display_state(self, station_id: str, cart: Dict) -> Dict:
        return self._request("POST", "/api/pos/display-sync", json={"stationId": station_id, "cart": cart})

    # -- catalog ------------------------------------------------------------

    def search_products(self, query: str, limit: int = 10) -> list:
        data = self._request("GET", "/api/products/search", params={"q": query, "limit": limit})
        return data.get("results", [])

    # -- offline capability -------------------------------------------------

    def get_offline_capability(self) -> Dict:
        return self._request("GET", "/api/offline/capability")

    def accept_offline_terms(self, terms_version: Optional[str] = None) -> Dict:
        return self._request("POST", "/api/offline/terms", json={
            "acceptTerms": True,
            "acknowledgeRisk": True,
            "termsVersion": terms_version,
        })

    def close(self):
        self.client.close()
