"""
Legalkart court-data API - CNR case search across high, district and supreme courts.

Auth: POST user_id + hash_key to the login endpoint for a JWT, sent raw in the
Authorization header of every search. The token is cached per client and
re-issued once on a 401.
All calls have a 25-second timeout (the per-case budget of the daily refresh).
"""
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

BASE_URL = "https://apiservices.legalkart.com/api/v1/application-service"
LOGIN_URL = f"{BASE_URL}/auth/login"
SEARCH_PATHS = {
    "high_court": "case-search/high-court",
    "district_court": "case-search/district-court",
    "supreme_court": "case-search/supreme-court",
}
TIMEOUT = 25.0


class LegalkartError(Exception):
    """Provider failure. `code` is one of the fetch queue's known error codes when recognisable."""

    def __init__(self, code: str, message: str, status_code: Optional[int] = None):
        self.code = code
        self.status_code = status_code
        super().__init__(f"{code}: {message}")


class LegalkartClient:
    """Thin async client for CNR searches."""

    def __init__(self, user_id: str, hash_key: str, timeout: float = TIMEOUT):
        self.user_id = user_id
        self.hash_key = hash_key
        self.timeout = timeout
        self._token: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "LegalkartClient":
        from lawdesk.config import get_settings
        settings = get_settings()
        if not settings.legalkart_user_id or not settings.legalkart_hash_key:
            raise LegalkartError("NOT_CONFIGURED", "Legalkart credentials not configured")
        return cls(settings.legalkart_user_id, settings.legalkart_hash_key)

    async def authenticate(self) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    LOGIN_URL,
                    json={"user_id": self.user_id, "hash_key": self.hash_key},
                )
        except httpx.TimeoutException as e:
            raise LegalkartError("API_TIMEOUT", f"Login timed out: {e}")
        except httpx.TransportError as e:
            raise LegalkartError("NETWORK_ERROR", f"Login request failed: {e}")

        if response.status_code >= 400:
            raise LegalkartError(
                "AUTH_FAILED",
                f"Authentication failed: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        data = response.json()
        token = data.get("jwt")
        if not token:
            raise LegalkartError("AUTH_FAILED", data.get("message") or data.get("error") or "No token received")
        self._token = token
        return token

    async def search_case(self, cnr_number: str, search_type: str) -> dict:
        """Return the provider payload for a CNR. Raises LegalkartError."""
        path = SEARCH_PATHS.get(search_type)
        if path is None:
            raise LegalkartError("COURT_TYPE_MISMATCH", f"Unsupported search type: {search_type}")

        if self._token is None:
            await self.authenticate()

        response = await self._post_search(path, cnr_number)
        if response.status_code == 401:
            logger.info("Legalkart token rejected, re-authenticating", extra={"provider": "legalkart"})
            await self.authenticate()
            response = await self._post_search(path, cnr_number)

        if response.status_code == 404:
            raise LegalkartError("CNR_NOT_FOUND", f"CNR {cnr_number} not found", status_code=404)
        if response.status_code == 422:
            raise LegalkartError("INVALID_CNR_FORMAT", f"CNR {cnr_number} rejected", status_code=422)
        if response.status_code == 429:
            raise LegalkartError("RATE_LIMIT", "Too many requests", status_code=429)
        if response.status_code >= 400:
            raise LegalkartError(
                "SEARCH_FAILED",
                f"Search failed: {response.status_code}",
                status_code=response.status_code,
            )

        data = response.json()
        if isinstance(data, dict) and data.get("error"):
            raise LegalkartError("SEARCH_FAILED", str(data["error"]))
        return data

    async def _post_search(self, path: str, cnr_number: str) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(
                    f"{BASE_URL}/{path}",
                    headers={"Authorization": self._token, "Content-Type": "application/json"},
                    json={"cnr": cnr_number},
                )
        except httpx.TimeoutException as e:
            raise LegalkartError("API_TIMEOUT", f"Search timed out: {e}")
        except httpx.TransportError as e:
            raise LegalkartError("NETWORK_ERROR", f"Search request failed: {e}")
