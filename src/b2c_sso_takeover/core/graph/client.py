"""
Microsoft Graph trust framework client.

Thin async wrapper over the key set and policy endpoints used by the
deployment run. Every call is awaited individually; there is no retry,
batching or pagination.

Usage:
    client = B2CGraphClient(http_client, "https://graph.microsoft.com/beta")
    if await client.get_key_set("B2C_1A_TokenSigningKeyContainer") is None:
        ...
"""

from typing import Any, Dict, Iterable, Optional

import httpx

from b2c_sso_takeover.utils.error_handling import ApiError
from b2c_sso_takeover.utils.logging import get_logger

logger = get_logger(__name__)

KEY_SETS_PATH = "/trustFramework/keySets"
POLICIES_PATH = "/trustFramework/policies"

USER_AGENT = "b2c-sso-takeover-deploy"


class B2CGraphClient:
    """
    Explicit session handle for the directory service.

    Wraps an already authenticated httpx.AsyncClient. Ownership of the
    underlying client stays with whoever created it.
    """

    def __init__(self, http_client: httpx.AsyncClient, api_root: str):
        self.http = http_client
        self.api_root = api_root.rstrip('/')

    def _url(self, path: str) -> str:
        return f"{self.api_root}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        allowed_statuses: Iterable[int] = ()
    ) -> httpx.Response:
        """
        Issue a single request and raise ApiError on a non-2xx status.

        Args:
            method: HTTP method
            path: Path below the versioned API root
            json: JSON body
            content: Raw body
            headers: Extra headers
            allowed_statuses: Non-2xx statuses returned to the caller instead of raised

        Returns:
            The httpx response
        """
        url = self._url(path)
        logger.debug(f"{method} {url}")
        try:
            response = await self.http.request(method, url, json=json, content=content, headers=headers)
        except httpx.HTTPError as e:
            raise ApiError(
                f"{method} {path} failed: {type(e).__name__}: {e}",
                endpoint=path,
                original_exception=e
            )

        if response.is_success or response.status_code in allowed_statuses:
            return response

        raise ApiError(
            f"{method} {path} returned HTTP {response.status_code}",
            status_code=response.status_code,
            endpoint=path,
            payload=response.text
        )

    # ---------------- Key sets ----------------

    async def get_key_set(self, key_set_id: str) -> Optional[Dict[str, Any]]:
        """Return the key set, or None when it does not exist."""
        response = await self._request("GET", f"{KEY_SETS_PATH}/{key_set_id}", allowed_statuses=(404,))
        if response.status_code == 404:
            logger.debug(f"Key set {key_set_id} not found")
            return None
        return response.json()

    async def create_key_set(self, key_set_id: str) -> Dict[str, Any]:
        """Create an empty key container."""
        response = await self._request("POST", KEY_SETS_PATH, json={"id": key_set_id})
        return response.json()

    async def upload_secret(self, key_set_id: str, use: str, secret_b64: str) -> Dict[str, Any]:
        """Upload caller-supplied key material into an existing container."""
        response = await self._request(
            "POST",
            f"{KEY_SETS_PATH}/{key_set_id}/uploadSecret",
            json={"use": use, "k": secret_b64}
        )
        return response.json()

    async def generate_key(self, key_set_id: str, use: str, kty: str) -> Dict[str, Any]:
        """Ask the service to generate a key of type kty in an existing container."""
        response = await self._request(
            "POST",
            f"{KEY_SETS_PATH}/{key_set_id}/generateKey",
            json={"use": use, "kty": kty}
        )
        return response.json()

    # ---------------- Policies ----------------

    async def upload_policy(self, policy_id: str, xml: str) -> None:
        """Create or replace a policy's content."""
        await self._request(
            "PUT",
            f"{POLICIES_PATH}/{policy_id}/$value",
            content=xml.encode('utf-8'),
            headers={"Content-Type": "application/xml"}
        )
