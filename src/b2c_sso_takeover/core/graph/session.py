"""
Graph Session Establishment

Authenticates the deployment run against Microsoft Graph using AuthLib's
httpx OAuth2 client (client credentials grant) and hands back an explicit
B2CGraphClient handle for all subsequent calls.

The session must carry exactly the two trust framework permissions the run
needs. A token lacking either one is rejected before any remote write.
Authentication failures are fatal and never retried.
"""

import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, FrozenSet, Optional

import httpx
from authlib.common.encoding import to_bytes, urlsafe_b64decode
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client

from b2c_sso_takeover.config.settings import GRAPH_DEFAULT_SCOPE, Settings
from b2c_sso_takeover.core.graph.client import USER_AGENT, B2CGraphClient
from b2c_sso_takeover.utils.error_handling import AuthenticationError
from b2c_sso_takeover.utils.logging import get_logger

logger = get_logger(__name__)

REQUIRED_PERMISSIONS = (
    "Policy.ReadWrite.TrustFramework",
    "TrustFrameworkKeySet.ReadWrite.All",
)


def token_permissions(access_token: str) -> FrozenSet[str]:
    """
    Read the granted permissions from an access token's claims.

    Application tokens carry a 'roles' list, delegated tokens a
    space-separated 'scp' string. The signature is not verified here;
    the directory service does that on every call.
    """
    try:
        payload_segment = access_token.split('.')[1]
        claims = json.loads(urlsafe_b64decode(to_bytes(payload_segment)))
    except (IndexError, ValueError) as e:
        raise AuthenticationError("Access token is not a JWT", original_exception=e)
    if not isinstance(claims, dict):
        raise AuthenticationError("Access token claims are not a JSON object")

    granted = set(claims.get('roles') or [])
    granted.update((claims.get('scp') or '').split())
    return frozenset(granted)


def check_permissions(access_token: str) -> None:
    """Raise AuthenticationError unless every required permission was granted."""
    granted = token_permissions(access_token)
    missing = [p for p in REQUIRED_PERMISSIONS if p not in granted]
    if missing:
        raise AuthenticationError(
            f"Access token is missing required permission(s): {', '.join(missing)}",
            context={"granted": sorted(granted)}
        )


class GraphSession:
    """
    Acquires a Graph access token for one tenant.

    Args:
        tenant: Tenant domain, e.g. contosob2c.onmicrosoft.com
        settings: Loaded settings (credentials, endpoints, timeout)
        transport: Optional httpx transport, used by tests
    """

    def __init__(self, tenant: str, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.tenant = tenant
        self.settings = settings
        self.transport = transport
        self.token_endpoint = settings.token_endpoint(tenant)

    async def authenticate(self) -> str:
        """
        Return a bearer token carrying the required permissions.

        Raises:
            AuthenticationError: on missing credentials, a rejected token
                request or insufficient permissions
        """
        if self.settings.B2C_ACCESS_TOKEN:
            logger.info("Using pre-acquired access token from B2C_ACCESS_TOKEN")
            access_token = self.settings.B2C_ACCESS_TOKEN.strip()
        else:
            access_token = await self._fetch_client_credentials_token()

        check_permissions(access_token)
        logger.info(f"Authenticated to {self.tenant} with {', '.join(REQUIRED_PERMISSIONS)}")
        return access_token

    async def _fetch_client_credentials_token(self) -> str:
        client_id = self.settings.B2C_DEPLOY_CLIENT_ID
        client_secret = self.settings.B2C_DEPLOY_CLIENT_SECRET
        if not client_id or not client_secret:
            raise AuthenticationError(
                "No credentials configured. Set B2C_DEPLOY_CLIENT_ID and B2C_DEPLOY_CLIENT_SECRET "
                "or provide B2C_ACCESS_TOKEN"
            )

        logger.info(f"Requesting Graph token for client {client_id[:8]}... from {self.token_endpoint}")
        oauth_kwargs = {"timeout": self.settings.REQUEST_TIMEOUT}
        if self.transport is not None:
            oauth_kwargs["transport"] = self.transport

        async with AsyncOAuth2Client(
            client_id=client_id,
            client_secret=client_secret,
            scope=GRAPH_DEFAULT_SCOPE,
            token_endpoint_auth_method='client_secret_post',
            **oauth_kwargs
        ) as oauth2_client:
            try:
                token = await oauth2_client.fetch_token(
                    url=self.token_endpoint,
                    grant_type='client_credentials',
                    scope=GRAPH_DEFAULT_SCOPE,
                    headers={
                        'User-Agent': USER_AGENT,
                        'Accept': 'application/json',
                        'Content-Type': 'application/x-www-form-urlencoded'
                    }
                )
            except OAuthError as e:
                raise AuthenticationError(
                    f"Token request rejected: {e.error}",
                    endpoint=self.token_endpoint,
                    payload=e.description,
                    original_exception=e
                )
            except httpx.HTTPError as e:
                raise AuthenticationError(
                    f"Token request failed: {type(e).__name__}: {e}",
                    endpoint=self.token_endpoint,
                    original_exception=e
                )

        access_token = token.get('access_token')
        if not access_token:
            raise AuthenticationError("No access token in token response", endpoint=self.token_endpoint)
        return access_token


@asynccontextmanager
async def open_graph_client(
    tenant: str,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> AsyncIterator[B2CGraphClient]:
    """
    Authenticate and yield a B2CGraphClient bound to the session.

    Usage:
        async with open_graph_client(context.tenant, settings) as client:
            await client.get_key_set("B2C_1A_TokenSigningKeyContainer")
    """
    session = GraphSession(tenant, settings, transport=transport)
    access_token = await session.authenticate()

    client_kwargs = {
        "headers": {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        },
        "timeout": settings.REQUEST_TIMEOUT,
    }
    if transport is not None:
        client_kwargs["transport"] = transport

    async with httpx.AsyncClient(**client_kwargs) as http_client:
        yield B2CGraphClient(http_client, settings.graph_api_root)
