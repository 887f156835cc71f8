"""
Key container provisioning.

Reconciles the declared key containers against the tenant: containers that
already exist are left alone, missing ones are created and populated with
either a generated key or a caller-supplied secret. Nothing is ever updated
or deleted.
"""

import base64
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from b2c_sso_takeover.config.tenant import TenantContext
from b2c_sso_takeover.core.graph.client import B2CGraphClient
from b2c_sso_takeover.utils.error_handling import ApiError, ConfigurationError, KeyProvisioningError
from b2c_sso_takeover.utils.logging import get_logger

logger = get_logger(__name__)

SIGNING_KEY_SET = "B2C_1A_TokenSigningKeyContainer"
ENCRYPTION_KEY_SET = "B2C_1A_TokenEncryptionKeyContainer"
FACEBOOK_SECRET_KEY_SET = "B2C_1A_FacebookSecret"

_KEY_SET_NAME = re.compile(r'^B2C_1A_[A-Za-z0-9_]+$')


class KeyUsage(str, Enum):
    SIGNING = "signing"
    ENCRYPTION = "encryption"
    SHARED_SECRET = "shared-secret"

    @property
    def graph_use(self) -> str:
        """Value of the 'use' field sent to the service"""
        # OAuth client secrets are stored as signature keys
        return "enc" if self is KeyUsage.ENCRYPTION else "sig"


@dataclass(frozen=True)
class KeyResource:
    """A named key container and where its key material comes from."""
    name: str
    usage: KeyUsage
    key_type: str = "RSA"
    secret: Optional[str] = field(default=None, repr=False)

    def __post_init__(self):
        if not _KEY_SET_NAME.match(self.name):
            raise ConfigurationError(
                f"'{self.name}' is not a valid key container name (expected B2C_1A_<name>)",
                config_key="key_set"
            )
        if self.usage is KeyUsage.SHARED_SECRET and not self.secret:
            raise ConfigurationError(
                f"Key container {self.name} is a shared secret but no secret was supplied",
                config_key="key_set"
            )

    @property
    def source(self) -> str:
        return "uploaded secret" if self.secret else f"generated {self.key_type}"


@dataclass
class ProvisioningReport:
    created: List[str] = field(default_factory=list)
    existing: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def declared_key_resources(context: TenantContext) -> List[KeyResource]:
    """
    Key containers the policies reference, in provisioning order.

    The shared-secret container is only declared when a secret was supplied.
    """
    resources = [
        KeyResource(SIGNING_KEY_SET, KeyUsage.SIGNING),
        KeyResource(ENCRYPTION_KEY_SET, KeyUsage.ENCRYPTION),
    ]
    if context.has_facebook_secret:
        resources.append(KeyResource(
            FACEBOOK_SECRET_KEY_SET,
            KeyUsage.SHARED_SECRET,
            secret=context.facebook_secret.get_secret_value()
        ))
    return resources


def encode_secret(secret: str) -> str:
    return base64.b64encode(secret.encode('utf-8')).decode('ascii')


async def _populate(client: B2CGraphClient, resource: KeyResource) -> None:
    if resource.secret:
        await client.upload_secret(resource.name, resource.usage.graph_use, encode_secret(resource.secret))
    else:
        await client.generate_key(resource.name, resource.usage.graph_use, resource.key_type)


async def ensure_key_resource(client: B2CGraphClient, resource: KeyResource) -> bool:
    """
    Make sure a key container exists and holds key material.

    Args:
        client: Authenticated Graph client
        resource: Declared key container

    Returns:
        True when the container was created by this call, False when it already existed

    Raises:
        KeyProvisioningError: lookup or creation failed
    """
    try:
        existing = await client.get_key_set(resource.name)
    except ApiError as e:
        raise KeyProvisioningError(
            f"Could not look up key container {resource.name}: {e.message}",
            key_set=resource.name,
            status_code=e.status_code,
            endpoint=e.endpoint,
            payload=e.payload,
            original_exception=e
        )

    if existing is not None:
        if existing.get("keys") == []:
            # Left empty by an interrupted earlier run
            logger.warning(f"Key container {resource.name} exists but holds no keys, adding {resource.source}")
            await _apply(client, resource, create=False)
        else:
            logger.info(f"Key container {resource.name} already exists")
        return False

    logger.info(f"Creating key container {resource.name} ({resource.usage.value}, {resource.source})")
    await _apply(client, resource, create=True)
    logger.info(f"✅ Created key container {resource.name}")
    return True


async def _apply(client: B2CGraphClient, resource: KeyResource, create: bool) -> None:
    try:
        if create:
            await client.create_key_set(resource.name)
        await _populate(client, resource)
    except ApiError as e:
        raise KeyProvisioningError(
            f"Failed to provision key container {resource.name}: {e.message}",
            key_set=resource.name,
            status_code=e.status_code,
            endpoint=e.endpoint,
            payload=e.payload,
            original_exception=e
        )


async def reconcile_key_resources(client: B2CGraphClient, resources: List[KeyResource]) -> ProvisioningReport:
    """
    Apply only the missing creations for the declared key containers, in order.

    Stops at the first failure; containers created before it are kept.
    """
    report = ProvisioningReport()
    for resource in resources:
        if await ensure_key_resource(client, resource):
            report.created.append(resource.name)
        else:
            report.existing.append(resource.name)
    return report
