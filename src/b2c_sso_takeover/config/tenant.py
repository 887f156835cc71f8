"""
Tenant context for a deployment run.

Holds the target tenant and the caller-supplied identifiers substituted into
the policy documents. Validated once at invocation and immutable afterwards.
"""

import re
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from b2c_sso_takeover.config.settings import Settings
from b2c_sso_takeover.utils.error_handling import ConfigurationError

TENANT_DOMAIN_SUFFIX = ".onmicrosoft.com"

_TENANT_LABEL = re.compile(r'^[a-z0-9][a-z0-9-]{0,62}$')

# Settings attribute backing each context field
SETTINGS_FIELDS = {
    "tenant": "B2C_TENANT",
    "ief_app_id": "B2C_IEF_APP_ID",
    "proxy_ief_app_id": "B2C_PROXY_IEF_APP_ID",
    "facebook_client_id": "B2C_FACEBOOK_CLIENT_ID",
    "facebook_secret": "B2C_FACEBOOK_SECRET",
    "extensions_app_object_id": "B2C_EXTENSIONS_APP_OBJECT_ID",
    "extensions_app_client_id": "B2C_EXTENSIONS_APP_CLIENT_ID",
}


class TenantContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    tenant: str = Field(..., description="B2C tenant, e.g. contosob2c.onmicrosoft.com")
    ief_app_id: str = Field(..., description="IdentityExperienceFramework application (client) ID")
    proxy_ief_app_id: str = Field(..., description="ProxyIdentityExperienceFramework application (client) ID")
    facebook_client_id: str = Field(..., description="Facebook application ID")
    facebook_secret: Optional[SecretStr] = Field(None, description="Facebook application secret")
    extensions_app_object_id: str = Field(..., description="b2c-extensions-app object ID")
    extensions_app_client_id: str = Field(..., description="b2c-extensions-app application (client) ID")

    @field_validator('tenant')
    @classmethod
    def normalize_tenant(cls, v):
        """Lower-case the tenant and append the default domain to bare names"""
        v = v.strip().lower()
        if '.' not in v:
            v = f"{v}{TENANT_DOMAIN_SUFFIX}"
        labels = v.split('.')
        if not all(_TENANT_LABEL.match(label) for label in labels):
            raise ValueError(f"'{v}' is not a valid tenant domain")
        return v

    @field_validator('ief_app_id', 'proxy_ief_app_id', 'extensions_app_object_id', 'extensions_app_client_id')
    @classmethod
    def must_be_guid(cls, v):
        """Directory object and application identifiers are GUIDs"""
        try:
            return str(uuid.UUID(v.strip()))
        except (ValueError, AttributeError):
            raise ValueError(f"'{v}' is not a GUID")

    @field_validator('facebook_client_id')
    @classmethod
    def not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator('facebook_secret', mode='before')
    @classmethod
    def blank_secret_is_absent(cls, v):
        """An empty secret means the shared-secret key container is skipped"""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def tenant_name(self) -> str:
        """Tenant name without the domain suffix"""
        return self.tenant.split('.')[0]

    @property
    def has_facebook_secret(self) -> bool:
        return self.facebook_secret is not None


def build_tenant_context(overrides: Dict[str, Any], settings: Settings) -> TenantContext:
    """
    Merge command line values over settings defaults and validate.

    Args:
        overrides: Field name to value, None entries fall back to settings
        settings: Loaded settings

    Returns:
        Validated TenantContext

    Raises:
        ConfigurationError: when a required value is missing or malformed
    """
    values = {}
    for field_name, settings_key in SETTINGS_FIELDS.items():
        value = overrides.get(field_name)
        if value is None:
            value = getattr(settings, settings_key)
        if value is not None:
            values[field_name] = value

    try:
        return TenantContext(**values)
    except ValidationError as e:
        problems = []
        first_field = None
        for err in e.errors():
            field_name = ".".join(str(loc) for loc in err["loc"])
            first_field = first_field or field_name
            setting = SETTINGS_FIELDS.get(field_name)
            hint = f" (--{field_name.replace('_', '-')} or {setting})" if setting else ""
            problems.append(f"{field_name}{hint}: {err['msg']}")
        raise ConfigurationError(
            "Invalid deployment parameters:\n  " + "\n  ".join(problems),
            config_key=first_field,
            original_exception=e
        )
