import asyncio
import base64
import json
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from b2c_sso_takeover.config.settings import Settings
from b2c_sso_takeover.config.tenant import TenantContext
from b2c_sso_takeover.core.deploy.policies import PLACEHOLDER_TOKENS, POLICY_UPLOAD_ORDER
from b2c_sso_takeover.utils.error_handling import ApiError

IEF_APP_ID = "0e5e4f4a-1b7a-4a59-9f65-6f0c2f1d7a11"
PROXY_IEF_APP_ID = "7c1d8a2e-3f4b-4c5d-8e6f-0a1b2c3d4e5f"
EXTENSIONS_OBJECT_ID = "a1b2c3d4-e5f6-4a7b-8c9d-0e1f2a3b4c5d"
EXTENSIONS_CLIENT_ID = "f0e1d2c3-b4a5-4968-8776-655443322110"
FACEBOOK_CLIENT_ID = "1234567890123456"


def make_jwt(claims):
    """Unsigned JWT carrying the given claims"""
    def segment(data):
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")
    return f"{segment({'alg': 'none', 'typ': 'JWT'})}.{segment(claims)}.signature"


class FakeGraphClient:
    """In-memory stand-in for B2CGraphClient that records every call."""

    def __init__(self, existing_key_sets=None, fail_key_set=None, fail_policy=None):
        self.key_sets = {name: {"id": name, "keys": [{"kid": "existing"}]} for name in (existing_key_sets or [])}
        self.policies = {}
        self.calls = []
        self.fail_key_set = fail_key_set
        self.fail_policy = fail_policy
        self.upload_in_flight = False

    async def get_key_set(self, key_set_id):
        self.calls.append(("get_key_set", key_set_id))
        return self.key_sets.get(key_set_id)

    async def create_key_set(self, key_set_id):
        self.calls.append(("create_key_set", key_set_id))
        if key_set_id == self.fail_key_set:
            raise ApiError("POST /trustFramework/keySets returned HTTP 403", status_code=403,
                           endpoint="/trustFramework/keySets", payload='{"error":{"code":"Forbidden"}}')
        self.key_sets[key_set_id] = {"id": key_set_id, "keys": []}
        return self.key_sets[key_set_id]

    async def upload_secret(self, key_set_id, use, secret_b64):
        self.calls.append(("upload_secret", key_set_id, use, secret_b64))
        self.key_sets[key_set_id]["keys"].append({"use": use, "kty": "oct"})
        return {"use": use}

    async def generate_key(self, key_set_id, use, kty):
        self.calls.append(("generate_key", key_set_id, use, kty))
        self.key_sets[key_set_id]["keys"].append({"use": use, "kty": kty})
        return {"use": use, "kty": kty}

    async def upload_policy(self, policy_id, xml):
        assert not self.upload_in_flight, "upload issued while another was in flight"
        self.upload_in_flight = True
        self.calls.append(("upload_policy", policy_id))
        try:
            await asyncio.sleep(0)
            if policy_id == self.fail_policy:
                raise ApiError(
                    f"PUT /trustFramework/policies/{policy_id}/$value returned HTTP 400",
                    status_code=400,
                    endpoint=f"/trustFramework/policies/{policy_id}/$value",
                    payload='{"error":{"code":"AADB2C","message":"Policy validation failed"}}'
                )
            self.policies[policy_id] = xml
        finally:
            self.upload_in_flight = False

    def calls_named(self, name):
        return [call for call in self.calls if call[0] == name]


def fake_client_factory(client):
    @asynccontextmanager
    async def factory(tenant, settings):
        yield client
    return factory


@pytest.fixture
def tenant_context():
    return TenantContext(
        tenant="contosob2c.onmicrosoft.com",
        ief_app_id=IEF_APP_ID,
        proxy_ief_app_id=PROXY_IEF_APP_ID,
        facebook_client_id=FACEBOOK_CLIENT_ID,
        extensions_app_object_id=EXTENSIONS_OBJECT_ID,
        extensions_app_client_id=EXTENSIONS_CLIENT_ID,
    )


@pytest.fixture
def tenant_context_with_secret(tenant_context):
    return TenantContext(**{**tenant_context.model_dump(), "facebook_secret": "fb-app-secret"})


@pytest.fixture
def scratch_root(tmp_path):
    root = tmp_path / "scratch"
    root.mkdir()
    return root


@pytest.fixture
def settings(tmp_path, scratch_root):
    return Settings(
        _env_file=None,
        POLICY_DIR=str(tmp_path / "policies"),
        SCRATCH_ROOT=str(scratch_root),
        B2C_ACCESS_TOKEN=None,
        B2C_DEPLOY_CLIENT_ID=None,
        B2C_DEPLOY_CLIENT_SECRET=None,
    )


def policy_xml(policy_id):
    """A policy body using every placeholder, some of them more than once"""
    tokens = "\n".join(f"    <Item Key=\"{token}\">{token}</Item>" for token in PLACEHOLDER_TOKENS)
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<TrustFrameworkPolicy TenantId="yourtenant.onmicrosoft.com" PolicyId="{policy_id}" '
        'PublicPolicyUri="http://yourtenant.onmicrosoft.com/B2C_1A_policy">\n'
        f"{tokens}\n"
        "    <Metadata client_id=\"ProxyIdentityExperienceFrameworkAppId\" "
        "IdTokenAudience=\"IdentityExperienceFrameworkAppId\"/>\n"
        "</TrustFrameworkPolicy>\n"
    )


@pytest.fixture
def policy_dir(tmp_path):
    directory = tmp_path / "policies"
    directory.mkdir()
    for document in POLICY_UPLOAD_ORDER:
        (directory / document.filename).write_text(policy_xml(document.policy_id), encoding="utf-8")
    return directory


def scratch_entries(root: Path):
    return sorted(p.name for p in root.iterdir())
