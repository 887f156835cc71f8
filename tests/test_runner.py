"""
Test the deployment run end to end against an in-memory directory service
"""
import asyncio
from contextlib import asynccontextmanager

from b2c_sso_takeover.core.deploy.keys import ENCRYPTION_KEY_SET, FACEBOOK_SECRET_KEY_SET, SIGNING_KEY_SET
from b2c_sso_takeover.core.deploy.policies import POLICY_UPLOAD_ORDER
from b2c_sso_takeover.core.deploy.runner import RunStage, run_deployment
from b2c_sso_takeover.core.deploy.summary import format_summary
from b2c_sso_takeover.utils.error_handling import (
    AuthenticationError,
    ConfigurationError,
    KeyProvisioningError,
    PolicyUploadError,
)

from conftest import FakeGraphClient, fake_client_factory, scratch_entries

ALL_IDS = [d.policy_id for d in POLICY_UPLOAD_ORDER]


def _run(tenant_context, settings, client, **kwargs):
    return asyncio.run(run_deployment(tenant_context, settings, client_factory=fake_client_factory(client), **kwargs))


def test_contoso_without_secret(tenant_context, settings, policy_dir, scratch_root):
    client = FakeGraphClient()
    run = _run(tenant_context, settings, client)

    assert run.stage is RunStage.DONE
    assert run.history == [
        RunStage.VALIDATING, RunStage.AUTHENTICATING, RunStage.PROVISIONING,
        RunStage.PREPARING, RunStage.UPLOADING, RunStage.CLEANUP, RunStage.DONE,
    ]
    assert run.provisioning.created == [SIGNING_KEY_SET, ENCRYPTION_KEY_SET]
    assert run.provisioning.skipped == [FACEBOOK_SECRET_KEY_SET]
    assert FACEBOOK_SECRET_KEY_SET not in client.key_sets
    assert [call[1] for call in client.calls_named("upload_policy")] == ALL_IDS
    assert scratch_entries(scratch_root) == []


def test_provisioning_happens_before_any_upload(tenant_context_with_secret, settings, policy_dir):
    client = FakeGraphClient()
    _run(tenant_context_with_secret, settings, client)

    names = [call[0] for call in client.calls]
    first_upload = names.index("upload_policy")
    assert "upload_secret" in names[:first_upload]
    assert all(name == "upload_policy" for name in names[first_upload:])


def test_upload_failure_fails_run_and_removes_scratch(tenant_context, settings, policy_dir, scratch_root):
    client = FakeGraphClient(fail_policy="B2C_1A_TrustFrameworkExtensions")
    run = _run(tenant_context, settings, client)

    assert run.stage is RunStage.FAILED
    assert run.failed_stage is RunStage.UPLOADING
    assert isinstance(run.error, PolicyUploadError)
    assert run.uploads.not_attempted == ALL_IDS[3:]
    assert scratch_entries(scratch_root) == []

    summary = format_summary(run, tenant_context)
    assert "Deployment failed during uploading" in summary
    assert "Policy validation failed" in summary
    assert "left in place" in summary


def test_authentication_failure_is_fatal(tenant_context, settings, policy_dir, scratch_root):
    @asynccontextmanager
    async def failing_factory(tenant, settings):
        raise AuthenticationError("Token request rejected: invalid_client")
        yield

    run = asyncio.run(run_deployment(tenant_context, settings, client_factory=failing_factory))

    assert run.stage is RunStage.FAILED
    assert run.failed_stage is RunStage.AUTHENTICATING
    assert run.provisioning is None
    assert run.uploads is None
    assert scratch_entries(scratch_root) == []


def test_key_failure_stops_before_preparation(tenant_context, settings, policy_dir, scratch_root):
    client = FakeGraphClient(fail_key_set=ENCRYPTION_KEY_SET)
    run = _run(tenant_context, settings, client)

    assert run.failed_stage is RunStage.PROVISIONING
    assert isinstance(run.error, KeyProvisioningError)
    assert client.calls_named("upload_policy") == []
    assert scratch_entries(scratch_root) == []


def test_missing_document_is_skipped_and_rest_uploaded(tenant_context, settings, policy_dir):
    (policy_dir / "PasswordReset.xml").unlink()
    client = FakeGraphClient()
    run = _run(tenant_context, settings, client)

    assert run.succeeded
    assert [call[1] for call in client.calls_named("upload_policy")] == ALL_IDS[:5]
    assert "PasswordReset.xml not found" in format_summary(run, tenant_context)


def test_no_documents_at_all_fails(tenant_context, settings, policy_dir, scratch_root):
    for path in policy_dir.iterdir():
        path.unlink()
    run = _run(tenant_context, settings, FakeGraphClient())

    assert run.failed_stage is RunStage.PREPARING
    assert isinstance(run.error, ConfigurationError)
    assert scratch_entries(scratch_root) == []
    assert "needs at least one to upload" in format_summary(run, tenant_context)


def test_unreadable_document_fails_run_in_preparation(tenant_context, settings, policy_dir, scratch_root):
    (policy_dir / "ProfileEdit.xml").write_bytes(b"<x>\xff\xfe caf\xe9</x>")
    client = FakeGraphClient()
    run = _run(tenant_context, settings, client)

    assert run.stage is RunStage.FAILED
    assert run.failed_stage is RunStage.PREPARING
    assert isinstance(run.error, ConfigurationError)
    assert client.calls_named("upload_policy") == []
    assert scratch_entries(scratch_root) == []
    assert "Deployment failed during preparing" in format_summary(run, tenant_context)


def test_missing_policy_directory_fails_validation(tenant_context, settings, tmp_path):
    client = FakeGraphClient()
    run = _run(tenant_context, settings, client, policy_dir=tmp_path / "nowhere")

    assert run.failed_stage is RunStage.VALIDATING
    assert client.calls == []


def test_dry_run_touches_nothing_remote(tenant_context, settings, policy_dir, scratch_root):
    @asynccontextmanager
    async def unexpected_factory(tenant, settings):
        raise AssertionError("dry run must not authenticate")
        yield

    run = asyncio.run(run_deployment(tenant_context, settings, client_factory=unexpected_factory, dry_run=True))

    assert run.succeeded
    assert RunStage.AUTHENTICATING not in run.history
    assert [p.policy_id for p in run.preparation.prepared] == ALL_IDS
    assert [k.name for k in run.planned_keys] == [SIGNING_KEY_SET, ENCRYPTION_KEY_SET]
    assert scratch_entries(scratch_root) == []
    assert "Policies that would be uploaded" in format_summary(run, tenant_context)


def test_success_summary_lists_manual_steps(tenant_context, settings, policy_dir):
    run = _run(tenant_context, settings, FakeGraphClient(existing_key_sets=[SIGNING_KEY_SET]))
    summary = format_summary(run, tenant_context)

    assert "Deployment completed successfully" in summary
    assert "Tenant: contosob2c (contosob2c.onmicrosoft.com)" in summary
    assert f"{SIGNING_KEY_SET}: already present" in summary
    assert f"{FACEBOOK_SECRET_KEY_SET}: skipped" in summary
    assert "Manual verification" in summary
    assert "https://jwt.ms" in summary
