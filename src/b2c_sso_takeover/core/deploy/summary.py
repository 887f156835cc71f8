"""Console summary printed at the end of a run."""

from typing import List

from b2c_sso_takeover.config.tenant import TenantContext
from b2c_sso_takeover.core.deploy.runner import DeploymentRun
from b2c_sso_takeover.utils.error_handling import format_error_for_user

SIGN_IN_POLICY_ID = "B2C_1A_signup_signin"


def manual_verification_steps(context: TenantContext) -> List[str]:
    return [
        f"Open the Azure portal for {context.tenant} and go to Azure AD B2C > Identity Experience Framework.",
        f"Select {SIGN_IN_POLICY_ID}, choose an application and set the reply URL to https://jwt.ms, then 'Run now'.",
        "Sign in with an existing local account (email + password) and confirm the token is issued.",
        "Sign out, then sign in with Facebook using the same email address.",
        "Confirm the Facebook identity is linked to the existing account (same objectId in the token).",
        "Try the local email + password sign-in again and confirm it is now blocked.",
    ]


def format_summary(run: DeploymentRun, context: TenantContext) -> str:
    lines = [""]

    if run.succeeded:
        title = "✅ Dry run completed" if run.dry_run else "✅ Deployment completed successfully"
    else:
        failed_at = run.failed_stage.value if run.failed_stage else "unknown"
        title = f"❌ Deployment failed during {failed_at}"
    lines.append(title)
    lines.append(f"Tenant: {context.tenant_name} ({context.tenant})")

    if run.dry_run and run.planned_keys:
        lines.append("Key containers that would be ensured:")
        lines.extend(f"  • {key.name} ({key.usage.value}, {key.source})" for key in run.planned_keys)

    if run.provisioning:
        lines.append("Key containers:")
        lines.extend(f"  • {name}: created" for name in run.provisioning.created)
        lines.extend(f"  • {name}: already present" for name in run.provisioning.existing)
        lines.extend(f"  • {name}: skipped (no secret supplied)" for name in run.provisioning.skipped)

    if run.preparation:
        if run.dry_run:
            lines.append("Policies that would be uploaded, in order:")
            lines.extend(f"  • {p.policy_id} ({p.document.filename})" for p in run.preparation.prepared)
        for document in run.preparation.missing:
            lines.append(f"  ⚠️  {document.filename} not found, {document.policy_id} skipped")
        if not run.succeeded and not run.preparation.prepared:
            lines.append("  No policy document was found. A single missing document is only skipped, "
                         "but a run needs at least one to upload.")

    if run.uploads:
        lines.append("Policies:")
        for result in run.uploads.results:
            marker = "uploaded" if result.succeeded else "FAILED"
            lines.append(f"  • {result.policy_id}: {marker}")
        lines.extend(f"  • {policy_id}: not attempted" for policy_id in run.uploads.not_attempted)

    if run.error is not None:
        lines.append("")
        lines.append(format_error_for_user(run.error))
        if run.uploads and run.uploads.uploaded:
            lines.append("Policies uploaded before the failure were left in place.")

    if run.succeeded and not run.dry_run:
        lines.append("")
        lines.append("Manual verification:")
        lines.extend(f"  {i}. {step}" for i, step in enumerate(manual_verification_steps(context), start=1))

    return "\n".join(lines)
