"""
Sequential policy upload.

Uploads run one at a time in the fixed order. The first failure stops the
sequence; policies uploaded before it stay in place.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from b2c_sso_takeover.core.deploy.policies import PreparedPolicy
from b2c_sso_takeover.core.graph.client import B2CGraphClient
from b2c_sso_takeover.utils.error_handling import ApiError, PolicyUploadError
from b2c_sso_takeover.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class UploadResult:
    policy_id: str
    succeeded: bool
    error: Optional[PolicyUploadError] = None


@dataclass
class UploadReport:
    results: List[UploadResult] = field(default_factory=list)
    not_attempted: List[str] = field(default_factory=list)

    @property
    def uploaded(self) -> List[str]:
        return [r.policy_id for r in self.results if r.succeeded]

    @property
    def failure(self) -> Optional[UploadResult]:
        return next((r for r in self.results if not r.succeeded), None)

    @property
    def succeeded(self) -> bool:
        return self.failure is None


async def upload_policy(client: B2CGraphClient, policy: PreparedPolicy) -> None:
    """Upload one prepared policy, wrapping service errors in PolicyUploadError."""
    try:
        await client.upload_policy(policy.policy_id, policy.read())
    except ApiError as e:
        raise PolicyUploadError(
            f"Upload of {policy.policy_id} failed: {e.message}",
            policy_id=policy.policy_id,
            status_code=e.status_code,
            endpoint=e.endpoint,
            payload=e.payload,
            original_exception=e
        )


async def upload_all(client: B2CGraphClient, prepared: Sequence[PreparedPolicy]) -> UploadReport:
    """
    Upload prepared policies strictly in order, stopping at the first failure.

    Each upload is awaited to completion before the next one is issued.
    Nothing is rolled back.

    Args:
        client: Authenticated Graph client
        prepared: Prepared policies in dependency order

    Returns:
        UploadReport with one result per attempted policy
    """
    report = UploadReport()
    total = len(prepared)

    for index, policy in enumerate(prepared, start=1):
        logger.info(f"[{index}/{total}] Uploading {policy.policy_id} ({policy.document.filename})")
        try:
            await upload_policy(client, policy)
        except PolicyUploadError as e:
            logger.error(f"❌ {policy.policy_id} was rejected")
            report.results.append(UploadResult(policy.policy_id, False, e))
            report.not_attempted = [p.policy_id for p in prepared[index:]]
            if report.not_attempted:
                logger.error(f"❌ Stopping. Not uploaded: {', '.join(report.not_attempted)}")
            break

        report.results.append(UploadResult(policy.policy_id, True))
        logger.info(f"✅ Uploaded {policy.policy_id}")

    return report
