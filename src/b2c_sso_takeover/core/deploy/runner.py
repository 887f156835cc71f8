"""
Deployment run orchestration.

Drives one run through its stages:

    VALIDATING -> AUTHENTICATING -> PROVISIONING -> PREPARING
        -> UPLOADING -> CLEANUP -> DONE

Any fatal error moves the run to FAILED. The scratch directory is removed
in every case; the directory service is never rolled back.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import AsyncContextManager, Callable, List, Optional

from b2c_sso_takeover.config.settings import Settings
from b2c_sso_takeover.config.tenant import TenantContext
from b2c_sso_takeover.core.deploy.keys import (
    FACEBOOK_SECRET_KEY_SET,
    KeyResource,
    ProvisioningReport,
    declared_key_resources,
    reconcile_key_resources,
)
from b2c_sso_takeover.core.deploy.policies import (
    POLICY_UPLOAD_ORDER,
    PreparationResult,
    ScratchDirectory,
    build_substitutions,
    prepare_documents,
)
from b2c_sso_takeover.core.deploy.uploader import UploadReport, upload_all
from b2c_sso_takeover.core.graph.client import B2CGraphClient
from b2c_sso_takeover.core.graph.session import open_graph_client
from b2c_sso_takeover.utils.error_handling import BaseError, ConfigurationError
from b2c_sso_takeover.utils.logging import get_logger

logger = get_logger(__name__)

ClientFactory = Callable[[str, Settings], AsyncContextManager[B2CGraphClient]]


class RunStage(str, Enum):
    VALIDATING = "validating"
    AUTHENTICATING = "authenticating"
    PROVISIONING = "provisioning"
    PREPARING = "preparing"
    UPLOADING = "uploading"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"


@dataclass
class DeploymentRun:
    """State and results of one deployment run."""
    dry_run: bool = False
    stage: RunStage = RunStage.VALIDATING
    history: List[RunStage] = field(default_factory=lambda: [RunStage.VALIDATING])
    planned_keys: List[KeyResource] = field(default_factory=list)
    provisioning: Optional[ProvisioningReport] = None
    preparation: Optional[PreparationResult] = None
    uploads: Optional[UploadReport] = None
    error: Optional[BaseError] = None
    failed_stage: Optional[RunStage] = None
    scratch_dir: Optional[Path] = None

    def advance(self, stage: RunStage) -> None:
        logger.debug(f"Run stage: {self.stage.value} -> {stage.value}")
        self.stage = stage
        self.history.append(stage)
        if stage not in (RunStage.CLEANUP, RunStage.DONE):
            logger.info(f"==== {stage.value.upper()} ====")

    def fail(self, error: BaseError) -> None:
        self.failed_stage = self.stage
        self.error = error
        self.advance(RunStage.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.stage is RunStage.DONE


def _resolve_policy_dir(policy_dir: Optional[Path], settings: Settings) -> Path:
    resolved = Path(policy_dir or settings.POLICY_DIR)
    if not resolved.is_dir():
        raise ConfigurationError(f"Policy directory does not exist: {resolved}", config_key="POLICY_DIR")
    return resolved


def _prepare(run: DeploymentRun, context: TenantContext, policy_dir: Path, scratch: ScratchDirectory) -> None:
    run.advance(RunStage.PREPARING)
    run.scratch_dir = scratch.create()
    run.preparation = prepare_documents(policy_dir, run.scratch_dir, build_substitutions(context), POLICY_UPLOAD_ORDER)
    if not run.preparation.prepared:
        raise ConfigurationError(f"No policy documents found in {policy_dir}", config_key="POLICY_DIR")


async def _deploy(run: DeploymentRun, context: TenantContext, settings: Settings,
                  client_factory: ClientFactory, policy_dir: Path, scratch: ScratchDirectory) -> None:
    run.advance(RunStage.AUTHENTICATING)
    async with client_factory(context.tenant, settings) as client:
        run.advance(RunStage.PROVISIONING)
        run.provisioning = await reconcile_key_resources(client, run.planned_keys)
        if not context.has_facebook_secret:
            run.provisioning.skipped.append(FACEBOOK_SECRET_KEY_SET)

        _prepare(run, context, policy_dir, scratch)

        run.advance(RunStage.UPLOADING)
        run.uploads = await upload_all(client, run.preparation.prepared)

    failure = run.uploads.failure
    if failure is not None:
        raise failure.error


async def run_deployment(
    context: TenantContext,
    settings: Settings,
    client_factory: Optional[ClientFactory] = None,
    policy_dir: Optional[Path] = None,
    dry_run: bool = False
) -> DeploymentRun:
    """
    Run the full deployment for one tenant.

    Args:
        context: Validated tenant context
        settings: Loaded settings
        client_factory: Async context manager factory yielding an authenticated
            B2CGraphClient, defaults to open_graph_client
        policy_dir: Directory holding the policy XML, defaults to settings.POLICY_DIR
        dry_run: Prepare documents and report the plan without authenticating
            or writing to the directory service

    Returns:
        The finished DeploymentRun, stage DONE or FAILED
    """
    client_factory = client_factory or open_graph_client

    run = DeploymentRun(dry_run=dry_run)
    scratch = ScratchDirectory(settings.SCRATCH_ROOT)
    logger.info(f"==== {RunStage.VALIDATING.value.upper()} ====")

    try:
        resolved_dir = _resolve_policy_dir(policy_dir, settings)
        run.planned_keys = declared_key_resources(context)
        logger.info(f"Tenant: {context.tenant}, policy directory: {resolved_dir}")
        if not context.has_facebook_secret:
            logger.info(f"No Facebook secret supplied, {FACEBOOK_SECRET_KEY_SET} will be skipped")

        if dry_run:
            _prepare(run, context, resolved_dir, scratch)
        else:
            await _deploy(run, context, settings, client_factory, resolved_dir, scratch)
    except BaseError as e:
        e.log(logger)
        run.fail(e)
    finally:
        scratch.cleanup()

    if run.stage is not RunStage.FAILED:
        run.advance(RunStage.CLEANUP)
        run.advance(RunStage.DONE)

    return run
