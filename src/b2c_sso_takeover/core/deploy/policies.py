"""
Policy document preparation.

The policy XML is an opaque payload: preparation is plain text
substitution of placeholder tokens, with no XML parsing. Prepared copies
are written to a run-scoped scratch directory that is removed when the run
ends, whatever the outcome.
"""

import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from b2c_sso_takeover.config.tenant import TenantContext
from b2c_sso_takeover.utils.error_handling import ConfigurationError
from b2c_sso_takeover.utils.logging import get_logger

logger = get_logger(__name__)

SCRATCH_PREFIX = "b2c_policies"


@dataclass(frozen=True)
class PolicyDocument:
    filename: str
    policy_id: str


# Base -> localization -> extensions -> relying parties. Each document only
# references documents earlier in this tuple.
POLICY_UPLOAD_ORDER: Tuple[PolicyDocument, ...] = (
    PolicyDocument("TrustFrameworkBase.xml", "B2C_1A_TrustFrameworkBase"),
    PolicyDocument("TrustFrameworkLocalization.xml", "B2C_1A_TrustFrameworkLocalization"),
    PolicyDocument("TrustFrameworkExtensions.xml", "B2C_1A_TrustFrameworkExtensions"),
    PolicyDocument("SignUpOrSignin.xml", "B2C_1A_signup_signin"),
    PolicyDocument("ProfileEdit.xml", "B2C_1A_ProfileEdit"),
    PolicyDocument("PasswordReset.xml", "B2C_1A_PasswordReset"),
)

TENANT_TOKEN = "yourtenant.onmicrosoft.com"
PROXY_IEF_APP_ID_TOKEN = "ProxyIdentityExperienceFrameworkAppId"
IEF_APP_ID_TOKEN = "IdentityExperienceFrameworkAppId"
FACEBOOK_CLIENT_ID_TOKEN = "FacebookAppId"
EXTENSIONS_APP_OBJECT_ID_TOKEN = "ExtensionsAppObjectId"
EXTENSIONS_APP_CLIENT_ID_TOKEN = "ExtensionsAppClientId"

# The proxy token contains the IEF token, so it has to be replaced first
PLACEHOLDER_TOKENS: Tuple[str, ...] = (
    TENANT_TOKEN,
    PROXY_IEF_APP_ID_TOKEN,
    IEF_APP_ID_TOKEN,
    FACEBOOK_CLIENT_ID_TOKEN,
    EXTENSIONS_APP_OBJECT_ID_TOKEN,
    EXTENSIONS_APP_CLIENT_ID_TOKEN,
)

Substitutions = Sequence[Tuple[str, str]]


def build_substitutions(context: TenantContext) -> List[Tuple[str, str]]:
    """Token -> value pairs for a tenant, in PLACEHOLDER_TOKENS order."""
    values = {
        TENANT_TOKEN: context.tenant,
        PROXY_IEF_APP_ID_TOKEN: context.proxy_ief_app_id,
        IEF_APP_ID_TOKEN: context.ief_app_id,
        FACEBOOK_CLIENT_ID_TOKEN: context.facebook_client_id,
        EXTENSIONS_APP_OBJECT_ID_TOKEN: context.extensions_app_object_id,
        EXTENSIONS_APP_CLIENT_ID_TOKEN: context.extensions_app_client_id,
    }
    return [(token, values[token]) for token in PLACEHOLDER_TOKENS]


def substitute(content: str, substitutions: Substitutions) -> str:
    """Replace every occurrence of each token, applying pairs in the given order."""
    for token, value in substitutions:
        content = content.replace(token, value)
    return content


def find_unresolved_placeholders(content: str, tokens: Sequence[str] = PLACEHOLDER_TOKENS) -> List[str]:
    return [token for token in tokens if token in content]


def prepare(content: str, substitutions: Substitutions) -> str:
    """
    Substitute all placeholders in one document's text.

    Raises:
        ConfigurationError: a token survives substitution, which only happens
            when a supplied value itself contains a placeholder
    """
    prepared = substitute(content, substitutions)
    leftover = find_unresolved_placeholders(prepared, [token for token, _ in substitutions])
    if leftover:
        raise ConfigurationError(
            f"Placeholder(s) still present after substitution: {', '.join(leftover)}",
            config_key=leftover[0]
        )
    return prepared


@dataclass(frozen=True)
class PreparedPolicy:
    document: PolicyDocument
    path: Path

    @property
    def policy_id(self) -> str:
        return self.document.policy_id

    def read(self) -> str:
        return self.path.read_text(encoding='utf-8')


@dataclass
class PreparationResult:
    prepared: List[PreparedPolicy] = field(default_factory=list)
    missing: List[PolicyDocument] = field(default_factory=list)


def prepare_documents(
    policy_dir: Path,
    scratch_dir: Path,
    substitutions: Substitutions,
    documents: Sequence[PolicyDocument] = POLICY_UPLOAD_ORDER
) -> PreparationResult:
    """
    Read, substitute and write each document to the scratch directory.

    Missing documents are skipped with a warning. Order of the returned
    prepared list follows `documents`.
    """
    result = PreparationResult()
    for document in documents:
        source = Path(policy_dir) / document.filename
        if not source.is_file():
            logger.warning(f"⚠️  Policy file not found, skipping: {source}")
            result.missing.append(document)
            continue

        target = Path(scratch_dir) / document.filename
        try:
            # Portal downloads carry a BOM
            content = source.read_text(encoding='utf-8-sig')
            target.write_text(prepare(content, substitutions), encoding='utf-8')
        except (UnicodeDecodeError, OSError) as e:
            raise ConfigurationError(
                f"Could not prepare policy file {source}: {e}",
                config_key="POLICY_DIR",
                original_exception=e
            )
        logger.info(f"Prepared {document.filename} -> {document.policy_id}")
        result.prepared.append(PreparedPolicy(document, target))

    return result


class ScratchDirectory:
    """
    Run-scoped scratch directory, removed on exit regardless of outcome.

    Usage:
        with ScratchDirectory(settings.SCRATCH_ROOT) as scratch:
            prepare_documents(policy_dir, scratch, substitutions)
    """

    def __init__(self, root: Optional[str] = None):
        self.root = root
        self.path: Optional[Path] = None

    def __enter__(self) -> Path:
        return self.create()

    def create(self) -> Path:
        """Create the directory, named b2c_policies_<timestamp>_<random>."""
        timestamp = datetime.now().strftime('%Y%m%d%H%M%S')
        if self.root:
            Path(self.root).mkdir(parents=True, exist_ok=True)
        self.path = Path(tempfile.mkdtemp(prefix=f"{SCRATCH_PREFIX}_{timestamp}_", dir=self.root))
        logger.debug(f"Created scratch directory {self.path}")
        return self.path

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
        return False

    def cleanup(self) -> None:
        if self.path is None:
            return
        shutil.rmtree(self.path, ignore_errors=True)
        if self.path.exists():
            logger.warning(f"Could not remove scratch directory {self.path}")
        else:
            logger.debug(f"Removed scratch directory {self.path}")
