from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path
from functools import lru_cache
import os, tempfile

# Get absolute paths
BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent

GRAPH_DEFAULT_SCOPE = "https://graph.microsoft.com/.default"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    # Directory service endpoints
    GRAPH_BASE_URL: str = "https://graph.microsoft.com"
    # Trust framework key sets and policies are only exposed on beta
    GRAPH_API_VERSION: str = "beta"
    AZURE_AUTHORITY_HOST: str = "https://login.microsoftonline.com"

    # Service principal used for the deployment session
    B2C_DEPLOY_CLIENT_ID: Optional[str] = None
    B2C_DEPLOY_CLIENT_SECRET: Optional[str] = None
    # Pre-acquired bearer token, skips the token request when set
    B2C_ACCESS_TOKEN: Optional[str] = None

    REQUEST_TIMEOUT: int = 60

    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # Where the policy XML documents are read from (default: invocation directory)
    POLICY_DIR: str = str(Path.cwd())
    # Parent of the per-run scratch directory
    SCRATCH_ROOT: str = tempfile.gettempdir()

    # Tenant context defaults, overridden by command line arguments
    B2C_TENANT: Optional[str] = None
    B2C_IEF_APP_ID: Optional[str] = None
    B2C_PROXY_IEF_APP_ID: Optional[str] = None
    B2C_FACEBOOK_CLIENT_ID: Optional[str] = None
    B2C_FACEBOOK_SECRET: Optional[str] = None
    B2C_EXTENSIONS_APP_OBJECT_ID: Optional[str] = None
    B2C_EXTENSIONS_APP_CLIENT_ID: Optional[str] = None

    @field_validator("LOG_LEVEL")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"must be one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def graph_api_root(self) -> str:
        """Versioned Graph root, e.g. https://graph.microsoft.com/beta"""
        return f"{self.GRAPH_BASE_URL.rstrip('/')}/{self.GRAPH_API_VERSION.strip('/')}"

    def token_endpoint(self, tenant: str) -> str:
        """OAuth2 v2 token endpoint for the given tenant"""
        return f"{self.AZURE_AUTHORITY_HOST.rstrip('/')}/{tenant}/oauth2/v2.0/token"

    @property
    def log_dir_path(self) -> Optional[Path]:
        """Resolved log directory, None keeps logging on the console only"""
        if not self.LOG_DIR:
            return None
        path = Path(self.LOG_DIR)
        return path if path.is_absolute() else BASE_DIR / path

    class Config:
        env_file = os.getenv("B2C_ENV_FILE", ".env")
        env_file_encoding = 'utf-8'
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()
