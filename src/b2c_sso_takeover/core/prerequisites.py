"""
Prerequisite check for the directory service client libraries.

A missing library is installed into the running interpreter rather than
treated as an error. Only a failed install stops the run.
"""

import subprocess
import sys
from importlib import metadata
from typing import Iterable, List

from b2c_sso_takeover.utils.error_handling import DependencyError
from b2c_sso_takeover.utils.logging import get_logger

logger = get_logger(__name__)

# Distributions backing the Graph session (index names, not import names)
GRAPH_CLIENT_DISTRIBUTIONS = ("httpx", "authlib")


def missing_distributions(distributions: Iterable[str]) -> List[str]:
    """Return the distributions that are not installed, in the given order."""
    missing = []
    for name in distributions:
        try:
            version = metadata.version(name)
            logger.debug(f"Found {name} {version}")
        except metadata.PackageNotFoundError:
            missing.append(name)
    return missing


def install_distributions(distributions: List[str]) -> None:
    """Install distributions with pip into the current interpreter."""
    command = [sys.executable, "-m", "pip", "install", "--quiet", *distributions]
    logger.info(f"Installing missing packages: {', '.join(distributions)}")
    try:
        subprocess.check_call(command)
    except (subprocess.CalledProcessError, OSError) as e:
        raise DependencyError(
            f"Could not install {', '.join(distributions)}",
            dependency=", ".join(distributions),
            original_exception=e
        )


def ensure_prerequisites(distributions: Iterable[str] = GRAPH_CLIENT_DISTRIBUTIONS, install: bool = True) -> List[str]:
    """
    Make sure the client libraries are importable.

    Args:
        distributions: Distribution names to check
        install: Install missing ones; when False a missing one is an error

    Returns:
        The distributions that were installed (empty when all were present)

    Raises:
        DependencyError: a distribution is missing and could not (or may not) be installed
    """
    missing = missing_distributions(distributions)
    if not missing:
        logger.info("All client libraries present")
        return []

    if not install:
        raise DependencyError(
            f"Missing required packages: {', '.join(missing)} (install disabled)",
            dependency=", ".join(missing)
        )

    install_distributions(missing)
    return missing
