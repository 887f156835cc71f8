"""
Command line entry point for the SSO takeover policy deployment.

Usage:
    b2c-sso-takeover-deploy --tenant contosob2c \\
        --ief-app-id <guid> --proxy-ief-app-id <guid> \\
        --facebook-client-id <id> [--facebook-secret <secret>] \\
        --extensions-app-object-id <guid> --extensions-app-client-id <guid>

Every option falls back to its B2C_* environment variable (or .env entry).
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from b2c_sso_takeover.config.settings import get_settings
from b2c_sso_takeover.config.tenant import build_tenant_context
from b2c_sso_takeover.core.prerequisites import ensure_prerequisites
from b2c_sso_takeover.utils.error_handling import BaseError, format_error_for_user
from b2c_sso_takeover.utils.logging import (
    configure_run_logging,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)

logger = get_logger("b2c_sso_takeover.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="b2c-sso-takeover-deploy",
        description="Provision key containers and upload the SSO takeover custom policies to an Azure AD B2C tenant"
    )
    parser.add_argument("--tenant", help="B2C tenant name or domain (B2C_TENANT)")
    parser.add_argument("--ief-app-id", help="IdentityExperienceFramework application ID (B2C_IEF_APP_ID)")
    parser.add_argument("--proxy-ief-app-id", help="ProxyIdentityExperienceFramework application ID (B2C_PROXY_IEF_APP_ID)")
    parser.add_argument("--facebook-client-id", help="Facebook application ID (B2C_FACEBOOK_CLIENT_ID)")
    parser.add_argument(
        "--facebook-secret",
        help="Facebook application secret (B2C_FACEBOOK_SECRET). Without it the secret key container is skipped"
    )
    parser.add_argument("--extensions-app-object-id", help="b2c-extensions-app object ID (B2C_EXTENSIONS_APP_OBJECT_ID)")
    parser.add_argument("--extensions-app-client-id", help="b2c-extensions-app application ID (B2C_EXTENSIONS_APP_CLIENT_ID)")
    parser.add_argument("--policy-dir", type=Path, default=None, help="Directory with the policy XML files (POLICY_DIR)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Prepare the policies and show the plan without signing in or changing the tenant"
    )
    parser.add_argument(
        "--skip-install",
        action="store_true",
        help="Fail instead of installing missing client libraries"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"\n❌ Invalid settings: {e}")
        return EXIT_FAILED

    configure_run_logging(settings.LOG_LEVEL, settings.log_dir_path)
    set_correlation_id(generate_correlation_id("deploy"))

    try:
        if not args.dry_run:
            ensure_prerequisites(install=not args.skip_install)

        context = build_tenant_context({
            "tenant": args.tenant,
            "ief_app_id": args.ief_app_id,
            "proxy_ief_app_id": args.proxy_ief_app_id,
            "facebook_client_id": args.facebook_client_id,
            "facebook_secret": args.facebook_secret,
            "extensions_app_object_id": args.extensions_app_object_id,
            "extensions_app_client_id": args.extensions_app_client_id,
        }, settings)
    except BaseError as e:
        e.log(logger)
        print(f"\n❌ {format_error_for_user(e)}")
        return EXIT_FAILED

    # Imported after the prerequisite check so a fresh install is picked up
    from b2c_sso_takeover.core.deploy.runner import run_deployment
    from b2c_sso_takeover.core.deploy.summary import format_summary

    try:
        run = asyncio.run(run_deployment(context, settings, policy_dir=args.policy_dir, dry_run=args.dry_run))
    except KeyboardInterrupt:
        print("\n⚠️  Deployment interrupted by user.")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.error(f"Deployment crashed: {e}", exc_info=True)
        print(f"\n❌ {format_error_for_user(e)}")
        return EXIT_FAILED

    print(format_summary(run, context))
    return EXIT_OK if run.succeeded else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
