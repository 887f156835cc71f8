#!/usr/bin/env python3
"""
Deploy the SSO takeover custom policies to an Azure AD B2C tenant.

Usage:
    python scripts/deploy_policies.py --tenant contosob2c --policy-dir ./policies \
        --ief-app-id <guid> --proxy-ief-app-id <guid> --facebook-client-id <id> \
        --extensions-app-object-id <guid> --extensions-app-client-id <guid>

Runs without installing the package: the src/ directory is put on sys.path.
"""

import sys
from pathlib import Path

# Setup project paths
project_root = Path(__file__).resolve().parent.parent
sys.path.append(str(project_root / "src"))

from dotenv import load_dotenv
load_dotenv(project_root / ".env")

from b2c_sso_takeover.cli import main


if __name__ == "__main__":
    sys.exit(main())
