"""Environment-driven settings for the Bureau back office."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Unset means the SQLite file under bureau/data/
DATABASE_URL = os.getenv("DATABASE_URL", "")

# Admin session tokens are issued elsewhere; we only verify them
ADMIN_JWT_SECRET = os.getenv("ADMIN_JWT_SECRET")
if not ADMIN_JWT_SECRET:
    import warnings

    warnings.warn(
        "ADMIN_JWT_SECRET not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    ADMIN_JWT_SECRET = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
ADMIN_JWT_ALGORITHM = os.getenv("ADMIN_JWT_ALGORITHM", "HS256")
ADMIN_COOKIE_NAME = "adminSessionToken"

# Slack incoming webhook for deal status notifications (optional)
SLACK_WEBHOOK_URL = os.getenv("SLACK_WEBHOOK_URL", "")

# Bureau's retained share when neither project nor deal carries one
DEFAULT_COMMISSION_RATE = float(os.getenv("DEFAULT_COMMISSION_RATE", "20"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
