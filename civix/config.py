# Civix portal configuration
# Environment first (.env next to the package, one level up, then cwd), then defaults.

import os
import uuid
import logging
from pathlib import Path
from datetime import datetime, timezone

from dotenv import load_dotenv

_package_dir = Path(__file__).resolve().parent
_env_candidates = [
    _package_dir / ".env",            # civix/.env
    _package_dir.parent / ".env",     # repo root
    Path.cwd() / ".env",              # current working directory
]
for _env_path in _env_candidates:
    if _env_path.is_file():
        load_dotenv(_env_path, override=True)
        break
else:
    load_dotenv(override=True)  # fall back to python-dotenv's own search

logging.basicConfig(level=logging.INFO)

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
MONGODB_DB = os.getenv("MONGODB_DB", "civix")
EXECUTOR_WORKERS = int(os.getenv("EXECUTOR_WORKERS", "10"))

# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------
JWT_SECRET = os.getenv("JWT_SECRET", "")
if not JWT_SECRET or len(JWT_SECRET) < 32:
    raise RuntimeError(
        "FATAL: JWT_SECRET must be set in the environment and be at least 32 characters. "
        "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
    )
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "2"))
RESET_TOKEN_MINUTES = int(os.getenv("RESET_TOKEN_MINUTES", "60"))
RESET_URL = os.getenv("RESET_URL", "http://localhost:3000/reset-password")

# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "5"))

# ---------------------------------------------------------------------------
# Domain defaults
# ---------------------------------------------------------------------------
DEFAULT_SIGNATURE_GOAL = 100
DEFAULT_POLL_DURATION_HOURS = 24
REPORT_MONTHS = 12
SENTIMENT_SAMPLE_LIMIT = 200


def new_id() -> str:
    return str(uuid.uuid4())


def now_utc() -> datetime:
    return datetime.now(timezone.utc)
