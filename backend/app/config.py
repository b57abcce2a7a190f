import os
from pathlib import Path
from dotenv import load_dotenv

# Override=True so changes in backend/.env take effect on process reload (and not get
# stuck on old environment variables).
#
# For automated tests (SQLite), we need to prevent backend/.env from overriding the
# test DATABASE_URL. Set DISABLE_DOTENV=1 to skip loading .env.
if os.getenv("DISABLE_DOTENV") != "1":
    load_dotenv(override=True)


def _env_flag(name: str, default: str) -> bool:
    return (os.getenv(name, default) or default).strip() in {"1", "true", "True", "yes", "YES"}


_raw_database_url = (os.getenv("DATABASE_URL") or "").strip()
# Default to a local SQLite DB for dev so the backend can start out-of-the-box.
# Use an absolute path so it works regardless of current working directory.
_default_sqlite_path = (Path(__file__).resolve().parent.parent / "dev.db").as_posix()
DATABASE_URL = _raw_database_url or f"sqlite:///{_default_sqlite_path}"

LOG_LEVEL = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()

# Auth / JWT
# NOTE: keep a default for local dev so the server can boot even if SECRET_KEY isn't set.
SECRET_KEY = os.getenv("SECRET_KEY", "dev_secret_change_me")
# One event day; committee members keep their session for the whole forum.
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720") or "720")

# -------------------- Admission control --------------------
RATE_LIMIT_ENABLED = _env_flag("RATE_LIMIT_ENABLED", "1")
RATE_LIMIT_CLEANUP_INTERVAL_S = float(os.getenv("RATE_LIMIT_CLEANUP_INTERVAL_S", "60") or "60")

# -------------------- Scheduling --------------------
# Transient store failures (lock timeouts, serialization failures) are retried this many
# times before the caller sees a ConflictError.
QUEUE_TX_MAX_RETRIES = int(os.getenv("QUEUE_TX_MAX_RETRIES", "3") or "3")
QUEUE_TX_RETRY_BACKOFF_S = float(os.getenv("QUEUE_TX_RETRY_BACKOFF_S", "0.05") or "0.05")

# Minutes; used when a company row has no duration of its own.
DEFAULT_INTERVIEW_DURATION = int(os.getenv("DEFAULT_INTERVIEW_DURATION", "20") or "20")
ROOM_QUEUE_PREVIEW_SIZE = int(os.getenv("ROOM_QUEUE_PREVIEW_SIZE", "10") or "10")
