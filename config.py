import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent
INSTANCE_DIR = BASE_DIR / "instance"


def _load_dotenv(path: Path) -> None:
    if not path.exists():
        return
    try:
        for raw in path.read_text(encoding="utf-8").splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, val = line.split("=", 1)
            key = key.strip()
            if not key or key in os.environ:
                continue
            val = val.strip().strip("'").strip('"')
            os.environ[key] = val
    except OSError:
        # Fail open if .env can't be read.
        return


_load_dotenv(BASE_DIR / ".env")


def _env(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


def _env_int(key: str, default: int) -> int:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _resolve_path(value: str, fallback: Path) -> str:
    if not value:
        return str(fallback)
    p = Path(value)
    if not p.is_absolute():
        p = BASE_DIR / p
    return str(p)


APP_NAME = _env("MALLSURVEY_APP_NAME", "MallSurvey Collect")
APP_ENV = _env("MALLSURVEY_ENV", "development").strip().lower()

DB_PATH = _resolve_path(_env("MALLSURVEY_DB_PATH", ""), INSTANCE_DIR / "mallsurvey.db")
UPLOAD_DIR = _resolve_path(_env("MALLSURVEY_UPLOAD_DIR", ""), BASE_DIR / "uploads")
EXPORT_DIR = _resolve_path(_env("MALLSURVEY_EXPORT_DIR", ""), BASE_DIR / "exports")

# Admin routes require ?key=<value> (or X-Admin-Key) when set.
ADMIN_KEY = _env("MALLSURVEY_ADMIN_KEY", "").strip()
# Worker identity as forwarded by the auth provider in front of the app.
WORKER_HEADER = _env("MALLSURVEY_WORKER_HEADER", "X-Worker-Id")

HOST = _env("MALLSURVEY_HOST", "127.0.0.1")
PORT = _env_int("MALLSURVEY_PORT", 5000)
DEBUG = _env_bool(
    "MALLSURVEY_DEBUG",
    APP_ENV in ("dev", "development", "local"),
)

SECRET_KEY = _env("MALLSURVEY_SECRET_KEY", "")

LOG_LEVEL = _env("MALLSURVEY_LOG_LEVEL", "INFO").strip().upper()
LOG_JSON = _env_bool("MALLSURVEY_LOG_JSON", False)

PAGE_SIZE = _env_int("MALLSURVEY_PAGE_SIZE", 50)
MAX_UPLOAD_MB = _env_int("MALLSURVEY_MAX_UPLOAD_MB", 5)
PUBLIC_BASE_URL = _env("MALLSURVEY_PUBLIC_BASE_URL", "").strip().rstrip("/")
