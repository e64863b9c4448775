"""Runtime settings read from the environment (and an optional .env file)."""
import os
from pathlib import Path
from typing import Final, Optional

from dotenv import load_dotenv

BASE_DIR: Final[Path] = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def _default_sqlite_url() -> str:
    data_dir = "/data"
    if os.path.isdir(data_dir):
        return f"sqlite:////{os.path.join(data_dir.lstrip('/'), 'homekeeper.db')}"
    return "sqlite:///homekeeper.db"


DATABASE_URL: Final[str] = os.getenv("DATABASE_URL", _default_sqlite_url())
SESSION_SECRET: Final[str] = os.getenv("SESSION_SECRET", "dev-secret")
SESSION_COOKIE: Final[str] = os.getenv("SESSION_COOKIE", "homesession")

LANGUAGES: Final[tuple[str, ...]] = ("es", "en", "pt")
DEFAULT_LANGUAGE: Final[str] = os.getenv("DEFAULT_LANGUAGE", "es")

# Push gateway; when unset, notifications are only logged.
PUSH_GATEWAY_URL: Final[Optional[str]] = os.getenv("PUSH_GATEWAY_URL") or None
PUSH_GATEWAY_KEY: Final[Optional[str]] = os.getenv("PUSH_GATEWAY_KEY") or None
PUSH_TIMEOUT_SECONDS: Final[float] = float(os.getenv("PUSH_TIMEOUT_SECONDS", "5"))

REMINDER_WINDOW_MINUTES: Final[int] = int(os.getenv("REMINDER_WINDOW_MINUTES", "15"))
REMINDER_INTERVAL_SECONDS: Final[int] = int(os.getenv("REMINDER_INTERVAL_SECONDS", "60"))

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s: %(message)s"
