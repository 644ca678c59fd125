"""
Runtime configuration read from the environment (and a local .env file).
"""
from dotenv import load_dotenv

load_dotenv()

import os


def _env_int(name: str, default: int, low: int, high: int) -> int:
    try:
        return max(low, min(int(os.getenv(name, str(default))), high))
    except Exception:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DATA_DIR = os.getenv("DATA_DIR", os.path.join(os.getcwd(), "data"))
SECRET_KEY = os.getenv("SECRET_KEY", os.getenv("SESSION_SECRET", "development_secret"))
IS_PRODUCTION = os.getenv("FLASK_ENV", os.getenv("NODE_ENV", "")).strip().lower() == "production"

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin").strip() or "admin"
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "Admin123!")

SESSION_COOKIE_NAME = "surprizely.sid"
SESSION_FLUSH_SECONDS = _env_int("SESSION_FLUSH_SECONDS", 5, 0, 3600)
SESSION_MAX_AGE_HOURS = _env_int("SESSION_MAX_AGE_HOURS", 24, 1, 24 * 90)

GIVEAWAY_MAX_ENTRIES = _env_int("GIVEAWAY_MAX_ENTRIES", 5, 1, 1000)
GIVEAWAY_WINDOW_MINUTES = _env_int("GIVEAWAY_WINDOW_MINUTES", 60, 1, 24 * 60)

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", os.getenv("OPENAI_API_KEY_ENV_VAR", ""))
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")

EMAIL_HOST = os.getenv("EMAIL_HOST", "").strip()
EMAIL_PORT = _env_int("EMAIL_PORT", 587, 1, 65535)
EMAIL_SECURE = _env_bool("EMAIL_SECURE")
EMAIL_USER = os.getenv("EMAIL_USER", "").strip()
EMAIL_PASS = os.getenv("EMAIL_PASS", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "noreply@surprizely.com").strip()

AMAZON_AFFILIATE_TAG = os.getenv("AMAZON_AFFILIATE_TAG", "").strip()
SCRAPER_API_KEY = os.getenv("SCRAPER_API_KEY", "").strip()

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:10000").split(",") if o.strip()]
UPLOAD_MAX_BYTES = _env_int("UPLOAD_MAX_BYTES", 5 * 1024 * 1024, 1024, 50 * 1024 * 1024)
PORT = _env_int("PORT", 10000, 1, 65535)
