# config.py
import os

from dotenv import load_dotenv

# --- Загружаем .env ---
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./orefull.db")

SECRET_KEY = os.getenv("SECRET_KEY", "dev")
SESSION_COOKIE = os.getenv("SESSION_COOKIE", "orefull_session")
SESSION_HTTPS_ONLY = _flag("SESSION_HTTPS_ONLY", "true")

APP_DOMAIN = os.getenv("APP_DOMAIN", "http://localhost:8000")

RESEND_API_KEY = os.getenv("RESEND_API_KEY")
MAIL_FROM = os.getenv("MAIL_FROM", "orefull <no-reply@orefull.com>")

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
SEED_DEMO_DATA = _flag("SEED_DEMO_DATA", "true")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
