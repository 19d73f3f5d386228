import os
from dotenv import load_dotenv

load_dotenv()


def _csv(name: str, default: str):
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


# --- Database ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tasks.db")

# Some hosting providers still hand out 'postgres://' URLs
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# --- Auth ---
SECRET_KEY = os.getenv("SECRET_KEY") or "devsecret"
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))
LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "10/minute")

# --- HTTP ---
ALLOWED_ORIGINS = _csv("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
ALLOWED_HOSTS = _csv("ALLOWED_HOSTS", "localhost,127.0.0.1,0.0.0.0")

# --- Listing ---
PAGE_SIZE = 10

# --- Reminders ---
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "1") not in ("0", "false", "False", "")
SCHEDULER_TIMEZONE = "UTC"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
