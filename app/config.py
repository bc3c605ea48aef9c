"""
Environment configuration for LinkVault.
Values come from the process environment (optionally a local .env file).
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> list:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


BASE_DIR = Path(__file__).resolve().parent

DEBUG = _env_bool("DEBUG")

# ============ STORAGE PATHS ============
DATA_DIR = Path(os.getenv("DATA_DIR") or BASE_DIR / "data").resolve()
DATA_DIR.mkdir(parents=True, exist_ok=True)
DATABASE_PATH = Path(os.getenv("DATABASE_PATH") or DATA_DIR / "linkvault.db")

UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR") or BASE_DIR / "uploads").resolve()
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)

# ============ PASTE POLICY ============
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024)))  # 10MB
DEFAULT_EXPIRY_MINUTES = int(os.getenv("DEFAULT_EXPIRY_MINUTES", "10"))
# Empty list means every MIME type is accepted.
ALLOWED_MIME_TYPES = [mime.lower() for mime in _env_list("ALLOWED_MIME_TYPES")]

# ============ REMOTE OBJECT STORAGE ============
STORAGE_PROVIDER = os.getenv("STORAGE_PROVIDER", "local").strip().lower()
S3_BUCKET = os.getenv("S3_BUCKET", "")
S3_KEY_PREFIX = os.getenv("S3_KEY_PREFIX", "linkvault").strip("/")
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or None
S3_PUBLIC_ENDPOINT_URL = os.getenv("S3_PUBLIC_ENDPOINT_URL") or None
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID") or None
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY") or None
REMOTE_STORAGE_ENABLED = STORAGE_PROVIDER == "s3" and bool(S3_BUCKET)

# Write a local fallback copy even when the remote upload succeeds.
KEEP_LOCAL_COPY = _env_bool("KEEP_LOCAL_COPY", "true")

REMOTE_URL_TTL_SECONDS = int(os.getenv("REMOTE_URL_TTL_SECONDS", "300"))  # 5 minutes
MAX_REDIRECTS = int(os.getenv("MAX_REDIRECTS", "5"))
REMOTE_USER_AGENT = "LinkVault-Downloader"

# ============ IDENTITY ============
FRONTEND_URL = os.getenv("FRONTEND_URL", "")
JWT_SECRET = os.getenv("JWT_SECRET", "change_me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(7 * 24 * 60)))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

# ============ BACKGROUND WORK ============
CLEANUP_INTERVAL_SECONDS = int(os.getenv("CLEANUP_INTERVAL_SECONDS", "60"))

# ============ HTTP ============
ALLOWED_HOSTS = _env_list("ALLOWED_HOSTS", "*")
RATE_LIMIT_ENABLED = _env_bool("RATE_LIMIT_ENABLED", "true")
UPLOAD_RATE_LIMIT = os.getenv("UPLOAD_RATE_LIMIT", "10/minute")
ACCESS_RATE_LIMIT = os.getenv("ACCESS_RATE_LIMIT", "30/minute")
DOWNLOAD_RATE_LIMIT = os.getenv("DOWNLOAD_RATE_LIMIT", "60/minute")
DELETE_RATE_LIMIT = os.getenv("DELETE_RATE_LIMIT", "10/minute")
AUTH_RATE_LIMIT = os.getenv("AUTH_RATE_LIMIT", "5/minute")
