"""
Security utilities for LinkVault.
Provides path containment, filename sanitization, MIME filtering,
password hashing and caller identity tokens.
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

import config

security_logger = logging.getLogger('security')

# Dangerous patterns in stored filenames
DANGEROUS_PATTERNS = [
    r'\.\.', r'/', r'\\', r'\x00',  # Path traversal
    r'<', r'>', r':', r'"', r'\|', r'\?', r'\*'  # Windows special chars
]

# Optional bearer auth: a missing or broken token simply means "anonymous".
bearer_scheme = HTTPBearer(auto_error=False)


def validate_path_traversal(base_path: Path, requested_path: str) -> Path:
    """
    Validate that a stored path doesn't escape the base directory.

    Raises:
        ValueError: If the path resolves outside base_path
    """
    full_path = Path(requested_path)
    if not full_path.is_absolute():
        full_path = base_path / full_path
    full_path = full_path.resolve()

    try:
        full_path.relative_to(base_path.resolve())
    except ValueError:
        security_logger.warning(f"Path traversal attempt: {requested_path}")
        raise ValueError("Invalid file path")

    return full_path


def sanitize_filename(filename: str) -> str:
    """
    Sanitize a filename for use on local disk.

    Args:
        filename: Original filename

    Returns:
        Safe filename
    """
    if not filename:
        return "unnamed_file"

    for pattern in DANGEROUS_PATTERNS:
        filename = re.sub(pattern, '', filename)

    filename = filename.strip('. \t\n\r')

    if len(filename) > 255:
        name, ext = filename[:200], filename[-50:] if '.' in filename else ''
        filename = name + ext

    return filename or "unnamed_file"


def header_filename(filename: Optional[str]) -> str:
    """Filename safe to embed in a quoted Content-Disposition value."""
    cleaned = str(filename or "download").replace('"', '').replace('\r', '').replace('\n', '')
    return cleaned or "download"


def normalize_mime_type(content_type: Optional[str]) -> str:
    """Bare lower-cased type/subtype; multipart parts may carry parameters such as charset."""
    mime_type = (content_type or "").split(";")[0].strip().lower()
    return mime_type or "application/octet-stream"


def is_mime_allowed(mime_type: str) -> bool:
    if not config.ALLOWED_MIME_TYPES:
        return True
    return normalize_mime_type(mime_type) in config.ALLOWED_MIME_TYPES


# ============ PASSWORDS ============

def hash_password(password: str) -> str:
    """Salted bcrypt hash, used for paste passwords and account credentials."""
    # Bcrypt has a 72 byte limit
    password_bytes = password.encode('utf-8')[:72]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)).decode('utf-8')


def verify_password(password: Optional[str], password_hash: Optional[str]) -> bool:
    """Constant-time check; an unset hash means no password is required."""
    if password_hash is None:
        return True
    if not password:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8')[:72], password_hash.encode('utf-8'))
    except ValueError:
        security_logger.error("Stored password hash is malformed")
        return False


# ============ IDENTITY ============

def create_access_token(user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a bearer token identifying the caller."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": user_id, "email": email, "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_identity(token: Optional[str]) -> Optional[str]:
    """Return the caller id carried by a token, or None if absent/invalid."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")


async def get_caller_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """FastAPI dependency: the caller id, or None for anonymous callers."""
    if credentials is None:
        return None
    return decode_identity(credentials.credentials)


def log_security_event(event_type: str, details: dict):
    """Log a security-relevant event."""
    security_logger.warning(f"SECURITY_EVENT: {event_type} - {details}")
