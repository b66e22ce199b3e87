import hashlib
import logging
import secrets
import uuid
from datetime import date, datetime, UTC
from typing import Optional

def make_id(prefix: str) -> str:
    """Generate a unique ID with a given prefix."""
    return f"{prefix}_{uuid.uuid4()}"

def new_record_id() -> str:
    """Store-side primary key for task and note rows."""
    return str(uuid.uuid4())

def time_now() -> str:
    """Return the current time in ISO format (UTC, no microseconds)."""
    return datetime.now(UTC).replace(microsecond=0).isoformat()

def timestamp_now() -> str:
    """Return the current UTC time with microseconds, used for row ordering."""
    return datetime.now(UTC).isoformat()

def hash_password(password: str, salt: Optional[str] = None) -> str:
    """Hash a password as ``salt:sha256(password + salt)``."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.sha256((password + salt).encode()).hexdigest()
    return f"{salt}:{digest}"

def verify_password(password: str, password_hash: str) -> bool:
    salt, _ = password_hash.split(":", 1)
    return secrets.compare_digest(hash_password(password, salt), password_hash)

def parse_calendar_date(value: str) -> Optional[date]:
    """
    Parse ``YYYY-MM-DD`` or a full ISO timestamp into a ``date``.

    A timestamp contributes only its date part. Returns None when the text
    is not a valid calendar date.
    """
    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None

def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach one stream handler to the package logger and set its level."""
    log = logging.getLogger("taskdesk")
    if not log.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        log.addHandler(handler)
    log.setLevel(level.upper())
    return log
