import secrets
import string
from datetime import datetime, timezone

ID_ALPHABET = string.ascii_letters + string.digits
ID_LENGTH = 20


def new_record_id() -> str:
    """Random 20-character alphanumeric id, the shape document stores hand out."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
