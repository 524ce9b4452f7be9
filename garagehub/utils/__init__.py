# garagehub/utils/__init__.py
import uuid
import secrets
import string
from datetime import datetime


def unique_string(length=None):
    """
    Generates a unique string.
    - If length is provided (e.g., unique_string(12)), generates a random alphanumeric string of that size.
    - If no length is provided, generates a standard UUID.
    """
    if length is None:
        return str(uuid.uuid4())

    alphabet = string.ascii_letters + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def transaction_reference(prefix: str) -> str:
    """Unique provider reference, e.g. garage-1718000000-x7Yq2b9K."""
    return f"{prefix}-{int(datetime.utcnow().timestamp())}-{unique_string(8)}"
