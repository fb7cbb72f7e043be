import secrets, string
from runmate.config import settings

ALPHABET = string.ascii_uppercase + string.digits

def generate_code(length: int | None = None) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length or settings.join_code_length))

def normalize_code(code: str | None) -> str | None:
    if code is None:
        return None
    return code.strip().upper() or None
