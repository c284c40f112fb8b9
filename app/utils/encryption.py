from cryptography.fernet import Fernet
from app.config import get_settings

def get_fernet() -> Fernet:
    settings = get_settings()
    if not settings.FERNET_KEY:
        raise RuntimeError("FERNET_KEY is not configured")
    return Fernet(settings.FERNET_KEY.encode())

def encrypt_phone_number(phone_number: str) -> str:
    """Encrypt a normalised phone number; returns the Fernet token as text."""
    f = get_fernet()
    return f.encrypt(phone_number.encode("utf-8")).decode("ascii")

def decrypt_phone_number(token: str) -> str:
    """Decrypt a Fernet token produced by ``encrypt_phone_number``."""
    f = get_fernet()
    return f.decrypt(token.encode("ascii")).decode("utf-8")
