"""Fernet encryption for OAuth tokens stored on integration rows."""

from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from adwatch.config import get_settings
from adwatch.errors import ConfigurationError


@lru_cache()
def _fernet(key: str) -> Fernet:
    return Fernet(key.encode())


def _get_fernet() -> Fernet:
    key = get_settings().token_encryption_key
    if not key:
        raise ConfigurationError("TOKEN_ENCRYPTION_KEY not configured")
    return _fernet(key)


def encrypt_token(token: str) -> str:
    return _get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    try:
        return _get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken as exc:
        raise ConfigurationError(
            "Stored token cannot be decrypted with TOKEN_ENCRYPTION_KEY"
        ) from exc
