"""Encrypt/decrypt stored secrets (OAuth tokens, Jira API tokens) with Fernet."""

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from doit.core.config import settings


class DecryptionError(Exception):
    pass


def _get_fernet() -> Fernet:
    key = settings.encryption_key
    if not key:
        # Without an explicit key, derive one from the session secret
        digest = hashlib.sha256(settings.secret_key.encode()).digest()
        key = base64.urlsafe_b64encode(digest).decode()
    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_token(plain_text: str) -> str:
    if not plain_text:
        return ""
    return _get_fernet().encrypt(plain_text.encode()).decode()


def decrypt_token(cipher_text: str) -> str:
    if not cipher_text:
        return ""
    try:
        return _get_fernet().decrypt(cipher_text.encode()).decode()
    except InvalidToken as e:
        raise DecryptionError("Stored secret could not be decrypted") from e
