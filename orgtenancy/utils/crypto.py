"""
Credential encryption

Tenant database passwords are stored as Fernet tokens. The key comes from
CREDENTIAL_ENCRYPTION_KEY when set, otherwise it is derived from SECRET_KEY
with PBKDF2 so a deployment only has to manage one secret.
"""

import base64
import hashlib
import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from orgtenancy.config import settings

logger = logging.getLogger(__name__)

_KDF_SALT = b"orgtenancy.tenant-credentials"
_KDF_ITERATIONS = 390000


def derive_key(secret: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_KDF_SALT,
        iterations=_KDF_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))


@lru_cache(maxsize=4)
def _fernet_for(explicit_key: str, secret_key: str) -> Fernet:
    if explicit_key:
        return Fernet(explicit_key.encode("utf-8"))
    return Fernet(derive_key(secret_key))


def get_fernet() -> Fernet:
    return _fernet_for(settings.credential_encryption_key, settings.secret_key)


def encrypt_secret(value: str) -> str:
    return get_fernet().encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_secret(token: str) -> str:
    try:
        return get_fernet().decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        logger.error("Stored credential could not be decrypted with the current key")
        raise ValueError("Invalid credential token") from e


def key_fingerprint(secret: str | None = None) -> str:
    """Short, non-reversible fingerprint of the application key."""
    secret = settings.secret_key if secret is None else secret
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()[:16]
