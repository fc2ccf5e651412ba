"""At-rest encryption of stored passwords.

The engine only ever stores the opaque blob. Any object with ``encrypt`` and
``decrypt`` methods can be used; FernetSecretCodec is the default and ties
the key to the current OS user and machine so a copied config file is not
readable elsewhere.
"""

import base64
import getpass
import hashlib
import logging
import uuid
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

_SALT_PREFIX = b"smurfmanager_salt_"
_KDF_ITERATIONS = 100_000


class SecretCodec(Protocol):
    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, blob: str) -> str: ...


def derive_machine_key(user: Optional[str] = None, machine_id: Optional[str] = None) -> bytes:
    """Derive a Fernet key from the OS user name and a machine id."""
    user = user if user is not None else getpass.getuser()
    machine_id = machine_id if machine_id is not None else f"{uuid.getnode():012x}"

    salt = hashlib.sha256(_SALT_PREFIX + machine_id.encode("utf-8")).digest()
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=_KDF_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(f"{user}:{machine_id}".encode("utf-8")))


class FernetSecretCodec:
    """Fernet encryption with a per-user, per-machine key.

    Failures never propagate: both directions return an empty string, the
    same as an empty input. That includes key derivation failing because
    the OS user name cannot be determined.
    """

    def __init__(self, key: Optional[bytes] = None) -> None:
        self._key = key

    def _fernet(self) -> Fernet:
        if self._key is None:
            self._key = derive_machine_key()
        return Fernet(self._key)

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return ""
        try:
            return self._fernet().encrypt(plaintext.encode("utf-8")).decode("ascii")
        except (OSError, KeyError, ValueError, TypeError) as e:
            logger.error(f"Error encrypting secret: {e}")
            return ""

    def decrypt(self, blob: str) -> str:
        if not blob:
            return ""
        try:
            return self._fernet().decrypt(blob.encode("ascii")).decode("utf-8")
        except (InvalidToken, OSError, KeyError, ValueError, TypeError) as e:
            logger.error(f"Error decrypting secret: {e or type(e).__name__}")
            return ""
