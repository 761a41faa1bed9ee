from __future__ import annotations

import base64
import hashlib
import hmac
import re
from typing import Optional

from gatehouse.service.errors import InvalidRequestError

# Stored in place of a digest for accounts validated by the directory
NO_HASH: Optional[str] = None


def hash_password(secret: Optional[str]) -> Optional[str]:
    """Return the base64 SHA-256 digest of ``secret``, or ``NO_HASH`` when blank."""
    if secret is None or not secret.strip():
        return NO_HASH
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_password(secret: Optional[str], stored_hash: Optional[str]) -> bool:
    if stored_hash is NO_HASH:
        return False
    candidate = hash_password(secret)
    if candidate is NO_HASH:
        return False
    return hmac.compare_digest(candidate, stored_hash)


class PasswordPolicy:
    """Format rule applied to every newly set password."""

    def __init__(self, pattern: str) -> None:
        self.pattern = re.compile(pattern)

    def is_valid(self, password: str) -> bool:
        return self.pattern.fullmatch(password) is not None

    def check(self, password: str) -> None:
        if not self.is_valid(password):
            raise InvalidRequestError("INVALID_PASSWORD_FORMAT")
