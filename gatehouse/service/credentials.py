"""Parsing of the ``Authorization`` header into a typed credential."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class BasicCredential:
    user_id: str
    password: str

    def __repr__(self) -> str:
        return f"BasicCredential(user_id={self.user_id!r}, password='***')"


@dataclass(frozen=True)
class BearerCredential:
    token: str

    def __repr__(self) -> str:
        return "BearerCredential(token='***')"


Credential = Union[BasicCredential, BearerCredential]


def _decode_basic(payload: str) -> Optional[BasicCredential]:
    try:
        decoded = base64.b64decode(payload.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    user_id, sep, password = decoded.partition(":")
    if not sep or not user_id:
        return None
    return BasicCredential(user_id=user_id, password=password)


def extract_credential(header: Optional[str]) -> Optional[Credential]:
    """Parse ``"<scheme> <payload>"``; ``None`` means the caller is anonymous.

    Absent or malformed headers and unknown schemes are not errors.
    """
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) != 2:
        return None
    scheme, payload = parts
    scheme = scheme.lower()
    if scheme == "basic":
        return _decode_basic(payload)
    if scheme == "bearer":
        token = payload.strip()
        return BearerCredential(token=token) if token else None
    return None
