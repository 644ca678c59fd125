"""
Stored password credentials.

A credential is either ``HashedPassword`` (everything created by this code) or
``LegacyPlaintext`` (records that predate hashing, and the degraded admin seed).
"""
import hmac
import logging
from dataclasses import dataclass
from typing import Union

from werkzeug.security import check_password_hash, generate_password_hash

logger = logging.getLogger("credentials")


@dataclass(frozen=True)
class HashedPassword:
    hash: str

    kind = "hashed"

    def verify(self, password: str) -> bool:
        try:
            return check_password_hash(self.hash, password or "")
        except (ValueError, TypeError) as e:
            logger.warning("Unverifiable password hash: %s", e)
            return False

    def to_dict(self) -> dict:
        return {"kind": self.kind, "hash": self.hash}


@dataclass(frozen=True)
class LegacyPlaintext:
    value: str

    kind = "plaintext"

    def verify(self, password: str) -> bool:
        return hmac.compare_digest(self.value.encode("utf-8"), (password or "").encode("utf-8"))

    def to_dict(self) -> dict:
        return {"kind": self.kind, "value": self.value}


Credential = Union[HashedPassword, LegacyPlaintext]


def hash_password(password: str) -> HashedPassword:
    return HashedPassword(generate_password_hash(password))


def credential_from_dict(raw) -> Credential:
    """Decode a stored credential.

    Older data files keep the bare password string; those are classified once
    here, on load, by the ``$`` separator every hash format carries.
    """
    if isinstance(raw, str):
        return HashedPassword(raw) if "$" in raw else LegacyPlaintext(raw)
    if not isinstance(raw, dict):
        raise ValueError(f"unsupported credential: {type(raw).__name__}")
    kind = raw.get("kind")
    if kind == HashedPassword.kind:
        return HashedPassword(str(raw.get("hash") or ""))
    if kind == LegacyPlaintext.kind:
        return LegacyPlaintext(str(raw.get("value") or ""))
    raise ValueError(f"unknown credential kind: {kind!r}")
