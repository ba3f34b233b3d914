"""
auth/hashing.py -- Credential digests for local password storage.

Security design decisions:
  Username as salt: the digest input is username + password, so two accounts
       sharing a password never share a digest, even without a salt column.

  Algorithms: "sha1" (default) and "md5" (legacy) are deterministic hex
       digests compared in constant time. "bcrypt" is an opt-in upgrade with a
       random salt and a cost factor; its hashes are recognized by their "$2"
       prefix and checked with bcrypt.checkpw, so a store can hold a mix of
       legacy digests and bcrypt hashes while accounts migrate.

  bcrypt input: bcrypt rejects inputs longer than 72 bytes and username +
       password can exceed that, so the bcrypt path hashes the SHA-256 hex of
       the salted value (64 bytes) instead.

  Downgrade: if sha1 is missing from the runtime's hashlib, encrypt_credentials
       falls back to md5. This matches how existing password stores were
       written; it is logged at WARNING every time so the downgrade is never
       silent. See DESIGN.md (open questions).

Layer rule: imports from core/ only.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from functools import lru_cache

import bcrypt

from core.config import Settings, get_settings

logger = logging.getLogger("tenantguard.auth.hashing")

ALGORITHMS = ("sha1", "md5", "bcrypt")

_BCRYPT_PREFIX = "$2"


def _sha1_available() -> bool:
    return "sha1" in hashlib.algorithms_available


def _md5(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def _bcrypt_input(value: str) -> bytes:
    return hashlib.sha256(value.encode("utf-8")).hexdigest().encode("ascii")


def is_bcrypt_hash(stored: str) -> bool:
    return stored.startswith(_BCRYPT_PREFIX)


def encrypt_credentials(
    username: str,
    password: str,
    encryption: str | None = None,
    settings: Settings | None = None,
) -> str:
    """Return the stored form of a password for the given username.

    Args:
        username:   Account username, used as the salt.
        password:   Plaintext password.
        encryption: "sha1", "md5" or "bcrypt". None uses Settings.encryption.
        settings:   Settings to read the default from. None uses get_settings().

    Raises:
        ValueError: If encryption names an unrecognized algorithm.
    """
    value = username + password
    if encryption is None:
        encryption = (settings or get_settings()).encryption

    if encryption == "sha1":
        if _sha1_available():
            return hashlib.sha1(value.encode("utf-8")).hexdigest()
        logger.warning("sha1 is unavailable in this runtime; falling back to the md5 credential digest")
        return _md5(value)
    if encryption == "md5":
        return _md5(value)
    if encryption == "bcrypt":
        return bcrypt.hashpw(_bcrypt_input(value), bcrypt.gensalt()).decode("utf-8")
    raise ValueError(f"Unknown credential encryption {encryption!r}; expected one of {ALGORITHMS}")


def verify_credentials(
    username: str,
    password: str,
    stored: str | None,
    settings: Settings | None = None,
) -> bool:
    """Return True if password matches the stored credential for username.

    bcrypt hashes are checked with bcrypt.checkpw. Anything else is compared
    against the configured deterministic digest; when the configured
    algorithm is bcrypt, the deterministic comparison uses sha1 so accounts
    written before the switch can still log in.
    """
    if not stored:
        return False
    value = username + password
    if is_bcrypt_hash(stored):
        try:
            return bcrypt.checkpw(_bcrypt_input(value), stored.encode("utf-8"))
        except ValueError:
            # Malformed hash in the store
            return False

    encryption = (settings or get_settings()).encryption
    if encryption == "bcrypt":
        encryption = "sha1"
    expected = encrypt_credentials(username, password, encryption=encryption)
    return hmac.compare_digest(expected.encode("utf-8"), stored.encode("utf-8"))


@lru_cache(maxsize=len(ALGORITHMS))
def _dummy_digest(encryption: str) -> str:
    return encrypt_credentials("tenantguard", "timing_dummy", encryption=encryption)


def equalize_timing(password: str, settings: Settings | None = None) -> None:
    """Spend the same work as a real check for a username that does not exist.

    Keeps response time from revealing whether a username is registered.
    """
    encryption = (settings or get_settings()).encryption
    verify_credentials("", password, _dummy_digest(encryption), settings)
