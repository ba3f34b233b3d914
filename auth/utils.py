"""
auth/utils.py -- Password generation, password-reset hashes, username suggestions.

Security notes:
  generate_password() uses the random module, which is not a CSPRNG. The
       result is only meant as a temporary password the user replaces on first
       login. See DESIGN.md (open questions).

  Password-reset hash: the first 6 hex chars of md5(id + username + digest).
       Because the current password digest is part of the input, the hash stops
       matching the moment the password changes; unrelated profile edits (email,
       disabled reason) leave it unchanged.
"""

from __future__ import annotations

import hashlib
import hmac
import random
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.store import UserStore

# Unambiguous glyphs only: no l/o/I/O, no 0/1
PASSWORD_LETTERS = "abcdefghijkmnpqrstuvwxyzABCDEFGHJKLMNPQRSTUVWXYZ"
PASSWORD_DIGITS = "23456789"

RESET_HASH_LENGTH = 6

_USERNAME_STRIP_RE = re.compile(r"[^a-zA-Z0-9_-]")


def generate_password(length: int = 8) -> str:
    """Return a random password of length characters, about 1 in 4 of them digits."""
    chars = []
    for _ in range(length):
        if random.randint(1, 4) == 4:
            chars.append(random.choice(PASSWORD_DIGITS))
        else:
            chars.append(random.choice(PASSWORD_LETTERS))
    return "".join(chars)


def generate_password_reset_hash(user_store: UserStore, user_id: int) -> str | None:
    """Return the password-reset hash for user_id, or None if there is no such user."""
    user = user_store.get_by_id(user_id)
    if user is None:
        return None
    value = f"{user.id}{user.username}{user.password}"
    return hashlib.md5(value.encode("utf-8")).hexdigest()[:RESET_HASH_LENGTH]


def check_password_reset_hash(user_store: UserStore, user_id: int, reset_hash: str) -> bool:
    """Return True if reset_hash is the current password-reset hash for user_id."""
    expected = generate_password_reset_hash(user_store, user_id)
    if expected is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), reset_hash.strip().lower().encode("utf-8"))


def suggest_username(user_store: UserStore, first_name: str, last_name: str) -> str:
    """Suggest a free username from a first and last name.

    "Jane", "Doe" gives "jdoe", then "jdoe1", "jdoe2", ... if taken.
    """
    suggestion = _USERNAME_STRIP_RE.sub("", (first_name[:1] + last_name).lower())
    suffix = ""
    while user_store.user_exists_by_username(suggestion + suffix):
        suffix = str(int(suffix or 0) + 1)
    return suggestion + suffix
