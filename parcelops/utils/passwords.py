"""
Password hashing helpers.

Hashes use werkzeug's ``method$salt$hash`` format.  A stored value that
already starts with a known method prefix is treated as hashed and passed
through unchanged; anything else is a legacy plain-text value (seed data,
records created before hashing was introduced).
"""

from __future__ import annotations

import hmac
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

_HASH_PREFIXES: tuple[str, ...] = ("scrypt:", "pbkdf2:")


def is_hashed(value: Optional[str]) -> bool:
    """``True`` when *value* is already in werkzeug hash form."""
    return bool(value) and value.startswith(_HASH_PREFIXES)


def hash_password(plain: str) -> str:
    return generate_password_hash(plain)


def ensure_hashed(value: Optional[str], default: str) -> str:
    """Return *value* hashed, unless it already is.

    Missing values fall back to *default* before hashing.
    """
    candidate = value or default
    if is_hashed(candidate):
        return candidate
    return generate_password_hash(candidate)


def verify_password(stored: Optional[str], candidate: str) -> bool:
    """Check *candidate* against a stored hash or legacy plain value."""
    if not stored:
        return False
    if is_hashed(stored):
        return check_password_hash(stored, candidate)
    return hmac.compare_digest(stored.encode("utf-8"), candidate.encode("utf-8"))
