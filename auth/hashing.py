"""
auth/hashing.py -- Password credential hashing and verification.

Credential formats:
  Current: "pbkdf2:<saltHex>:<keyHex>". 16 random salt bytes, 256-bit key from
       PBKDF2-HMAC-SHA256 with a fixed 100,000 iterations. The iteration count
       is not encoded in the credential, so it can never change without a new
       prefix -- every client of the shared directory must derive the same way.

  Legacy: a bare 64-char hex SHA-256 digest of the plaintext, unsalted. Older
       clients stored a single app password this way. Accepted for
       verification only; hash_password() never produces it.

  Verification dispatches on the shape of the stored value. It never tries
  one format and falls back to the other.

Failure semantics: stored credentials arrive from local storage and from
  remote sync, so anything malformed (wrong field count, bad hex, not a string)
  verifies as False. verify_password() never raises.

Everything here is pure CPU work with no I/O. The login flow runs it through
asyncio.to_thread() so PBKDF2 does not stall the event loop.

Layer rule: no imports from api/, remote/, or storage/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

PBKDF2_PREFIX = "pbkdf2"
PBKDF2_ITERATIONS = 100_000
SALT_BYTES = 16
KEY_BYTES = 32

_LEGACY_HEX_LEN = 64


def derive_key(password: str, salt: bytes) -> str:
    """Return the hex PBKDF2-HMAC-SHA256 key for password under salt."""
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS, dklen=KEY_BYTES)
    return dk.hex()


def legacy_sha256(password: str) -> str:
    """Return the unsalted SHA-256 hex digest older clients stored."""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def hash_password(password: str) -> str:
    """Return a fresh current-format credential for password.

    A new salt is drawn from the OS CSPRNG on every call, so hashing the same
    password twice yields two different credentials that both verify.
    """
    salt = secrets.token_bytes(SALT_BYTES)
    return f"{PBKDF2_PREFIX}:{salt.hex()}:{derive_key(password, salt)}"


def verify_password(password: str, stored: str) -> bool:
    """Return True if password matches the stored credential."""
    if not isinstance(stored, str) or not stored or not isinstance(password, str):
        return False
    if stored.startswith(f"{PBKDF2_PREFIX}:"):
        return _verify_pbkdf2(password, stored)
    return _verify_legacy(password, stored)


def is_legacy_credential(stored: str) -> bool:
    return not (isinstance(stored, str) and stored.startswith(f"{PBKDF2_PREFIX}:"))


def needs_rehash(stored: str) -> bool:
    """True when a verified credential should be re-hashed into the current format."""
    return is_legacy_credential(stored)


def _verify_pbkdf2(password: str, stored: str) -> bool:
    parts = stored.split(":")
    if len(parts) != 3:
        return False
    _, salt_hex, expected_hex = parts
    try:
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(expected_hex)
    except ValueError:
        return False
    if not salt or not expected:
        return False
    actual = bytes.fromhex(derive_key(password, salt))
    return hmac.compare_digest(actual, expected)


def _verify_legacy(password: str, stored: str) -> bool:
    candidate = stored.strip().lower()
    if len(candidate) != _LEGACY_HEX_LEN:
        return False
    try:
        bytes.fromhex(candidate)
    except ValueError:
        return False
    return hmac.compare_digest(legacy_sha256(password), candidate)


# Timing equalization dummy credential.
# Computed once at module load so the first login attempt is not measurably
# slower than later ones. The login flow verifies against it when the username
# is unknown, so an unknown user costs the same PBKDF2 work as a wrong password.
DUMMY_CREDENTIAL: str = hash_password("workdesk_timing_dummy")
