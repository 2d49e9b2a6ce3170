"""Delivery codes: six random digits, stored only as a salted SHA-256 hash."""

import hashlib
import hmac
import secrets

CODE_LENGTH = 6


def generate_code() -> str:
    return f"{secrets.randbelow(10**CODE_LENGTH):0{CODE_LENGTH}d}"


def new_salt() -> str:
    return secrets.token_hex(16)


def hash_code(code: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{code}".encode()).hexdigest()


def matches(code: str, salt: str, expected_hash: str) -> bool:
    """Constant-time comparison of `code` against a stored hash."""
    return hmac.compare_digest(hash_code(str(code), salt), expected_hash)
