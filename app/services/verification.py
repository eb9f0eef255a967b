"""One-time codes for public booking holds."""

import secrets

from passlib.context import CryptContext

CODE_LENGTH = 6

code_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def generate_code() -> str:
    """Generate a six-digit numeric code."""
    return f"{secrets.randbelow(10**CODE_LENGTH):0{CODE_LENGTH}d}"


def hash_code(code: str) -> str:
    """Hash a code for storage."""
    return code_context.hash(code)


def verify_code(code: str, code_hash: str | None) -> bool:
    """Verify a code against its stored hash."""
    if not code_hash:
        return False
    return code_context.verify(code, code_hash)
