from __future__ import annotations

import secrets

from werkzeug.security import check_password_hash, generate_password_hash

from utils import ApiError


MIN_PASSWORD_LENGTH = 6


def validate_password_policy(password: str) -> str:
    pwd = str(password or "")
    if not pwd:
        raise ApiError("VALIDATION_FAILED", "Missing password")
    if len(pwd) < MIN_PASSWORD_LENGTH:
        raise ApiError("VALIDATION_FAILED", f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(pwd) > 256:
        raise ApiError("VALIDATION_FAILED", "Password is too long")
    return pwd


def hash_password(password: str) -> str:
    pwd = validate_password_policy(password)
    # Werkzeug 3 defaults to scrypt; pin explicitly for stability.
    return generate_password_hash(pwd, method="scrypt", salt_length=16)


def unusable_password_hash() -> str:
    """Hash of a random secret nobody knows, for placeholder accounts."""
    return generate_password_hash(secrets.token_hex(32), method="scrypt", salt_length=16)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return check_password_hash(str(password_hash or ""), str(password or ""))
    except Exception:
        return False
