from __future__ import annotations

from werkzeug.security import check_password_hash, generate_password_hash

from crm_core.core.errors import ValidationError


MIN_PASSWORD_LENGTH = 8


def hash_password(plain_password: str) -> str:
    """Hash with werkzeug's scrypt KDF."""
    if not isinstance(plain_password, str) or len(plain_password.strip()) < MIN_PASSWORD_LENGTH:
        raise ValidationError("password", f"Password must have at least {MIN_PASSWORD_LENGTH} characters")
    return generate_password_hash(plain_password, method="scrypt")


def verify_password(password_hash: str, plain_password: str) -> bool:
    if not password_hash or not plain_password:
        return False
    return check_password_hash(password_hash, plain_password)
