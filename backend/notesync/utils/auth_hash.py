"""Password hashing for the register/login routes.

bcrypt through passlib's CryptContext, with the cost taken from
`BCRYPT_ROUNDS` when set. Some bcrypt builds break passlib's self-test; in
that case the context is rebuilt on pbkdf2_sha256 so accounts keep working.
"""
from __future__ import annotations

from loguru import logger
from passlib.context import CryptContext

from notesync import config

logger = logger.bind(module="auth_hash")


def _build_context(rounds: int | None) -> CryptContext:
    try:
        if rounds:
            ctx = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)
        else:
            ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")
        ctx.hash("self-test")
        return ctx
    except Exception as exc:
        logger.warning(f"bcrypt backend unavailable ({exc}); using pbkdf2_sha256")
    if rounds:
        return CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto", pbkdf2_sha256__rounds=rounds)
    return CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


pwd_context = _build_context(config.bcrypt_rounds())


def hash_password(plain: str) -> str:
    if plain is None:
        raise ValueError("Password must not be None")
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """True when `plain` matches the stored hash; malformed hashes never match."""
    if plain is None or hashed is None:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False
