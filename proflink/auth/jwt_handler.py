from datetime import datetime, timedelta, timezone

import jwt

from proflink.core import config

ACCESS_TOKEN_PURPOSE = "access"
EMAIL_VERIFICATION_PURPOSE = "verify_email"


def _encode(payload: dict, expire_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {**payload, "exp": now + timedelta(minutes=expire_minutes), "iat": now}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def create_access_token(
    subject: str,
    role: str,
    session_version: int,
    expires_minutes: int | None = None,
) -> str:
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    return _encode(
        {"sub": subject, "role": role, "ver": session_version, "purpose": ACCESS_TOKEN_PURPOSE},
        expire_minutes,
    )


def create_email_verification_token(subject: str, expires_minutes: int | None = None) -> str:
    expire_minutes = expires_minutes or config.EMAIL_VERIFICATION_EXPIRES_MINUTES
    return _encode({"sub": subject, "purpose": EMAIL_VERIFICATION_PURPOSE}, expire_minutes)


def decode_token(token: str, purpose: str = ACCESS_TOKEN_PURPOSE) -> dict:
    payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    if payload.get("purpose") != purpose:
        raise jwt.InvalidTokenError("Unexpected token purpose")
    return payload
