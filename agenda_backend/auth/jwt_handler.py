from datetime import datetime, timedelta, timezone

import jwt

from agenda_backend.core import config

# Tokens are issued by the identity service; this module only needs to read
# them. ``create_access_token`` mirrors the issuer's claims for local use.


def create_access_token(
    subject: str,
    roles: list[str] | None = None,
    expires_minutes: int | None = None,
) -> str:
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {"sub": subject, "roles": roles or [], "exp": expire, "iat": issued_at}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )
