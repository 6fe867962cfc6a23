"""Bearer credential issue and verification (signed JWT carrying subject and role)."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from flask import current_app

from utils.errors import Unauthenticated

BEARER_PREFIX = "Bearer "


def issue_token(user, expires_minutes: Optional[int] = None) -> str:
    minutes = expires_minutes if expires_minutes is not None else int(current_app.config.get("JWT_EXPIRES_MINUTES", 60))
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user.id),
        "role": user.role_name,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"))


def decode_token(token: str) -> dict:
    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise Unauthenticated("Credential expired") from exc
    except jwt.InvalidTokenError as exc:
        raise Unauthenticated("Invalid credential") from exc
    return claims


def bearer_token_from_header(header_value: Optional[str]) -> Optional[str]:
    if not header_value or not header_value.startswith(BEARER_PREFIX):
        return None
    token = header_value[len(BEARER_PREFIX):].strip()
    return token or None
