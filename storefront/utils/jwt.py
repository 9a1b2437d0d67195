"""HS256 access/refresh tokens identifying a storefront user by id."""
import datetime as dt
import uuid
from typing import Dict, Optional

import jwt
from flask import current_app

ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["exp", "iat", "sub", "type"]


class TokenError(Exception):
    pass


def _encode(claims: Dict, lifetime: dt.timedelta) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    payload = dict(claims, iat=now, exp=now + lifetime, jti=uuid.uuid4().hex)
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=ALGORITHM)


def create_access_token(user_id: int, role: str) -> str:
    minutes = current_app.config["ACCESS_TOKEN_LIFETIME_MIN"]
    return _encode(
        {"sub": str(user_id), "role": role, "type": "access"},
        dt.timedelta(minutes=minutes),
    )


def create_refresh_token(user_id: int) -> str:
    days = current_app.config["REFRESH_TOKEN_LIFETIME_DAYS"]
    return _encode({"sub": str(user_id), "type": "refresh"}, dt.timedelta(days=days))


def decode_token(token: Optional[str], expected_type: str = "access") -> Dict:
    if not token:
        raise TokenError("token missing")
    try:
        data = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[ALGORITHM],
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("token expired")
    except jwt.InvalidTokenError:
        raise TokenError("invalid token")

    if data.get("type") != expected_type:
        raise TokenError(f"expected {expected_type} token")
    return data
