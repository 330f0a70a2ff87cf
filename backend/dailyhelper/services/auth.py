"""Authentication helpers: password hashing, JWT issue/verify, caller dependencies.

Tokens are HS256 JWTs signed with ``JwtSettings.secret`` (PyJWT). Issuer and
audience are never checked. Whether a token must carry ``exp`` is a policy
switch on ``JwtSettings``; when present it is always enforced unless
``validate_lifetime`` is off.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import os
import time
import uuid
from typing import Optional

import jwt  # type: ignore
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from sqlmodel import Session

from ..deps import get_db_session, get_settings
from ..errors import AuthenticationError, AuthorizationError
from ..models import User
from ..settings import JwtSettings, Settings

PBKDF2_ITERATIONS = 39000

security = HTTPBearer(auto_error=False, scheme_name="Bearer", description="Enter Jwt Token Here:")


def hash_password(password: str, salt: Optional[str] = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = salt or base64.urlsafe_b64encode(os.urandom(12)).decode("utf-8")
    dk = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"pbkdf2$sha256${iterations}${salt}${base64.urlsafe_b64encode(dk).decode()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        _algo, _hash_name, iterations, salt, _digest = stored.split("$")
        test = hash_password(password, salt, int(iterations))
    except ValueError:
        return False
    return hmac.compare_digest(test, stored)


def create_token(user: User, settings: JwtSettings, now: Optional[int] = None) -> str:
    now = int(time.time()) if now is None else now
    payload = {
        "sub": str(user.id),
        "unique_name": user.username,
        "role": user.role,
        "jti": uuid.uuid4().hex,
        "iat": now,
    }
    if settings.token_lifetime_minutes > 0:
        payload["exp"] = now + settings.token_lifetime_minutes * 60
    return jwt.encode(payload, settings.secret, algorithm=settings.algorithm)


def decode_token(token: str, settings: JwtSettings) -> dict:
    options = {
        "verify_signature": True,
        "verify_exp": settings.validate_lifetime,
        "verify_aud": False,
        "verify_iss": False,
        "require": ["sub", "exp"] if settings.require_expiration else ["sub"],
    }
    try:
        return jwt.decode(token, settings.secret, algorithms=[settings.algorithm], options=options)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.MissingRequiredClaimError as e:
        raise AuthenticationError(f"Invalid token: missing {e.claim} claim")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")


def current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_db_session),
) -> User:
    """Return the user behind the request's Bearer JWT, or reject with 401."""
    if not credentials:
        raise AuthenticationError("Missing auth header")

    data = decode_token(credentials.credentials, settings.jwt)
    try:
        user_id = int(data["sub"])
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token: malformed user id")

    user = session.get(User, user_id)
    if not user:
        logger.warning("token for unknown user id {}", user_id)
        raise AuthenticationError("User not found")
    request.state.user = user
    request.state.token = credentials.credentials
    return user


def require_role(*roles: str):
    def dep(user: User = Depends(current_user)) -> User:
        if roles and user.role not in roles:
            raise AuthorizationError("Forbidden: role", {"required": list(roles)})
        return user
    return dep


__all__ = [
    "hash_password", "verify_password", "create_token", "decode_token",
    "current_user", "require_role", "security",
]
