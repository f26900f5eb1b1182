"""
grove.api.deps — FastAPI dependency injection
==============================================

Collaborators (engine, config, calendar) are built once per process and
injected; the caller's identity comes from a bearer JWT.  Role claims in
the token are ignored; services re-read roles from the database.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from grove.config import GroveConfig, load_config
from grove.database.engine import create_db_engine
from grove.engine.calendar import HebrewCivilCalendar
from grove.engine.identity import Identity

_WEAK_SECRETS = frozenset({
    "grove-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> GroveConfig:
    return load_config(os.getenv("GROVE_CONFIG", "config.yaml"))


def get_calendar(
    cfg: Annotated[GroveConfig, Depends(get_config)],
) -> HebrewCivilCalendar:
    return _calendar_for(cfg.timezone)


@lru_cache(maxsize=8)
def _calendar_for(timezone: str) -> HebrewCivilCalendar:
    return HebrewCivilCalendar(timezone)


def get_current_identity(
    authorization: Annotated[str | None, Header()] = None,
) -> Identity:
    """Validate the bearer JWT and return the caller's identity. 401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    uid = payload.get("sub")
    if not uid:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return Identity(
        uid=str(uid),
        email=payload.get("email"),
        display_name=payload.get("name"),
        photo_url=payload.get("picture"),
    )
