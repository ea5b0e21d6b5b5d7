"""Common API dependencies: app-scoped services, bearer check, error mapping."""

from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from devboard.config import Settings
from devboard.services.errors import Result
from devboard.services.probe import DeviceProbe
from devboard.services.store import DeviceStore
from devboard.utils.security import decode_token
from devboard.ws.broadcast import Broadcaster

bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> DeviceStore:
    return request.app.state.store


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


def get_probe(request: Request) -> DeviceProbe:
    return request.app.state.probe


@dataclass
class Caller:
    token: str
    username: Optional[str] = None


def require_bearer(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Caller:
    """Require a bearer credential.

    Presence is always required. When a JWT secret is configured the token
    must also verify, and its `username` claim identifies the caller.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthorized", "message": "Authentication required"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not settings.jwt_secret:
        return Caller(token=credentials.credentials)

    try:
        payload = decode_token(credentials.credentials, settings)
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthorized", "message": "Invalid or expired token"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Caller(token=credentials.credentials, username=payload.get("username"))


def unwrap(result: Result):
    """Return the result's value or raise the matching HTTPException."""
    if result.ok:
        return result.value
    error = result.error
    raise HTTPException(
        status_code=error.http_status,
        detail={"error": error.code, "message": error.message, **error.detail},
    )
