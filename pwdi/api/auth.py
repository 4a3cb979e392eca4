from __future__ import annotations

import hmac
from typing import Callable, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from starlette.requests import Request

from pwdi.core.token import verify_timed

BASIC_REALM = "Restricted"

_basic = HTTPBasic(realm=BASIC_REALM, auto_error=False)


def unauthorized() -> HTTPException:
    """401 carrying the Basic challenge."""

    return HTTPException(
        status_code=401,
        detail="unauthorized",
        headers={"WWW-Authenticate": f'Basic realm="{BASIC_REALM}"'},
    )


def authenticate_token(credentials: Optional[HTTPBasicCredentials], secret: str) -> bool:
    """Check a Basic credential whose user id carries a timed token.

    The password field is ignored.
    """

    if credentials is None or not credentials.username:
        return False
    return verify_timed(credentials.username, secret)


def authenticate_password(
    credentials: Optional[HTTPBasicCredentials], user_id: str, password: str
) -> bool:
    """Check a plain user id / password pair.

    Security notes:
    - Both fields are compared in constant time, and both are always compared.

    """

    if credentials is None or not credentials.password:
        return False
    user_ok = hmac.compare_digest(credentials.username.encode("utf-8"), user_id.encode("utf-8"))
    pass_ok = hmac.compare_digest(credentials.password.encode("utf-8"), password.encode("utf-8"))
    return user_ok and pass_ok


def require_token(secret: str) -> Callable[..., None]:
    """Build a dependency that fails closed (401) without a valid timed token."""

    def dependency(
        request: Request, credentials: Optional[HTTPBasicCredentials] = Depends(_basic)
    ) -> None:
        if not authenticate_token(credentials, secret):
            raise unauthorized()
        request.state.authenticated = True

    return dependency


def require_password(user_id: str, password: str) -> Callable[..., None]:
    """Build a dependency that fails closed (401) without the expected pair."""

    def dependency(
        request: Request, credentials: Optional[HTTPBasicCredentials] = Depends(_basic)
    ) -> None:
        if not authenticate_password(credentials, user_id, password):
            raise unauthorized()
        request.state.authenticated = True

    return dependency
