"""Session token extraction for HTTP and websocket requests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request, Response, WebSocket, status

from fitpair.adapters.tokens import InvalidToken

if TYPE_CHECKING:
    from fitpair.containers import AppContainer

TOKEN_COOKIE_NAME = "token"


def get_token(connection: Request | WebSocket) -> str | None:
    """Return the session token from the Authorization header or cookie."""
    auth = connection.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        if token:
            return token
    return connection.cookies.get(TOKEN_COOKIE_NAME) or None


async def require_account_id(request: Request) -> int:
    """Resolve the signed-in account id or reject the request.

    A missing token is 401; a token that fails validation is 403.
    """
    token = get_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    container: AppContainer = request.app.state.container
    try:
        return container.token_issuer.validate(token)
    except InvalidToken as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN) from exc


def websocket_account_id(websocket: WebSocket) -> int | None:
    """Resolve the account id for a websocket, or None when unauthorized.

    Browsers cannot set headers on websockets, so a `token` query parameter
    takes precedence over the header and cookie.
    """
    token = websocket.query_params.get("token") or get_token(websocket)
    if not token:
        return None
    container: AppContainer = websocket.app.state.container
    try:
        return container.token_issuer.validate(token)
    except InvalidToken:
        return None


def set_session_cookie(response: Response, token: str, container: AppContainer) -> None:
    """Attach the session cookie to a response."""
    response.set_cookie(
        TOKEN_COOKIE_NAME,
        token,
        httponly=True,
        secure=container.settings.cookie_secure,
        samesite="none" if container.settings.cookie_secure else "lax",
        max_age=container.settings.token_ttl_days * 24 * 60 * 60,
        path="/",
    )
