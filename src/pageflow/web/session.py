"""Cookie-based session identification.

Every request is tied to a session. The session id is an opaque token
kept in a cookie; requests without one get a fresh id, and the cookie is
set on the response.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request  # noqa: TC002
from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)

from pageflow.flow import SessionStore
from pageflow.observability import bind_session_id


if TYPE_CHECKING:
    from starlette.responses import Response

    from pageflow.config import Settings


__all__ = [
    "SessionMiddleware",
    "get_session_id",
]

# Session ids longer than this are treated as absent.
_MAX_SESSION_ID_LENGTH = 128

# Paths that never need a session.
_SESSIONLESS_PREFIXES = ("/api/health", "/api/ready")


class SessionMiddleware(BaseHTTPMiddleware):
    """Attach a session id to every request.

    The id is stored on ``request.state.session_id`` and bound to the
    structlog context so every log event of the request carries it.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Resolve or create the session id, then handle the request."""
        if request.url.path.startswith(_SESSIONLESS_PREFIXES):
            return await call_next(request)

        settings: Settings = request.app.state.settings
        cookie_name = settings.sessions.cookie_name

        session_id = request.cookies.get(cookie_name)
        is_new = not session_id or len(session_id) > _MAX_SESSION_ID_LENGTH
        if is_new:
            session_id = SessionStore.generate_id()

        request.state.session_id = session_id
        bind_session_id(session_id)

        response = await call_next(request)

        if is_new:
            response.set_cookie(
                key=cookie_name,
                value=session_id,
                max_age=settings.sessions.idle_ttl_seconds,
                httponly=True,
                samesite="lax",
                secure=settings.sessions.cookie_secure,
            )
        return response


def get_session_id(request: Request) -> str:
    """Return the session id assigned by ``SessionMiddleware``."""
    return request.state.session_id  # type: ignore[no-any-return]
