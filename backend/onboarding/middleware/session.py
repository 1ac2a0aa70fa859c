"""Session middleware: resolves the wizard session on every request.

Flow:
  1. Read the session id from the `X-Session-ID` header or the session cookie
  2. Validate it; mint a fresh one if missing or malformed
  3. Set ContextVar so downstream code (wizard dependencies) can read it
  4. After the response, set the cookie if a new id was issued and clear
     the ContextVar
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from onboarding.config import settings
from onboarding.services.sessions import (
    clear_session_context,
    new_session_id,
    set_current_session_id,
    validate_session_id,
)

SESSION_HEADER = "x-session-id"


class SessionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        cookie_name = settings.session_cookie_name
        session_id = request.headers.get(SESSION_HEADER) or request.cookies.get(cookie_name)
        issued = False

        if session_id:
            try:
                validate_session_id(session_id)
            except ValueError:
                session_id = None
        if not session_id:
            session_id = new_session_id()
            issued = True

        set_current_session_id(session_id)
        try:
            response = await call_next(request)
        finally:
            clear_session_context()

        if issued:
            response.set_cookie(
                cookie_name,
                session_id,
                httponly=True,
                samesite="lax",
                secure=settings.environment == "production",
            )
        response.headers["X-Session-ID"] = session_id
        return response
