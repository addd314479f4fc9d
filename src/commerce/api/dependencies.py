"""Request-scoped dependencies: the wired container and the shopper identity."""

from fastapi import Cookie, Depends, Header, HTTPException, Request, Response

from commerce.identity import Identity, resolve_identity
from commerce.wiring import Container

SESSION_COOKIE = "checkout_session"
SESSION_COOKIE_MAX_AGE = 30 * 24 * 3600


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_identity(
    response: Response,
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    checkout_session: str | None = Cookie(default=None),
) -> Identity:
    """Authenticated user from the upstream headers, else the guest session.

    A guest without a session cookie gets one issued on this response.
    """
    identity, issued = resolve_identity(x_user_id, x_user_role, checkout_session)
    if issued:
        response.set_cookie(
            SESSION_COOKIE,
            identity.session_id,
            max_age=SESSION_COOKIE_MAX_AGE,
            httponly=True,
            samesite="lax",
        )
    return identity


def require_user(identity: Identity = Depends(get_identity)) -> Identity:
    if identity.is_guest:
        raise HTTPException(status_code=401, detail="Authentication required")
    return identity


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return identity
