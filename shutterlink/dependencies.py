"""Shared FastAPI dependencies."""
from typing import Iterator, Optional

from fastapi import Depends, Header, Request

from .config import TOKEN_COOKIE
from .container import AppContainer, ServiceSet
from .database import connect
from .domain.models import ClientMeta, Principal, Role
from .errors import AuthorizationDenied, SessionInvalid


def get_container(request: Request) -> AppContainer:
    """Get the dependency container from application state."""
    return request.app.state.container


def get_services(container: AppContainer = Depends(get_container)) -> Iterator[ServiceSet]:
    """Services bound to a connection that lives for one request."""
    conn = connect()
    try:
        yield container.services(conn)
    finally:
        conn.close()


def client_meta(request: Request) -> ClientMeta:
    return ClientMeta(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_access_token(request: Request, authorization: Optional[str] = Header(None)) -> str:
    """Read the bearer token from the Authorization header or the token cookie."""
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            raise SessionInvalid("Malformed Authorization header")
        return token.strip()
    token = request.cookies.get(TOKEN_COOKIE)
    if not token:
        raise SessionInvalid("Not authenticated")
    return token


def require_principal(
    token: str = Depends(get_access_token),
    services: ServiceSet = Depends(get_services)
) -> Principal:
    """Require an authenticated principal, raise 401 if not authenticated."""
    return services.auth.authenticate(token)


def require_active_principal(principal: Principal = Depends(require_principal)) -> Principal:
    if not principal.active:
        raise AuthorizationDenied("Account is disabled")
    return principal


def require_admin(principal: Principal = Depends(require_active_principal)) -> Principal:
    """Require admin role, raise 403 otherwise."""
    if principal.role != Role.ADMIN:
        raise AuthorizationDenied("Admin access required")
    return principal
