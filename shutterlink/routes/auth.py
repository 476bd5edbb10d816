"""Authentication routes."""
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

from ..config import SESSION_COOKIE, SESSION_MAX_AGE, TOKEN_COOKIE
from ..container import ServiceSet
from ..dependencies import client_meta, get_access_token, get_services, require_principal
from ..domain.models import Principal
from ..errors import SessionInvalid

router = APIRouter(prefix="/api")


class LoginRequest(BaseModel):
    username: str
    password: str
    role: Optional[str] = None


class RefreshRequest(BaseModel):
    session_id: Optional[str] = None


class ChangeCredentialRequest(BaseModel):
    current_password: str
    new_password: str


def _set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_id,
        httponly=True,
        samesite="lax",
        max_age=SESSION_MAX_AGE
    )


def _session_reference(request: Request, body: Optional[RefreshRequest]) -> str:
    session_id = (body.session_id if body else None) or request.cookies.get(SESSION_COOKIE)
    if not session_id:
        raise SessionInvalid("No session")
    return session_id


@router.post("/auth/login")
def login(body: LoginRequest, request: Request, response: Response,
          services: ServiceSet = Depends(get_services)):
    """Verify credentials and open a session."""
    result = services.auth.login(body.role, body.username, body.password, client_meta(request))

    _set_session_cookie(response, result.session_id)
    return {
        "access_token": result.access_token,
        "token_type": "bearer",
        "session_id": result.session_id,
        "principal": result.principal,
    }


@router.post("/auth/refresh")
def refresh(request: Request, response: Response, body: Optional[RefreshRequest] = None,
            services: ServiceSet = Depends(get_services)):
    """Exchange the session reference for a new access token."""
    result = services.auth.refresh(_session_reference(request, body), client_meta(request))

    if "session_id" in result:
        _set_session_cookie(response, result["session_id"])
    return {"token_type": "bearer", **result}


@router.post("/auth/logout")
def logout(request: Request, response: Response, body: Optional[RefreshRequest] = None,
           services: ServiceSet = Depends(get_services)):
    """End the current session."""
    session_id = (body.session_id if body else None) or request.cookies.get(SESSION_COOKIE)
    if session_id:
        services.auth.logout(session_id)

    response.delete_cookie(SESSION_COOKIE)
    response.delete_cookie(TOKEN_COOKIE)
    return {"status": "ok"}


@router.post("/auth/logout-all")
def logout_everywhere(response: Response, principal: Principal = Depends(require_principal),
                      services: ServiceSet = Depends(get_services)):
    """End every session of the current principal."""
    revoked = services.auth.logout_everywhere(principal)

    response.delete_cookie(SESSION_COOKIE)
    response.delete_cookie(TOKEN_COOKIE)
    return {"status": "ok", "revoked": revoked}


@router.get("/auth/me")
def me(principal: Principal = Depends(require_principal)):
    return principal


@router.get("/auth/sessions")
def list_sessions(principal: Principal = Depends(require_principal),
                  services: ServiceSet = Depends(get_services)):
    return services.sessions.list_sessions(principal.id)


@router.post("/auth/password")
def change_password(body: ChangeCredentialRequest, request: Request,
                    principal: Principal = Depends(require_principal),
                    services: ServiceSet = Depends(get_services)):
    """Rotate the secret; other sessions are ended."""
    updated = services.auth.change_credential(
        principal, body.current_password, body.new_password,
        keep_session_id=request.cookies.get(SESSION_COOKIE)
    )
    return updated


@router.get("/authorize")
def authorize(resource_id: str, operation: str = "read",
              token: str = Depends(get_access_token),
              services: ServiceSet = Depends(get_services)):
    """Whether the token's principal may perform an operation on a resource."""
    decision = services.auth.authorize(token, resource_id, operation)
    return {"allowed": decision.allowed, "reason": decision.reason}
