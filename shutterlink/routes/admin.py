"""Account management and lifecycle routes."""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ..container import ServiceSet
from ..dependencies import get_services, require_active_principal, require_admin
from ..domain.models import Principal

router = APIRouter(prefix="/api")


class PhotographerRequest(BaseModel):
    username: str
    password: str
    business_name: str
    email: Optional[str] = None


class ClientRequest(BaseModel):
    client_name: str
    email: str


class ActiveRequest(BaseModel):
    active: bool


class DeletionRequest(BaseModel):
    reason: Optional[str] = None


# === Console ===

@router.get("/admin/stats")
def system_stats(admin: Principal = Depends(require_admin),
                 services: ServiceSet = Depends(get_services)):
    return services.admin.system_stats(admin)


@router.get("/admin/photographers")
def list_photographers(admin: Principal = Depends(require_admin),
                       services: ServiceSet = Depends(get_services)):
    return services.admin.list_photographers(admin)


@router.get("/admin/photographers/{photographer_id}/stats")
def photographer_stats(photographer_id: str,
                       admin: Principal = Depends(require_admin),
                       services: ServiceSet = Depends(get_services)):
    return services.admin.photographer_stats(admin, photographer_id)


@router.get("/admin/clients")
def list_clients(admin: Principal = Depends(require_admin),
                 services: ServiceSet = Depends(get_services)):
    return services.admin.list_clients(admin)


@router.get("/admin/guests")
def list_guests(admin: Principal = Depends(require_admin),
                services: ServiceSet = Depends(get_services)):
    return services.admin.list_guests(admin)


# === Accounts ===

@router.post("/admin/photographers", status_code=201)
def create_photographer(body: PhotographerRequest,
                        admin: Principal = Depends(require_admin),
                        services: ServiceSet = Depends(get_services)):
    return services.identity.create_photographer(
        admin, body.username, body.password, body.business_name, body.email
    )


@router.post("/clients", status_code=201)
def create_client(body: ClientRequest,
                  principal: Principal = Depends(require_active_principal),
                  services: ServiceSet = Depends(get_services)):
    """Create a client; generated credentials are returned once."""
    client, secret = services.identity.create_client(principal, body.client_name, body.email)
    return {"client": client, "password": secret}


@router.put("/principals/{role}/{principal_id}/active")
def set_active(role: str, principal_id: str, body: ActiveRequest,
               principal: Principal = Depends(require_active_principal),
               services: ServiceSet = Depends(get_services)):
    """Enable or disable an account."""
    return services.identity.set_active(principal, role, principal_id, body.active)


# === Lifecycle ===

@router.post("/lifecycle/{kind}/{entity_id}/delete")
def request_deletion(kind: str, entity_id: str, body: Optional[DeletionRequest] = None,
                     principal: Principal = Depends(require_active_principal),
                     services: ServiceSet = Depends(get_services)):
    """Schedule an entity for deletion after the grace period."""
    reason = body.reason if body else None
    return services.lifecycle.request_deletion(principal, kind, entity_id, reason)


@router.post("/lifecycle/{kind}/{entity_id}/restore")
def request_restore(kind: str, entity_id: str,
                    principal: Principal = Depends(require_active_principal),
                    services: ServiceSet = Depends(get_services)):
    return services.lifecycle.request_restore(principal, kind, entity_id)


@router.get("/admin/scheduled")
def list_scheduled(kind: Optional[str] = None,
                   admin: Principal = Depends(require_admin),
                   services: ServiceSet = Depends(get_services)):
    return services.lifecycle.list_scheduled(admin, kind)


@router.post("/admin/sweep")
def run_sweep(limit: Optional[int] = None,
              admin: Principal = Depends(require_admin),
              services: ServiceSet = Depends(get_services)):
    """Run one lifecycle pass now."""
    return services.lifecycle.sweep(limit=limit).as_dict()


@router.post("/admin/purge-pending")
def purge_pending(admin: Principal = Depends(require_admin),
                  services: ServiceSet = Depends(get_services)):
    """Purge everything pending deletion, regardless of grace period."""
    return services.lifecycle.purge_all_pending(admin).as_dict()


@router.get("/admin/scheduler")
def scheduler_status(request: Request, admin: Principal = Depends(require_admin)):
    return request.app.state.scheduler.status
