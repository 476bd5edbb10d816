"""Sharing routes - grants to clients and guests."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..container import ServiceSet
from ..dependencies import get_services, require_active_principal
from ..domain.models import Principal

router = APIRouter(prefix="/api")


class ShareCollectionRequest(BaseModel):
    client_id: str


class SharePhotosRequest(BaseModel):
    client_id: str
    photo_ids: list[str]
    expires_at: Optional[datetime] = None


class GuestShareRequest(BaseModel):
    email: str
    share_tokens: list[str]
    guest_name: Optional[str] = None
    expiration_days: Optional[int] = None


class GrantRequest(BaseModel):
    kind: str
    grantee_id: str
    expires_at: Optional[datetime] = None


@router.post("/collections/{collection_id}/share")
def share_collection(collection_id: str, body: ShareCollectionRequest,
                     principal: Principal = Depends(require_active_principal),
                     services: ServiceSet = Depends(get_services)):
    """Share a collection with one of the photographer's clients."""
    return services.sharing.share_collection(principal, collection_id, body.client_id)


@router.post("/photos/share")
def share_photos(body: SharePhotosRequest,
                 principal: Principal = Depends(require_active_principal),
                 services: ServiceSet = Depends(get_services)):
    return services.sharing.share_photos_with_client(
        principal, body.client_id, body.photo_ids, body.expires_at
    )


@router.post("/guests/share")
def share_with_guest(body: GuestShareRequest,
                     principal: Principal = Depends(require_active_principal),
                     services: ServiceSet = Depends(get_services)):
    """Create or reuse a guest and replace the photos it can see."""
    result = services.sharing.share_guest_photos(
        principal, body.email, body.share_tokens, body.guest_name, body.expiration_days
    )
    return result


@router.get("/guests")
def list_guests(principal: Principal = Depends(require_active_principal),
                services: ServiceSet = Depends(get_services)):
    return services.sharing.list_guests(principal)


@router.get("/resources/{resource_id}/grants")
def list_grants(resource_id: str, include_expired: bool = False,
                principal: Principal = Depends(require_active_principal),
                services: ServiceSet = Depends(get_services)):
    return services.permissions.list_grants(principal, resource_id, current_only=not include_expired)


@router.post("/resources/{resource_id}/grants")
def grant(resource_id: str, body: GrantRequest,
          principal: Principal = Depends(require_active_principal),
          services: ServiceSet = Depends(get_services)):
    return services.permissions.grant(principal, body.kind, resource_id, body.grantee_id, body.expires_at)


@router.delete("/resources/{resource_id}/grants/{kind}/{grantee_id}")
def revoke(resource_id: str, kind: str, grantee_id: str,
           principal: Principal = Depends(require_active_principal),
           services: ServiceSet = Depends(get_services)):
    revoked = services.permissions.revoke(principal, kind, resource_id, grantee_id)
    return {"revoked": revoked}
