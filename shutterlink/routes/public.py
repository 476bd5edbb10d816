"""Unauthenticated photo access by share token."""
from fastapi import APIRouter, Depends
from fastapi.responses import Response

from ..container import ServiceSet
from ..dependencies import get_services

router = APIRouter()


@router.get("/share/{share_token}")
def public_photo(share_token: str, services: ServiceSet = Depends(get_services)):
    """Public metadata of a shared photo."""
    return services.catalog.get_public(share_token)


@router.get("/share/{share_token}/image")
def public_image(share_token: str, services: ServiceSet = Depends(get_services)):
    photo, content = services.catalog.get_public_content(share_token)
    return Response(content=content, media_type=photo["mime_type"])


@router.get("/share/{share_token}/thumbnail")
def public_thumbnail(share_token: str, services: ServiceSet = Depends(get_services)):
    _, content = services.catalog.get_public_content(share_token, "thumbnail")
    return Response(content=content, media_type="image/jpeg")
