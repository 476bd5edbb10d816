"""Collection and photo routes for authenticated principals."""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from ..container import ServiceSet
from ..dependencies import get_services, require_active_principal
from ..application.services.catalog_service import UploadItem
from ..domain.models import Principal

router = APIRouter(prefix="/api")


class CollectionRequest(BaseModel):
    name: str
    description: Optional[str] = None


class PhotoIdsRequest(BaseModel):
    photo_ids: list[str]


class TagsRequest(BaseModel):
    tags: list[str]


class TitleRequest(BaseModel):
    title: Optional[str] = None


class ArchiveRequest(BaseModel):
    share_tokens: list[str]


# === Collections ===

@router.get("/collections")
def list_collections(principal: Principal = Depends(require_active_principal),
                     services: ServiceSet = Depends(get_services)):
    return services.catalog.list_collections(principal)


@router.post("/collections", status_code=201)
def create_collection(body: CollectionRequest,
                      principal: Principal = Depends(require_active_principal),
                      services: ServiceSet = Depends(get_services)):
    return services.catalog.create_collection(principal, body.name, body.description)


@router.get("/collections/{collection_id}")
def get_collection(collection_id: str,
                   principal: Principal = Depends(require_active_principal),
                   services: ServiceSet = Depends(get_services)):
    return services.catalog.get_collection(principal, collection_id)


@router.put("/collections/{collection_id}")
def rename_collection(collection_id: str, body: CollectionRequest,
                      principal: Principal = Depends(require_active_principal),
                      services: ServiceSet = Depends(get_services)):
    return services.catalog.rename_collection(principal, collection_id, body.name, body.description)


@router.get("/collections/{collection_id}/photos")
def list_collection_photos(collection_id: str,
                           principal: Principal = Depends(require_active_principal),
                           services: ServiceSet = Depends(get_services)):
    return services.catalog.list_collection_photos(principal, collection_id)


@router.post("/collections/{collection_id}/photos", status_code=201)
def upload_photo(
    collection_id: str,
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    principal: Principal = Depends(require_active_principal),
    services: ServiceSet = Depends(get_services)
):
    """Upload a photo into a collection. Tags are comma separated."""
    data = file.file.read()
    tag_list = [t for t in tags.split(",")] if tags else []
    return services.catalog.create_photo(
        principal, collection_id, data, file.content_type, tag_list, title
    )


@router.post("/collections/{collection_id}/photos/batch", status_code=201)
def upload_photos(
    collection_id: str,
    files: List[UploadFile] = File(...),
    tags: Optional[str] = Form(None),
    principal: Principal = Depends(require_active_principal),
    services: ServiceSet = Depends(get_services)
):
    """Upload several photos at once; rejected files are listed, not fatal."""
    items = [UploadItem(f.filename, f.file.read(), f.content_type) for f in files]
    tag_list = [t for t in tags.split(",")] if tags else []
    return services.catalog.create_photos(principal, collection_id, items, tag_list)


@router.post("/collections/{collection_id}/members")
def add_photos(collection_id: str, body: PhotoIdsRequest,
               principal: Principal = Depends(require_active_principal),
               services: ServiceSet = Depends(get_services)):
    """Add existing photos to another collection."""
    return services.catalog.add_photos_to_collection(principal, collection_id, body.photo_ids)


# === Photos ===

@router.get("/photos/shared")
def list_shared_photos(principal: Principal = Depends(require_active_principal),
                       services: ServiceSet = Depends(get_services)):
    """Photos granted directly to the current client or guest."""
    return services.catalog.list_granted_photos(principal)


@router.post("/photos/archive")
def download_archive(body: ArchiveRequest,
                     principal: Principal = Depends(require_active_principal),
                     services: ServiceSet = Depends(get_services)):
    """Download several photos as one zip file."""
    content = services.catalog.build_archive(principal, body.share_tokens)
    filename = f"photos-{int(services.catalog.clock().timestamp())}.zip"
    return Response(
        content=content,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/photos/{key}")
def get_photo(key: str,
              principal: Principal = Depends(require_active_principal),
              services: ServiceSet = Depends(get_services)):
    return services.catalog.get_photo(principal, key)


@router.get("/photos/{key}/image")
def get_photo_image(key: str,
                    principal: Principal = Depends(require_active_principal),
                    services: ServiceSet = Depends(get_services)):
    photo, content = services.catalog.get_photo_content(principal, key)
    return Response(content=content, media_type=photo["mime_type"])


@router.get("/photos/{key}/thumbnail")
def get_photo_thumbnail(key: str,
                        principal: Principal = Depends(require_active_principal),
                        services: ServiceSet = Depends(get_services)):
    _, content = services.catalog.get_photo_content(principal, key, "thumbnail")
    return Response(content=content, media_type="image/jpeg")


@router.put("/photos/{photo_id}/tags")
def set_tags(photo_id: str, body: TagsRequest,
             principal: Principal = Depends(require_active_principal),
             services: ServiceSet = Depends(get_services)):
    return services.catalog.retag_photo(principal, photo_id, body.tags)


@router.put("/photos/{photo_id}/title")
def set_title(photo_id: str, body: TitleRequest,
              principal: Principal = Depends(require_active_principal),
              services: ServiceSet = Depends(get_services)):
    return services.catalog.retitle_photo(principal, photo_id, body.title)
