"""Catalog service - photo and collection records.

Photos are always created inside a collection. The first upload into a
collection starts its auto-delete clock.
"""
import io
import logging
import mimetypes
import re
import secrets
import zipfile
from dataclasses import dataclass
from datetime import timedelta

from ...clock import Clock, utcnow
from ...config import (
    COLLECTION_DESCRIPTION_MAX, COLLECTION_EXPIRY_DAYS, COLLECTION_NAME_MAX,
    MAX_ARCHIVE_PHOTOS, MAX_BATCH_UPLOAD, MAX_TAGS,
)
from ...domain.lifecycle import days_remaining, is_available
from ...domain.models import EdgeKind, EntityKind, Operation, Principal, Role
from ...errors import (
    AuthorizationDenied, ResourceNotFound, ResourceUnavailable, ValidationFailed,
)
from ...infrastructure.repositories import CollectionRepository, EdgeRepository, PhotoRepository
from ...infrastructure.services import broadcaster as events
from .permission_service import PermissionService

logger = logging.getLogger(__name__)

# 32 random bytes, hex encoded
SHARE_TOKEN_PATTERN = re.compile(r"^[0-9a-f]{64}$")
MAX_TAG_LENGTH = 50

# Fields a public viewer may see
PUBLIC_PHOTO_FIELDS = ("share_token", "title", "tags", "mime_type", "width", "height", "created_at")


def new_share_token() -> str:
    return secrets.token_hex(32)


def validate_share_token(share_token: str) -> str:
    if not isinstance(share_token, str) or not SHARE_TOKEN_PATTERN.match(share_token):
        raise ValidationFailed("Malformed share token")
    return share_token


def normalize_tags(tags) -> list[str]:
    """Trim, lowercase and de-duplicate tags, keeping their order."""
    if tags is None:
        return []
    if isinstance(tags, str) or not isinstance(tags, (list, tuple)):
        raise ValidationFailed("Tags must be a list of strings")
    result = []
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationFailed("Tags must be a list of strings")
        tag = tag.strip().lower()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationFailed(f"Tags are limited to {MAX_TAG_LENGTH} characters")
        if tag not in result:
            result.append(tag)
    if len(result) > MAX_TAGS:
        raise ValidationFailed(f"At most {MAX_TAGS} tags are allowed")
    return result


def _validate_collection_fields(name: str, description: str | None) -> tuple[str, str | None]:
    name = (name or "").strip()
    if not name or len(name) > COLLECTION_NAME_MAX:
        raise ValidationFailed(f"Collection name must be 1-{COLLECTION_NAME_MAX} characters")
    if description is not None:
        description = description.strip()
        if len(description) > COLLECTION_DESCRIPTION_MAX:
            raise ValidationFailed(
                f"Description is limited to {COLLECTION_DESCRIPTION_MAX} characters"
            )
    return name, description


@dataclass(frozen=True)
class UploadItem:
    """One file of a batch upload."""

    filename: str | None
    data: bytes
    mime_type: str | None = None


def archive_name(photo: dict, index: int) -> str:
    """File name for a photo inside a download archive."""
    stem = re.sub(r"[^A-Za-z0-9._ -]", "_", photo.get("title") or "").strip(" .")
    extension = mimetypes.guess_extension(photo["mime_type"]) or ""
    if extension == ".jpe":
        extension = ".jpg"
    return f"{stem or f'photo-{index}'}{extension}"


class CatalogService:
    """Service for photo and collection records.

    Responsibilities:
    - Create collections and upload photos into them
    - Owner edits (rename, retag, membership)
    - Authorized reads, and the public share-token read
    """

    def __init__(
        self,
        photo_repository: PhotoRepository,
        collection_repository: CollectionRepository,
        edge_repository: EdgeRepository,
        permission_service: PermissionService,
        image_processor,
        broadcaster=None,
        clock: Clock = utcnow,
        collection_expiry_days: int = COLLECTION_EXPIRY_DAYS
    ):
        self.photo_repo = photo_repository
        self.collection_repo = collection_repository
        self.edge_repo = edge_repository
        self.permissions = permission_service
        self.image_processor = image_processor
        self.broadcaster = broadcaster
        self.clock = clock
        self.collection_expiry = timedelta(days=collection_expiry_days)

    # --- collections ------------------------------------------------------

    def _collection_view(self, collection: dict) -> dict:
        view = dict(collection)
        view["days_remaining"] = days_remaining(collection.get("auto_delete_at"), self.clock())
        view["photo_count"] = self.collection_repo.photo_count(collection["id"])
        return view

    def _require_collection(self, principal: Principal, collection_id: str, operation: Operation) -> dict:
        kind, resource = self.permissions.check(principal, collection_id, operation)
        if kind != EntityKind.COLLECTION:
            raise ResourceNotFound("Collection not found")
        return resource

    def create_collection(self, principal: Principal, name: str, description: str | None = None) -> dict:
        if principal.role != Role.PHOTOGRAPHER or not principal.active:
            raise AuthorizationDenied("Only photographers can create collections")
        name, description = _validate_collection_fields(name, description)
        collection = self.collection_repo.create(principal.id, name, self.clock(), description)
        return self._collection_view(collection)

    def get_collection(self, principal: Principal, collection_id: str) -> dict:
        return self._collection_view(self._require_collection(principal, collection_id, Operation.READ))

    def rename_collection(self, principal: Principal, collection_id: str, name: str,
                          description: str | None = None) -> dict:
        collection = self._require_collection(principal, collection_id, Operation.UPDATE)
        name, description = _validate_collection_fields(name, description)
        self.collection_repo.rename(collection["id"], name, description, self.clock())
        return self._collection_view(self.collection_repo.get_by_id(collection["id"]))

    def list_collections(self, principal: Principal) -> list[dict]:
        """Collections visible to a principal.

        Owners see every collection they own, whatever its state; clients
        see only available collections shared with them through a
        current edge.
        """
        if principal.role == Role.ADMIN:
            collections = self.collection_repo.list_all()
        elif principal.role == Role.PHOTOGRAPHER:
            collections = self.collection_repo.list_by_owner(principal.id)
        elif principal.role == Role.CLIENT:
            collections = self.collection_repo.list_shared_with(principal.id, self.clock())
        else:
            collections = []
        return [self._collection_view(collection) for collection in collections]

    def list_collection_photos(self, principal: Principal, collection_id: str) -> list[dict]:
        collection = self._require_collection(principal, collection_id, Operation.READ)
        is_manager = principal.role == Role.ADMIN or collection["owner_id"] == principal.id
        return self.photo_repo.list_for_collection(
            collection["id"], self.clock(), visible_only=not is_manager
        )

    # --- photos -----------------------------------------------------------

    def create_photo(
        self,
        principal: Principal,
        collection_id: str | None,
        data: bytes,
        mime_hint: str | None = None,
        tags: list[str] | None = None,
        title: str | None = None
    ) -> dict:
        """Upload a photo into a collection.

        Args:
            principal: Owning photographer
            collection_id: Target collection (required)
            data: Raw image bytes
            mime_hint: Declared content type
            tags: Optional tags
            title: Optional title

        Returns:
            The stored photo's metadata, including its share token

        Raises:
            ValidationFailed: Missing collection or invalid image
            ResourceUnavailable: Collection is disabled or pending deletion
        """
        if not collection_id:
            raise ValidationFailed("A collection is required for every photo")
        if principal.role != Role.PHOTOGRAPHER:
            raise AuthorizationDenied("Only photographers can upload photos")
        collection = self._require_collection(principal, collection_id, Operation.UPDATE)
        if not is_available(collection):
            raise ResourceUnavailable("Collection is not accepting uploads")
        tags = normalize_tags(tags)

        processed = self.image_processor.process(data, mime_hint)
        now = self.clock()

        with self.photo_repo.transaction():
            photo = self.photo_repo.create(
                principal.id, new_share_token(), processed.mime_type,
                processed.stored_variant, processed.thumbnail_variant, now,
                width=processed.width, height=processed.height, title=title, tags=tags
            )
            self.edge_repo.upsert(
                EdgeKind.COLLECTION_PHOTO, collection["id"], photo["id"], now,
                granted_by=principal.id,
                order_index=self.edge_repo.next_order_index(collection["id"])
            )
            self.collection_repo.set_auto_delete_if_unset(collection["id"], now + self.collection_expiry)

        self._emit(events.PHOTO_UPLOADED, {"photo_id": photo["id"], "collection_id": collection["id"]},
                   [principal.id])
        return photo

    def create_photos(self, principal: Principal, collection_id: str | None,
                      files: list[UploadItem], tags: list[str] | None = None) -> dict:
        """Upload several files into one collection.

        Access to the collection is checked once for the whole batch. A
        file that is not a usable image is reported and skipped; the
        others are still stored.

        Returns:
            Dict with ``uploaded`` (stored photos) and ``failed``
            (``filename`` and ``error`` per rejected file)

        Raises:
            ValidationFailed: Empty or oversized batch, missing collection
            ResourceUnavailable: Collection is disabled or pending deletion
        """
        if not files:
            raise ValidationFailed("No files given")
        if len(files) > MAX_BATCH_UPLOAD:
            raise ValidationFailed(f"At most {MAX_BATCH_UPLOAD} files per upload")
        if not collection_id:
            raise ValidationFailed("A collection is required for every photo")
        if principal.role != Role.PHOTOGRAPHER:
            raise AuthorizationDenied("Only photographers can upload photos")
        collection = self._require_collection(principal, collection_id, Operation.UPDATE)
        if not is_available(collection):
            raise ResourceUnavailable("Collection is not accepting uploads")
        tags = normalize_tags(tags)

        uploaded, failed = [], []
        for item in files:
            try:
                uploaded.append(self.create_photo(
                    principal, collection["id"], item.data, item.mime_type, tags
                ))
            except ValidationFailed as exc:
                failed.append({"filename": item.filename, "error": exc.detail})

        logger.info("Batch upload into %s: %d stored, %d rejected",
                    collection["id"], len(uploaded), len(failed))
        return {"uploaded": uploaded, "failed": failed}

    def add_photos_to_collection(self, principal: Principal, collection_id: str, photo_ids: list[str]) -> list[dict]:
        """Link existing photos of the same owner into another collection."""
        collection = self._require_collection(principal, collection_id, Operation.UPDATE)
        if not is_available(collection):
            raise ResourceUnavailable("Collection is not accepting photos")
        if not photo_ids:
            raise ValidationFailed("No photos given")

        photos = []
        for photo_id in photo_ids:
            kind, photo = self.permissions.check(principal, photo_id, Operation.UPDATE)
            if kind != EntityKind.PHOTO or photo["owner_id"] != collection["owner_id"]:
                raise AuthorizationDenied("Photos must belong to the collection owner")
            if not is_available(photo):
                raise ResourceUnavailable("Photo is not available")
            photos.append(photo)

        now = self.clock()
        edges = []
        with self.edge_repo.transaction():
            for photo in photos:
                edges.append(self.edge_repo.upsert(
                    EdgeKind.COLLECTION_PHOTO, collection["id"], photo["id"], now,
                    granted_by=principal.id,
                    order_index=self.edge_repo.next_order_index(collection["id"])
                ))
            self.collection_repo.set_auto_delete_if_unset(collection["id"], now + self.collection_expiry)
        return edges

    def retag_photo(self, principal: Principal, photo_id: str, tags: list[str]) -> dict:
        photo = self._require_photo(principal, photo_id, Operation.UPDATE)
        self.photo_repo.update_tags(photo["id"], normalize_tags(tags), self.clock())
        return self.photo_repo.get_by_id(photo["id"])

    def retitle_photo(self, principal: Principal, photo_id: str, title: str | None) -> dict:
        photo = self._require_photo(principal, photo_id, Operation.UPDATE)
        title = title.strip() if title else None
        self.photo_repo.update_title(photo["id"], title or None, self.clock())
        return self.photo_repo.get_by_id(photo["id"])

    def _require_photo(self, principal: Principal, photo_id: str, operation: Operation) -> dict:
        kind, resource = self.permissions.check(principal, photo_id, operation)
        if kind != EntityKind.PHOTO:
            raise ResourceNotFound("Photo not found")
        return resource

    def get_photo(self, principal: Principal, key: str) -> dict:
        """Authorized photo read.

        Owners may address their photos by id or by share token; every
        other principal must use the id.
        """
        if isinstance(key, str) and SHARE_TOKEN_PATTERN.match(key):
            photo = self.photo_repo.get_by_share_token(key)
            if photo is None or (principal.role != Role.ADMIN and photo["owner_id"] != principal.id):
                raise AuthorizationDenied()
            return photo
        return self._require_photo(principal, key, Operation.READ)

    def get_photo_content(self, principal: Principal, key: str, variant: str = "content") -> tuple[dict, bytes]:
        photo = self.get_photo(principal, key)
        content = self.photo_repo.get_content(photo["id"], variant)
        if content is None:
            raise ResourceNotFound("Photo not found")
        return photo, content

    def build_archive(self, principal: Principal, keys: list[str]) -> bytes:
        """Zip the stored variants of several photos.

        Photos are addressed by share token or id. Each one passes the
        same read check as a single download, and one refusal fails the
        whole archive.

        Raises:
            ValidationFailed: Empty or oversized selection
            AuthorizationDenied: Any photo the principal may not read
            ResourceUnavailable: Any photo pending deletion
        """
        if not keys:
            raise ValidationFailed("No photos selected")
        if len(keys) > MAX_ARCHIVE_PHOTOS:
            raise ValidationFailed(f"At most {MAX_ARCHIVE_PHOTOS} photos per download")

        photos = {}
        for key in keys:
            if isinstance(key, str) and SHARE_TOKEN_PATTERN.match(key):
                by_token = self.photo_repo.get_by_share_token(key)
                if by_token is None:
                    raise AuthorizationDenied()
                key = by_token["id"]
            photo = self._require_photo(principal, key, Operation.READ)
            photos.setdefault(photo["id"], photo)

        buffer = io.BytesIO()
        names = set()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for index, photo in enumerate(photos.values(), start=1):
                content = self.photo_repo.get_content(photo["id"])
                if content is None:
                    raise ResourceNotFound("Photo not found")
                original = name = archive_name(photo, index)
                counter = 1
                while name in names:
                    parts = original.rsplit(".", 1)
                    if len(parts) == 2:
                        name = f"{parts[0]} ({counter}).{parts[1]}"
                    else:
                        name = f"{original} ({counter})"
                    counter += 1
                names.add(name)
                archive.writestr(name, content)

        logger.info("Built archive of %d photos for %s", len(photos), principal.id)
        return buffer.getvalue()

    def list_granted_photos(self, principal: Principal) -> list[dict]:
        """Photos shared with a client or guest through direct grants."""
        if principal.role not in (Role.CLIENT, Role.GUEST):
            return []
        return self.photo_repo.list_granted_to(principal.id, self.clock())

    # --- public -----------------------------------------------------------

    def _public_photo(self, share_token: str) -> dict:
        photo = self.photo_repo.get_by_share_token(validate_share_token(share_token))
        # Anonymous callers learn nothing about disabled or dying photos
        if photo is None or not is_available(photo):
            raise ResourceNotFound("Photo not found")
        return photo

    def get_public(self, share_token: str) -> dict:
        """Unauthenticated read by share token; ids are never accepted here."""
        photo = self._public_photo(share_token)
        return {field: photo[field] for field in PUBLIC_PHOTO_FIELDS}

    def get_public_content(self, share_token: str, variant: str = "content") -> tuple[dict, bytes]:
        photo = self._public_photo(share_token)
        content = self.photo_repo.get_content(photo["id"], variant)
        if content is None:
            raise ResourceNotFound("Photo not found")
        return {field: photo[field] for field in PUBLIC_PHOTO_FIELDS}, content

    def _emit(self, event_type: str, payload: dict, targets: list[str]) -> None:
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.emit(event_type, payload, targets)
        except Exception:
            logger.warning("Broadcast of %s failed", event_type, exc_info=True)
