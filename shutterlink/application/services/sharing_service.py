"""Sharing service - grants that hand resources to clients and guests."""
import logging
from datetime import datetime, timedelta

from ...clock import Clock, as_utc, utcnow
from ...config import GUEST_DEFAULT_DAYS, GUEST_MAX_DAYS
from ...domain.lifecycle import is_available
from ...domain.models import EdgeKind, Operation, Principal, Role
from ...errors import (
    AuthorizationDenied, ResourceNotFound, ResourceUnavailable, ValidationFailed,
)
from ...infrastructure.repositories import (
    ClientRepository, CollectionRepository, EdgeRepository, GuestRepository, PhotoRepository,
)
from ...infrastructure.services import broadcaster as events
from ...infrastructure.services import notifier as templates
from ...infrastructure.services.locks import KeyedLocks
from .catalog_service import validate_share_token
from .identity_service import IdentityService, validate_email
from .permission_service import PermissionService, validate_id

logger = logging.getLogger(__name__)


class SharingService:
    """Service for sharing collections and photos.

    Responsibilities:
    - Share a collection with one of the photographer's clients
    - Grant individual photos to a client
    - Create or reuse a guest and replace its photo set
    """

    def __init__(
        self,
        permission_service: PermissionService,
        identity_service: IdentityService,
        edge_repository: EdgeRepository,
        photo_repository: PhotoRepository,
        collection_repository: CollectionRepository,
        client_repository: ClientRepository,
        guest_repository: GuestRepository,
        guest_locks: KeyedLocks,
        notifier=None,
        broadcaster=None,
        clock: Clock = utcnow,
        guest_default_days: int = GUEST_DEFAULT_DAYS,
        guest_max_days: int = GUEST_MAX_DAYS
    ):
        self.permissions = permission_service
        self.identity = identity_service
        self.edge_repo = edge_repository
        self.photo_repo = photo_repository
        self.collection_repo = collection_repository
        self.client_repo = client_repository
        self.guest_repo = guest_repository
        self.guest_locks = guest_locks
        self.notifier = notifier
        self.broadcaster = broadcaster
        self.clock = clock
        self.guest_default_days = guest_default_days
        self.guest_max_days = guest_max_days

    def _owned_client(self, actor: Principal, client_id: str) -> dict:
        client = self.client_repo.get_by_id(validate_id(client_id, "client id"))
        if client is None or client["photographer_id"] != actor.id:
            raise ResourceNotFound("Client not found")
        if not is_available(client):
            raise ResourceUnavailable("Client account is not active")
        return client

    def share_collection(self, actor: Principal, collection_id: str, client_id: str) -> dict:
        """Grant a client access to a collection and notify them.

        Args:
            actor: Owning photographer
            collection_id: Collection to share
            client_id: One of the photographer's clients

        Returns:
            The ``CollectionAccess`` edge
        """
        if actor.role != Role.PHOTOGRAPHER or not actor.active:
            raise AuthorizationDenied("Only photographers can share collections")
        collection = self.collection_repo.get_by_id(validate_id(collection_id, "collection id"))
        if collection is None or collection["owner_id"] != actor.id:
            raise ResourceNotFound("Collection not found")
        client = self._owned_client(actor, client_id)

        edge = self.permissions.grant_edge(
            EdgeKind.COLLECTION_ACCESS, collection, client["id"], actor.id, now=self.clock()
        )

        self._notify(client, templates.COLLECTION_SHARED, {
            "collection_name": collection["name"],
            "photographer": actor.display_name,
            "auto_delete_at": collection["auto_delete_at"].isoformat() if collection["auto_delete_at"] else None,
        })
        self._emit(events.COLLECTION_SHARED, {"collection_id": collection["id"]}, [client["id"]])
        return edge

    def share_photos_with_client(self, actor: Principal, client_id: str, photo_ids: list[str],
                                 expires_at: datetime | None = None) -> list[dict]:
        """Grant individual photos to a client through direct edges."""
        if actor.role != Role.PHOTOGRAPHER or not actor.active:
            raise AuthorizationDenied("Only photographers can share photos")
        if not photo_ids:
            raise ValidationFailed("No photos given")
        now = self.clock()
        expires_at = as_utc(expires_at)
        if expires_at is not None and expires_at <= now:
            raise ValidationFailed("Expiry must be in the future")
        client = self._owned_client(actor, client_id)

        photos = []
        for photo_id in photo_ids:
            photo = self.photo_repo.get_by_id(validate_id(photo_id, "photo id"))
            if photo is None or photo["owner_id"] != actor.id:
                raise ResourceNotFound("Photo not found")
            photos.append(photo)

        with self.edge_repo.transaction():
            edges = [
                self.permissions.grant_edge(
                    EdgeKind.PHOTO_ACCESS, photo, client["id"], actor.id, expires_at, now
                )
                for photo in photos
            ]

        self._notify(client, templates.PHOTOS_SHARED, {"count": len(edges)})
        self._emit(events.PHOTOS_SHARED, {"photo_ids": [p["id"] for p in photos]}, [client["id"]])
        return edges

    def _expiration_days(self, expiration_days) -> int:
        if expiration_days is None:
            return self.guest_default_days
        if isinstance(expiration_days, bool) or not isinstance(expiration_days, int):
            raise ValidationFailed("Expiration days must be a whole number")
        if not 1 <= expiration_days <= self.guest_max_days:
            raise ValidationFailed(f"Expiration days must be between 1 and {self.guest_max_days}")
        return expiration_days

    def _resolve_shared_photos(self, actor: Principal, share_tokens: list[str], now: datetime) -> list[dict]:
        if not share_tokens or isinstance(share_tokens, str):
            raise ValidationFailed("At least one photo is required")
        tokens = list(dict.fromkeys(validate_share_token(token) for token in share_tokens))
        photos = self.photo_repo.get_many_by_share_tokens(tokens)
        if len(photos) != len(tokens):
            raise ResourceNotFound(f"Only found {len(photos)} of {len(tokens)} photos")
        for photo in photos:
            if not is_available(photo):
                raise ResourceUnavailable("One or more photos are no longer available")
            # A client can only pass on what it can see itself
            self.permissions.check(actor, photo["id"], Operation.READ, now)
        return photos

    def share_guest_photos(
        self,
        actor: Principal,
        guest_email: str,
        share_tokens: list[str],
        guest_name: str | None = None,
        expiration_days: int | None = None
    ) -> dict:
        """Give a guest access to exactly this set of photos.

        The guest is reused when the client already created one for the
        same address. Its previous photo set is replaced: edges to photos
        outside the new set are deleted before the new grants are
        written. Concurrent re-shares for the same guest are serialized.

        Args:
            actor: Acting client
            guest_email: Guest's email address
            share_tokens: Share tokens of the photos to grant
            guest_name: Optional display name
            expiration_days: Access window in days (default 7, 1-30)

        Returns:
            Dict with ``guest`` (Principal), ``created``, ``secret`` (only
            for a new guest), ``photo_ids`` and ``expires_at``
        """
        if actor.role != Role.CLIENT or not actor.active:
            raise AuthorizationDenied("Only clients can share photos with guests")
        email = validate_email(guest_email)
        days = self._expiration_days(expiration_days)
        guest_name = guest_name.strip() if guest_name and guest_name.strip() else None

        now = self.clock()
        photos = self._resolve_shared_photos(actor, share_tokens, now)
        photo_ids = [photo["id"] for photo in photos]
        expires_at = now + timedelta(days=days)
        fingerprint = self.identity.encryptor.fingerprint(email)

        with self.guest_locks.hold((actor.id, fingerprint)):
            with self.edge_repo.transaction():
                existing = self.guest_repo.find_for_client(actor.id, fingerprint)
                guest, secret = self.identity.provision_guest(email, guest_name, expires_at, existing)
                self.edge_repo.upsert(EdgeKind.CLIENT_GUESTS, actor.id, guest["id"], now, granted_by=actor.id)

                self.edge_repo.delete_incoming_except(EdgeKind.PHOTO_ACCESS, guest["id"], photo_ids)
                for photo in photos:
                    self.permissions.grant_edge(
                        EdgeKind.PHOTO_ACCESS, photo, guest["id"], actor.id, expires_at, now
                    )

        created = secret is not None
        if created:
            self._send(email, templates.GUEST_CREDENTIALS, {
                "username": guest["username"],
                "secret": secret,
                "expires_at": expires_at.isoformat(),
                "client": actor.display_name,
                "photo_count": len(photo_ids),
            })
        else:
            self._send(email, templates.GUEST_ACCESS_RENEWED, {
                "username": guest["username"],
                "expires_at": expires_at.isoformat(),
                "photo_count": len(photo_ids),
            })
        self._emit(events.GUEST_SHARED, {"guest_id": guest["id"], "photo_ids": photo_ids}, [actor.id])

        return {
            "guest": self.guest_repo.to_principal(guest),
            "created": created,
            "secret": secret,
            "photo_ids": photo_ids,
            "expires_at": expires_at,
        }

    def list_guests(self, actor: Principal) -> list[Principal]:
        if actor.role != Role.CLIENT:
            raise AuthorizationDenied("Only clients manage guests")
        return [self.guest_repo.to_principal(g) for g in self.guest_repo.list_for_client(actor.id)]

    def _notify(self, principal_record: dict, template_id: str, data: dict) -> None:
        try:
            email = self.identity.reveal_email(principal_record)
        except ValueError:
            logger.warning("Could not open email for %s", principal_record["id"])
            return
        if email:
            self._send(email, template_id, data)

    def _send(self, recipient: str, template_id: str, data: dict) -> None:
        if self.notifier is None:
            return
        try:
            outcome = self.notifier.send(recipient, template_id, data)
            if not outcome.get("delivered"):
                logger.warning("Notification %s was not delivered", template_id)
        except Exception:
            logger.warning("Notification %s failed", template_id, exc_info=True)

    def _emit(self, event_type: str, payload: dict, targets: list[str]) -> None:
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.emit(event_type, payload, targets)
        except Exception:
            logger.warning("Broadcast of %s failed", event_type, exc_info=True)
