"""Permission service - answers access questions over the permission graph.

Resolution rules:

- Admin: any existing resource.
- Photographer: resources it owns, regardless of edge or lifecycle state.
- Client: reads a photo through a direct ``PhotoAccess`` edge, or through
  a collection that contains it and has a ``CollectionAccess`` edge to
  the client. Reads a collection through ``CollectionAccess``.
- Guest: reads a photo through a direct ``PhotoAccess`` edge only.

Edges count only while current (active and unexpired). For clients and
guests a reachable resource must also be available: a resource that is
disabled or pending deletion raises ``ResourceUnavailable``.
"""
import logging
import uuid
from datetime import datetime

from ...clock import Clock, as_utc, utcnow
from ...domain.lifecycle import is_available, is_guest_expired
from ...domain.models import Decision, EdgeKind, EntityKind, Operation, Principal, Role
from ...errors import (
    AuthorizationDenied, ResourceNotFound, ResourceUnavailable, ValidationFailed,
)
from ...infrastructure.repositories import (
    ClientRepository, CollectionRepository, EdgeRepository,
    GuestRepository, PhotoRepository,
)

logger = logging.getLogger(__name__)


def validate_id(value: str, label: str = "id") -> str:
    """Reject anything that is not a canonical surrogate id."""
    try:
        parsed = uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ValidationFailed(f"Malformed {label}")
    if str(parsed) != str(value).lower():
        raise ValidationFailed(f"Malformed {label}")
    return str(parsed)


def parse_operation(operation) -> Operation:
    try:
        return Operation(operation)
    except ValueError:
        raise ValidationFailed(f"Unknown operation: {operation}")


def parse_edge_kind(kind) -> EdgeKind:
    try:
        return EdgeKind(kind)
    except ValueError:
        raise ValidationFailed(f"Unknown edge kind: {kind}")


class PermissionService:
    """Service for access checks and grants.

    Responsibilities:
    - Decide whether a principal may perform an operation on a resource
    - Grant and revoke ``PhotoAccess`` / ``CollectionAccess`` edges
    - List the grants on a resource
    """

    GRANTABLE = {EdgeKind.PHOTO_ACCESS, EdgeKind.COLLECTION_ACCESS}

    def __init__(
        self,
        edge_repository: EdgeRepository,
        photo_repository: PhotoRepository,
        collection_repository: CollectionRepository,
        client_repository: ClientRepository,
        guest_repository: GuestRepository,
        clock: Clock = utcnow
    ):
        self.edge_repo = edge_repository
        self.photo_repo = photo_repository
        self.collection_repo = collection_repository
        self.client_repo = client_repository
        self.guest_repo = guest_repository
        self.clock = clock

    def resolve(self, resource_id: str) -> tuple[EntityKind, dict] | None:
        """Find a resource by surrogate id, photos first."""
        photo = self.photo_repo.get_by_id(resource_id)
        if photo is not None:
            return EntityKind.PHOTO, photo
        collection = self.collection_repo.get_by_id(resource_id)
        if collection is not None:
            return EntityKind.COLLECTION, collection
        return None

    # --- checks -----------------------------------------------------------

    def check(self, principal: Principal, resource_id: str, operation=Operation.READ,
              now: datetime | None = None) -> tuple[EntityKind, dict]:
        """Authorize an operation and return the resource.

        Args:
            principal: Acting principal
            resource_id: Photo or collection id
            operation: Requested operation
            now: Evaluation time (defaults to the service clock)

        Returns:
            Tuple of (resource kind, resource dict)

        Raises:
            AuthorizationDenied: No ownership or current edge. Raised the
                same way whether or not the resource exists.
            ResourceNotFound: Admin asked for an unknown id
            ResourceUnavailable: Reachable but disabled or pending deletion
        """
        operation = parse_operation(operation)
        resource_id = validate_id(resource_id, "resource id")
        now = as_utc(now) or self.clock()

        if not principal.active:
            raise AuthorizationDenied("Account is disabled")

        resolved = self.resolve(resource_id)
        if principal.role == Role.ADMIN:
            if resolved is None:
                raise ResourceNotFound()
            return resolved
        if resolved is None:
            raise AuthorizationDenied()

        kind, resource = resolved
        if principal.role == Role.PHOTOGRAPHER:
            if resource["owner_id"] == principal.id:
                return resolved
            raise AuthorizationDenied()

        # Clients and guests only ever read
        if operation != Operation.READ:
            raise AuthorizationDenied()

        if principal.role == Role.CLIENT:
            self._check_client(principal, kind, resource, now)
        elif principal.role == Role.GUEST:
            self._check_guest(principal, kind, resource, now)
        else:
            raise AuthorizationDenied()
        return resolved

    def _check_client(self, principal: Principal, kind: EntityKind, resource: dict, now: datetime) -> None:
        if kind == EntityKind.COLLECTION:
            if not self.edge_repo.has_current(EdgeKind.COLLECTION_ACCESS, resource["id"], principal.id, now):
                raise AuthorizationDenied()
            self._require_available(resource)
            return

        paths = self.edge_repo.photo_grant_paths(resource["id"], principal.id, now, include_collections=True)
        if not paths:
            raise AuthorizationDenied()
        live = [
            path for path in paths
            if path["via"] == "direct" or is_available({
                "active": path["collection_active"],
                "scheduled_purge_at": path["collection_scheduled_purge_at"],
            })
        ]
        if not live:
            raise ResourceUnavailable("Collection is no longer available")
        self._require_available(resource)

    def _check_guest(self, principal: Principal, kind: EntityKind, resource: dict, now: datetime) -> None:
        if kind != EntityKind.PHOTO:
            raise AuthorizationDenied()
        if is_guest_expired({"expires_at": principal.expires_at}, now):
            raise AuthorizationDenied("Guest access has expired")
        paths = self.edge_repo.photo_grant_paths(resource["id"], principal.id, now, include_collections=False)
        if not paths:
            raise AuthorizationDenied()
        self._require_available(resource)

    @staticmethod
    def _require_available(resource: dict) -> None:
        if not is_available(resource):
            raise ResourceUnavailable()

    def can_access(self, principal: Principal, resource_id: str, operation=Operation.READ,
                   now: datetime | None = None) -> bool:
        """Boolean form of ``check``; any denial or unavailability is False."""
        try:
            self.check(principal, resource_id, operation, now)
        except (AuthorizationDenied, ResourceNotFound, ResourceUnavailable):
            return False
        return True

    def decide(self, principal: Principal, resource_id: str, operation=Operation.READ) -> Decision:
        """``check`` as a decision; unavailability and not-found still raise."""
        try:
            self.check(principal, resource_id, operation)
        except AuthorizationDenied as exc:
            return Decision.deny(exc.detail)
        return Decision.allow()

    # --- grants -----------------------------------------------------------

    def _require_owner(self, actor: Principal, resource: dict | None, label: str) -> dict:
        if resource is None:
            raise ResourceNotFound(f"{label} not found")
        if actor.role != Role.ADMIN and resource["owner_id"] != actor.id:
            raise AuthorizationDenied(f"Only the {label.lower()} owner can manage access")
        return resource

    def _load_resource(self, actor: Principal, kind: EdgeKind, resource_id: str) -> dict:
        if actor.role not in (Role.ADMIN, Role.PHOTOGRAPHER) or not actor.active:
            raise AuthorizationDenied("Only photographers can share resources")
        resource_id = validate_id(resource_id, "resource id")
        if kind == EdgeKind.COLLECTION_ACCESS:
            return self._require_owner(actor, self.collection_repo.get_by_id(resource_id), "Collection")
        return self._require_owner(actor, self.photo_repo.get_by_id(resource_id), "Photo")

    def _check_grantee(self, kind: EdgeKind, resource: dict, grantee_id: str) -> None:
        client = self.client_repo.get_by_id(grantee_id)
        if client is not None:
            if client["photographer_id"] != resource["owner_id"]:
                raise AuthorizationDenied("Client does not belong to this photographer")
            if not is_available(client):
                raise ResourceUnavailable("Client account is not active")
            return
        if kind == EdgeKind.PHOTO_ACCESS:
            guest = self.guest_repo.get_by_id(grantee_id)
            if guest is not None:
                guardians = [self.client_repo.get_by_id(cid) for cid in self.guest_repo.guardian_ids(grantee_id)]
                if not any(g and g["photographer_id"] == resource["owner_id"] for g in guardians):
                    raise AuthorizationDenied("Guest does not belong to this photographer")
                if not is_available(guest):
                    raise ResourceUnavailable("Guest account is not active")
                return
        raise ResourceNotFound("Grantee not found")

    def grant_edge(self, kind: EdgeKind, resource: dict, grantee_id: str, granted_by: str | None,
                   expires_at: datetime | None = None, now: datetime | None = None) -> dict:
        """Create or refresh a grant without actor checks.

        Raises:
            ResourceUnavailable: The resource is disabled or pending deletion
        """
        if not is_available(resource):
            raise ResourceUnavailable("Cannot grant access to an unavailable resource")
        return self.edge_repo.upsert(
            kind, resource["id"], grantee_id, now or self.clock(),
            expires_at=expires_at, granted_by=granted_by
        )

    def grant(self, actor: Principal, kind, resource_id: str, grantee_id: str,
              expires_at: datetime | None = None) -> dict:
        """Grant a principal access to a photo or collection.

        Re-granting the same pair refreshes the existing edge.

        Args:
            actor: Owning photographer (or admin)
            kind: ``PhotoAccess`` or ``CollectionAccess``
            resource_id: Photo or collection id
            grantee_id: Client id (or guest id for photos)
            expires_at: Optional absolute expiry

        Returns:
            The stored edge
        """
        kind = parse_edge_kind(kind)
        if kind not in self.GRANTABLE:
            raise ValidationFailed(f"{kind.value} edges cannot be granted directly")
        resource = self._load_resource(actor, kind, resource_id)
        grantee_id = validate_id(grantee_id, "grantee id")
        now = self.clock()
        expires_at = as_utc(expires_at)
        if expires_at is not None and expires_at <= now:
            raise ValidationFailed("Expiry must be in the future")
        self._check_grantee(kind, resource, grantee_id)
        return self.grant_edge(kind, resource, grantee_id, actor.id, expires_at, now)

    def revoke(self, actor: Principal, kind, resource_id: str, grantee_id: str) -> bool:
        """Deactivate one grant; sibling grants are untouched.

        Returns:
            True if an active edge was deactivated
        """
        kind = parse_edge_kind(kind)
        if kind not in self.GRANTABLE:
            raise ValidationFailed(f"{kind.value} edges cannot be revoked directly")
        resource = self._load_resource(actor, kind, resource_id)
        return self.edge_repo.deactivate(kind, resource["id"], grantee_id)

    def list_grants(self, actor: Principal, resource_id: str, current_only: bool = True) -> list[dict]:
        kind, resource = self.check(actor, resource_id, Operation.SHARE)
        edge_kind = EdgeKind.PHOTO_ACCESS if kind == EntityKind.PHOTO else EdgeKind.COLLECTION_ACCESS
        return self.edge_repo.list_from(edge_kind, resource["id"], self.clock() if current_only else None)
