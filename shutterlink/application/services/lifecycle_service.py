"""Lifecycle service - soft delete, restore, auto-expiry and purge.

Per entity the states are Active, PendingDeletion and Purged. A sweep
first applies the time-driven triggers (expired collections are marked
for deletion, expired guests are deactivated), then purges every entity
whose grace window has elapsed, children before parents.

Each due root is purged together with its cascade in one transaction,
so a tree is either gone entirely or untouched. A sweep that fails on
one root records the failure and moves on to the next.
"""
import logging
from datetime import datetime, timedelta

from ...clock import Clock, as_utc, utcnow
from ...config import AUTO_DELETE_REASON, DELETION_GRACE_DAYS
from ...domain.lifecycle import (
    LifecycleState, Transition, deletion_fields, next_transition, restored_fields, state_of,
)
from ...domain.models import DeletionOrigin, EntityKind, Principal, Role, SweepSummary
from ...errors import (
    AuthorizationDenied, ResourceConflict, ResourceNotFound, ValidationFailed,
)
from ...infrastructure.repositories import (
    ClientRepository, CollectionRepository, GuestRepository,
    LifecycleRepository, PhotoRepository, SessionRepository,
)
from ...infrastructure.services import broadcaster as events
from .permission_service import validate_id

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500


class LifecycleService:
    """Service for the deletion state machine.

    Responsibilities:
    - Mark entities for deletion (collections cascade to their photos)
    - Restore pending entities (collections restore what they cascaded)
    - Sweep: auto-expiry, then purge of due entities with cascade
    """

    def __init__(
        self,
        lifecycle_repository: LifecycleRepository,
        collection_repository: CollectionRepository,
        photo_repository: PhotoRepository,
        client_repository: ClientRepository,
        guest_repository: GuestRepository,
        session_repository: SessionRepository,
        broadcaster=None,
        clock: Clock = utcnow,
        grace_days: int = DELETION_GRACE_DAYS
    ):
        self.repo = lifecycle_repository
        self.collection_repo = collection_repository
        self.photo_repo = photo_repository
        self.client_repo = client_repository
        self.guest_repo = guest_repository
        self.session_repo = session_repository
        self.broadcaster = broadcaster
        self.clock = clock
        self.grace = timedelta(days=grace_days)

    @staticmethod
    def parse_kind(kind) -> EntityKind:
        try:
            return EntityKind(kind)
        except ValueError:
            raise ValidationFailed(f"Unknown entity kind: {kind}")

    # --- transitions ------------------------------------------------------

    def mark_for_deletion(self, kind, entity_id: str, reason: str,
                          now: datetime | None = None) -> dict:
        """Active -> PendingDeletion.

        Calling it again on a pending entity refreshes the reason and
        timestamps. Marking a collection also marks, in the same
        transaction, every member photo that is currently active.

        Returns:
            The entity's schedule fields after the update

        Raises:
            ResourceNotFound: Unknown or already purged entity
        """
        kind = self.parse_kind(kind)
        entity_id = validate_id(entity_id, f"{kind.value} id")
        reason = (reason or "").strip() or "Deleted"
        if len(reason) > MAX_REASON_LENGTH:
            raise ValidationFailed(f"Reason is limited to {MAX_REASON_LENGTH} characters")
        now = as_utc(now) or self.clock()

        with self.repo.transaction():
            entity = self.repo.get(kind, entity_id)
            if entity is None:
                raise ResourceNotFound(f"{kind.value.capitalize()} not found")
            self.repo.mark(kind, entity_id, deletion_fields(now, reason, self.grace))
            cascaded = 0
            if kind == EntityKind.COLLECTION:
                cascaded = self.repo.mark_cascade(
                    EntityKind.PHOTO,
                    self.collection_repo.member_photo_ids(entity_id),
                    deletion_fields(now, reason, self.grace, DeletionOrigin.CASCADE, entity_id),
                )

        logger.info("Marked %s %s for deletion (%s), %d children cascaded",
                    kind.value, entity_id, reason, cascaded)
        self._emit(events.ENTITY_MARKED, kind, entity)
        return self.repo.get_schedule(kind, entity_id)

    def restore(self, kind, entity_id: str) -> dict:
        """PendingDeletion -> Active.

        A collection also restores the photos it cascaded into deletion;
        photos deleted on their own stay pending. Restoring an active
        entity is a no-op.

        Raises:
            ResourceNotFound: The entity was already purged
            ResourceConflict: The entity is disabled, not pending deletion
        """
        kind = self.parse_kind(kind)
        entity_id = validate_id(entity_id, f"{kind.value} id")

        with self.repo.transaction():
            entity = self.repo.get(kind, entity_id)
            if entity is None:
                raise ResourceNotFound(f"{kind.value.capitalize()} not found")
            state = state_of(entity)
            if state == LifecycleState.ACTIVE:
                return self.repo.get_schedule(kind, entity_id)
            if state == LifecycleState.DISABLED:
                raise ResourceConflict(f"{kind.value.capitalize()} is disabled, not pending deletion")
            self.repo.restore(kind, entity_id, restored_fields())
            restored_children = []
            if kind == EntityKind.COLLECTION:
                restored_children = self.repo.restore_cascaded_from(
                    EntityKind.PHOTO, entity_id, restored_fields()
                )

        logger.info("Restored %s %s with %d children", kind.value, entity_id, len(restored_children))
        self._emit(events.ENTITY_RESTORED, kind, entity)
        return self.repo.get_schedule(kind, entity_id)

    # --- actor-checked entry points --------------------------------------

    def _authorize(self, actor: Principal, kind: EntityKind, entity_id: str) -> None:
        if not actor.active:
            raise AuthorizationDenied("Account is disabled")
        if actor.role == Role.ADMIN:
            return
        entity = self.repo.get(kind, entity_id)
        if entity is not None:
            if actor.role == Role.PHOTOGRAPHER:
                if kind in (EntityKind.PHOTO, EntityKind.COLLECTION) and entity["owner_id"] == actor.id:
                    return
                if kind == EntityKind.CLIENT and entity["photographer_id"] == actor.id:
                    return
            elif actor.role == Role.CLIENT and kind == EntityKind.GUEST:
                if actor.id in self.guest_repo.guardian_ids(entity_id):
                    return
        raise AuthorizationDenied()

    def request_deletion(self, actor: Principal, kind, entity_id: str, reason: str) -> dict:
        """Mark for deletion on behalf of an actor.

        Admins may delete anything; photographers their photos,
        collections and clients; clients their guests.
        """
        kind = self.parse_kind(kind)
        entity_id = validate_id(entity_id, f"{kind.value} id")
        self._authorize(actor, kind, entity_id)
        return self.mark_for_deletion(kind, entity_id, reason)

    def request_restore(self, actor: Principal, kind, entity_id: str) -> dict:
        kind = self.parse_kind(kind)
        entity_id = validate_id(entity_id, f"{kind.value} id")
        self._authorize(actor, kind, entity_id)
        return self.restore(kind, entity_id)

    def list_scheduled(self, actor: Principal, kind=None) -> list[dict]:
        if actor.role != Role.ADMIN:
            raise AuthorizationDenied("Only admins can list scheduled deletions")
        return self.repo.list_scheduled(self.parse_kind(kind) if kind else None)

    # --- sweep ------------------------------------------------------------

    def sweep(self, now: datetime | None = None, limit: int | None = None) -> SweepSummary:
        """Run one lifecycle pass at ``now``.

        Safe to run concurrently with itself: purging an entity that is
        already gone is a no-op. With ``limit`` the pass stops after that
        many purges, never splitting a cascade; the next pass resumes where
        it left off.

        Args:
            now: Evaluation time (defaults to the service clock)
            limit: Maximum number of entities to purge

        Returns:
            SweepSummary with counts and per-entity failures
        """
        now = as_utc(now) or self.clock()
        summary = SweepSummary(now=now)

        for collection in self.collection_repo.list_expired(now):
            if next_transition(EntityKind.COLLECTION, collection, now) != Transition.AUTO_MARK:
                continue
            try:
                self.mark_for_deletion(EntityKind.COLLECTION, collection["id"], AUTO_DELETE_REASON, now)
                summary.auto_expired_collections += 1
            except Exception as exc:
                self._record_failure(summary, EntityKind.COLLECTION, collection["id"], exc)

        for guest in self.guest_repo.list_expired_active(now):
            if next_transition(EntityKind.GUEST, guest, now) != Transition.DEACTIVATE:
                continue
            try:
                if self.guest_repo.deactivate_if_expired(guest["id"], now):
                    summary.deactivated_guests += 1
            except Exception as exc:
                self._record_failure(summary, EntityKind.GUEST, guest["id"], exc)

        for kind, entity_id in self.repo.list_due(now):
            if self._limit_reached(summary, limit):
                break
            try:
                self._purge_tree(kind, entity_id, now, summary, require_due=True)
            except Exception as exc:
                self._record_failure(summary, kind, entity_id, exc)

        logger.info(
            "Sweep at %s: purged %d, auto-expired %d collections, deactivated %d guests, %d failures",
            now.isoformat(), summary.total_purged, summary.auto_expired_collections,
            summary.deactivated_guests, len(summary.failures)
        )
        self._broadcast(events.SWEEP_COMPLETED, summary.as_dict(), [])
        return summary

    def purge_all_pending(self, actor: Principal) -> SweepSummary:
        """Purge every pending entity now, ignoring remaining grace time."""
        if actor.role != Role.ADMIN:
            raise AuthorizationDenied("Only admins can purge pending deletions")
        now = self.clock()
        summary = SweepSummary(now=now)
        for kind, entity_id in self.repo.list_pending():
            try:
                self._purge_tree(kind, entity_id, now, summary, require_due=False)
            except Exception as exc:
                self._record_failure(summary, kind, entity_id, exc)
        logger.warning("Admin %s purged %d pending entities", actor.id, summary.total_purged)
        return summary

    def purge_plan(self, kind: EntityKind, entity_id: str) -> list[tuple[EntityKind, str]]:
        """Entities to purge for ``entity_id``, children first, root last."""
        plan: list[tuple[EntityKind, str]] = []
        if kind == EntityKind.PHOTOGRAPHER:
            for client_id in self.client_repo.ids_for_photographer(entity_id):
                plan.extend(self.purge_plan(EntityKind.CLIENT, client_id))
            for collection_id in self.collection_repo.ids_by_owner(entity_id):
                plan.extend(self.purge_plan(EntityKind.COLLECTION, collection_id))
            plan.extend((EntityKind.PHOTO, photo_id) for photo_id in self.photo_repo.ids_by_owner(entity_id))
        elif kind == EntityKind.CLIENT:
            plan.extend((EntityKind.GUEST, guest_id) for guest_id in self.guest_repo.ids_for_client(entity_id))
        elif kind == EntityKind.COLLECTION:
            plan.extend(
                (EntityKind.PHOTO, photo_id)
                for photo_id in self.collection_repo.exclusive_photo_ids(entity_id)
            )
        plan.append((kind, entity_id))
        return list(dict.fromkeys(plan))

    def _purge_tree(self, kind: EntityKind, entity_id: str, now: datetime,
                    summary: SweepSummary, require_due: bool) -> None:
        """Purge ``entity_id`` and its plan as one unit.

        The plan is computed and the root re-read inside the same write
        transaction, so a concurrent restore either lands before (and the
        tree is skipped) or after (and finds the root gone).
        """
        purged = []
        with self.repo.transaction():
            plan = self.purge_plan(kind, entity_id)
            root = self.repo.get(kind, entity_id)
            if not self._still_scheduled(kind, root, now, require_due):
                return
            for each_kind, each_id in plan:
                is_root = (each_kind, each_id) == (kind, entity_id)
                if not is_root and not self._follows_root(kind, entity_id, each_kind, each_id):
                    continue
                if self._purge_one(each_kind, each_id):
                    purged.append((each_kind, each_id))

        for each_kind, each_id in purged:
            summary.record_purge(each_kind)
            logger.info("Purged %s %s", each_kind.value, each_id)

    @staticmethod
    def _still_scheduled(kind: EntityKind, entity: dict | None, now: datetime, require_due: bool) -> bool:
        if entity is None:
            return False
        if require_due:
            return next_transition(kind, entity, now) == Transition.PURGE
        return state_of(entity) == LifecycleState.PENDING_DELETION

    def _follows_root(self, root_kind: EntityKind, root_id: str,
                      kind: EntityKind, entity_id: str) -> bool:
        """A collection only takes the photos it cascaded into deletion."""
        if root_kind != EntityKind.COLLECTION:
            return True
        entity = self.repo.get(kind, entity_id)
        return (
            entity is not None
            and entity["deletion_origin"] == DeletionOrigin.CASCADE.value
            and entity["cascade_parent_id"] == root_id
        )

    def _purge_one(self, kind: EntityKind, entity_id: str) -> bool:
        """Delete one vertex, its edges and its sessions.

        Returns:
            False when the entity was already gone
        """
        deleted = self.repo.delete_vertex(kind, entity_id)
        if deleted and kind.is_principal:
            self.session_repo.delete_all_for_principal(entity_id)
        return deleted

    @staticmethod
    def _limit_reached(summary: SweepSummary, limit: int | None) -> bool:
        if limit is not None and summary.total_purged >= limit:
            summary.stopped_early = True
            return True
        return False

    @staticmethod
    def _record_failure(summary: SweepSummary, kind: EntityKind, entity_id: str, exc: Exception) -> None:
        logger.error("Sweep failed for %s %s: %s", kind.value, entity_id, exc, exc_info=True)
        summary.failures.append(f"{kind.value}:{entity_id}")

    # --- events -----------------------------------------------------------

    def _emit(self, event_type: str, kind: EntityKind, entity: dict) -> None:
        targets = [t for t in (entity.get("owner_id"), entity.get("photographer_id")) if t]
        self._broadcast(event_type, {"kind": kind.value, "id": entity["id"]}, targets)

    def _broadcast(self, event_type: str, payload: dict, targets: list[str]) -> None:
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.emit(event_type, payload, targets)
        except Exception:
            logger.warning("Broadcast of %s failed", event_type, exc_info=True)
