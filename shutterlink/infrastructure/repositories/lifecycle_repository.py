"""Lifecycle repository - deletion schedule fields across every entity kind.

Each deletable kind lives in its own table but carries the same five
schedule columns, so one repository serves them all.
"""
from datetime import datetime

from ...domain.models import DeletionOrigin, EntityKind
from .base import Repository

TABLES = {
    EntityKind.PHOTOGRAPHER: "photographers",
    EntityKind.CLIENT: "clients",
    EntityKind.GUEST: "guests",
    EntityKind.COLLECTION: "collections",
    EntityKind.PHOTO: "photos",
}

# Order in which due entities are visited by a sweep
SWEEP_ORDER = (
    EntityKind.PHOTOGRAPHER,
    EntityKind.CLIENT,
    EntityKind.GUEST,
    EntityKind.COLLECTION,
    EntityKind.PHOTO,
)

_SCHEDULE_COLUMNS = (
    "id, active, deleted_at, scheduled_purge_at, deletion_reason, "
    "deletion_origin, cascade_parent_id"
)


class LifecycleRepository(Repository):
    """Reads and writes the deletion schedule of any deletable entity.

    Examples:
        >>> repo = LifecycleRepository(db)
        >>> repo.mark(EntityKind.PHOTO, photo_id, fields)
        >>> repo.list_due(now)
        [(EntityKind.PHOTO, 'f3c1...')]
    """

    def get(self, kind: EntityKind, entity_id: str) -> dict | None:
        """Full row of an entity, binary photo variants excluded."""
        if kind == EntityKind.PHOTO:
            return self._fetchone(
                f"SELECT {_SCHEDULE_COLUMNS}, owner_id FROM photos WHERE id = ?", (entity_id,)
            )
        return self._fetchone(f"SELECT * FROM {TABLES[kind]} WHERE id = ?", (entity_id,))

    def get_schedule(self, kind: EntityKind, entity_id: str) -> dict | None:
        """Only the lifecycle fields of an entity; safe to hand to callers."""
        row = self._fetchone(
            f"SELECT {_SCHEDULE_COLUMNS} FROM {TABLES[kind]} WHERE id = ?", (entity_id,)
        )
        if row is not None:
            row["kind"] = kind.value
        return row

    def mark(self, kind: EntityKind, entity_id: str, fields: dict) -> bool:
        """Apply Active -> PendingDeletion field values to one entity."""
        cursor = self._execute(
            f"""UPDATE {TABLES[kind]}
                SET active = 0, deleted_at = ?, scheduled_purge_at = ?, deletion_reason = ?,
                    deletion_origin = ?, cascade_parent_id = ?
                WHERE id = ?""",
            (fields["deleted_at"], fields["scheduled_purge_at"], fields["deletion_reason"],
             fields["deletion_origin"], fields["cascade_parent_id"], entity_id)
        )
        return cursor.rowcount > 0

    def mark_cascade(self, kind: EntityKind, entity_ids: list[str], fields: dict) -> int:
        """Mark children as a consequence of their parent's deletion.

        Only children that are currently active and unscheduled are
        touched, so an independent deletion or an administrative disable
        keeps its own origin. Children previously cascaded from the same
        parent get their schedule refreshed.

        Returns:
            Number of children marked or refreshed
        """
        if not entity_ids:
            return 0
        cursor = self._execute(
            f"""UPDATE {TABLES[kind]}
                SET active = 0, deleted_at = ?, scheduled_purge_at = ?, deletion_reason = ?,
                    deletion_origin = ?, cascade_parent_id = ?
                WHERE id IN ({self._placeholders(entity_ids)})
                  AND ((active = 1 AND scheduled_purge_at IS NULL)
                       OR (deletion_origin = ? AND cascade_parent_id = ?))""",
            (fields["deleted_at"], fields["scheduled_purge_at"], fields["deletion_reason"],
             DeletionOrigin.CASCADE.value, fields["cascade_parent_id"], *entity_ids,
             DeletionOrigin.CASCADE.value, fields["cascade_parent_id"])
        )
        return cursor.rowcount

    def restore(self, kind: EntityKind, entity_id: str, fields: dict) -> bool:
        """Apply PendingDeletion -> Active field values to one pending entity."""
        cursor = self._execute(
            f"""UPDATE {TABLES[kind]}
                SET active = ?, deleted_at = ?, scheduled_purge_at = ?, deletion_reason = ?,
                    deletion_origin = ?, cascade_parent_id = ?
                WHERE id = ? AND scheduled_purge_at IS NOT NULL""",
            (int(fields["active"]), fields["deleted_at"], fields["scheduled_purge_at"],
             fields["deletion_reason"], fields["deletion_origin"], fields["cascade_parent_id"], entity_id)
        )
        return cursor.rowcount > 0

    def restore_cascaded_from(self, kind: EntityKind, parent_id: str, fields: dict) -> list[str]:
        """Restore children that were marked because of ``parent_id``."""
        cursor = self._execute(
            f"""SELECT id FROM {TABLES[kind]}
                WHERE deletion_origin = ? AND cascade_parent_id = ?
                  AND scheduled_purge_at IS NOT NULL""",
            (DeletionOrigin.CASCADE.value, parent_id)
        )
        ids = [row["id"] for row in cursor.fetchall()]
        for child_id in ids:
            self.restore(kind, child_id, fields)
        return ids

    def list_due(self, now: datetime, kinds: tuple[EntityKind, ...] = SWEEP_ORDER) -> list[tuple[EntityKind, str]]:
        """Entities whose purge time has been reached, in sweep order."""
        due = []
        for kind in kinds:
            cursor = self._execute(
                f"""SELECT id FROM {TABLES[kind]}
                    WHERE scheduled_purge_at IS NOT NULL AND scheduled_purge_at <= ?
                    ORDER BY scheduled_purge_at""",
                (now,)
            )
            due.extend((kind, row["id"]) for row in cursor.fetchall())
        return due

    def list_pending(self, kinds: tuple[EntityKind, ...] = SWEEP_ORDER) -> list[tuple[EntityKind, str]]:
        pending = []
        for kind in kinds:
            cursor = self._execute(
                f"SELECT id FROM {TABLES[kind]} WHERE scheduled_purge_at IS NOT NULL"
            )
            pending.extend((kind, row["id"]) for row in cursor.fetchall())
        return pending

    def list_scheduled(self, kind: EntityKind | None = None) -> list[dict]:
        """Pending entities of one or all kinds, soonest purge first."""
        kinds = (kind,) if kind else SWEEP_ORDER
        scheduled = []
        for each in kinds:
            rows = self._fetchall(
                f"""SELECT {_SCHEDULE_COLUMNS} FROM {TABLES[each]}
                    WHERE scheduled_purge_at IS NOT NULL""",
            )
            for row in rows:
                row["kind"] = each.value
                scheduled.append(row)
        scheduled.sort(key=lambda row: row["scheduled_purge_at"])
        return scheduled

    def delete_vertex(self, kind: EntityKind, entity_id: str) -> bool:
        """Delete a vertex and every edge incident to it.

        Returns:
            False when the vertex was already gone
        """
        self._execute(
            "DELETE FROM edges WHERE from_id = ? OR to_id = ?", (entity_id, entity_id)
        )
        cursor = self._execute(f"DELETE FROM {TABLES[kind]} WHERE id = ?", (entity_id,))
        return cursor.rowcount > 0
