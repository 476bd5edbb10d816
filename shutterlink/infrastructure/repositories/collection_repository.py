"""Collection repository - collection vertices."""
import uuid
from datetime import datetime

from .base import Repository


class CollectionRepository(Repository):
    """Repository for photographer collections."""

    def create(self, owner_id: str, name: str, now: datetime,
               description: str | None = None) -> dict:
        collection_id = str(uuid.uuid4())
        self._execute(
            """INSERT INTO collections (id, owner_id, name, description, active, created_at, updated_at)
               VALUES (?, ?, ?, ?, 1, ?, ?)""",
            (collection_id, owner_id, name, description, now, now)
        )
        return self.get_by_id(collection_id)

    def get_by_id(self, collection_id: str) -> dict | None:
        return self._fetchone("SELECT * FROM collections WHERE id = ?", (collection_id,))

    def rename(self, collection_id: str, name: str, description: str | None,
               now: datetime) -> bool:
        cursor = self._execute(
            """UPDATE collections
               SET name = ?, description = COALESCE(?, description), updated_at = ?
               WHERE id = ?""",
            (name, description, now, collection_id)
        )
        return cursor.rowcount > 0

    def set_auto_delete_if_unset(self, collection_id: str, auto_delete_at: datetime) -> bool:
        """Start the expiry clock once; later calls leave it untouched.

        Returns:
            True if this call set the value
        """
        cursor = self._execute(
            "UPDATE collections SET auto_delete_at = ? WHERE id = ? AND auto_delete_at IS NULL",
            (auto_delete_at, collection_id)
        )
        return cursor.rowcount > 0

    def list_by_owner(self, owner_id: str) -> list[dict]:
        return self._fetchall(
            "SELECT * FROM collections WHERE owner_id = ? ORDER BY created_at",
            (owner_id,)
        )

    def ids_by_owner(self, owner_id: str) -> list[str]:
        cursor = self._execute("SELECT id FROM collections WHERE owner_id = ?", (owner_id,))
        return [row["id"] for row in cursor.fetchall()]

    def list_shared_with(self, client_id: str, now: datetime) -> list[dict]:
        """Visible collections with a current ``CollectionAccess`` edge to the client."""
        return self._fetchall(
            """SELECT c.*, e.granted_at AS shared_at
               FROM collections c
               JOIN edges e ON e.from_id = c.id
               WHERE e.kind = 'CollectionAccess' AND e.to_id = ?
                 AND e.active = 1 AND (e.expires_at IS NULL OR e.expires_at > ?)
                 AND c.active = 1 AND c.scheduled_purge_at IS NULL
               ORDER BY e.granted_at DESC""",
            (client_id, now)
        )

    def list_all(self) -> list[dict]:
        return self._fetchall("SELECT * FROM collections ORDER BY created_at")

    def list_expired(self, now: datetime) -> list[dict]:
        """Active, unscheduled collections whose auto-delete time has passed."""
        return self._fetchall(
            """SELECT * FROM collections
               WHERE auto_delete_at IS NOT NULL AND auto_delete_at <= ?
                 AND active = 1 AND scheduled_purge_at IS NULL
               ORDER BY auto_delete_at""",
            (now,)
        )

    def member_photo_ids(self, collection_id: str) -> list[str]:
        """Every photo linked by membership, regardless of edge state."""
        cursor = self._execute(
            "SELECT to_id FROM edges WHERE kind = 'CollectionPhoto' AND from_id = ? ORDER BY order_index",
            (collection_id,)
        )
        return [row["to_id"] for row in cursor.fetchall()]

    def exclusive_photo_ids(self, collection_id: str) -> list[str]:
        """Member photos that belong to no other collection."""
        cursor = self._execute(
            """SELECT e.to_id FROM edges e
               WHERE e.kind = 'CollectionPhoto' AND e.from_id = ?
                 AND NOT EXISTS (
                     SELECT 1 FROM edges other
                     WHERE other.kind = 'CollectionPhoto'
                       AND other.to_id = e.to_id
                       AND other.from_id != e.from_id
                 )
               ORDER BY e.order_index""",
            (collection_id,)
        )
        return [row["to_id"] for row in cursor.fetchall()]

    def photo_count(self, collection_id: str) -> int:
        row = self._execute(
            "SELECT COUNT(*) AS count FROM edges WHERE kind = 'CollectionPhoto' AND from_id = ?",
            (collection_id,)
        ).fetchone()
        return row["count"]
