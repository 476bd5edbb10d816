"""Edge repository - the permission graph.

Every relationship between two vertices is one row in ``edges``, unique
per ``(kind, from_id, to_id)``. Rows are never treated as a current
grant by existence alone: read paths that answer access questions filter
on ``active`` and ``expires_at`` themselves.
"""
from datetime import datetime

from ...domain.lifecycle import edge_is_current
from ...domain.models import EdgeKind
from .base import Repository

# The rowid-backed ``id`` column stays inside the repository
_EDGE_COLUMNS = "kind, from_id, to_id, granted_at, expires_at, active, order_index, granted_by"


# SQL fragment applying the currency rule to an edge aliased as ``alias``
def _current(alias: str) -> str:
    return f"({alias}.active = 1 AND ({alias}.expires_at IS NULL OR {alias}.expires_at > :now))"


class EdgeRepository(Repository):
    """Repository for typed graph edges.

    Examples:
        >>> repo = EdgeRepository(db)
        >>> repo.upsert(EdgeKind.PHOTO_ACCESS, photo_id, guest_id, now, expires_at=later)
        >>> repo.has_current(EdgeKind.PHOTO_ACCESS, photo_id, guest_id, now)
        True
    """

    def get(self, kind: EdgeKind, from_id: str, to_id: str) -> dict | None:
        return self._fetchone(
            f"SELECT {_EDGE_COLUMNS} FROM edges WHERE kind = ? AND from_id = ? AND to_id = ?",
            (kind.value, from_id, to_id)
        )

    def upsert(self, kind: EdgeKind, from_id: str, to_id: str, now: datetime,
               expires_at: datetime | None = None, granted_by: str | None = None,
               order_index: int | None = None) -> dict:
        """Create an edge, or refresh the existing one for the same pair.

        Re-granting reactivates the edge and resets ``granted_at`` and
        ``expires_at``; an existing ``order_index`` is kept.

        Args:
            kind: Edge kind
            from_id: Source vertex id
            to_id: Target vertex id
            now: Grant time
            expires_at: Optional absolute expiry
            granted_by: Id of the principal performing the grant
            order_index: Position within a collection (membership edges)

        Returns:
            The stored edge
        """
        self._execute(
            """INSERT INTO edges
               (kind, from_id, to_id, granted_at, expires_at, active, order_index, granted_by)
               VALUES (?, ?, ?, ?, ?, 1, ?, ?)
               ON CONFLICT(kind, from_id, to_id) DO UPDATE SET
                   granted_at = excluded.granted_at,
                   expires_at = excluded.expires_at,
                   active = 1,
                   order_index = COALESCE(edges.order_index, excluded.order_index),
                   granted_by = excluded.granted_by""",
            (kind.value, from_id, to_id, now, expires_at, order_index, granted_by)
        )
        return self.get(kind, from_id, to_id)

    def deactivate(self, kind: EdgeKind, from_id: str, to_id: str) -> bool:
        """Revoke one edge without touching its siblings."""
        cursor = self._execute(
            "UPDATE edges SET active = 0 WHERE kind = ? AND from_id = ? AND to_id = ? AND active = 1",
            (kind.value, from_id, to_id)
        )
        return cursor.rowcount > 0

    def delete_incoming_except(self, kind: EdgeKind, to_id: str, keep_from_ids: list[str]) -> int:
        """Delete every ``kind`` edge into ``to_id`` whose source is not kept."""
        if keep_from_ids:
            cursor = self._execute(
                f"""DELETE FROM edges WHERE kind = ? AND to_id = ?
                    AND from_id NOT IN ({self._placeholders(keep_from_ids)})""",
                (kind.value, to_id, *keep_from_ids)
            )
        else:
            cursor = self._execute(
                "DELETE FROM edges WHERE kind = ? AND to_id = ?", (kind.value, to_id)
            )
        return cursor.rowcount

    def list_from(self, kind: EdgeKind, from_id: str, now: datetime | None = None) -> list[dict]:
        """Edges leaving ``from_id``; only current ones when ``now`` is given."""
        if now is None:
            return self._fetchall(
                f"SELECT {_EDGE_COLUMNS} FROM edges WHERE kind = :kind AND from_id = :vertex ORDER BY order_index, id",
                {"kind": kind.value, "vertex": from_id}
            )
        return self._fetchall(
            f"""SELECT {_EDGE_COLUMNS} FROM edges e WHERE e.kind = :kind AND e.from_id = :vertex
                AND {_current('e')} ORDER BY e.order_index, e.id""",
            {"kind": kind.value, "vertex": from_id, "now": now}
        )

    def list_to(self, kind: EdgeKind, to_id: str, now: datetime | None = None) -> list[dict]:
        """Edges entering ``to_id``; only current ones when ``now`` is given."""
        if now is None:
            return self._fetchall(
                f"SELECT {_EDGE_COLUMNS} FROM edges WHERE kind = :kind AND to_id = :vertex ORDER BY id",
                {"kind": kind.value, "vertex": to_id}
            )
        return self._fetchall(
            f"""SELECT {_EDGE_COLUMNS} FROM edges e WHERE e.kind = :kind AND e.to_id = :vertex
                AND {_current('e')} ORDER BY e.id""",
            {"kind": kind.value, "vertex": to_id, "now": now}
        )

    def has_current(self, kind: EdgeKind, from_id: str, to_id: str, now: datetime) -> bool:
        edge = self.get(kind, from_id, to_id)
        return edge is not None and edge_is_current(edge, now)

    def photo_grant_paths(self, photo_id: str, principal_id: str, now: datetime,
                          include_collections: bool = True) -> list[dict]:
        """Every current path by which a principal reaches a photo.

        A direct ``PhotoAccess`` edge yields ``{"via": "direct"}``. When
        ``include_collections`` is set, each collection that contains the
        photo and is shared with the principal yields a row with the
        collection's availability fields, so the caller can tell a dead
        path from a live one.

        Args:
            photo_id: Target photo
            principal_id: Client or guest id
            now: Current time for the currency rule
            include_collections: Follow Collection -> Photo membership

        Returns:
            List of path dicts (empty when no current grant exists)
        """
        params = {"photo": photo_id, "principal": principal_id, "now": now}
        paths = self._fetchall(
            f"""SELECT 'direct' AS via, NULL AS collection_id,
                       NULL AS collection_active, NULL AS collection_scheduled_purge_at
                FROM edges pa
                WHERE pa.kind = 'PhotoAccess' AND pa.from_id = :photo
                  AND pa.to_id = :principal AND {_current('pa')}""",
            params
        )
        if include_collections:
            paths.extend(self._fetchall(
                f"""SELECT 'collection' AS via, c.id AS collection_id,
                           c.active AS collection_active,
                           c.scheduled_purge_at AS collection_scheduled_purge_at
                    FROM edges cp
                    JOIN edges ca ON ca.kind = 'CollectionAccess'
                                 AND ca.from_id = cp.from_id
                                 AND ca.to_id = :principal
                    JOIN collections c ON c.id = cp.from_id
                    WHERE cp.kind = 'CollectionPhoto' AND cp.to_id = :photo
                      AND {_current('cp')} AND {_current('ca')}""",
                params
            ))
        return paths

    def next_order_index(self, collection_id: str) -> int:
        row = self._execute(
            """SELECT COALESCE(MAX(order_index), -1) + 1 AS next_index
               FROM edges WHERE kind = 'CollectionPhoto' AND from_id = ?""",
            (collection_id,)
        ).fetchone()
        return row["next_index"]

