"""Photo repository - photo vertices and their binary variants."""
import json
import uuid
from datetime import datetime

from .base import Repository

# Metadata columns; binary variants are only read on demand
PHOTO_COLUMNS = (
    "id, owner_id, share_token, title, tags, mime_type, width, height, size, active, "
    "created_at, updated_at, deleted_at, scheduled_purge_at, deletion_reason, "
    "deletion_origin, cascade_parent_id"
)


class PhotoRepository(Repository):
    """Repository for photo records.

    Callers address photos by surrogate ``id`` or by ``share_token``. The
    SQLite rowid returned by an insert is only used to re-read the row
    within this class and is never handed out.
    """

    def _to_photo(self, row: dict | None) -> dict | None:
        if row is None:
            return None
        row["tags"] = json.loads(row["tags"]) if row.get("tags") else []
        return row

    def create(self, owner_id: str, share_token: str, mime_type: str,
               content: bytes, thumbnail: bytes, now: datetime,
               width: int | None = None, height: int | None = None,
               title: str | None = None, tags: list[str] | None = None) -> dict:
        """Insert a photo and return it re-read by its surrogate id.

        Args:
            owner_id: Owning photographer id
            share_token: Public lookup token
            mime_type: Stored variant's MIME type
            content: Stored variant bytes
            thumbnail: Thumbnail bytes
            now: Creation time
            width: Source width in pixels
            height: Source height in pixels
            title: Optional title
            tags: Optional tag list

        Returns:
            The stored photo's metadata
        """
        photo_id = str(uuid.uuid4())
        self._execute(
            """INSERT INTO photos
               (id, owner_id, share_token, title, tags, mime_type, width, height, size,
                content, thumbnail, active, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)""",
            (photo_id, owner_id, share_token, title, json.dumps(tags or []), mime_type,
             width, height, len(content), content, thumbnail, now, now)
        )
        return self.get_by_id(photo_id)

    def get_by_id(self, photo_id: str) -> dict | None:
        return self._to_photo(self._fetchone(
            f"SELECT {PHOTO_COLUMNS} FROM photos WHERE id = ?", (photo_id,)
        ))

    def get_by_share_token(self, share_token: str) -> dict | None:
        return self._to_photo(self._fetchone(
            f"SELECT {PHOTO_COLUMNS} FROM photos WHERE share_token = ?", (share_token,)
        ))

    def get_many_by_share_tokens(self, share_tokens: list[str]) -> list[dict]:
        if not share_tokens:
            return []
        rows = self._fetchall(
            f"""SELECT {PHOTO_COLUMNS} FROM photos
                WHERE share_token IN ({self._placeholders(share_tokens)})""",
            tuple(share_tokens)
        )
        return [self._to_photo(row) for row in rows]

    def get_many(self, photo_ids: list[str]) -> list[dict]:
        if not photo_ids:
            return []
        rows = self._fetchall(
            f"SELECT {PHOTO_COLUMNS} FROM photos WHERE id IN ({self._placeholders(photo_ids)})",
            tuple(photo_ids)
        )
        return [self._to_photo(row) for row in rows]

    def get_content(self, photo_id: str, variant: str = "content") -> bytes | None:
        """Return the stored variant (``content``) or the ``thumbnail``."""
        if variant not in ("content", "thumbnail"):
            raise ValueError(f"Unknown variant: {variant}")
        row = self._execute(
            f"SELECT {variant} FROM photos WHERE id = ?", (photo_id,)
        ).fetchone()
        return row[0] if row else None

    def update_tags(self, photo_id: str, tags: list[str], now: datetime) -> bool:
        cursor = self._execute(
            "UPDATE photos SET tags = ?, updated_at = ? WHERE id = ?",
            (json.dumps(tags), now, photo_id)
        )
        return cursor.rowcount > 0

    def update_title(self, photo_id: str, title: str | None, now: datetime) -> bool:
        cursor = self._execute(
            "UPDATE photos SET title = ?, updated_at = ? WHERE id = ?",
            (title, now, photo_id)
        )
        return cursor.rowcount > 0

    def list_by_owner(self, owner_id: str) -> list[dict]:
        rows = self._fetchall(
            f"SELECT {PHOTO_COLUMNS} FROM photos WHERE owner_id = ? ORDER BY created_at",
            (owner_id,)
        )
        return [self._to_photo(row) for row in rows]

    def ids_by_owner(self, owner_id: str) -> list[str]:
        cursor = self._execute("SELECT id FROM photos WHERE owner_id = ?", (owner_id,))
        return [row["id"] for row in cursor.fetchall()]

    def list_for_collection(self, collection_id: str, now: datetime,
                            visible_only: bool = False) -> list[dict]:
        """Photos in a collection, in membership order.

        Args:
            collection_id: Collection id
            now: Current time for the membership currency rule
            visible_only: Hide photos that are disabled or pending deletion
        """
        sql = f"""SELECT {', '.join('p.' + c.strip() for c in PHOTO_COLUMNS.split(','))},
                         e.order_index
                  FROM photos p
                  JOIN edges e ON e.to_id = p.id
                  WHERE e.kind = 'CollectionPhoto' AND e.from_id = ?
                    AND e.active = 1 AND (e.expires_at IS NULL OR e.expires_at > ?)"""
        if visible_only:
            sql += " AND p.active = 1 AND p.scheduled_purge_at IS NULL"
        sql += " ORDER BY e.order_index"
        return [self._to_photo(row) for row in self._fetchall(sql, (collection_id, now))]

    def list_granted_to(self, principal_id: str, now: datetime) -> list[dict]:
        """Visible photos reachable through a current direct ``PhotoAccess`` edge."""
        sql = f"""SELECT {', '.join('p.' + c.strip() for c in PHOTO_COLUMNS.split(','))},
                         e.expires_at AS access_expires_at
                  FROM photos p
                  JOIN edges e ON e.from_id = p.id
                  WHERE e.kind = 'PhotoAccess' AND e.to_id = ?
                    AND e.active = 1 AND (e.expires_at IS NULL OR e.expires_at > ?)
                    AND p.active = 1 AND p.scheduled_purge_at IS NULL
                  ORDER BY p.created_at"""
        return [self._to_photo(row) for row in self._fetchall(sql, (principal_id, now))]
