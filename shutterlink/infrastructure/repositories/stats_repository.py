"""Stats repository - read-only aggregates for the admin console.

Entities pending deletion are left out of every count and listing.
"""
from .base import Repository

_LIVE = "scheduled_purge_at IS NULL"


class StatsRepository(Repository):
    """Aggregate queries across the vertex tables."""

    def principal_counts(self, table: str) -> dict:
        """Total and active principals of one role table."""
        if table not in ("photographers", "clients", "guests"):
            raise ValueError(f"Unknown principal table: {table}")
        row = self._fetchone(
            f"""SELECT COUNT(*) AS total,
                       COALESCE(SUM(CASE WHEN active = 1 THEN 1 ELSE 0 END), 0) AS active
                FROM {table} WHERE {_LIVE}"""
        )
        return {"total": row["total"], "active": row["active"]}

    def collection_count(self) -> int:
        return self._execute(f"SELECT COUNT(*) FROM collections WHERE {_LIVE}").fetchone()[0]

    def photo_totals(self, owner_id: str | None = None) -> dict:
        """Photo count and stored bytes, optionally for one owner."""
        sql = f"SELECT COUNT(*) AS photos, COALESCE(SUM(size), 0) AS bytes FROM photos WHERE {_LIVE}"
        parameters: tuple = ()
        if owner_id is not None:
            sql += " AND owner_id = ?"
            parameters = (owner_id,)
        row = self._fetchone(sql, parameters)
        return {"photos": row["photos"], "bytes": row["bytes"]}

    def list_photographers(self) -> list[dict]:
        return self._fetchall(
            f"""SELECT p.id, p.username, p.business_name, p.email_sealed, p.active,
                       p.created_at, p.last_login,
                       (SELECT COUNT(*) FROM clients c
                        WHERE c.photographer_id = p.id AND c.{_LIVE}) AS client_count,
                       (SELECT COUNT(*) FROM collections k
                        WHERE k.owner_id = p.id AND k.{_LIVE}) AS collection_count,
                       (SELECT COUNT(*) FROM photos f
                        WHERE f.owner_id = p.id AND f.{_LIVE}) AS photo_count
                FROM photographers p
                WHERE p.{_LIVE}
                ORDER BY p.created_at DESC"""
        )

    def get_photographer(self, photographer_id: str) -> dict | None:
        return self._fetchone(
            f"""SELECT id, username, business_name, active, created_at, last_login
                FROM photographers WHERE id = ? AND {_LIVE}""",
            (photographer_id,)
        )

    def photographer_counts(self, photographer_id: str) -> dict:
        row = self._fetchone(
            f"""SELECT
                   (SELECT COUNT(*) FROM clients
                    WHERE photographer_id = :owner AND {_LIVE}) AS client_count,
                   (SELECT COUNT(*) FROM collections
                    WHERE owner_id = :owner AND {_LIVE}) AS collection_count,
                   (SELECT COUNT(*) FROM edges e
                    JOIN clients c ON c.id = e.from_id
                    JOIN guests g ON g.id = e.to_id
                    WHERE e.kind = 'ClientGuests' AND c.photographer_id = :owner
                      AND c.{_LIVE} AND g.{_LIVE}) AS guest_count""",
            {"owner": photographer_id}
        )
        return dict(row)

    def list_clients(self) -> list[dict]:
        """Live clients with their photographer's name and sharing counts."""
        return self._fetchall(
            f"""SELECT c.id, c.username, c.client_name, c.email_sealed, c.active,
                       c.created_at, c.last_login, c.photographer_id,
                       p.business_name AS photographer_name,
                       (SELECT COUNT(*) FROM edges e JOIN guests g ON g.id = e.to_id
                        WHERE e.kind = 'ClientGuests' AND e.from_id = c.id
                          AND g.{_LIVE}) AS guest_count,
                       (SELECT COUNT(*) FROM edges e
                        WHERE e.kind = 'CollectionAccess' AND e.to_id = c.id
                          AND e.active = 1) AS collection_count
                FROM clients c
                LEFT JOIN photographers p ON p.id = c.photographer_id
                WHERE c.{_LIVE}
                ORDER BY c.created_at DESC"""
        )

    def list_guests(self) -> list[dict]:
        """Live guests with their guardian client and photographer."""
        return self._fetchall(
            f"""SELECT g.id, g.username, g.guest_name, g.email_sealed, g.active,
                       g.created_at, g.last_login, g.expires_at,
                       c.id AS client_id, c.client_name,
                       c.photographer_id, p.business_name AS photographer_name,
                       (SELECT COUNT(*) FROM edges a
                        WHERE a.kind = 'PhotoAccess' AND a.to_id = g.id
                          AND a.active = 1) AS photo_access_count
                FROM guests g
                LEFT JOIN edges e ON e.kind = 'ClientGuests' AND e.to_id = g.id
                LEFT JOIN clients c ON c.id = e.from_id
                LEFT JOIN photographers p ON p.id = c.photographer_id
                WHERE g.{_LIVE}
                ORDER BY g.created_at DESC"""
        )
