"""Principal repositories - one storage partition per role.

Each role keeps its principals in its own table. The four repositories
share one implementation and differ only in table, role and the
role-specific display column; each also acts as the role-scoped lookup
strategy used at login.
"""
import uuid
from datetime import datetime

from ...domain.models import Principal, Role
from .base import Repository


class PrincipalRepository(Repository):
    """Shared operations over a role-scoped principal table.

    Examples:
        >>> repo = ClientRepository(db)
        >>> client_id = repo.create("c-4821", digest, now, client_name="Ann",
        ...                         photographer_id=ph_id)
        >>> repo.find_by_identifier("c-4821")["client_name"]
        'Ann'
    """

    TABLE: str = ""
    ROLE: Role
    DISPLAY_COLUMN: str | None = None
    EXTRA_COLUMNS: tuple[str, ...] = ()

    @property
    def role(self) -> Role:
        return self.ROLE

    def create(self, username: str, credential_digest: str, now: datetime,
               must_rotate_credential: bool = False, **fields) -> str:
        """Insert a principal and return its surrogate id.

        Args:
            username: Login identifier, unique within the role
            credential_digest: Hashed secret
            now: Creation timestamp
            must_rotate_credential: Whether the secret is a generated one
            **fields: Role-specific columns (see ``EXTRA_COLUMNS``)

        Returns:
            The new principal's surrogate id
        """
        unknown = set(fields) - set(self.EXTRA_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown columns for {self.TABLE}: {sorted(unknown)}")

        principal_id = str(uuid.uuid4())
        columns = ["id", "username", "credential_digest", "must_rotate_credential", "created_at"]
        values = [principal_id, username, credential_digest, int(must_rotate_credential), now]
        for column, value in fields.items():
            columns.append(column)
            values.append(value)

        self._execute(
            f"INSERT INTO {self.TABLE} ({', '.join(columns)}) VALUES ({self._placeholders(values)})",
            tuple(values)
        )
        return principal_id

    def get_by_id(self, principal_id: str) -> dict | None:
        return self._fetchone(f"SELECT * FROM {self.TABLE} WHERE id = ?", (principal_id,))

    def find_by_identifier(self, identifier: str) -> dict | None:
        """Role-scoped lookup by login identifier."""
        return self._fetchone(
            f"SELECT * FROM {self.TABLE} WHERE username = ?",
            (identifier,)
        )

    def username_exists(self, username: str) -> bool:
        row = self._execute(
            f"SELECT 1 FROM {self.TABLE} WHERE username = ?", (username,)
        ).fetchone()
        return row is not None

    def touch_last_login(self, principal_id: str, now: datetime) -> bool:
        cursor = self._execute(
            f"UPDATE {self.TABLE} SET last_login = ? WHERE id = ?",
            (now, principal_id)
        )
        return cursor.rowcount > 0

    def update_credential(self, principal_id: str, credential_digest: str,
                          must_rotate_credential: bool = False) -> bool:
        cursor = self._execute(
            f"""UPDATE {self.TABLE}
                SET credential_digest = ?, must_rotate_credential = ?
                WHERE id = ?""",
            (credential_digest, int(must_rotate_credential), principal_id)
        )
        return cursor.rowcount > 0

    def set_active(self, principal_id: str, active: bool) -> bool:
        cursor = self._execute(
            f"UPDATE {self.TABLE} SET active = ? WHERE id = ?",
            (int(active), principal_id)
        )
        return cursor.rowcount > 0

    def list_all(self) -> list[dict]:
        return self._fetchall(f"SELECT * FROM {self.TABLE} ORDER BY created_at")

    def to_principal(self, record: dict) -> Principal:
        """Build a ``Principal`` with the credential digest stripped."""
        return Principal(
            id=record["id"],
            role=self.ROLE,
            username=record["username"],
            active=bool(record["active"]),
            must_rotate_credential=bool(record["must_rotate_credential"]),
            display_name=record.get(self.DISPLAY_COLUMN) if self.DISPLAY_COLUMN else None,
            photographer_id=record.get("photographer_id"),
            expires_at=record.get("expires_at"),
            last_login=record.get("last_login"),
        )


class AdminRepository(PrincipalRepository):
    TABLE = "admins"
    ROLE = Role.ADMIN


class PhotographerRepository(PrincipalRepository):
    TABLE = "photographers"
    ROLE = Role.PHOTOGRAPHER
    DISPLAY_COLUMN = "business_name"
    EXTRA_COLUMNS = ("business_name", "email_sealed")


class ClientRepository(PrincipalRepository):
    TABLE = "clients"
    ROLE = Role.CLIENT
    DISPLAY_COLUMN = "client_name"
    EXTRA_COLUMNS = ("client_name", "email_sealed", "email_fingerprint", "photographer_id")

    def ids_for_photographer(self, photographer_id: str) -> list[str]:
        cursor = self._execute(
            "SELECT id FROM clients WHERE photographer_id = ?", (photographer_id,)
        )
        return [row["id"] for row in cursor.fetchall()]


class GuestRepository(PrincipalRepository):
    TABLE = "guests"
    ROLE = Role.GUEST
    DISPLAY_COLUMN = "guest_name"
    EXTRA_COLUMNS = ("guest_name", "email_sealed", "email_fingerprint", "expires_at")

    def find_for_client(self, client_id: str, email_fingerprint: str) -> dict | None:
        """Find the guest a client already created for this email address."""
        return self._fetchone(
            """SELECT g.* FROM guests g
               JOIN edges e ON e.to_id = g.id
               WHERE e.kind = 'ClientGuests' AND e.from_id = ?
                 AND g.email_fingerprint = ?
               ORDER BY g.created_at DESC
               LIMIT 1""",
            (client_id, email_fingerprint)
        )

    def list_for_client(self, client_id: str) -> list[dict]:
        return self._fetchall(
            """SELECT g.* FROM guests g
               JOIN edges e ON e.to_id = g.id
               WHERE e.kind = 'ClientGuests' AND e.from_id = ?
               ORDER BY g.created_at""",
            (client_id,)
        )

    def ids_for_client(self, client_id: str) -> list[str]:
        cursor = self._execute(
            "SELECT to_id FROM edges WHERE kind = 'ClientGuests' AND from_id = ?",
            (client_id,)
        )
        return [row["to_id"] for row in cursor.fetchall()]

    def guardian_ids(self, guest_id: str) -> list[str]:
        cursor = self._execute(
            "SELECT from_id FROM edges WHERE kind = 'ClientGuests' AND to_id = ?",
            (guest_id,)
        )
        return [row["from_id"] for row in cursor.fetchall()]

    def renew(self, guest_id: str, expires_at: datetime, guest_name: str | None = None) -> bool:
        """Extend a reused guest's access window and reactivate it."""
        cursor = self._execute(
            """UPDATE guests
               SET expires_at = ?, active = 1, guest_name = COALESCE(?, guest_name)
               WHERE id = ? AND scheduled_purge_at IS NULL""",
            (expires_at, guest_name, guest_id)
        )
        return cursor.rowcount > 0

    def list_expired_active(self, now: datetime) -> list[dict]:
        return self._fetchall(
            """SELECT * FROM guests
               WHERE active = 1 AND scheduled_purge_at IS NULL AND expires_at < ?
               ORDER BY expires_at""",
            (now,)
        )

    def deactivate_if_expired(self, guest_id: str, now: datetime) -> bool:
        cursor = self._execute(
            """UPDATE guests SET active = 0
               WHERE id = ? AND active = 1 AND scheduled_purge_at IS NULL AND expires_at < ?""",
            (guest_id, now)
        )
        return cursor.rowcount > 0
