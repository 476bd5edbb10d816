"""Session repository - handles all session-related database operations.

Sessions are long-lived opaque references a caller trades for fresh
access tokens. Only the SHA-256 digest of a reference is stored, so a
leaked table cannot be replayed.
"""
import hashlib
from datetime import datetime

from .base import Repository


def session_digest(session_id: str) -> str:
    return hashlib.sha256(session_id.encode()).hexdigest()


class SessionRepository(Repository):
    """Repository for session management.

    A row's presence is what makes a session valid; revoking deletes it.

    Examples:
        >>> repo = SessionRepository(db)
        >>> repo.create(session_id, principal_id, "client", now, expires_at)
        >>> session = repo.get_valid(session_id, now)
        >>> repo.delete(session_id)  # logout
    """

    def create(self, session_id: str, principal_id: str, role: str,
               issued_at: datetime, expires_at: datetime,
               ip_address: str | None = None, user_agent: str | None = None) -> None:
        """Persist a new session reference.

        Args:
            session_id: Opaque reference handed to the caller
            principal_id: Owner of the session
            role: Owner's role
            issued_at: Creation time
            expires_at: Absolute expiry
            ip_address: Client address, if known
            user_agent: Client user agent, if known
        """
        self._execute(
            """INSERT INTO sessions
               (digest, principal_id, role, issued_at, expires_at, ip_address, user_agent)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (session_digest(session_id), principal_id, role, issued_at, expires_at,
             ip_address, user_agent)
        )

    def get_valid(self, session_id: str, now: datetime) -> dict | None:
        """Get session if present and not expired.

        Args:
            session_id: Session reference presented by the caller
            now: Current time

        Returns:
            Session dict, or None if unknown or expired
        """
        return self._fetchone(
            "SELECT * FROM sessions WHERE digest = ? AND expires_at > ?",
            (session_digest(session_id), now)
        )

    def delete(self, session_id: str) -> bool:
        """Delete session (logout).

        Returns:
            True if session existed and was deleted
        """
        cursor = self._execute(
            "DELETE FROM sessions WHERE digest = ?",
            (session_digest(session_id),)
        )
        return cursor.rowcount > 0

    def delete_all_for_principal(self, principal_id: str, keep_session_id: str | None = None) -> int:
        """Delete all sessions for a principal (force logout everywhere).

        Args:
            principal_id: Principal id
            keep_session_id: Optional session to leave in place

        Returns:
            Number of sessions deleted
        """
        if keep_session_id:
            cursor = self._execute(
                "DELETE FROM sessions WHERE principal_id = ? AND digest != ?",
                (principal_id, session_digest(keep_session_id))
            )
        else:
            cursor = self._execute(
                "DELETE FROM sessions WHERE principal_id = ?",
                (principal_id,)
            )
        return cursor.rowcount

    def cleanup_expired(self, now: datetime) -> int:
        """Delete all expired sessions.

        Returns:
            Number of sessions cleaned up
        """
        cursor = self._execute("DELETE FROM sessions WHERE expires_at <= ?", (now,))
        return cursor.rowcount

    def list_active_for_principal(self, principal_id: str, now: datetime) -> list[dict]:
        """List all active sessions for a principal, newest first.

        The digest is returned in place of the reference, which is never stored.
        """
        return self._fetchall(
            """SELECT digest, role, issued_at, expires_at, ip_address, user_agent
               FROM sessions
               WHERE principal_id = ? AND expires_at > ?
               ORDER BY issued_at DESC""",
            (principal_id, now)
        )
