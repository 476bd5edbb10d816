"""Session service - access tokens and stored session references.

Two independent secrets are issued per login:

- a short-lived signed access token (stateless, carries claims), and
- a long-lived opaque session reference (random, stored by digest).

Neither is derived from the other.
"""
import logging
import re
import secrets
from datetime import timedelta

from jose import JWTError, jwt

from ...clock import Clock, utcnow
from ...config import ACCESS_TOKEN_MINUTES, JWT_ALGORITHM, JWT_SECRET, SESSION_DAYS
from ...domain.lifecycle import is_guest_expired
from ...domain.models import ClientMeta, Principal, Role
from ...errors import SessionInvalid, StorageUnavailable
from ...infrastructure.repositories import SessionRepository

logger = logging.getLogger(__name__)

# 32 random bytes, hex encoded
SESSION_ID_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def new_session_id() -> str:
    return secrets.token_hex(32)


class SessionService:
    """Service for minting, refreshing, rotating and revoking sessions.

    The only component that writes the ``sessions`` table.
    """

    def __init__(
        self,
        session_repository: SessionRepository,
        identity_service,
        clock: Clock = utcnow,
        secret_key: str = JWT_SECRET,
        algorithm: str = JWT_ALGORITHM,
        access_minutes: int = ACCESS_TOKEN_MINUTES,
        session_days: int = SESSION_DAYS
    ):
        self.session_repo = session_repository
        self.identity = identity_service
        self.clock = clock
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_ttl = timedelta(minutes=access_minutes)
        self.session_ttl = timedelta(days=session_days)

    # --- access tokens ----------------------------------------------------

    def mint_access_token(self, principal: Principal) -> str:
        now = self.clock()
        claims = principal.claims()
        claims.update({
            "typ": "access",
            "iat": int(now.timestamp()),
            "exp": int((now + self.access_ttl).timestamp()),
            "jti": secrets.token_hex(16),
        })
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> dict:
        """Verify signature and expiry of an access token.

        Expiry is checked against the service clock rather than the wall
        clock.

        Raises:
            SessionInvalid: Malformed, forged, expired or wrong token type
        """
        if not token:
            raise SessionInvalid("Missing access token")
        try:
            claims = jwt.decode(
                token, self.secret_key, algorithms=[self.algorithm],
                options={"verify_exp": False}
            )
        except JWTError:
            raise SessionInvalid("Invalid access token")

        if claims.get("typ") != "access" or "sub" not in claims or "role" not in claims:
            raise SessionInvalid("Invalid access token")
        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or exp <= self.clock().timestamp():
            raise SessionInvalid("Access token expired")
        return claims

    # --- session references ----------------------------------------------

    def _create_session(self, principal_id: str, role: Role, client_meta: ClientMeta | None) -> str:
        meta = client_meta or ClientMeta()
        now = self.clock()
        session_id = new_session_id()
        self.session_repo.create(
            session_id, principal_id, role.value, now, now + self.session_ttl,
            ip_address=meta.ip_address, user_agent=meta.user_agent
        )
        return session_id

    def issue(self, principal_id: str, role, client_meta: ClientMeta | None = None) -> tuple[str, str]:
        """Issue an access token and a new session reference.

        Returns:
            Tuple of (access_token, session_id)
        """
        principal = self.identity.require_principal(principal_id, role)
        session_id = self._create_session(principal.id, principal.role, client_meta)
        return self.mint_access_token(principal), session_id

    def _load_session(self, session_id: str) -> dict:
        if not session_id or not SESSION_ID_PATTERN.match(session_id):
            raise SessionInvalid()
        session = self.session_repo.get_valid(session_id, self.clock())
        if session is None:
            raise SessionInvalid()
        return session

    def _current_principal(self, session: dict) -> Principal:
        principal = self.identity.get_principal(session["principal_id"], session["role"])
        if principal is None or not principal.active:
            raise SessionInvalid()
        if principal.role == Role.GUEST and is_guest_expired({"expires_at": principal.expires_at}, self.clock()):
            raise SessionInvalid()
        return principal

    def refresh(self, session_id: str) -> str:
        """Trade a valid session reference for a fresh access token.

        Claims are re-read from the principal record, never copied from
        an earlier token.

        Raises:
            SessionInvalid: Unknown, expired, or owned by an unusable principal
        """
        session = self._load_session(session_id)
        return self.mint_access_token(self._current_principal(session))

    def refresh_and_rotate(self, session_id: str, client_meta: ClientMeta | None = None) -> tuple[str, str]:
        """Refresh and replace the session reference in one step.

        Only one of several concurrent rotations of the same reference
        wins; the others find the old row already gone.

        Returns:
            Tuple of (access_token, new_session_id)

        Raises:
            SessionInvalid: Unknown, expired or already rotated reference
        """
        with self.session_repo.transaction():
            session = self._load_session(session_id)
            principal = self._current_principal(session)
            if not self.session_repo.delete(session_id):
                raise SessionInvalid()
            new_id = self._create_session(principal.id, principal.role, client_meta)
        return self.mint_access_token(principal), new_id

    def rotate(self, old_session_id: str, principal_id: str, role,
               client_meta: ClientMeta | None = None) -> str:
        """Replace a session reference atomically.

        The old row is gone and the new one present in a single
        transaction. A missing old row is not an error.

        Returns:
            The new session id
        """
        role = Role(role)
        with self.session_repo.transaction():
            if old_session_id:
                self.session_repo.delete(old_session_id)
            return self._create_session(principal_id, role, client_meta)

    def revoke(self, session_id: str) -> None:
        """Delete one session. Failures are logged, never raised."""
        if not session_id:
            return
        try:
            self.session_repo.delete(session_id)
        except StorageUnavailable:
            logger.warning("Failed to revoke session", exc_info=True)

    def revoke_all(self, principal_id: str, keep_session_id: str | None = None) -> int:
        """Delete every session of a principal. Failures are logged, never raised."""
        try:
            return self.session_repo.delete_all_for_principal(principal_id, keep_session_id)
        except StorageUnavailable:
            logger.warning("Failed to revoke sessions for %s", principal_id, exc_info=True)
            return 0

    def list_sessions(self, principal_id: str) -> list[dict]:
        return self.session_repo.list_active_for_principal(principal_id, self.clock())

    def cleanup_expired(self) -> int:
        return self.session_repo.cleanup_expired(self.clock())
