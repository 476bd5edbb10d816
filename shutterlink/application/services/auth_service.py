"""Authentication service - login, refresh, logout and authorization checks."""
import logging

from ...config import ROTATE_SESSIONS
from ...domain.lifecycle import is_guest_expired
from ...domain.models import ClientMeta, Decision, LoginResult, Operation, Principal, Role
from ...errors import SessionInvalid, ValidationFailed
from .identity_service import IdentityService
from .permission_service import PermissionService
from .session_service import SessionService

logger = logging.getLogger(__name__)


class AuthService:
    """Service for the outward authentication interface.

    Responsibilities:
    - Login (credential verification + session issue)
    - Refresh and logout by session reference
    - Resolve an access token to a usable principal
    - Authorization decisions for a token
    """

    def __init__(
        self,
        identity_service: IdentityService,
        session_service: SessionService,
        permission_service: PermissionService,
        rotate_sessions: bool = ROTATE_SESSIONS
    ):
        self.identity = identity_service
        self.sessions = session_service
        self.permissions = permission_service
        self.rotate_sessions = rotate_sessions

    def login(self, role, identifier: str, secret: str,
              client_meta: ClientMeta | None = None) -> LoginResult:
        """Verify credentials and open a session.

        Args:
            role: Claimed role, or None to try admin, photographer, client
            identifier: Username
            secret: Plain-text secret
            client_meta: Caller's address and user agent

        Returns:
            LoginResult with access token, session id and principal

        Raises:
            AuthenticationFailed: See ``IdentityService.verify``
        """
        principal = self.identity.verify(role, identifier, secret)
        access_token, session_id = self.sessions.issue(principal.id, principal.role, client_meta)
        return LoginResult(access_token=access_token, session_id=session_id, principal=principal)

    def refresh(self, session_id: str, client_meta: ClientMeta | None = None) -> dict:
        """Exchange a session reference for a new access token.

        When rotation is enabled the reference is replaced as well and the
        new one is returned under ``session_id``.
        """
        if self.rotate_sessions:
            access_token, new_session_id = self.sessions.refresh_and_rotate(session_id, client_meta)
            return {"access_token": access_token, "session_id": new_session_id}
        return {"access_token": self.sessions.refresh(session_id)}

    def logout(self, session_id: str) -> None:
        self.sessions.revoke(session_id)

    def logout_everywhere(self, principal: Principal) -> int:
        return self.sessions.revoke_all(principal.id)

    def authenticate(self, access_token: str) -> Principal:
        """Resolve a bearer token to the principal's current record.

        Raises:
            SessionInvalid: Bad token, or the principal no longer exists
        """
        claims = self.sessions.decode_access_token(access_token)
        try:
            principal = self.identity.get_principal(claims["sub"], claims["role"])
        except ValidationFailed:
            raise SessionInvalid("Invalid access token")
        if principal is None:
            raise SessionInvalid("Invalid access token")
        return principal

    def authorize(self, access_token: str, resource_id: str, operation=Operation.READ) -> Decision:
        """Decide whether the token's principal may act on a resource.

        Raises:
            SessionInvalid: Bad or expired token
            ResourceUnavailable: Reachable resource that is disabled or dying
            ResourceNotFound: Admin asked for an unknown resource
        """
        principal = self.authenticate(access_token)
        if not principal.active:
            return Decision.deny("Account is disabled")
        if principal.role == Role.GUEST and is_guest_expired(
                {"expires_at": principal.expires_at}, self.sessions.clock()):
            return Decision.deny("Guest access has expired")
        return self.permissions.decide(principal, resource_id, operation)

    def change_credential(self, principal: Principal, current_secret: str, new_secret: str,
                          keep_session_id: str | None = None) -> Principal:
        """Rotate a secret and end every other session of the principal."""
        updated = self.identity.change_credential(principal, current_secret, new_secret)
        revoked = self.sessions.revoke_all(principal.id, keep_session_id)
        logger.info("Credential changed for %s, %d other sessions revoked", principal.id, revoked)
        return updated
