"""Identity service - principals, credentials and activation flags."""
import logging
import re
import secrets
import string
from datetime import datetime

from ...clock import Clock, utcnow
from ...config import GENERATED_SECRET_LENGTH, MIN_SECRET_LENGTH
from ...domain.lifecycle import is_guest_expired
from ...domain.models import Principal, Role
from ...errors import (
    AuthenticationFailed, AuthorizationDenied, ResourceConflict,
    ResourceNotFound, StorageUnavailable, ValidationFailed,
)
from ...infrastructure.repositories import (
    AdminRepository, ClientRepository, GuestRepository,
    PhotographerRepository, PrincipalRepository,
)
from ...infrastructure.services import notifier as templates

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]{3,64}$")
SECRET_ALPHABET = string.ascii_letters + string.digits
CODE_ALPHABET = string.ascii_uppercase + string.digits


def validate_email(email: str) -> str:
    email = (email or "").strip()
    if not EMAIL_PATTERN.match(email):
        raise ValidationFailed("Invalid email address")
    return email


def generate_secret(length: int = GENERATED_SECRET_LENGTH) -> str:
    return "".join(secrets.choice(SECRET_ALPHABET) for _ in range(length))


class IdentityService:
    """Service for principal records and credential verification.

    Responsibilities:
    - Verify credentials against role-scoped partitions
    - Create principals on behalf of their parent principal
    - Credential rotation and administrative enable/disable
    """

    # Partitions searched, in order, when a login does not name its role
    LOGIN_PRIORITY = (Role.ADMIN, Role.PHOTOGRAPHER, Role.CLIENT)

    def __init__(
        self,
        admin_repository: AdminRepository,
        photographer_repository: PhotographerRepository,
        client_repository: ClientRepository,
        guest_repository: GuestRepository,
        hasher,
        encryptor,
        notifier=None,
        clock: Clock = utcnow
    ):
        self.repos: dict[Role, PrincipalRepository] = {
            Role.ADMIN: admin_repository,
            Role.PHOTOGRAPHER: photographer_repository,
            Role.CLIENT: client_repository,
            Role.GUEST: guest_repository,
        }
        self.hasher = hasher
        self.encryptor = encryptor
        self.notifier = notifier
        self.clock = clock
        self._dummy_digest: str | None = None

    # --- lookup -----------------------------------------------------------

    @staticmethod
    def parse_role(role) -> Role:
        try:
            return Role(role)
        except ValueError:
            raise ValidationFailed(f"Unknown role: {role}")

    def lookups(self, role: Role | None = None) -> list[PrincipalRepository]:
        """Role-scoped lookup strategies to try, in order."""
        if role is not None:
            return [self.repos[role]]
        return [self.repos[each] for each in self.LOGIN_PRIORITY]

    def _find(self, role: Role | None, identifier: str) -> tuple[dict | None, PrincipalRepository | None]:
        for repo in self.lookups(role):
            record = repo.find_by_identifier(identifier)
            if record is not None:
                return record, repo
        return None, None

    def get_record(self, role, principal_id: str) -> dict | None:
        return self.repos[self.parse_role(role)].get_by_id(principal_id)

    def get_principal(self, principal_id: str, role) -> Principal | None:
        repo = self.repos[self.parse_role(role)]
        record = repo.get_by_id(principal_id)
        return repo.to_principal(record) if record else None

    def require_principal(self, principal_id: str, role) -> Principal:
        principal = self.get_principal(principal_id, role)
        if principal is None:
            raise ResourceNotFound(f"{Role(role).value.capitalize()} not found")
        return principal

    # --- verification -----------------------------------------------------

    def verify(self, role, identifier: str, secret: str) -> Principal:
        """Verify credentials and return the principal.

        When ``role`` is None the admin, photographer and client
        partitions are searched in that order; guests must name their role.

        Args:
            role: Claimed role, or None
            identifier: Username
            secret: Plain-text secret

        Returns:
            Principal with the credential digest stripped

        Raises:
            AuthenticationFailed: With reason ``invalid_credentials``,
                ``guest_expired`` or ``account_disabled``
        """
        if not identifier or not secret:
            raise AuthenticationFailed()
        claimed = self.parse_role(role) if role else None
        now = self.clock()

        record, repo = self._find(claimed, identifier)
        if record is None:
            # Spend the same bcrypt time as a real check
            self.hasher.verify(secret, self._get_dummy_digest())
            logger.info("Login failed for unknown identifier (role=%s)", claimed.value if claimed else "any")
            raise AuthenticationFailed()

        if not self.hasher.verify(secret, record["credential_digest"]):
            logger.info("Login failed: bad secret for %s %s", repo.role.value, record["id"])
            raise AuthenticationFailed()

        if repo.role == Role.GUEST and is_guest_expired(record, now):
            raise AuthenticationFailed(AuthenticationFailed.GUEST_EXPIRED)
        if not record["active"]:
            raise AuthenticationFailed(AuthenticationFailed.ACCOUNT_DISABLED)

        try:
            repo.touch_last_login(record["id"], now)
            record = {**record, "last_login": now}
        except StorageUnavailable:
            logger.warning("Could not record last login for %s", record["id"])

        return repo.to_principal(record)

    def _get_dummy_digest(self) -> str:
        if self._dummy_digest is None:
            self._dummy_digest = self.hasher.hash(generate_secret())
        return self._dummy_digest

    # --- creation ---------------------------------------------------------

    def _hash_new_secret(self, secret: str) -> str:
        if not secret or len(secret) < MIN_SECRET_LENGTH:
            raise ValidationFailed(f"Secret must be at least {MIN_SECRET_LENGTH} characters")
        return self.hasher.hash(secret)

    def _check_username(self, role: Role, username: str) -> None:
        if not username or not USERNAME_PATTERN.match(username):
            raise ValidationFailed("Username must be 3-64 letters, digits or . _ @ -")
        if self.repos[role].username_exists(username):
            raise ResourceConflict("Username already taken")

    def _generate_username(self, role: Role, prefix: str) -> str:
        repo = self.repos[role]
        for _ in range(10):
            candidate = prefix + "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))
            if not repo.username_exists(candidate):
                return candidate
        raise ResourceConflict("Could not allocate a unique username")

    def create_admin(self, username: str, secret: str) -> Principal:
        """Bootstrap an admin account."""
        self._check_username(Role.ADMIN, username)
        repo = self.repos[Role.ADMIN]
        admin_id = repo.create(username, self._hash_new_secret(secret), self.clock())
        return repo.to_principal(repo.get_by_id(admin_id))

    def create_photographer(
        self,
        actor: Principal,
        username: str,
        secret: str,
        business_name: str,
        email: str | None = None
    ) -> Principal:
        if actor.role != Role.ADMIN:
            raise AuthorizationDenied("Only admins can create photographers")
        if not business_name or not business_name.strip():
            raise ValidationFailed("Business name is required")
        self._check_username(Role.PHOTOGRAPHER, username)

        repo = self.repos[Role.PHOTOGRAPHER]
        photographer_id = repo.create(
            username, self._hash_new_secret(secret), self.clock(),
            business_name=business_name.strip(),
            email_sealed=self.encryptor.seal(validate_email(email)) if email else None,
        )
        return repo.to_principal(repo.get_by_id(photographer_id))

    def create_client(self, actor: Principal, client_name: str, email: str) -> tuple[Principal, str]:
        """Create a client under the acting photographer.

        Credentials are generated here and delivered through the notifier;
        they are also returned so the photographer can hand them over.

        Returns:
            Tuple of (client principal, generated secret)
        """
        if actor.role != Role.PHOTOGRAPHER or not actor.active:
            raise AuthorizationDenied("Only photographers can create clients")
        if not client_name or not client_name.strip():
            raise ValidationFailed("Client name is required")
        email = validate_email(email)

        repo = self.repos[Role.CLIENT]
        username = self._generate_username(Role.CLIENT, "CL")
        secret = generate_secret()
        client_id = repo.create(
            username, self.hasher.hash(secret), self.clock(),
            must_rotate_credential=True,
            client_name=client_name.strip(),
            email_sealed=self.encryptor.seal(email),
            email_fingerprint=self.encryptor.fingerprint(email),
            photographer_id=actor.id,
        )
        self._notify(email, templates.CLIENT_CREDENTIALS, {
            "username": username,
            "secret": secret,
            "photographer": actor.display_name,
        })
        return repo.to_principal(repo.get_by_id(client_id)), secret

    def provision_guest(
        self,
        email: str,
        guest_name: str | None,
        expires_at: datetime,
        existing: dict | None = None
    ) -> tuple[dict, str | None]:
        """Create a guest, or renew ``existing`` in place.

        Callers run this inside their own transaction and are responsible
        for the guardianship edge.

        Returns:
            Tuple of (guest record, generated secret or None when reused)
        """
        repo = self.repos[Role.GUEST]
        if existing is not None:
            if existing.get("scheduled_purge_at") is not None:
                raise ResourceConflict("Guest is scheduled for deletion")
            repo.renew(existing["id"], expires_at, guest_name)
            return repo.get_by_id(existing["id"]), None

        username = self._generate_username(Role.GUEST, "GU")
        secret = generate_secret()
        guest_id = repo.create(
            username, self.hasher.hash(secret), self.clock(),
            must_rotate_credential=True,
            guest_name=guest_name,
            email_sealed=self.encryptor.seal(email),
            email_fingerprint=self.encryptor.fingerprint(email),
            expires_at=expires_at,
        )
        return repo.get_by_id(guest_id), secret

    # --- mutation ---------------------------------------------------------

    def change_credential(self, principal: Principal, current_secret: str, new_secret: str) -> Principal:
        repo = self.repos[principal.role]
        record = repo.get_by_id(principal.id)
        if record is None:
            raise ResourceNotFound("Principal not found")
        if not self.hasher.verify(current_secret or "", record["credential_digest"]):
            raise AuthenticationFailed()
        if new_secret == current_secret:
            raise ValidationFailed("New secret must differ from the current one")
        repo.update_credential(principal.id, self._hash_new_secret(new_secret), must_rotate_credential=False)
        return repo.to_principal(repo.get_by_id(principal.id))

    def set_active(self, actor: Principal, role, principal_id: str, active: bool) -> Principal:
        """Administratively enable or disable a principal.

        This never touches the deletion schedule; a principal pending
        deletion has to be restored through the lifecycle instead.
        """
        role = self.parse_role(role)
        repo = self.repos[role]
        record = repo.get_by_id(principal_id)

        allowed = actor.role == Role.ADMIN
        if record is not None and not allowed and actor.active:
            if role == Role.CLIENT and actor.role == Role.PHOTOGRAPHER:
                allowed = record["photographer_id"] == actor.id
            elif role == Role.GUEST and actor.role == Role.CLIENT:
                allowed = actor.id in self.repos[Role.GUEST].guardian_ids(principal_id)
        if not allowed:
            raise AuthorizationDenied()
        if record is None:
            raise ResourceNotFound(f"{role.value.capitalize()} not found")
        if actor.id == principal_id and not active:
            raise ValidationFailed("Cannot disable yourself")
        if record.get("scheduled_purge_at") is not None:
            raise ResourceConflict("Principal is scheduled for deletion; restore it instead")

        repo.set_active(principal_id, active)
        return repo.to_principal(repo.get_by_id(principal_id))

    def reveal_email(self, record: dict) -> str | None:
        sealed = record.get("email_sealed")
        return self.encryptor.open(sealed) if sealed else None

    def _notify(self, recipient: str, template_id: str, data: dict) -> None:
        if self.notifier is None:
            return
        try:
            outcome = self.notifier.send(recipient, template_id, data)
            if not outcome.get("delivered"):
                logger.warning("Notification %s was not delivered", template_id)
        except Exception:
            logger.warning("Notification %s failed", template_id, exc_info=True)
