"""Dependency container wiring for the application.

Collaborators that hold no connection (hasher, encryptor, notifier,
broadcaster, guest locks) are built once. Repositories and services are
cheap and bound to one SQLite connection, so ``services()`` builds a
fresh set per connection.
"""
from dataclasses import dataclass, field

from . import config
from .application.services import (
    AdminService, AuthService, CatalogService, IdentityService, LifecycleService,
    PermissionService, SessionService, SharingService,
)
from .clock import Clock, utcnow
from .infrastructure.repositories import (
    AdminRepository, ClientRepository, CollectionRepository, EdgeRepository,
    GuestRepository, LifecycleRepository, PhotographerRepository,
    PhotoRepository, SessionRepository, StatsRepository,
)
from .infrastructure.services import (
    BcryptHasher, FieldEncryptor, InMemoryBroadcaster, KeyedLocks,
    LoggingNotifier, PillowImageProcessor,
)


@dataclass
class ServiceSet:
    """Services bound to one database connection."""

    identity: IdentityService
    sessions: SessionService
    permissions: PermissionService
    catalog: CatalogService
    sharing: SharingService
    lifecycle: LifecycleService
    auth: AuthService
    admin: AdminService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    hasher: BcryptHasher
    encryptor: FieldEncryptor
    image_processor: PillowImageProcessor
    notifier: LoggingNotifier
    broadcaster: InMemoryBroadcaster
    guest_locks: KeyedLocks = field(default_factory=KeyedLocks)
    clock: Clock = utcnow
    jwt_secret: str = config.JWT_SECRET
    jwt_algorithm: str = config.JWT_ALGORITHM
    access_token_minutes: int = config.ACCESS_TOKEN_MINUTES
    session_days: int = config.SESSION_DAYS
    rotate_sessions: bool = config.ROTATE_SESSIONS
    deletion_grace_days: int = config.DELETION_GRACE_DAYS
    collection_expiry_days: int = config.COLLECTION_EXPIRY_DAYS
    guest_default_days: int = config.GUEST_DEFAULT_DAYS
    guest_max_days: int = config.GUEST_MAX_DAYS

    def services(self, conn) -> ServiceSet:
        admins = AdminRepository(conn)
        photographers = PhotographerRepository(conn)
        clients = ClientRepository(conn)
        guests = GuestRepository(conn)
        sessions = SessionRepository(conn)
        edges = EdgeRepository(conn)
        photos = PhotoRepository(conn)
        collections = CollectionRepository(conn)
        lifecycle = LifecycleRepository(conn)
        stats = StatsRepository(conn)

        identity = IdentityService(
            admins, photographers, clients, guests,
            self.hasher, self.encryptor, self.notifier, self.clock
        )
        session_service = SessionService(
            sessions, identity, self.clock,
            secret_key=self.jwt_secret,
            algorithm=self.jwt_algorithm,
            access_minutes=self.access_token_minutes,
            session_days=self.session_days,
        )
        permissions = PermissionService(edges, photos, collections, clients, guests, self.clock)
        catalog = CatalogService(
            photos, collections, edges, permissions, self.image_processor,
            self.broadcaster, self.clock, self.collection_expiry_days
        )
        sharing = SharingService(
            permissions, identity, edges, photos, collections, clients, guests,
            self.guest_locks, self.notifier, self.broadcaster, self.clock,
            self.guest_default_days, self.guest_max_days
        )
        lifecycle_service = LifecycleService(
            lifecycle, collections, photos, clients, guests, sessions,
            self.broadcaster, self.clock, self.deletion_grace_days
        )
        auth = AuthService(identity, session_service, permissions, self.rotate_sessions)

        return ServiceSet(
            identity=identity,
            sessions=session_service,
            permissions=permissions,
            catalog=catalog,
            sharing=sharing,
            lifecycle=lifecycle_service,
            auth=auth,
            admin=AdminService(stats, identity),
        )


def build_container(**overrides) -> AppContainer:
    """Create the default dependency container.

    Keyword arguments replace individual collaborators or settings.
    """
    values = {
        "hasher": BcryptHasher(config.BCRYPT_ROUNDS),
        "encryptor": FieldEncryptor(config.ENCRYPTION_KEY),
        "image_processor": PillowImageProcessor(),
        "notifier": LoggingNotifier(),
        "broadcaster": InMemoryBroadcaster(),
    }
    values.update(overrides)
    return AppContainer(**values)
