"""Core domain types shared by repositories and services."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    PHOTOGRAPHER = "photographer"
    CLIENT = "client"
    GUEST = "guest"


class EdgeKind(str, Enum):
    """Typed relationships in the permission graph.

    Direction is always ``from -> to``:

    - ``CollectionAccess``: Collection -> Client
    - ``PhotoAccess``: Photo -> Client or Guest
    - ``CollectionPhoto``: Collection -> Photo (membership)
    - ``ClientGuests``: Client -> Guest (guardianship)
    """

    COLLECTION_ACCESS = "CollectionAccess"
    PHOTO_ACCESS = "PhotoAccess"
    COLLECTION_PHOTO = "CollectionPhoto"
    CLIENT_GUESTS = "ClientGuests"


class Operation(str, Enum):
    READ = "read"
    UPDATE = "update"
    SHARE = "share"
    DELETE = "delete"


class EntityKind(str, Enum):
    """Every kind of vertex the lifecycle engine can schedule and purge."""

    PHOTOGRAPHER = "photographer"
    CLIENT = "client"
    GUEST = "guest"
    PHOTO = "photo"
    COLLECTION = "collection"

    @property
    def is_principal(self) -> bool:
        return self in (EntityKind.PHOTOGRAPHER, EntityKind.CLIENT, EntityKind.GUEST)


class DeletionOrigin(str, Enum):
    DIRECT = "direct"
    CASCADE = "cascade"


@dataclass(frozen=True)
class ClientMeta:
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class Principal:
    """An authenticated actor with its secret stripped."""

    id: str
    role: Role
    username: str
    active: bool = True
    must_rotate_credential: bool = False
    display_name: str | None = None
    photographer_id: str | None = None
    expires_at: datetime | None = None
    last_login: datetime | None = None

    def claims(self) -> dict:
        """Denormalized fields carried in the access token."""
        claims = {
            "sub": self.id,
            "role": self.role.value,
            "username": self.username,
            "must_rotate_credential": self.must_rotate_credential,
        }
        if self.role == Role.PHOTOGRAPHER:
            claims["business_name"] = self.display_name
        elif self.role == Role.CLIENT:
            claims["client_name"] = self.display_name
            claims["photographer_id"] = self.photographer_id
        elif self.role == Role.GUEST:
            claims["guest_name"] = self.display_name
            claims["expires_at"] = self.expires_at.isoformat() if self.expires_at else None
        return claims


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(False, reason)


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    session_id: str
    principal: Principal


@dataclass
class SweepSummary:
    """Outcome of one lifecycle sweep pass."""

    now: datetime
    purged: dict[str, int] = field(default_factory=dict)
    auto_expired_collections: int = 0
    deactivated_guests: int = 0
    failures: list[str] = field(default_factory=list)
    stopped_early: bool = False

    @property
    def total_purged(self) -> int:
        return sum(self.purged.values())

    def record_purge(self, kind: EntityKind) -> None:
        self.purged[kind.value] = self.purged.get(kind.value, 0) + 1

    def as_dict(self) -> dict:
        return {
            "now": self.now.isoformat(),
            "purged": dict(self.purged),
            "total_purged": self.total_purged,
            "auto_expired_collections": self.auto_expired_collections,
            "deactivated_guests": self.deactivated_guests,
            "failures": list(self.failures),
            "stopped_early": self.stopped_early,
        }
