"""Admin service - system statistics and account listings.

Every read here is admin-only. Sealed email addresses are opened for
display; a value that no longer opens (key rotated) is shown as missing.
"""
import logging

from ...domain.models import Principal, Role
from ...errors import AuthorizationDenied, ResourceNotFound
from ...infrastructure.repositories import StatsRepository
from .permission_service import validate_id

logger = logging.getLogger(__name__)


class AdminService:
    """Service for the admin console.

    Responsibilities:
    - System-wide counts and storage totals
    - Listings of photographers, clients and guests with their counts
    - Per-photographer statistics
    """

    def __init__(self, stats_repository: StatsRepository, identity_service):
        self.stats_repo = stats_repository
        self.identity = identity_service

    @staticmethod
    def _require_admin(actor: Principal) -> None:
        if actor.role != Role.ADMIN or not actor.active:
            raise AuthorizationDenied("Admin access required")

    def _with_email(self, record: dict) -> dict:
        row = dict(record)
        try:
            row["email"] = self.identity.reveal_email(row)
        except ValueError:
            logger.warning("Cannot open email of %s", row["id"])
            row["email"] = None
        row.pop("email_sealed", None)
        row["active"] = bool(row["active"])
        return row

    def system_stats(self, actor: Principal) -> dict:
        """Counts across the whole system, pending deletions excluded.

        Returns:
            Dict with total and active counts per principal role, the
            number of collections and photos, and stored bytes
        """
        self._require_admin(actor)
        photographers = self.stats_repo.principal_counts("photographers")
        clients = self.stats_repo.principal_counts("clients")
        guests = self.stats_repo.principal_counts("guests")
        photos = self.stats_repo.photo_totals()
        return {
            "total_photographers": photographers["total"],
            "active_photographers": photographers["active"],
            "total_clients": clients["total"],
            "active_clients": clients["active"],
            "total_guests": guests["total"],
            "active_guests": guests["active"],
            "total_collections": self.stats_repo.collection_count(),
            "total_photos": photos["photos"],
            "total_storage_bytes": photos["bytes"],
        }

    def list_photographers(self, actor: Principal) -> list[dict]:
        self._require_admin(actor)
        return [self._with_email(row) for row in self.stats_repo.list_photographers()]

    def list_clients(self, actor: Principal) -> list[dict]:
        self._require_admin(actor)
        return [self._with_email(row) for row in self.stats_repo.list_clients()]

    def list_guests(self, actor: Principal) -> list[dict]:
        self._require_admin(actor)
        return [self._with_email(row) for row in self.stats_repo.list_guests()]

    def photographer_stats(self, actor: Principal, photographer_id: str) -> dict:
        """Counts for one photographer.

        Raises:
            ResourceNotFound: Unknown or pending-deletion photographer
        """
        self._require_admin(actor)
        photographer_id = validate_id(photographer_id, "photographer id")
        photographer = self.stats_repo.get_photographer(photographer_id)
        if photographer is None:
            raise ResourceNotFound("Photographer not found")
        photographer["active"] = bool(photographer["active"])
        photos = self.stats_repo.photo_totals(photographer_id)
        stats = {"photographer": photographer}
        stats.update(self.stats_repo.photographer_counts(photographer_id))
        stats["photo_count"] = photos["photos"]
        stats["storage_bytes"] = photos["bytes"]
        return stats
