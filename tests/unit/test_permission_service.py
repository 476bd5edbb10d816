"""Unit tests for PermissionService access checks.

Tests the authorization rules in isolation with mocked repositories.
"""
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from shutterlink.domain.models import EdgeKind, EntityKind, Operation, Principal, Role
from shutterlink.errors import (
    AuthorizationDenied, ResourceNotFound, ResourceUnavailable, ValidationFailed,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _id() -> str:
    return str(uuid.uuid4())


def _photo(owner_id: str, **overrides) -> dict:
    photo = {"id": _id(), "owner_id": owner_id, "active": True, "scheduled_purge_at": None}
    photo.update(overrides)
    return photo


class TestPermissionServiceChecks:
    """Test PermissionService.check across roles."""

    @pytest.fixture
    def mock_edge_repo(self):
        return Mock()

    @pytest.fixture
    def mock_photo_repo(self):
        return Mock()

    @pytest.fixture
    def mock_collection_repo(self):
        repo = Mock()
        repo.get_by_id.return_value = None
        return repo

    @pytest.fixture
    def perm_service(self, mock_edge_repo, mock_photo_repo, mock_collection_repo):
        from shutterlink.application.services import PermissionService
        return PermissionService(
            edge_repository=mock_edge_repo,
            photo_repository=mock_photo_repo,
            collection_repository=mock_collection_repo,
            client_repository=Mock(),
            guest_repository=Mock(),
            clock=lambda: NOW
        )

    def test_owner_allowed_every_operation_without_edges(self, perm_service, mock_photo_repo, mock_edge_repo):
        """Ownership alone grants access, whatever the edges say."""
        # Arrange
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio")
        photo = _photo(owner.id)
        mock_photo_repo.get_by_id.return_value = photo

        # Act / Assert
        for operation in Operation:
            kind, resource = perm_service.check(owner, photo["id"], operation)
            assert kind == EntityKind.PHOTO
            assert resource is photo
        mock_edge_repo.photo_grant_paths.assert_not_called()

    def test_owner_still_allowed_on_pending_photo(self, perm_service, mock_photo_repo):
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio")
        photo = _photo(owner.id, active=False, scheduled_purge_at=NOW)
        mock_photo_repo.get_by_id.return_value = photo

        assert perm_service.can_access(owner, photo["id"], Operation.DELETE) is True

    def test_other_photographer_denied(self, perm_service, mock_photo_repo):
        stranger = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="other")
        photo = _photo(_id())
        mock_photo_repo.get_by_id.return_value = photo

        with pytest.raises(AuthorizationDenied):
            perm_service.check(stranger, photo["id"], Operation.READ)

    def test_unknown_resource_denied_for_non_admin(self, perm_service, mock_photo_repo):
        """Non-admins cannot tell a missing resource from a forbidden one."""
        # Arrange
        client = Principal(id=_id(), role=Role.CLIENT, username="CLABC123")
        mock_photo_repo.get_by_id.return_value = None

        # Act / Assert
        with pytest.raises(AuthorizationDenied):
            perm_service.check(client, _id(), Operation.READ)

    def test_unknown_resource_not_found_for_admin(self, perm_service, mock_photo_repo):
        admin = Principal(id=_id(), role=Role.ADMIN, username="root")
        mock_photo_repo.get_by_id.return_value = None

        with pytest.raises(ResourceNotFound):
            perm_service.check(admin, _id(), Operation.READ)

    def test_client_write_operations_denied(self, perm_service, mock_photo_repo, mock_edge_repo):
        # Arrange
        client = Principal(id=_id(), role=Role.CLIENT, username="CLABC123")
        photo = _photo(_id())
        mock_photo_repo.get_by_id.return_value = photo
        mock_edge_repo.photo_grant_paths.return_value = [{"via": "direct"}]

        # Act / Assert
        with pytest.raises(AuthorizationDenied):
            perm_service.check(client, photo["id"], Operation.UPDATE)

    def test_client_read_through_direct_edge(self, perm_service, mock_photo_repo, mock_edge_repo):
        client = Principal(id=_id(), role=Role.CLIENT, username="CLABC123")
        photo = _photo(_id())
        mock_photo_repo.get_by_id.return_value = photo
        mock_edge_repo.photo_grant_paths.return_value = [{"via": "direct"}]

        assert perm_service.can_access(client, photo["id"]) is True
        mock_edge_repo.photo_grant_paths.assert_called_once_with(
            photo["id"], client.id, NOW, include_collections=True
        )

    def test_client_without_current_path_denied(self, perm_service, mock_photo_repo, mock_edge_repo):
        """Expired or inactive edges never show up as paths."""
        client = Principal(id=_id(), role=Role.CLIENT, username="CLABC123")
        photo = _photo(_id())
        mock_photo_repo.get_by_id.return_value = photo
        mock_edge_repo.photo_grant_paths.return_value = []

        decision = perm_service.decide(client, photo["id"])

        assert decision.allowed is False

    def test_client_path_through_dead_collection_unavailable(self, perm_service, mock_photo_repo, mock_edge_repo):
        # Arrange
        client = Principal(id=_id(), role=Role.CLIENT, username="CLABC123")
        photo = _photo(_id())
        mock_photo_repo.get_by_id.return_value = photo
        mock_edge_repo.photo_grant_paths.return_value = [{
            "via": "collection",
            "collection_id": _id(),
            "collection_active": False,
            "collection_scheduled_purge_at": NOW,
        }]

        # Act / Assert
        with pytest.raises(ResourceUnavailable):
            perm_service.check(client, photo["id"])

    def test_guest_never_follows_collections(self, perm_service, mock_photo_repo, mock_edge_repo):
        """Guests only see photos with a direct edge."""
        # Arrange
        guest = Principal(id=_id(), role=Role.GUEST, username="GUABC123",
                          expires_at=datetime(2026, 3, 8, tzinfo=timezone.utc))
        photo = _photo(_id())
        mock_photo_repo.get_by_id.return_value = photo
        mock_edge_repo.photo_grant_paths.return_value = []

        # Act
        allowed = perm_service.can_access(guest, photo["id"])

        # Assert
        assert allowed is False
        mock_edge_repo.photo_grant_paths.assert_called_once_with(
            photo["id"], guest.id, NOW, include_collections=False
        )

    def test_expired_guest_denied(self, perm_service, mock_photo_repo, mock_edge_repo):
        guest = Principal(id=_id(), role=Role.GUEST, username="GUABC123",
                          expires_at=NOW - timedelta(seconds=1))
        mock_photo_repo.get_by_id.return_value = _photo(_id())
        mock_edge_repo.photo_grant_paths.return_value = [{"via": "direct"}]

        with pytest.raises(AuthorizationDenied):
            perm_service.check(guest, _id())

    def test_guest_allowed_at_expiry_instant(self, perm_service, mock_photo_repo, mock_edge_repo):
        guest = Principal(id=_id(), role=Role.GUEST, username="GUABC123", expires_at=NOW)
        mock_photo_repo.get_by_id.return_value = _photo(_id())
        mock_edge_repo.photo_grant_paths.return_value = [{"via": "direct"}]

        assert perm_service.can_access(guest, _id()) is True

    def test_naive_now_treated_as_utc(self, perm_service, mock_photo_repo, mock_edge_repo):
        # Arrange
        guest = Principal(id=_id(), role=Role.GUEST, username="GUABC123", expires_at=NOW)
        mock_photo_repo.get_by_id.return_value = _photo(_id())
        mock_edge_repo.photo_grant_paths.return_value = [{"via": "direct"}]
        naive_later = (NOW + timedelta(hours=1)).replace(tzinfo=None)

        # Act
        with pytest.raises(AuthorizationDenied):
            perm_service.check(guest, _id(), now=naive_later)

        # Assert
        assert mock_edge_repo.photo_grant_paths.call_count == 0

    def test_guest_denied_on_collections(self, perm_service, mock_photo_repo, mock_collection_repo):
        guest = Principal(id=_id(), role=Role.GUEST, username="GUABC123")
        mock_photo_repo.get_by_id.return_value = None
        mock_collection_repo.get_by_id.return_value = {
            "id": _id(), "owner_id": _id(), "active": True, "scheduled_purge_at": None
        }

        with pytest.raises(AuthorizationDenied):
            perm_service.check(guest, _id())

    def test_disabled_principal_denied_before_lookup(self, perm_service, mock_photo_repo):
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio", active=False)

        with pytest.raises(AuthorizationDenied):
            perm_service.check(owner, _id())
        mock_photo_repo.get_by_id.assert_not_called()

    def test_malformed_id_rejected(self, perm_service):
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio")

        with pytest.raises(ValidationFailed):
            perm_service.check(owner, "42")

    def test_unknown_operation_rejected(self, perm_service):
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio")

        with pytest.raises(ValidationFailed):
            perm_service.check(owner, _id(), "publish")


class TestPermissionServiceGrants:
    """Test grant and revoke rules."""

    @pytest.fixture
    def repos(self):
        return {
            "edge_repository": Mock(),
            "photo_repository": Mock(),
            "collection_repository": Mock(),
            "client_repository": Mock(),
            "guest_repository": Mock(),
        }

    @pytest.fixture
    def perm_service(self, repos):
        from shutterlink.application.services import PermissionService
        return PermissionService(**repos, clock=lambda: NOW)

    def test_grant_to_own_client_upserts_edge(self, perm_service, repos):
        # Arrange
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio")
        photo = _photo(owner.id)
        client_id = _id()
        repos["photo_repository"].get_by_id.return_value = photo
        repos["client_repository"].get_by_id.return_value = {
            "id": client_id, "photographer_id": owner.id, "active": True, "scheduled_purge_at": None
        }

        # Act
        perm_service.grant(owner, "PhotoAccess", photo["id"], client_id)

        # Assert
        repos["edge_repository"].upsert.assert_called_once_with(
            EdgeKind.PHOTO_ACCESS, photo["id"], client_id, NOW,
            expires_at=None, granted_by=owner.id
        )

    def test_grant_to_foreign_client_denied(self, perm_service, repos):
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio")
        photo = _photo(owner.id)
        repos["photo_repository"].get_by_id.return_value = photo
        repos["client_repository"].get_by_id.return_value = {
            "id": _id(), "photographer_id": _id(), "active": True, "scheduled_purge_at": None
        }

        with pytest.raises(AuthorizationDenied):
            perm_service.grant(owner, EdgeKind.PHOTO_ACCESS, photo["id"], _id())
        repos["edge_repository"].upsert.assert_not_called()

    def test_grant_on_pending_resource_unavailable(self, perm_service, repos):
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio")
        photo = _photo(owner.id, active=False, scheduled_purge_at=NOW)
        client_id = _id()
        repos["photo_repository"].get_by_id.return_value = photo
        repos["client_repository"].get_by_id.return_value = {
            "id": client_id, "photographer_id": owner.id, "active": True, "scheduled_purge_at": None
        }

        with pytest.raises(ResourceUnavailable):
            perm_service.grant(owner, EdgeKind.PHOTO_ACCESS, photo["id"], client_id)

    def test_grant_with_past_expiry_rejected(self, perm_service, repos):
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio")
        repos["photo_repository"].get_by_id.return_value = _photo(owner.id)

        with pytest.raises(ValidationFailed):
            perm_service.grant(owner, EdgeKind.PHOTO_ACCESS, _id(), _id(), expires_at=NOW)

    def test_membership_edges_cannot_be_granted(self, perm_service):
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio")

        with pytest.raises(ValidationFailed):
            perm_service.grant(owner, EdgeKind.COLLECTION_PHOTO, _id(), _id())

    def test_unknown_edge_kind_rejected(self, perm_service):
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio")

        with pytest.raises(ValidationFailed):
            perm_service.grant(owner, "Friendship", _id(), _id())

    def test_clients_cannot_grant(self, perm_service):
        client = Principal(id=_id(), role=Role.CLIENT, username="CLABC123")

        with pytest.raises(AuthorizationDenied):
            perm_service.grant(client, EdgeKind.PHOTO_ACCESS, _id(), _id())

    def test_revoke_deactivates_only_that_edge(self, perm_service, repos):
        # Arrange
        owner = Principal(id=_id(), role=Role.PHOTOGRAPHER, username="studio")
        photo = _photo(owner.id)
        grantee_id = _id()
        repos["photo_repository"].get_by_id.return_value = photo
        repos["edge_repository"].deactivate.return_value = True

        # Act
        revoked = perm_service.revoke(owner, EdgeKind.PHOTO_ACCESS, photo["id"], grantee_id)

        # Assert
        assert revoked is True
        repos["edge_repository"].deactivate.assert_called_once_with(
            EdgeKind.PHOTO_ACCESS, photo["id"], grantee_id
        )
        repos["edge_repository"].delete.assert_not_called()
