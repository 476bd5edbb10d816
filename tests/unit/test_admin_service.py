"""Unit tests for AdminService and archive naming.

Tests the console rules in isolation with mocked repositories.
"""
import uuid
from unittest.mock import Mock

import pytest

from shutterlink.application.services.catalog_service import archive_name
from shutterlink.domain.models import Principal, Role
from shutterlink.errors import AuthorizationDenied, ResourceNotFound, ValidationFailed


def _principal(role: Role, active: bool = True) -> Principal:
    return Principal(id=str(uuid.uuid4()), role=role, username=f"{role.value}-1", active=active)


class TestAdminService:

    @pytest.fixture
    def mock_stats_repo(self):
        return Mock()

    @pytest.fixture
    def mock_identity(self):
        identity = Mock()
        identity.reveal_email.return_value = "ann@example.com"
        return identity

    @pytest.fixture
    def admin_service(self, mock_stats_repo, mock_identity):
        from shutterlink.application.services import AdminService
        return AdminService(mock_stats_repo, mock_identity)

    def test_disabled_admin_denied(self, admin_service, mock_stats_repo):
        with pytest.raises(AuthorizationDenied):
            admin_service.system_stats(_principal(Role.ADMIN, active=False))

        mock_stats_repo.principal_counts.assert_not_called()

    def test_listing_opens_email_and_drops_sealed_value(self, admin_service, mock_stats_repo):
        # Arrange
        mock_stats_repo.list_clients.return_value = [
            {"id": "c1", "username": "CL1", "email_sealed": "sealed", "active": 1},
        ]

        # Act
        [row] = admin_service.list_clients(_principal(Role.ADMIN))

        # Assert
        assert row["email"] == "ann@example.com"
        assert row["active"] is True
        assert "email_sealed" not in row

    def test_unopenable_email_shown_as_missing(self, admin_service, mock_stats_repo, mock_identity):
        mock_identity.reveal_email.side_effect = ValueError("Cannot open sealed value")
        mock_stats_repo.list_guests.return_value = [
            {"id": "g1", "username": "GU1", "email_sealed": "garbage", "active": 0},
        ]

        [row] = admin_service.list_guests(_principal(Role.ADMIN))

        assert row["email"] is None
        assert row["active"] is False

    def test_photographer_stats_validates_id(self, admin_service, mock_stats_repo):
        with pytest.raises(ValidationFailed):
            admin_service.photographer_stats(_principal(Role.ADMIN), "not-a-uuid")

        mock_stats_repo.get_photographer.assert_not_called()

    def test_photographer_stats_missing(self, admin_service, mock_stats_repo):
        mock_stats_repo.get_photographer.return_value = None

        with pytest.raises(ResourceNotFound):
            admin_service.photographer_stats(_principal(Role.ADMIN), str(uuid.uuid4()))


class TestArchiveName:

    def test_title_used_with_extension(self):
        assert archive_name({"title": "First dance", "mime_type": "image/jpeg"}, 1) == "First dance.jpg"

    def test_untitled_photo_numbered(self):
        assert archive_name({"title": None, "mime_type": "image/jpeg"}, 3) == "photo-3.jpg"

    def test_path_separators_replaced(self):
        name = archive_name({"title": "../../etc/passwd", "mime_type": "image/jpeg"}, 1)

        assert "/" not in name
        assert not name.startswith(".")
