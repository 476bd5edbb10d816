"""Unit tests for IdentityService credential verification.

Repositories and the hasher are mocked so the order of checks can be
observed directly.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from shutterlink.domain.models import Role
from shutterlink.errors import AuthenticationFailed, StorageUnavailable, ValidationFailed

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _repo(role: Role) -> Mock:
    repo = Mock()
    repo.role = role
    repo.find_by_identifier.return_value = None
    return repo


class TestIdentityServiceVerify:
    """Test the login verification order."""

    @pytest.fixture
    def repos(self):
        return {role: _repo(role) for role in Role}

    @pytest.fixture
    def mock_hasher(self):
        hasher = Mock()
        hasher.verify.return_value = True
        hasher.hash.return_value = "dummy-digest"
        return hasher

    @pytest.fixture
    def identity(self, repos, mock_hasher):
        from shutterlink.application.services import IdentityService
        return IdentityService(
            admin_repository=repos[Role.ADMIN],
            photographer_repository=repos[Role.PHOTOGRAPHER],
            client_repository=repos[Role.CLIENT],
            guest_repository=repos[Role.GUEST],
            hasher=mock_hasher,
            encryptor=Mock(),
            clock=lambda: NOW
        )

    def test_unknown_identifier_still_hashes(self, identity, mock_hasher):
        """An unknown user costs the same bcrypt work as a known one."""
        # Act
        with pytest.raises(AuthenticationFailed) as exc_info:
            identity.verify(None, "nobody", "whatever-secret")

        # Assert
        assert exc_info.value.reason == AuthenticationFailed.INVALID_CREDENTIALS
        mock_hasher.verify.assert_called_once()

    def test_searches_partitions_in_priority_order(self, identity, repos):
        with pytest.raises(AuthenticationFailed):
            identity.verify(None, "someone", "secret-123")

        for role in (Role.ADMIN, Role.PHOTOGRAPHER, Role.CLIENT):
            repos[role].find_by_identifier.assert_called_once_with("someone")
        repos[Role.GUEST].find_by_identifier.assert_not_called()

    def test_first_matching_partition_wins(self, identity, repos):
        # Arrange
        record = {"id": "ph-1", "credential_digest": "d", "active": True}
        repos[Role.PHOTOGRAPHER].find_by_identifier.return_value = record
        repos[Role.CLIENT].find_by_identifier.return_value = {"id": "cl-1"}

        # Act
        identity.verify(None, "shared-name", "secret-123")

        # Assert
        repos[Role.CLIENT].find_by_identifier.assert_not_called()
        repos[Role.PHOTOGRAPHER].touch_last_login.assert_called_once_with("ph-1", NOW)

    def test_disabled_account_with_wrong_secret_is_invalid_credentials(self, identity, repos, mock_hasher):
        """Account state is never revealed before the secret is verified."""
        # Arrange
        repos[Role.CLIENT].find_by_identifier.return_value = {
            "id": "cl-1", "credential_digest": "d", "active": False
        }
        mock_hasher.verify.return_value = False

        # Act
        with pytest.raises(AuthenticationFailed) as exc_info:
            identity.verify(Role.CLIENT, "CLABC123", "wrong-secret")

        # Assert
        assert exc_info.value.reason == AuthenticationFailed.INVALID_CREDENTIALS

    def test_disabled_account_with_right_secret(self, identity, repos):
        repos[Role.CLIENT].find_by_identifier.return_value = {
            "id": "cl-1", "credential_digest": "d", "active": False
        }

        with pytest.raises(AuthenticationFailed) as exc_info:
            identity.verify(Role.CLIENT, "CLABC123", "right-secret")

        assert exc_info.value.detail == "Account is disabled"
        repos[Role.CLIENT].touch_last_login.assert_not_called()

    def test_expired_guest_reported_before_disabled(self, identity, repos):
        # Arrange
        repos[Role.GUEST].find_by_identifier.return_value = {
            "id": "gu-1", "credential_digest": "d", "active": False,
            "expires_at": NOW - timedelta(seconds=1),
        }

        # Act
        with pytest.raises(AuthenticationFailed) as exc_info:
            identity.verify("guest", "GUABC123", "right-secret")

        # Assert
        assert exc_info.value.reason == AuthenticationFailed.GUEST_EXPIRED
        assert exc_info.value.detail == "Guest access has expired"
        repos[Role.GUEST].set_active.assert_not_called()

    def test_last_login_failure_does_not_block_login(self, identity, repos):
        # Arrange
        repo = repos[Role.ADMIN]
        repo.find_by_identifier.return_value = {"id": "ad-1", "credential_digest": "d", "active": True}
        repo.touch_last_login.side_effect = StorageUnavailable()

        # Act
        identity.verify("admin", "root", "right-secret")

        # Assert
        repo.to_principal.assert_called_once()

    def test_empty_secret_rejected_without_lookup(self, identity, repos):
        with pytest.raises(AuthenticationFailed):
            identity.verify(None, "root", "")

        repos[Role.ADMIN].find_by_identifier.assert_not_called()

    def test_unknown_role_rejected(self, identity):
        with pytest.raises(ValidationFailed):
            identity.verify("superuser", "root", "secret-123")


def test_generate_secret_length_and_alphabet():
    from shutterlink.application.services.identity_service import SECRET_ALPHABET, generate_secret

    secret = generate_secret()

    assert len(secret) == 10
    assert set(secret) <= set(SECRET_ALPHABET)


@pytest.mark.parametrize("email", ["", "no-at-sign", "a@b", "two@@example.com", "space in@example.com"])
def test_validate_email_rejects_malformed(email):
    from shutterlink.application.services.identity_service import validate_email

    with pytest.raises(ValidationFailed):
        validate_email(email)
