"""Application services - business logic layer."""

from .identity_service import IdentityService
from .session_service import SessionService
from .permission_service import PermissionService
from .catalog_service import CatalogService
from .sharing_service import SharingService
from .lifecycle_service import LifecycleService
from .auth_service import AuthService
from .admin_service import AdminService

__all__ = [
    "IdentityService",
    "SessionService",
    "PermissionService",
    "CatalogService",
    "SharingService",
    "LifecycleService",
    "AuthService",
    "AdminService",
]
