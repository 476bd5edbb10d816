# Repository Pattern Implementation
"""
Repositories abstract database operations.
Each vertex family has its own repository; all edges share one.
"""
from .base import Repository, ConnectionProtocol
from .principal_repository import (
    PrincipalRepository,
    AdminRepository,
    PhotographerRepository,
    ClientRepository,
    GuestRepository,
)
from .session_repository import SessionRepository
from .edge_repository import EdgeRepository
from .photo_repository import PhotoRepository
from .collection_repository import CollectionRepository
from .lifecycle_repository import LifecycleRepository
from .stats_repository import StatsRepository

__all__ = [
    "Repository",
    "ConnectionProtocol",
    "PrincipalRepository",
    "AdminRepository",
    "PhotographerRepository",
    "ClientRepository",
    "GuestRepository",
    "SessionRepository",
    "EdgeRepository",
    "PhotoRepository",
    "CollectionRepository",
    "LifecycleRepository",
    "StatsRepository",
]
