"""Domain types and pure lifecycle rules."""
from .models import (
    ClientMeta,
    Decision,
    DeletionOrigin,
    EdgeKind,
    EntityKind,
    LoginResult,
    Operation,
    Principal,
    Role,
    SweepSummary,
)
from .lifecycle import LifecycleState, Transition

__all__ = [
    "ClientMeta",
    "Decision",
    "DeletionOrigin",
    "EdgeKind",
    "EntityKind",
    "LifecycleState",
    "LoginResult",
    "Operation",
    "Principal",
    "Role",
    "SweepSummary",
    "Transition",
]
