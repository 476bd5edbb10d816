"""Pure lifecycle rules.

Every function here takes an entity row (a dict as returned by the
repositories) and the current time, and never touches storage. The
lifecycle service and the sweep scheduler decide *when* to call them.
"""
import math
from datetime import datetime, timedelta
from enum import Enum

from .models import DeletionOrigin, EntityKind


class LifecycleState(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"
    PENDING_DELETION = "pending_deletion"


class Transition(str, Enum):
    NONE = "none"
    PURGE = "purge"
    AUTO_MARK = "auto_mark"
    DEACTIVATE = "deactivate"


def state_of(entity: dict) -> LifecycleState:
    """Disabled and pending deletion are distinct states, never conflated."""
    if entity.get("scheduled_purge_at") is not None:
        return LifecycleState.PENDING_DELETION
    if not entity.get("active"):
        return LifecycleState.DISABLED
    return LifecycleState.ACTIVE


def is_available(entity: dict) -> bool:
    return state_of(entity) == LifecycleState.ACTIVE


def is_purge_due(entity: dict, now: datetime) -> bool:
    scheduled = entity.get("scheduled_purge_at")
    return scheduled is not None and now >= scheduled


def is_collection_expired(collection: dict, now: datetime) -> bool:
    auto_delete_at = collection.get("auto_delete_at")
    return (
        auto_delete_at is not None
        and auto_delete_at <= now
        and state_of(collection) == LifecycleState.ACTIVE
    )


def is_guest_expired(guest: dict, now: datetime) -> bool:
    """Guest access stays valid through the ``expires_at`` instant itself."""
    expires_at = guest.get("expires_at")
    return expires_at is not None and now > expires_at


def next_transition(kind: EntityKind, entity: dict, now: datetime) -> Transition:
    """What one sweep pass does to ``entity`` at ``now``."""
    if is_purge_due(entity, now):
        return Transition.PURGE
    if kind == EntityKind.COLLECTION and is_collection_expired(entity, now):
        return Transition.AUTO_MARK
    if kind == EntityKind.GUEST and entity.get("active") and entity.get("scheduled_purge_at") is None \
            and is_guest_expired(entity, now):
        return Transition.DEACTIVATE
    return Transition.NONE


def deletion_fields(
    now: datetime,
    reason: str,
    grace: timedelta,
    origin: DeletionOrigin = DeletionOrigin.DIRECT,
    parent_id: str | None = None,
) -> dict:
    """Field values for the Active -> PendingDeletion transition."""
    return {
        "active": False,
        "deleted_at": now,
        "scheduled_purge_at": now + grace,
        "deletion_reason": reason,
        "deletion_origin": origin.value,
        "cascade_parent_id": parent_id,
    }


def restored_fields() -> dict:
    """Field values for the PendingDeletion -> Active transition."""
    return {
        "active": True,
        "deleted_at": None,
        "scheduled_purge_at": None,
        "deletion_reason": None,
        "deletion_origin": None,
        "cascade_parent_id": None,
    }


def edge_is_current(edge: dict, now: datetime) -> bool:
    """An edge grants access only while active and unexpired."""
    if not edge.get("active"):
        return False
    expires_at = edge.get("expires_at")
    return expires_at is None or expires_at > now


def days_remaining(auto_delete_at: datetime | None, now: datetime) -> int | None:
    if auto_delete_at is None:
        return None
    seconds = (auto_delete_at - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))
