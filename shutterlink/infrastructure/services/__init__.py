"""Concrete collaborators used by the application services."""
from .hashing import BcryptHasher
from .encryption import FieldEncryptor
from .media import PillowImageProcessor, ProcessedImage
from .notifier import LoggingNotifier
from .broadcaster import InMemoryBroadcaster, NullBroadcaster
from .locks import KeyedLocks

__all__ = [
    "BcryptHasher",
    "FieldEncryptor",
    "PillowImageProcessor",
    "ProcessedImage",
    "LoggingNotifier",
    "InMemoryBroadcaster",
    "NullBroadcaster",
    "KeyedLocks",
]
