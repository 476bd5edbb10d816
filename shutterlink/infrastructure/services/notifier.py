"""Outbound notifications (credential delivery, share notices)."""
import logging
from typing import Protocol

logger = logging.getLogger(__name__)

# Template ids understood by notifiers
CLIENT_CREDENTIALS = "client_credentials"
GUEST_CREDENTIALS = "guest_credentials"
GUEST_ACCESS_RENEWED = "guest_access_renewed"
COLLECTION_SHARED = "collection_shared"
PHOTOS_SHARED = "photos_shared"


class Notifier(Protocol):
    def send(self, recipient: str, template_id: str, data: dict) -> dict: ...


class LoggingNotifier:
    """Notifier that records deliveries in the log instead of sending mail.

    Template data may hold generated credentials, so only the template id
    and the recipient are logged.
    """

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def send(self, recipient: str, template_id: str, data: dict) -> dict:
        logger.info("Notification %s queued for %s", template_id, recipient)
        self.sent.append((recipient, template_id))
        return {"delivered": True}
