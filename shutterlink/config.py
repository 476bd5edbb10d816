"""Application configuration and constants."""
import os
import secrets
from pathlib import Path

# Directory paths
BASE_DIR = Path(__file__).resolve().parent.parent
DATABASE_PATH = Path(os.environ.get("SHUTTERLINK_DB_PATH", str(BASE_DIR / "shutterlink.db")))

# Access tokens (signed, stateless)
# Without an explicit secret every process signs with its own key, so tokens
# do not survive a restart.
JWT_SECRET = os.environ.get("SHUTTERLINK_JWT_SECRET") or secrets.token_hex(32)
JWT_ALGORITHM = os.environ.get("SHUTTERLINK_JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_MINUTES = int(os.environ.get("SHUTTERLINK_ACCESS_TOKEN_MINUTES", "15"))

# Session references (opaque, stored)
SESSION_DAYS = int(os.environ.get("SHUTTERLINK_SESSION_DAYS", "7"))
SESSION_MAX_AGE = 60 * 60 * 24 * SESSION_DAYS
ROTATE_SESSIONS = os.environ.get("SHUTTERLINK_ROTATE_SESSIONS", "false").lower() in ("1", "true", "yes")
SESSION_COOKIE = "shutterlink_session"
TOKEN_COOKIE = "shutterlink_token"

# Credentials
BCRYPT_ROUNDS = int(os.environ.get("SHUTTERLINK_BCRYPT_ROUNDS", "12"))
MIN_SECRET_LENGTH = 8
GENERATED_SECRET_LENGTH = 10

# PII encryption
ENCRYPTION_KEY = os.environ.get("SHUTTERLINK_ENCRYPTION_KEY") or secrets.token_hex(32)

# Lifecycle
DELETION_GRACE_DAYS = int(os.environ.get("SHUTTERLINK_DELETION_GRACE_DAYS", "7"))
COLLECTION_EXPIRY_DAYS = int(os.environ.get("SHUTTERLINK_COLLECTION_EXPIRY_DAYS", "14"))
AUTO_DELETE_REASON = "auto-delete timer expired"
SWEEP_INTERVAL_SECONDS = int(os.environ.get("SHUTTERLINK_SWEEP_INTERVAL_SECONDS", "3600"))
SWEEP_SCHEDULE = os.environ.get("SHUTTERLINK_SWEEP_SCHEDULE", "enabled")  # enabled or disabled

# Guest access
GUEST_DEFAULT_DAYS = int(os.environ.get("SHUTTERLINK_GUEST_DEFAULT_DAYS", "7"))
GUEST_MAX_DAYS = int(os.environ.get("SHUTTERLINK_GUEST_MAX_DAYS", "30"))

# Media
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
MAX_PHOTO_SIZE = 10 * 1024 * 1024  # 10MB
THUMBNAIL_SIZE = (300, 300)
THUMBNAIL_QUALITY = 70
COMPRESSION_QUALITY = 85

# Catalog limits
COLLECTION_NAME_MAX = 100
COLLECTION_DESCRIPTION_MAX = 500
MAX_TAGS = 50
MAX_BATCH_UPLOAD = 20
MAX_ARCHIVE_PHOTOS = 100

LOG_LEVEL = os.environ.get("SHUTTERLINK_LOG_LEVEL", "INFO")
