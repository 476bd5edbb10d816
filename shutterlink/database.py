"""SQLite connection management and schema bootstrap.

Vertices live in one table per kind and carry a surrogate ``id`` (UUID
string) next to SQLite's implicit ``rowid``. Edges live in a single
``edges`` table keyed by ``(kind, from_id, to_id)``.
"""
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from .config import DATABASE_PATH


def _adapt_datetime(value: datetime) -> str:
    """Store datetimes as fixed-width UTC ISO strings so they sort correctly."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _convert_timestamp(value: bytes) -> datetime:
    parsed = datetime.fromisoformat(value.decode())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _convert_boolean(value: bytes) -> bool:
    return value not in (b"0", b"")


sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("TIMESTAMP", _convert_timestamp)
sqlite3.register_converter("BOOLEAN", _convert_boolean)


def connect(path: Path | str | None = None) -> sqlite3.Connection:
    """Open a new connection in autocommit mode.

    Multi-statement units of work open their own transaction through
    ``Repository.transaction()``. A request-scoped connection may move
    between worker threads but is only used by one at a time.
    """
    conn = sqlite3.connect(
        path or DATABASE_PATH,
        detect_types=sqlite3.PARSE_DECLTYPES,
        isolation_level=None,
        timeout=30,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


_DELETION_COLUMNS = """
            deleted_at TIMESTAMP,
            scheduled_purge_at TIMESTAMP,
            deletion_reason TEXT,
            deletion_origin TEXT,
            cascade_parent_id TEXT"""

_PRINCIPAL_COLUMNS = """
            id TEXT NOT NULL UNIQUE,
            username TEXT NOT NULL UNIQUE,
            credential_digest TEXT NOT NULL,
            active BOOLEAN NOT NULL DEFAULT 1,
            must_rotate_credential BOOLEAN NOT NULL DEFAULT 0,
            last_login TIMESTAMP,
            created_at TIMESTAMP NOT NULL"""


def init_db(db: sqlite3.Connection) -> None:
    """Initialize database schema"""
    db.execute(f"""
        CREATE TABLE IF NOT EXISTS admins ({_PRINCIPAL_COLUMNS}
        )
    """)

    db.execute(f"""
        CREATE TABLE IF NOT EXISTS photographers ({_PRINCIPAL_COLUMNS},
            business_name TEXT,
            email_sealed TEXT,
            {_DELETION_COLUMNS}
        )
    """)

    db.execute(f"""
        CREATE TABLE IF NOT EXISTS clients ({_PRINCIPAL_COLUMNS},
            client_name TEXT NOT NULL,
            email_sealed TEXT,
            email_fingerprint TEXT,
            photographer_id TEXT NOT NULL,
            {_DELETION_COLUMNS}
        )
    """)

    db.execute(f"""
        CREATE TABLE IF NOT EXISTS guests ({_PRINCIPAL_COLUMNS},
            guest_name TEXT,
            email_sealed TEXT,
            email_fingerprint TEXT NOT NULL,
            expires_at TIMESTAMP NOT NULL,
            {_DELETION_COLUMNS}
        )
    """)

    db.execute(f"""
        CREATE TABLE IF NOT EXISTS collections (
            id TEXT NOT NULL UNIQUE,
            owner_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            active BOOLEAN NOT NULL DEFAULT 1,
            auto_delete_at TIMESTAMP,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP,
            {_DELETION_COLUMNS}
        )
    """)

    db.execute(f"""
        CREATE TABLE IF NOT EXISTS photos (
            id TEXT NOT NULL UNIQUE,
            owner_id TEXT NOT NULL,
            share_token TEXT NOT NULL UNIQUE,
            title TEXT,
            tags TEXT NOT NULL DEFAULT '[]',
            mime_type TEXT NOT NULL,
            width INTEGER,
            height INTEGER,
            size INTEGER,
            content BLOB NOT NULL,
            thumbnail BLOB NOT NULL,
            active BOOLEAN NOT NULL DEFAULT 1,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP,
            {_DELETION_COLUMNS}
        )
    """)

    # Permission graph: every relationship between vertices is an edge row
    db.execute("""
        CREATE TABLE IF NOT EXISTS edges (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            kind TEXT NOT NULL,
            from_id TEXT NOT NULL,
            to_id TEXT NOT NULL,
            granted_at TIMESTAMP NOT NULL,
            expires_at TIMESTAMP,
            active BOOLEAN NOT NULL DEFAULT 1,
            order_index INTEGER,
            granted_by TEXT,
            UNIQUE (kind, from_id, to_id)
        )
    """)

    # Sessions are stored by digest; the raw reference only lives client-side
    db.execute("""
        CREATE TABLE IF NOT EXISTS sessions (
            digest TEXT PRIMARY KEY,
            principal_id TEXT NOT NULL,
            role TEXT NOT NULL,
            issued_at TIMESTAMP NOT NULL,
            expires_at TIMESTAMP NOT NULL,
            ip_address TEXT,
            user_agent TEXT
        )
    """)

    db.execute("CREATE INDEX IF NOT EXISTS idx_edges_from ON edges(from_id, kind)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_edges_to ON edges(to_id, kind)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_sessions_principal ON sessions(principal_id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions(expires_at)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_clients_photographer ON clients(photographer_id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_guests_fingerprint ON guests(email_fingerprint)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_photos_owner ON photos(owner_id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_collections_owner ON collections(owner_id)")
    for table in ("photographers", "clients", "guests", "collections", "photos"):
        db.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{table}_purge ON {table}(scheduled_purge_at)"
        )
    db.execute("CREATE INDEX IF NOT EXISTS idx_collections_auto_delete ON collections(auto_delete_at)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_guests_expires ON guests(expires_at)")
