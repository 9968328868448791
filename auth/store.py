"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Route and dependency
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  UNIQUE(telephone) is enforced by the schema; create_user() lets the
  IntegrityError propagate so the caller can report a conflict even when two
  registrations race past the existence check.

DB URL: any SQLAlchemy URL. The default is auth/gatehouse.db. Non-SQLite
engines get a bounded connection pool (size, overflow, recycle) from Settings.

Layer rule: no imports from api/, cache/, or options/.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import User
from core.config import DEFAULT_DATABASE_URL

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(64), nullable=False),
    Column("telephone", String(20), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def build_engine(
    db_url: str = DEFAULT_DATABASE_URL,
    *,
    pool_size: int = 10,
    max_overflow: int = 90,
    pool_recycle: int = 3600,
    echo: bool = False,
) -> Engine:
    """Create an engine with pooling suited to the backend.

    SQLite gets check_same_thread=False (FastAPI runs sync handlers in a
    thread pool) and WAL mode. Everything else gets a bounded QueuePool with
    pre-ping so stale connections are replaced instead of failing a request.
    """
    if db_url.startswith("sqlite"):
        engine = create_engine(db_url, connect_args={"check_same_thread": False}, echo=echo)
        if ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(engine, "connect", _set_wal_mode)
        return engine
    return create_engine(
        db_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,
        echo=echo,
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        store.create_user(User(username="alice", telephone="13800000000", hashed_password=hash_password("s3cret!A")))
        user = store.get_by_telephone("13800000000")
        store.close()
    """

    def __init__(self, db_url: str = DEFAULT_DATABASE_URL, engine: Engine | None = None) -> None:
        self.engine: Engine = engine if engine is not None else build_engine(db_url)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the telephone already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    telephone=user.telephone,
                    hashed_password=user.hashed_password,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_telephone(self, telephone: str) -> User | None:
        """Look up a user by exact telephone. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.telephone == telephone)).fetchone()
        return _row_to_user(row) if row is not None else None

    def telephone_exists(self, telephone: str) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(text("SELECT 1 FROM users WHERE telephone = :t"), {"t": telephone}).first()
        return found is not None

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> float:
        """Round-trip a trivial query and return the latency in milliseconds.

        Raises the driver's error (wrapped by SQLAlchemy) if the database is
        unreachable; the health check turns that into an unhealthy status.
        """
        start = time.perf_counter()
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return (time.perf_counter() - start) * 1000

    def pool_stats(self) -> dict:
        """Connection pool counters where the pool exposes them."""
        pool = self.engine.pool
        stats: dict = {"pool_class": type(pool).__name__, "pool_status": pool.status()}
        for name in ("size", "checkedin", "checkedout", "overflow"):
            method = getattr(pool, name, None)
            if callable(method):
                stats[name] = method()
        return stats

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        telephone=row.telephone,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
    )
