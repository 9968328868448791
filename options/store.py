"""
options/store.py -- SQLAlchemy Core persistence for option lists.

Pattern: Repository + Data Mapper, same as auth/store.py. Shares the engine
built at startup, so both stores draw from one connection pool.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = OptionStore(engine)
    store.add_option(Option(kind="industry", name="Manufacturing", payload={"children": []}))
    rows = store.list_options("industry")
"""

import json
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from options.models import Option

_metadata = MetaData()

_options = Table(
    "options",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("kind", String(30), nullable=False, index=True),
    Column("name", String(256), nullable=False),
    Column("payload", Text, nullable=False),  # JSON
    Column("created_at", String(32), nullable=False),
)


class OptionStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    def add_option(self, option: Option) -> int:
        """Insert an option and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _options.insert().values(
                    kind=option.kind,
                    name=option.name,
                    payload=json.dumps(option.payload),
                    created_at=datetime.now(timezone.utc).isoformat(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_options(self, kind: str) -> list[Option]:
        """Return all options of one kind in insertion order."""
        with self.engine.connect() as conn:
            rows = conn.execute(_options.select().where(_options.c.kind == kind).order_by(_options.c.id)).fetchall()
        return [_row_to_option(r) for r in rows]


def _row_to_option(row) -> Option:
    return Option(
        id=row.id,
        kind=row.kind,
        name=row.name,
        payload=json.loads(row.payload),
        created_at=row.created_at,
    )
