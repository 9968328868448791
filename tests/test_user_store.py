"""
tests/test_user_store.py -- Unit tests for UserStore and OptionStore.

Each test gets a fresh in-memory SQLite engine.
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore, build_engine
from options.models import Option
from options.store import OptionStore


@pytest.fixture
def engine():
    engine = build_engine("sqlite:///:memory:")
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> UserStore:
    return UserStore(engine=engine)


def _user(telephone: str = "13700000000", username: str = "bob") -> User:
    return User(username=username, telephone=telephone, hashed_password="$2b$12$placeholder")


def test_create_and_fetch(store: UserStore):
    uid = store.create_user(_user())
    by_id = store.get_by_id(uid)
    by_phone = store.get_by_telephone("13700000000")
    assert by_id == by_phone
    assert by_id.id == uid
    assert by_id.username == "bob"
    assert by_id.created_at


def test_missing_lookups_return_none(store: UserStore):
    assert store.get_by_id(999) is None
    assert store.get_by_telephone("10000000000") is None


def test_telephone_is_unique(store: UserStore):
    store.create_user(_user())
    with pytest.raises(IntegrityError):
        store.create_user(_user(username="someone-else"))


def test_telephone_exists_and_count(store: UserStore):
    assert not store.telephone_exists("13700000000")
    store.create_user(_user())
    store.create_user(_user(telephone="13700000001"))
    assert store.telephone_exists("13700000000")
    assert store.count_users() == 2


def test_ping_and_pool_stats(store: UserStore):
    assert store.ping() >= 0
    stats = store.pool_stats()
    assert stats["pool_class"]
    assert store.dialect == "sqlite"


def test_option_store_round_trip(engine):
    options = OptionStore(engine)
    first = options.add_option(Option(kind="industry", name="Retail", payload={"code": "R"}))
    options.add_option(Option(kind="industry", name="Energy"))
    options.add_option(Option(kind="profession", name="Nurse"))

    rows = options.list_options("industry")
    assert [o.name for o in rows] == ["Retail", "Energy"]
    assert rows[0].id == first
    assert rows[0].payload == {"code": "R"}
    assert rows[1].payload == {}
    assert options.list_options("unknown") == []
