import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

import db_retry
from db_retry import is_transient_error, retry_query
from errors import ValidationError


class FlakyQuery:
    def __init__(self, failures, error=None):
        self.failures = failures
        self.error = error or OperationalError("SELECT 1", {}, Exception("connection reset"))
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "rows"


class FakeSession:
    def __init__(self):
        self.rollbacks = 0

    def rollback(self):
        self.rollbacks += 1


@pytest.fixture
def sleeps(monkeypatch):
    waits = []
    monkeypatch.setattr(db_retry.time, "sleep", waits.append)
    return waits


def test_transient_errors_are_retried_with_backoff(sleeps):
    query = FlakyQuery(failures=2)
    session = FakeSession()

    assert retry_query(query, retries=3, delay=0.5, session=session) == "rows"
    assert query.calls == 3
    assert sleeps == [0.5, 1.0]
    assert session.rollbacks == 2


def test_gives_up_after_last_attempt(sleeps):
    query = FlakyQuery(failures=5)
    with pytest.raises(OperationalError):
        retry_query(query, retries=3, delay=1)
    assert query.calls == 3
    assert sleeps == [1, 2]


def test_non_transient_errors_propagate_immediately(sleeps):
    query = FlakyQuery(failures=1, error=IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
    with pytest.raises(IntegrityError):
        retry_query(query)
    assert query.calls == 1
    assert sleeps == []


def test_retries_must_be_positive():
    with pytest.raises(ValueError):
        retry_query(lambda: None, retries=0)


def test_is_transient_error():
    assert is_transient_error(OperationalError("SELECT 1", {}, Exception("database is locked")))
    assert is_transient_error(DBAPIError("SELECT 1", {}, Exception("Connection timed out")))
    assert is_transient_error(DBAPIError("SELECT 1", {}, Exception("ECONNREFUSED 127.0.0.1:5432")))
    assert not is_transient_error(ValueError("bad value"))
    assert not is_transient_error(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))


@pytest.mark.parametrize("exc", [
    RuntimeError("Connection timed out"),
    ValidationError("connection_type must be a string"),
    KeyError("timeout"),
    IntegrityError("INSERT", {}, Exception("connection_id violates foreign key")),
])
def test_application_errors_mentioning_connections_are_not_retried(sleeps, exc):
    assert not is_transient_error(exc)

    query = FlakyQuery(failures=1, error=exc)
    with pytest.raises(type(exc)):
        retry_query(query)
    assert query.calls == 1
    assert sleeps == []
