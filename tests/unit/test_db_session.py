from __future__ import annotations

from types import SimpleNamespace

import pytest
from sqlalchemy.exc import DBAPIError

from assemblyvote.core.errors import TransactionConflict
from assemblyvote.db.session import is_serialization_failure, retry_on_conflict, serializable_transaction


class DriverError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


class RecordingSession:
    def __init__(self, dialect: str, *, in_transaction: bool = True) -> None:
        self.calls: list[tuple] = []
        self._bind = SimpleNamespace(dialect=SimpleNamespace(name=dialect))
        self._in_transaction = in_transaction

    def get_bind(self) -> SimpleNamespace:
        return self._bind

    def in_transaction(self) -> bool:
        return self._in_transaction

    def commit(self) -> None:
        self.calls.append(("commit",))
        self._in_transaction = False

    def rollback(self) -> None:
        self.calls.append(("rollback",))
        self._in_transaction = False

    def execute(self, statement) -> None:
        self.calls.append(("execute", str(statement)))
        self._in_transaction = True

    def connection(self, execution_options: dict | None = None) -> None:
        self.calls.append(("connection", execution_options))
        self._in_transaction = True


def _serialization_failure(sqlstate: str = "40001") -> DBAPIError:
    return DBAPIError("UPDATE units SET current_representative_id = ?", {}, DriverError(sqlstate))


def test_isolation_level_is_set_before_the_first_statement() -> None:
    session = RecordingSession("postgresql")

    with serializable_transaction(session):
        session.execute("SELECT 1")

    assert session.calls == [
        ("commit",),
        ("connection", {"isolation_level": "SERIALIZABLE"}),
        ("execute", "SELECT 1"),
        ("commit",),
    ]


def test_sqlite_takes_the_write_lock_up_front() -> None:
    session = RecordingSession("sqlite", in_transaction=False)

    with serializable_transaction(session):
        pass

    assert session.calls == [("execute", "BEGIN IMMEDIATE"), ("commit",)]


@pytest.mark.parametrize("sqlstate", ["40001", "40P01"])
def test_serialization_failure_becomes_transaction_conflict(sqlstate: str) -> None:
    session = RecordingSession("postgresql", in_transaction=False)

    with pytest.raises(TransactionConflict) as raised:
        with serializable_transaction(session):
            raise _serialization_failure(sqlstate)

    assert raised.value.status_code == 409
    assert session.calls[-1] == ("rollback",)


def test_other_database_errors_are_not_retryable() -> None:
    session = RecordingSession("postgresql", in_transaction=False)
    unique_violation = _serialization_failure("23505")

    assert not is_serialization_failure(unique_violation)
    with pytest.raises(DBAPIError):
        with serializable_transaction(session):
            raise unique_violation
    assert session.calls[-1] == ("rollback",)


def test_retry_on_conflict_reruns_until_success() -> None:
    outcomes = [TransactionConflict("lost"), TransactionConflict("lost"), "done"]

    def operation() -> str:
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert retry_on_conflict(operation) == "done"
    assert outcomes == []


def test_retry_on_conflict_gives_up_after_the_last_attempt() -> None:
    attempts: list[int] = []

    def operation() -> None:
        attempts.append(1)
        raise TransactionConflict("lost")

    with pytest.raises(TransactionConflict):
        retry_on_conflict(operation, attempts=2)
    assert len(attempts) == 2
