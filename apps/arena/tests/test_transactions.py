"""
Tests for the retrying transaction runner and the unavailable database stand-in.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from arena.database.models import Setting
from arena.database.transactions import is_transient_error, run_in_transaction
from arena.services import ledger_service, tournament_service
from arena.services.errors import ConfigurationError, TransientConflict


class _PgError(Exception):
    def __init__(self, sqlstate):
        super().__init__("conflict")
        self.sqlstate = sqlstate


@pytest.mark.parametrize(
    "error,expected",
    [
        (StaleDataError("version mismatch"), True),
        (OperationalError("UPDATE", {}, _PgError("40001")), True),
        (OperationalError("UPDATE", {}, _PgError("40P01")), True),
        (OperationalError("UPDATE", {}, Exception("database is locked")), True),
        (OperationalError("UPDATE", {}, _PgError("23505")), False),
        (ValueError("bad input"), False),
    ],
)
def test_is_transient_error(error, expected):
    assert is_transient_error(error) is expected


@pytest.mark.asyncio
async def test_retries_until_success(database):
    attempts = []

    async def _flaky(session):
        attempts.append(1)
        if len(attempts) < 3:
            raise StaleDataError("someone else got there first")
        session.add(Setting(key="retried", value="ok"))
        return "done"

    assert await run_in_transaction(database, _flaky, max_attempts=5) == "done"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(database):
    async def _always_stale(session):
        raise StaleDataError("still stale")

    with pytest.raises(TransientConflict):
        await run_in_transaction(database, _always_stale, max_attempts=2)


@pytest.mark.asyncio
async def test_validation_errors_roll_back(database):
    async def _half_done(session):
        session.add(Setting(key="half", value="written"))
        await session.flush()
        raise ValueError("changed my mind")

    with pytest.raises(ValueError, match="changed my mind"):
        await run_in_transaction(database, _half_done)

    async with database.session() as session:
        assert await session.get(Setting, "half") is None


@pytest.mark.asyncio
async def test_writes_fail_fast_without_database(unavailable_database):
    with pytest.raises(ConfigurationError):
        await ledger_service.add_funds(unavailable_database, "alice", 10)
    assert await tournament_service.get_all_tournaments(unavailable_database) == []
    assert await tournament_service.get_tournament(unavailable_database, 1) is None
