from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from dam.adapters.sqlite.migrator import SQLiteMigrator
from dam.adapters.sqlite_db import SQLiteUnitOfWork
from dam.domain.entities import Company, Role, User
from dam.rules.loader import load_rules
from dam.rules.models import Rules

PROJECT_ROOT = Path(__file__).resolve().parent.parent
MIGRATIONS_DIR = PROJECT_ROOT / "migrations"


class MockTimePort:
    """Mock time provider."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now or datetime(2025, 1, 1, 9, 0, 0, tzinfo=UTC)

    def now_utc(self) -> datetime:
        return self._now

    def advance(self, seconds: int) -> None:
        self._now += timedelta(seconds=seconds)


@dataclass
class Directory:
    """Two companies and one user of each kind."""

    acme: Company
    globex: Company
    admin: User
    creator: User
    specialist: User
    outsider: User


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Fresh SQLite database with every migration applied."""
    path = str(tmp_path / "dam.db")
    SQLiteMigrator(path, str(MIGRATIONS_DIR)).run_migrations()
    return path


@pytest.fixture
def rules() -> Rules:
    # Load REAL rules from project root
    return load_rules(PROJECT_ROOT / "rules.yaml")


@pytest.fixture
def clock() -> MockTimePort:
    return MockTimePort()


@pytest.fixture
def directory(db_path: str) -> Directory:
    acme = Company(name="Acme")
    globex = Company(name="Globex")
    admin = User(email="admin@acme.test", name="Ada Admin", role=Role.ADMIN, company_id=acme.id)
    creator = User(
        email="carla@acme.test", name="Carla", role=Role.CONTENT_CREATOR, company_id=acme.id
    )
    specialist = User(
        email="sam@acme.test", name="Sam", role=Role.SEO_SPECIALIST, company_id=acme.id
    )
    outsider = User(
        email="olga@globex.test", name="Olga", role=Role.CONTENT_CREATOR, company_id=globex.id
    )

    with SQLiteUnitOfWork(db_path) as uow:
        uow.companies.save(acme)
        uow.companies.save(globex)
        for user in (admin, creator, specialist, outsider):
            uow.users.save(user)
        uow.commit()

    return Directory(
        acme=acme,
        globex=globex,
        admin=admin,
        creator=creator,
        specialist=specialist,
        outsider=outsider,
    )
