"""Shared fixtures: in-memory SQLite databases with the plugin table layouts."""

import pytest

from ffc_migrations.activity import ActivityLogger
from ffc_migrations.crypto import FernetCryptoProvider
from ffc_migrations.introspection import ColumnIntrospector
from ffc_migrations.options import MemoryOptionStore
from ffc_migrations.schema import appointments_layout, submissions_layout
from ffc_migrations.storage import SQLiteStorage

TEST_SECRET = "test-secret-key-0123456789-abcdefghijklmnop"

IDENTIFIER_COLUMNS = """
    cpf_rf TEXT, cpf_rf_encrypted TEXT, cpf_rf_hash TEXT,
    cpf TEXT, cpf_encrypted TEXT, cpf_hash TEXT,
    rf TEXT, rf_encrypted TEXT, rf_hash TEXT
"""


def schema_sql(prefix: str = "") -> str:
    return f"""
    CREATE TABLE {prefix}ffc_submissions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        form_id INTEGER,
        email TEXT, email_encrypted TEXT, email_hash TEXT,
        user_ip TEXT, user_ip_encrypted TEXT,
        data TEXT, data_encrypted TEXT,
        {IDENTIFIER_COLUMNS}
    );
    CREATE INDEX {prefix}idx_submissions_cpf_rf_hash ON {prefix}ffc_submissions (cpf_rf_hash);
    CREATE TABLE {prefix}ffc_self_scheduling_appointments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT, email_encrypted TEXT, email_hash TEXT,
        phone TEXT, phone_encrypted TEXT,
        user_ip TEXT, user_ip_encrypted TEXT,
        custom_data TEXT, custom_data_encrypted TEXT,
        {IDENTIFIER_COLUMNS}
    );
    """


def insert_row(storage: SQLiteStorage, table: str, **values) -> int:
    """Insert one row and return its id."""
    if values:
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        storage.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", list(values.values())
        )
    else:
        storage.execute(f"INSERT INTO {table} DEFAULT VALUES")
    return storage.execute("SELECT last_insert_rowid() AS id")[0]["id"]


def fetch_row(storage: SQLiteStorage, table: str, row_id: int) -> dict:
    return storage.execute(f"SELECT * FROM {table} WHERE id = ?", [row_id])[0]


@pytest.fixture
def storage():
    """Connected in-memory database with both tables (no prefix)."""
    db = SQLiteStorage({"path": ":memory:"})
    db.connect()
    db.executescript(schema_sql())
    yield db
    db.close()


@pytest.fixture
def crypto():
    return FernetCryptoProvider(TEST_SECRET)


@pytest.fixture
def activity():
    return ActivityLogger(keep_entries=1000)


@pytest.fixture
def introspector(storage):
    return ColumnIntrospector(storage)


@pytest.fixture
def options():
    return MemoryOptionStore()


@pytest.fixture
def submissions():
    return submissions_layout()


@pytest.fixture
def appointments():
    return appointments_layout()


@pytest.fixture
def add_submission(storage):
    """Insert a submission row; returns its id."""
    def _add(**values):
        return insert_row(storage, "ffc_submissions", **values)
    return _add


@pytest.fixture
def add_appointment(storage):
    """Insert an appointment row; returns its id."""
    def _add(**values):
        return insert_row(storage, "ffc_self_scheduling_appointments", **values)
    return _add


@pytest.fixture
def legacy_encrypted(crypto):
    """Column values of a row encrypted before the CPF/RF split existed."""
    def _values(identifier: str, **extra):
        return {
            "cpf_rf_encrypted": crypto.encrypt(identifier),
            "cpf_rf_hash": crypto.hash(identifier),
            **extra,
        }
    return _values
