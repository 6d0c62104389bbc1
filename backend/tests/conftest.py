"""Shared fixtures: a seeded SQLite database and the sample entities.

Fixture data (customers, soft-delete excluded from every count):

    id  name          status    owner  employees (active link)
    1   Acme Corp     active    100    200
    2   Beta LLC      active    100    200
    3   Acme Beta     active    100
    4   Customer 4    active    101    (201, inactive link)
    5   Customer 5    active    300    300
    6-10 Customer N   active    101
    11-12 Customer N  inactive  101
    13  Deleted Co    active    101    (deleted_at set)

Gadgets use "enabled" as their active value.
"""

import pytest

from platformcore.access import (
    AccessRelationResolver,
    Identity,
    PolicyRegistry,
    SqlRelationProvider,
)
from platformcore.cache import RelationCache
from platformcore.config import Settings
from platformcore.dispatch import ListingDispatcher
from platformcore.entities import (
    AccessConfig,
    ColumnSpec,
    EntityDescriptor,
    EntityRegistry,
    JoinSpec,
    LinkSpec,
)
from platformcore.extensions import ExtensionRegistry
from platformcore.persistence import Database, DatabaseConfig
from platformcore.security import AntiForgeryTokenService

SECRET = "test-secret-key"

SCHEMA = [
    """CREATE TABLE app_customers (
        id INTEGER PRIMARY KEY,
        code TEXT NOT NULL,
        name TEXT NOT NULL,
        status TEXT NOT NULL,
        user_id INTEGER,
        deleted_at TEXT
    )""",
    """CREATE TABLE app_customer_employees (
        id INTEGER PRIMARY KEY,
        customer_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        status TEXT NOT NULL
    )""",
    """CREATE TABLE app_customer_branches (
        id INTEGER PRIMARY KEY,
        customer_id INTEGER NOT NULL,
        name TEXT NOT NULL
    )""",
    """CREATE TABLE app_gadgets (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        state TEXT NOT NULL,
        note TEXT
    )""",
]


def _customer_rows() -> list[str]:
    names = {1: "Acme Corp", 2: "Beta LLC", 3: "Acme Beta"}
    owners = {1: 100, 2: 100, 3: 100, 5: 300}
    rows = []
    for i in range(1, 13):
        status = "inactive" if i > 10 else "active"
        name = names.get(i, f"Customer {i}")
        rows.append(
            "INSERT INTO app_customers (id, code, name, status, user_id) "
            f"VALUES ({i}, 'C{i:03d}', '{name}', '{status}', {owners.get(i, 101)})"
        )
    rows.append(
        "INSERT INTO app_customers (id, code, name, status, user_id, deleted_at) "
        "VALUES (13, 'C013', 'Deleted Co', 'active', 101, '2026-01-01')"
    )
    return rows


SEED = _customer_rows() + [
    "INSERT INTO app_customer_employees (customer_id, user_id, status) VALUES (1, 200, 'active')",
    "INSERT INTO app_customer_employees (customer_id, user_id, status) VALUES (2, 200, 'active')",
    "INSERT INTO app_customer_employees (customer_id, user_id, status) VALUES (4, 201, 'inactive')",
    "INSERT INTO app_customer_employees (customer_id, user_id, status) VALUES (5, 300, 'active')",
    "INSERT INTO app_customer_branches (customer_id, name) VALUES (1, 'North')",
    "INSERT INTO app_customer_branches (customer_id, name) VALUES (1, 'South')",
    "INSERT INTO app_customer_branches (customer_id, name) VALUES (1, 'East')",
    "INSERT INTO app_customer_branches (customer_id, name) VALUES (2, 'Main')",
    "INSERT INTO app_gadgets (id, name, state, note) VALUES (1, 'Alpha', 'enabled', 'first')",
    "INSERT INTO app_gadgets (id, name, state, note) VALUES (2, 'Beta', 'enabled', NULL)",
    "INSERT INTO app_gadgets (id, name, state, note) VALUES (3, '50% Off', 'enabled', '')",
    "INSERT INTO app_gadgets (id, name, state, note) VALUES (4, 'snake_case', 'disabled', NULL)",
    "INSERT INTO app_gadgets (id, name, state, note) VALUES (5, 'snakeXcase', 'active', NULL)",
]


def seed_database(db: Database) -> None:
    db.execute_script(SCHEMA + SEED)


def make_customer_descriptor() -> EntityDescriptor:
    return EntityDescriptor(
        name="customer",
        table="app_customers",
        alias="c",
        columns=(
            ColumnSpec("c.id", "id"),
            ColumnSpec("c.code", "code"),
            ColumnSpec("c.name", "name"),
            ColumnSpec("c.status", "status"),
            ColumnSpec("COUNT(DISTINCT b.id)", "branch_count", sortable=False),
        ),
        searchable_columns=("c.code", "c.name"),
        base_joins=(JoinSpec("app_customer_branches", "b", "b.customer_id = c.id"),),
        base_where=("c.deleted_at IS NULL",),
        group_by="c.id",
        status_column="status",
        active_value="active",
        access=AccessConfig(
            owner_column="user_id",
            membership=LinkSpec(
                table="app_customer_employees",
                identity_column="user_id",
                target_column="customer_id",
                where="status = 'active'",
            ),
        ),
    )


def make_gadget_descriptor() -> EntityDescriptor:
    return EntityDescriptor(
        name="gadget",
        table="app_gadgets",
        alias="g",
        columns=(
            ColumnSpec("g.id", "id"),
            ColumnSpec("g.name", "name"),
            ColumnSpec("g.state", "state"),
            ColumnSpec("g.note", "note"),
        ),
        searchable_columns=("g.name",),
        status_column="state",
        active_value="enabled",
    )


@pytest.fixture(autouse=True)
def clear_registries():
    """Clear process-wide registries before and after each test."""
    EntityRegistry.clear()
    ExtensionRegistry.clear()
    PolicyRegistry.clear()
    yield
    EntityRegistry.clear()
    ExtensionRegistry.clear()
    PolicyRegistry.clear()


@pytest.fixture
def db(tmp_path):
    """Seeded SQLite database under tmp_path."""
    database = Database.from_config(DatabaseConfig(url=f"sqlite:///{tmp_path / 'test.db'}"))
    seed_database(database)
    yield database
    database.dispose()


@pytest.fixture
def customer():
    descriptor = make_customer_descriptor()
    EntityRegistry.register(descriptor)
    return descriptor


@pytest.fixture
def gadget():
    descriptor = make_gadget_descriptor()
    EntityRegistry.register(descriptor)
    return descriptor


@pytest.fixture
def admin():
    return Identity("1", {"manage_options", "view_customer_list", "view_gadget_list"})


@pytest.fixture
def employee():
    return Identity("200", {"view_customer_list", "view_own_customer"})


@pytest.fixture
def outsider():
    return Identity("999", {"view_customer_list", "view_own_customer"})


@pytest.fixture
def token_service():
    return AntiForgeryTokenService(SECRET)


@pytest.fixture
def resolver(db):
    return AccessRelationResolver(SqlRelationProvider(db), RelationCache())


@pytest.fixture
def settings():
    return Settings(secret_key=SECRET)


@pytest.fixture
def dispatcher(db, resolver, token_service, settings):
    return ListingDispatcher(db, resolver, token_service, settings=settings)
