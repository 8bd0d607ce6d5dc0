"""ORM mappings and PostgreSQL DDL for every table."""

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import configure_mappers
from sqlalchemy.schema import CreateTable

from app.db.base import Base


def test_mappers_configure():
    configure_mappers()


@pytest.mark.parametrize(
    "table",
    [
        "users",
        "facilities",
        "facility_routes",
        "reservations",
        "payment_approvals",
        "reservation_acknowledgements",
        "payment_approval_acknowledgements",
        "notifications",
        "transactions",
    ],
)
def test_table_compiles_for_postgresql(table):
    ddl = str(CreateTable(Base.metadata.tables[table]).compile(dialect=postgresql.dialect()))
    assert f"CREATE TABLE {table}" in ddl


def test_reservation_links_to_at_most_one_payment_approval():
    column = Base.metadata.tables["reservations"].c.payment_approval_id
    assert column.unique
    assert column.nullable


def test_acknowledgements_unique_per_role():
    constraints = {
        c.name for c in Base.metadata.tables["reservation_acknowledgements"].constraints if c.name
    }
    assert "uq_reservation_ack_role" in constraints
