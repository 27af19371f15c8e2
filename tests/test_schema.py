#!/usr/bin/env python3
"""
Tests for sample schema creation and seeding.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from loadgen.connectors import DatabaseConnection
from loadgen.core.schema import SEED_COMPANIES, SEED_EMPLOYEES, ddl_for, ensure_schema
from loadgen.core.statements import MISSING_TABLE


class TableConnection(DatabaseConnection):
    """Keeps company/employee rows in memory with an auto-increment key."""

    def __init__(self, companies=(), employees=0, next_id=1):
        self.companies = list(companies)
        self.employees = [None] * employees
        self.next_id = next_id
        self.executed = []

    async def connect(self):
        pass

    async def query(self, sql, params=()):
        if sql.startswith("SELECT COUNT(*)"):
            table = sql.rsplit(" ", 1)[-1]
            rows = self.companies if table == "company" else self.employees
            return [{"total": len(rows)}]
        wanted = set(params)
        return [
            {"companyid": cid, "companyname": name}
            for cid, name in sorted(self.companies)
            if name in wanted
        ]

    async def execute(self, sql, params=()):
        self.executed.append((sql, tuple(params)))
        if sql.startswith("INSERT INTO company"):
            self.companies.append((self.next_id, params[0]))
            self.next_id += 1
            return 1
        if sql.startswith("INSERT INTO employee"):
            self.employees.append(tuple(params))
            return 1
        return 0

    async def close(self):
        pass

    @property
    def is_open(self):
        return True


@pytest.mark.asyncio
async def test_empty_tables_are_seeded():
    conn = TableConnection()
    inserted = await ensure_schema(conn, "mysql")

    assert inserted == {"company": len(SEED_COMPANIES), "employee": len(SEED_EMPLOYEES)}
    assert inserted == {"company": 4, "employee": 8}
    creates = [sql for sql, _ in conn.executed if sql.startswith("CREATE TABLE")]
    assert len(creates) == 2
    assert ("INSERT INTO company (companyname) VALUES (?)", ("Grafana Labs",)) in conn.executed
    assert conn.employees[0] == (1, "Alice", 120000)


@pytest.mark.asyncio
async def test_employees_reference_actual_company_ids():
    # Sequence no longer starts at 1 and one seed company was deleted.
    conn = TableConnection(
        companies=[(501, "Google"), (502, "Azure"), (503, "Grafana Labs")],
        next_id=900,
    )
    inserted = await ensure_schema(conn, "postgresql")

    assert inserted == {"company": 1, "employee": 8}
    assert (900, "Amazon") in conn.companies
    by_name = {name: company for company, name, _ in conn.employees}
    assert by_name["Alice"] == 503
    assert by_name["Charlie"] == 502
    assert by_name["Eve"] == 900
    assert by_name["Grace"] == 501


@pytest.mark.asyncio
async def test_duplicate_company_names_use_lowest_id():
    conn = TableConnection(
        companies=[(7, "Azure"), (3, "Azure"), (4, "Google"), (5, "Amazon"), (6, "Grafana Labs")],
    )
    await ensure_schema(conn, "mysql")
    by_name = {name: company for company, name, _ in conn.employees}
    assert by_name["Charlie"] == 3


@pytest.mark.asyncio
async def test_populated_tables_are_left_alone():
    conn = TableConnection(companies=[(1, "Azure")], employees=20)
    inserted = await ensure_schema(conn, "postgresql")

    assert inserted == {"company": 0, "employee": 0}
    assert not any(sql.startswith("INSERT") for sql, _ in conn.executed)


def test_ddl_never_creates_missing_table():
    for dialect in ("mysql", "postgresql"):
        assert all(MISSING_TABLE not in stmt for stmt in ddl_for(dialect))
    with pytest.raises(ValueError):
        ddl_for("oracle")
