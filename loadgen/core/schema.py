"""
Sample schema used by the workload.

Creates the `company` and `employee` tables and seeds them when empty. The
`competitor` table is deliberately never created.
"""

from __future__ import annotations

import logging

from loadgen.connectors import DatabaseConnection

logger = logging.getLogger(__name__)

SEED_COMPANIES: tuple[str, ...] = ("Grafana Labs", "Azure", "Amazon", "Google")

SEED_EMPLOYEES: tuple[tuple[str, str, int], ...] = (
    ("Grafana Labs", "Alice", 120000),
    ("Grafana Labs", "Bob", 110000),
    ("Azure", "Charlie", 130000),
    ("Azure", "David", 125000),
    ("Amazon", "Eve", 115000),
    ("Amazon", "Frank", 105000),
    ("Google", "Grace", 140000),
    ("Google", "Heidi", 135000),
)

_DDL: dict[str, tuple[str, ...]] = {
    "mysql": (
        """CREATE TABLE IF NOT EXISTS company (
            companyid INT NOT NULL AUTO_INCREMENT PRIMARY KEY,
            companyname VARCHAR(50) NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS employee (
            employeeid INT NOT NULL AUTO_INCREMENT PRIMARY KEY,
            companyid INT NOT NULL,
            employeename VARCHAR(50) NOT NULL,
            salary INT NOT NULL,
            FOREIGN KEY (companyid) REFERENCES company(companyid)
        )""",
    ),
    "postgresql": (
        """CREATE TABLE IF NOT EXISTS company (
            companyid SERIAL PRIMARY KEY,
            companyname VARCHAR(50) NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS employee (
            employeeid SERIAL PRIMARY KEY,
            companyid INT NOT NULL REFERENCES company(companyid),
            employeename VARCHAR(50) NOT NULL,
            salary INT NOT NULL
        )""",
    ),
}


def ddl_for(dialect: str) -> tuple[str, ...]:
    try:
        return _DDL[dialect]
    except KeyError:
        raise ValueError(f"Unsupported dialect: {dialect!r}") from None


async def _is_empty(conn: DatabaseConnection, table: str) -> bool:
    rows = await conn.query(f"SELECT COUNT(*) AS total FROM {table}")
    return not rows or int(rows[0]["total"]) == 0


async def _company_ids(conn: DatabaseConnection) -> dict[str, int]:
    """Lowest companyid per seed company name; the workload may have churned the rest."""
    marks = ", ".join("?" for _ in SEED_COMPANIES)
    rows = await conn.query(
        "SELECT companyid, companyname FROM company "
        f"WHERE companyname IN ({marks}) ORDER BY companyid",
        SEED_COMPANIES,
    )
    ids: dict[str, int] = {}
    for row in rows:
        ids.setdefault(row["companyname"], int(row["companyid"]))
    return ids


async def ensure_schema(conn: DatabaseConnection, dialect: str) -> dict[str, int]:
    """
    Create the sample tables if missing and seed empty tables.

    Returns:
        Rows inserted per table
    """
    for statement in ddl_for(dialect):
        await conn.execute(" ".join(statement.split()))

    inserted = {"company": 0, "employee": 0}
    if await _is_empty(conn, "company"):
        for name in SEED_COMPANIES:
            inserted["company"] += await conn.execute(
                "INSERT INTO company (companyname) VALUES (?)", (name,)
            )
    if await _is_empty(conn, "employee"):
        ids = await _company_ids(conn)
        missing = [name for name in SEED_COMPANIES if name not in ids]
        if missing:
            for name in missing:
                inserted["company"] += await conn.execute(
                    "INSERT INTO company (companyname) VALUES (?)", (name,)
                )
            ids = await _company_ids(conn)
        for company, employeename, salary in SEED_EMPLOYEES:
            inserted["employee"] += await conn.execute(
                "INSERT INTO employee (companyid, employeename, salary) VALUES (?, ?, ?)",
                (ids[company], employeename, salary),
            )

    logger.info(
        "Sample schema ready (seeded company=%d, employee=%d)",
        inserted["company"],
        inserted["employee"],
    )
    return inserted
