"""
Statement catalogue and class weights.

Each iteration draws one statement class from a fixed categorical
distribution, then expands it into the statements that iteration executes.
"""

from __future__ import annotations

import bisect
import math
import random
from typing import Any

from loadgen.models import StatementClass, StatementPattern

# Fixed traffic mix. Not tunable at runtime.
CLASS_WEIGHTS: dict[StatementClass, float] = {
    StatementClass.SELECT: 0.60,
    StatementClass.INSERT: 0.15,
    StatementClass.UPDATE: 0.15,
    StatementClass.DELETE: 0.10,
}

KEY_MIN = 1
KEY_MAX = 1000
NAME_SUFFIX_MAX = 10000

COMPANY_NAMES: tuple[str, ...] = (
    "Acme Corporation",
    "TechStart Inc",
    "Global Solutions",
    "DataFlow Systems",
    "CloudNet Services",
    "Innovation Labs",
    "Digital Ventures",
    "Smart Analytics",
    "AI Research Corp",
    "Quantum Computing Ltd",
)

RENAMED_COMPANY_NAMES: tuple[str, ...] = (
    "Updated Corp",
    "Renamed LLC",
    "Modified Industries",
    "Changed Systems",
    "Revised Solutions",
)

# Never created by the sample schema.
MISSING_TABLE = "competitor"


class WeightTable:
    """
    Cumulative weight table for a categorical distribution.

    `pick(u)` maps a uniform draw in [0, 1) to a category with one lookup.
    """

    def __init__(self, weights: dict[Any, float]):
        if not weights:
            raise ValueError("weights must not be empty")
        if any(w < 0 for w in weights.values()):
            raise ValueError("weights must be non-negative")
        total = math.fsum(weights.values())
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"weights must sum to 1 (currently {total})")

        self._categories: list[Any] = []
        self._bounds: list[float] = []
        running = 0.0
        for category, weight in weights.items():
            if weight == 0:
                continue
            running += weight
            self._categories.append(category)
            self._bounds.append(running)
        # Float accumulation must not leave a gap just below 1.0.
        self._bounds[-1] = 1.0

    @property
    def bounds(self) -> list[tuple[Any, float]]:
        return list(zip(self._categories, self._bounds))

    def pick(self, u: float) -> Any:
        if not 0.0 <= u < 1.0:
            raise ValueError(f"draw must be in [0, 1), got {u!r}")
        return self._categories[bisect.bisect_right(self._bounds, u)]


CLASS_TABLE = WeightTable(CLASS_WEIGHTS)


def random_key(rng: random.Random) -> int:
    return rng.randint(KEY_MIN, KEY_MAX)


def _suffixed(pool: tuple[str, ...], rng: random.Random) -> str:
    return f"{rng.choice(pool)} #{rng.randrange(NAME_SUFFIX_MAX)}"


def random_company_name(rng: random.Random) -> str:
    return _suffixed(COMPANY_NAMES, rng)


def random_renamed_company_name(rng: random.Random) -> str:
    return _suffixed(RENAMED_COMPANY_NAMES, rng)


def _select(name: str, sql: str, params=None) -> StatementPattern:
    return StatementPattern(
        name=name,
        sql=" ".join(sql.split()),
        statement_class=StatementClass.SELECT,
        params=params,
    )


READ_PATTERNS: tuple[StatementPattern, ...] = (
    _select(
        "select_all_companies",
        "SELECT companyid, companyname FROM company LIMIT 100",
    ),
    _select(
        "select_by_id",
        "SELECT * FROM company WHERE companyid = ?",
        lambda rng: (random_key(rng),),
    ),
    _select(
        "select_by_name_pattern",
        "SELECT * FROM company WHERE companyname LIKE ?",
        lambda rng: ("%Lab%",),
    ),
    _select(
        "count_companies",
        "SELECT COUNT(*) as total FROM company",
    ),
    _select(
        "aggregate_query",
        """SELECT LEFT(companyname, 1) as initial, COUNT(*) as count
           FROM company GROUP BY initial""",
    ),
    _select(
        "inner_join_company_employee",
        """SELECT c.companyid, c.companyname, e.employeeid, e.employeename, e.salary
           FROM company c
           INNER JOIN employee e ON c.companyid = e.companyid
           ORDER BY c.companyname, e.employeename""",
    ),
    _select(
        "inner_join_with_aggregation",
        """SELECT c.companyid, c.companyname, COUNT(e.employeeid) as employee_count,
                  AVG(e.salary) as avg_salary
           FROM company c
           INNER JOIN employee e ON c.companyid = e.companyid
           GROUP BY c.companyid, c.companyname
           ORDER BY avg_salary DESC""",
    ),
    _select(
        "inner_join_high_salary",
        """SELECT c.companyname, e.employeename, e.salary
           FROM company c
           INNER JOIN employee e ON c.companyid = e.companyid
           WHERE e.salary > ?
           ORDER BY e.salary DESC""",
        lambda rng: (120000,),
    ),
    _select(
        "left_join_all_companies",
        """SELECT c.companyid, c.companyname, e.employeeid, e.employeename, e.salary
           FROM company c
           LEFT JOIN employee e ON c.companyid = e.companyid
           ORDER BY c.companyid""",
    ),
    _select(
        "left_join_all_companies_with_name_filter",
        """SELECT c.companyid, c.companyname, e.employeeid, e.employeename, e.salary
           FROM company c
           LEFT JOIN employee e ON c.companyid = e.companyid
           WHERE c.companyname LIKE ?
           ORDER BY c.companyid""",
        lambda rng: ("%Tech%",),
    ),
    _select(
        "left_join_all_companies_with_filter",
        """SELECT c.companyid, c.companyname, e.employeeid, e.employeename, e.salary
           FROM company c
           LEFT JOIN employee e ON c.companyid = e.companyid
           WHERE e.salary < ?
           ORDER BY c.companyid""",
        lambda rng: (100000,),
    ),
    # Approximates a FULL OUTER JOIN; rows duplicated on both sides collapse
    # under UNION. Dashboards are built on this exact shape.
    _select(
        "full_outer_join_simulation",
        """SELECT c.companyid, c.companyname, e.employeeid, e.employeename, e.salary
           FROM company c
           LEFT JOIN employee e ON c.companyid = e.companyid
           UNION
           SELECT c.companyid, c.companyname, e.employeeid, e.employeename, e.salary
           FROM company c
           RIGHT JOIN employee e ON c.companyid = e.companyid
           WHERE c.companyid IS NULL""",
    ),
    _select(
        "inner_join_salary_range",
        """SELECT c.companyname, COUNT(e.employeeid) as num_employees,
                  MIN(e.salary) as min_salary, MAX(e.salary) as max_salary
           FROM company c
           INNER JOIN employee e ON c.companyid = e.companyid
           GROUP BY c.companyid, c.companyname
           HAVING COUNT(e.employeeid) > ?""",
        lambda rng: (1,),
    ),
)

INSERT_COMPANY = StatementPattern(
    name="insert_company",
    sql="INSERT INTO company (companyname) VALUES (?)",
    statement_class=StatementClass.INSERT,
    params=lambda rng: (random_company_name(rng),),
)

INSERT_MISSING_TABLE = StatementPattern(
    name="insert_competitor",
    sql=f"INSERT INTO {MISSING_TABLE} (companyname) VALUES (?)",
    statement_class=StatementClass.INSERT,
    params=lambda rng: (random_company_name(rng),),
    expected_error=True,
)

UPDATE_COMPANY = StatementPattern(
    name="update_company",
    sql="UPDATE company SET companyname = ? WHERE companyid = ?",
    statement_class=StatementClass.UPDATE,
    params=lambda rng: (random_renamed_company_name(rng), random_key(rng)),
)

UPDATE_MISSING_TABLE = StatementPattern(
    name="update_competitor",
    sql=f"UPDATE {MISSING_TABLE} SET companyname = ? WHERE companyid = ?",
    statement_class=StatementClass.UPDATE,
    params=lambda rng: (random_renamed_company_name(rng), random_key(rng)),
    expected_error=True,
)

DELETE_COMPANY = StatementPattern(
    name="delete_company",
    sql="DELETE FROM company WHERE companyid = ?",
    statement_class=StatementClass.DELETE,
    params=lambda rng: (random_key(rng),),
)

WRITE_PLANS: dict[StatementClass, tuple[StatementPattern, ...]] = {
    StatementClass.INSERT: (INSERT_COMPANY, INSERT_MISSING_TABLE),
    StatementClass.UPDATE: (UPDATE_COMPANY, UPDATE_MISSING_TABLE),
    StatementClass.DELETE: (DELETE_COMPANY,),
}


def choose_statement_class(rng: random.Random) -> StatementClass:
    return CLASS_TABLE.pick(rng.random())


def plan_iteration(
    statement_class: StatementClass, rng: random.Random
) -> list[StatementPattern]:
    """Return the statements one iteration executes for a statement class."""
    if statement_class == StatementClass.SELECT:
        return [rng.choice(READ_PATTERNS)]
    return list(WRITE_PLANS[statement_class])


def all_patterns() -> list[StatementPattern]:
    out = list(READ_PATTERNS)
    for plan in WRITE_PLANS.values():
        out.extend(plan)
    return out
