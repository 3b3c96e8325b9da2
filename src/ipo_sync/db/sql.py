"""SQL shared by the Postgres and SQLite adapters."""
from typing import Sequence

from ..core.errors import PersistenceError
from ..core.models import IPO_COLUMNS, FieldChange

SELECT_IPOS_SQL = f"SELECT {', '.join(IPO_COLUMNS)} FROM ipos"

MISSING_DETAILS_SQL = """
SELECT i.name AS ipo_name, i.details_ipo_id, i.url_rewrite
FROM ipos i
LEFT JOIN details_ipo d ON i.details_ipo_id = d.details_ipo_id
WHERE i.details_ipo_id IS NOT NULL AND d.details_ipo_id IS NULL
"""


def build_update_sql(changes: Sequence[FieldChange], paramstyle: str = "numeric") -> str:
    """
    UPDATE touching only the changed columns, id bound first.
    Column names are checked against the ipos schema before formatting.
    """
    for change in changes:
        if change.name not in IPO_COLUMNS or change.name == "id":
            raise PersistenceError(f"Refusing to update unknown column {change.name!r}")
    if paramstyle == "numeric":
        clauses = ", ".join(f"{c.name} = ${idx + 2}" for idx, c in enumerate(changes))
        return f"UPDATE ipos SET {clauses} WHERE id = $1"
    clauses = ", ".join(f"{c.name} = ?" for c in changes)
    return f"UPDATE ipos SET {clauses} WHERE id = ?"
