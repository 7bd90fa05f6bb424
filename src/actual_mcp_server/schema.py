"""
Static AQL reference document: tables and fields, operators, functions.

Shipped as aql_schema.json and loaded once. Read-only, needs no budget.
"""

import json
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, Optional

from .errors import NotFoundError


@lru_cache(maxsize=None)
def load_aql_schema() -> Dict[str, Dict[str, Any]]:
    return json.loads(
        resources.files(__package__).joinpath("aql_schema.json").read_text(encoding="utf-8")
    )


def get_schema_section(section: str = "all", table: Optional[str] = None) -> Dict[str, Any]:
    """
    Return a section of the AQL schema.

    Args:
        section: "all", "tables", "operators" or "functions"
        table: For "all" and "tables", restrict to a single table

    Raises:
        NotFoundError: If `table` is not a known table
    """
    schema = load_aql_schema()
    tables = schema["tables"]

    if table and section in ("all", "tables"):
        if table not in tables:
            raise NotFoundError(f'Table "{table}" not found', available=list(tables))
        tables = {table: tables[table]}

    if section == "tables":
        return tables
    if section == "operators":
        return schema["operators"]
    if section == "functions":
        return schema["functions"]
    return {"tables": tables, "operators": schema["operators"], "functions": schema["functions"]}
