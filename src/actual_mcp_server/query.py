"""
AQL query builder.

Mirrors the `q()` builder of the Actual API: every method returns a new
Query, and `serialize()` produces the state the API executes.

    q("transactions").filter({"amount": {"$lt": 0}}).select(["id", "date"]).limit(10)
"""

from typing import Any, Dict, List, Optional, Union

Expression = Union[str, Dict[str, Any]]


class Query:
    """Immutable AQL query."""

    def __init__(self, state: Dict[str, Any]):
        self._state = {
            "tableOptions": {},
            "filterExpressions": [],
            "selectExpressions": [],
            "groupExpressions": [],
            "orderExpressions": [],
            "calculation": False,
            "rawMode": False,
            "withDead": False,
            "validateRefs": True,
            "limit": None,
            "offset": None,
            **state,
        }

    @property
    def table(self) -> str:
        return self._state["table"]

    def _with(self, **changes: Any) -> "Query":
        return Query({**self._state, **changes})

    def options(self, table_options: Dict[str, Any]) -> "Query":
        return self._with(tableOptions=dict(table_options))

    def filter(self, expr: Dict[str, Any]) -> "Query":
        return self._with(filterExpressions=[*self._state["filterExpressions"], expr])

    def unfilter(self, keys: Optional[List[str]] = None) -> "Query":
        """Drop all filters, or only the filters on the given keys."""
        if keys is None:
            return self._with(filterExpressions=[])
        kept = [
            expr for expr in self._state["filterExpressions"]
            if not any(key in keys for key in expr)
        ]
        return self._with(filterExpressions=kept)

    def select(self, exprs: Union[Expression, List[Expression]] = "*") -> "Query":
        if not isinstance(exprs, list):
            exprs = [exprs]
        return self._with(selectExpressions=exprs, calculation=False)

    def calculate(self, expr: Any) -> "Query":
        return self._with(selectExpressions=[{"result": expr}], calculation=True)

    def group_by(self, exprs: Union[Expression, List[Expression]]) -> "Query":
        if not isinstance(exprs, list):
            exprs = [exprs]
        return self._with(groupExpressions=[*self._state["groupExpressions"], *exprs])

    def order_by(self, exprs: Union[Expression, List[Expression]]) -> "Query":
        if not isinstance(exprs, list):
            exprs = [exprs]
        return self._with(orderExpressions=[*self._state["orderExpressions"], *exprs])

    def limit(self, num: int) -> "Query":
        return self._with(limit=num)

    def offset(self, num: int) -> "Query":
        return self._with(offset=num)

    def raw(self) -> "Query":
        return self._with(rawMode=True)

    def with_dead(self) -> "Query":
        return self._with(withDead=True)

    def serialize(self) -> Dict[str, Any]:
        return dict(self._state)

    def __repr__(self) -> str:
        return f"Query({self._state!r})"


def q(table: str) -> Query:
    """Start a query against a table."""
    return Query({"table": table})


def query_from_state(state: Dict[str, Any]) -> Query:
    """Rebuild a query from serialized state (as sent to aqlQuery by callers)."""
    if not isinstance(state, dict) or not isinstance(state.get("table"), str):
        raise ValueError("A query must be an object with a 'table' name")
    return Query(state)
