"""
MCP tool implementations.

Each tool is a plain coroutine that validates its input, does its work
against the session, and returns a ToolResponse. Tools never raise: every
failure becomes a structured error payload with is_error set.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Union

from .errors import ActualMCPError, NotFoundError, PreconditionError, format_error
from .invoker import MethodInvoker
from .manifest import MethodCategory, get_categories, get_method_summary, get_methods_by_category, load_manifest
from .models import (
    CallMethodInput,
    CategoryFilter,
    ExecuteQueryInput,
    GetRulesInput,
    GetSchemaInput,
    ListMethodsInput,
    RulesFormat,
    RuleStage,
)
from .query import q
from .resolver import is_category
from .rule_dsl import NameResolver, format_rules
from .schema import get_schema_section
from .session import Session

logger = logging.getLogger(__name__)

ID_PARAM_NOTE = " You can also pass the entity name instead of UUID - it will be resolved automatically."


@dataclass
class ToolResponse:
    """Tool output: a JSON payload or preformatted text, plus an error flag."""
    payload: Union[Dict[str, Any], str]
    is_error: bool = False

    @property
    def text(self) -> str:
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload, indent=2, ensure_ascii=False, default=str)


class ActualTools:
    """The tools exposed over MCP, bound to one session."""

    def __init__(self, session: Session, invoker: MethodInvoker):
        self._session = session
        self._invoker = invoker

    @property
    def session(self) -> Session:
        return self._session

    def _failure(self, e: Exception, **extra: Any) -> ToolResponse:
        if not isinstance(e, ActualMCPError):
            logger.exception("Unexpected tool error")
        payload = format_error(e, self._session.settings.debug)
        for key, value in extra.items():
            payload.setdefault(key, value)
        return ToolResponse(payload, is_error=True)

    # ========================================================================
    # METHOD DISCOVERY
    # ========================================================================

    async def list_methods(self, params: ListMethodsInput) -> ToolResponse:
        """List manifest methods, or a per-category count summary."""
        if params.summary_only:
            return ToolResponse({
                "total_methods": len(load_manifest()),
                "categories": [c.value for c in get_categories()],
                "methods_per_category": get_method_summary(),
                "hint": "Use list_api_methods with a specific category to see method details.",
            })

        if params.category == CategoryFilter.ALL:
            methods = list(load_manifest())
        else:
            methods = get_methods_by_category(MethodCategory(params.category.value))

        formatted = [
            {
                "name": m.name,
                "description": m.description,
                "category": m.category.value,
                "parameters": [
                    {
                        "name": p.name,
                        "type": p.type,
                        "required": p.required,
                        "description": p.description + ID_PARAM_NOTE if p.name.endswith("Id") else p.description,
                    }
                    for p in m.params
                ],
                "returns": m.returns.model_dump(),
            }
            for m in methods
        ]

        return ToolResponse({
            "count": len(formatted),
            "category": params.category.value,
            "methods": formatted,
            "note": (
                "ID parameters (accountId, categoryId, payeeId, etc.) accept either UUIDs "
                "or entity names. Names are automatically resolved to IDs."
            ),
        })

    # ========================================================================
    # METHOD CALLS
    # ========================================================================

    async def call_method(self, params: CallMethodInput) -> ToolResponse:
        """Call any manifest method by name."""
        outcome = await self._invoker.invoke(params.method, params.params)
        return ToolResponse(outcome.to_payload(), is_error=not outcome.ok)

    # ========================================================================
    # QUERIES
    # ========================================================================

    async def execute_query(self, params: ExecuteQueryInput) -> ToolResponse:
        """Build an AQL query from its parts and run it."""
        try:
            await self._session.ensure_active(params.budget_id)
        except PreconditionError as e:
            return self._failure(e)
        except Exception as e:
            return self._failure(e, hint=PreconditionError.hint)

        try:
            query = q(params.table)
            if params.tableOptions:
                query = query.options(params.tableOptions)
            for expr in params.filterExpressions or []:
                query = query.filter(expr)
            if params.selectExpressions:
                query = query.select(params.selectExpressions)
            if params.groupExpressions:
                query = query.group_by(params.groupExpressions)
            if params.orderExpressions:
                query = query.order_by(params.orderExpressions)
            if params.limit is not None:
                query = query.limit(params.limit)
            if params.offset is not None:
                query = query.offset(params.offset)
            if params.rawMode:
                query = query.raw()
            if params.withDead:
                query = query.with_dead()

            result = await self._session.client.aql_query(query)
            return ToolResponse({"success": True, "data": result.get("data")})
        except Exception as e:
            return self._failure(e)

    async def get_schema(self, params: GetSchemaInput) -> ToolResponse:
        """Return the AQL schema reference (no budget needed)."""
        try:
            return ToolResponse(get_schema_section(params.section.value, params.table))
        except NotFoundError as e:
            return ToolResponse({"error": e.message, "availableTables": e.available})

    # ========================================================================
    # RULES
    # ========================================================================

    async def get_rules(self, params: GetRulesInput) -> ToolResponse:
        """Rules in DSL (default) or JSON format, optionally filtered by stage."""
        try:
            await self._session.ensure_active(params.budget_id)
        except PreconditionError as e:
            return self._failure(e)
        except Exception as e:
            return self._failure(e, hint=PreconditionError.hint)

        try:
            client = self._session.client
            rules: List[Dict[str, Any]] = await client.get_rules() or []

            if params.stage != RuleStage.ALL:
                stage_value = None if params.stage == RuleStage.RUN else params.stage.value
                rules = [r for r in rules if r.get("stage") == stage_value]

            if params.format == RulesFormat.JSON:
                return ToolResponse({"count": len(rules), "rules": rules})

            resolver = await self._build_name_resolver() if params.resolve_names else None
            return ToolResponse(format_rules(rules, resolver))
        except Exception as e:
            return self._failure(e)

    async def _build_name_resolver(self) -> NameResolver:
        client = self._session.client
        payees, categories, accounts, schedules = await asyncio.gather(
            client.get_payees(),
            client.get_categories(),
            client.get_accounts(),
            client.get_schedules(),
        )
        return NameResolver(
            payee={p["id"]: p.get("name") for p in payees or []},
            category={c["id"]: c.get("name") for c in categories or [] if is_category(c)},
            account={a["id"]: a.get("name") for a in accounts or []},
            schedule={s["id"]: s.get("name") or s["id"] for s in schedules or []},
        )

