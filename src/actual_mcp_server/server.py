"""
Actual Budget MCP Server - Main entry point.

This file implements the MCP server with all Actual Budget tools.
Run with: python -m actual_mcp_server.server

Or via the CLI: actual-mcp

stdout carries the MCP protocol; all diagnostics go to stderr.
"""

import asyncio
import logging
import signal
import sys
from contextlib import asynccontextmanager
from typing import Annotated, Any, Dict, List, Optional, Union

from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult, TextContent
from pydantic import Field, ValidationError

from . import __version__
from .api import ActualClient
from .config import Settings, get_password, load_settings, store_password
from .errors import ConfigurationError
from .invoker import MethodInvoker
from .models import (
    CallMethodInput,
    CategoryFilter,
    ExecuteQueryInput,
    GetRulesInput,
    GetSchemaInput,
    ListMethodsInput,
    RulesFormat,
    RuleStage,
    SchemaSection,
)
from .registry import MethodRegistry
from .resolver import IdResolver
from .session import Session
from .tools import ActualTools, ToolResponse

logger = logging.getLogger(__name__)

BudgetId = Annotated[
    Optional[str],
    Field(description="Budget ID, name or sync ID to auto-load. If omitted, uses the currently loaded budget."),
]
Expression = Union[Dict[str, Any], str]


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def to_call_result(response: ToolResponse) -> CallToolResult:
    """Wrap a tool response as MCP content, flagging errors."""
    return CallToolResult(
        content=[TextContent(type="text", text=response.text)],
        isError=response.is_error,
    )


def invalid_arguments(e: ValidationError) -> CallToolResult:
    errors = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
    )
    return to_call_result(ToolResponse({"error": f"Invalid arguments: {errors}"}, is_error=True))


def build_tools(settings: Settings) -> ActualTools:
    """Wire client, session, registry, resolver and invoker together."""
    client = ActualClient(settings.bridge_url)
    session = Session(client, settings)
    registry = MethodRegistry.from_manifest(client)
    invoker = MethodInvoker(session, registry, IdResolver(registry))
    return ActualTools(session, invoker)


def _log_uncaught(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    """Keep the server alive on errors no handler caught."""
    exc = context.get("exception")
    logger.error("Uncaught async error: %s", context.get("message"), exc_info=exc)


# ============================================================================
# MCP SERVER SETUP
# ============================================================================

def create_server(settings: Settings, tools: Optional[ActualTools] = None) -> FastMCP:
    """Create the FastMCP app with all tools bound to one session."""
    tools = tools or build_tools(settings)

    @asynccontextmanager
    async def lifespan(server):
        """Route stray async errors to the log and release the API on exit."""
        asyncio.get_running_loop().set_exception_handler(_log_uncaught)
        try:
            yield {"tools": tools}
        finally:
            logger.info("Shutting down...")
            await tools.session.shutdown()

    mcp = FastMCP("actual_mcp", lifespan=lifespan)

    # ========================================================================
    # METHOD DISCOVERY
    # ========================================================================

    @mcp.tool(
        name="list_api_methods",
        annotations={
            "title": "List Actual API Methods",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        structured_output=False,
    )
    async def list_api_methods(
        category: Annotated[CategoryFilter, Field(description="Category filter, or 'all'")] = CategoryFilter.ALL,
        summary_only: Annotated[bool, Field(description="Only return method counts per category")] = False,
    ) -> CallToolResult:
        """Discover available Actual Budget API methods with their parameters, types, and descriptions.

        Call this BEFORE using call_api_method. Methods are organized by category:
        lifecycle, budget, transactions, accounts, categories, payees, rules,
        schedules, query, and bank-sync.
        """
        try:
            params = ListMethodsInput(category=category, summary_only=summary_only)
        except ValidationError as e:
            return invalid_arguments(e)
        return to_call_result(await tools.list_methods(params))

    # ========================================================================
    # METHOD CALLS
    # ========================================================================

    @mcp.tool(
        name="call_api_method",
        annotations={
            "title": "Call Actual API Method",
            "readOnlyHint": False,
            "destructiveHint": True,
            "idempotentHint": False,
            "openWorldHint": False,
        },
        structured_output=False,
    )
    async def call_api_method(
        method: Annotated[str, Field(description="API method name, e.g. 'getAccounts'. See list_api_methods.")],
        params: Annotated[
            Optional[Dict[str, Any]],
            Field(description="Named parameters for the method as a JSON object. See list_api_methods."),
        ] = None,
    ) -> CallToolResult:
        """Call an Actual Budget API method by name.

        Call list_api_methods first to discover methods and their parameters.
        Most methods need a loaded budget: use getBudgets() to list budgets,
        then loadBudget(budgetId) or downloadBudget(syncId). ID parameters
        accept entity names as well as UUIDs.
        """
        try:
            call = CallMethodInput(method=method, params=params or {})
        except ValidationError as e:
            return invalid_arguments(e)
        return to_call_result(await tools.call_method(call))

    # ========================================================================
    # QUERY TOOLS
    # ========================================================================

    @mcp.tool(
        name="execute_aql_query",
        annotations={
            "title": "Execute AQL Query",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        structured_output=False,
    )
    async def execute_aql_query(
        table: Annotated[str, Field(description="Table: transactions, accounts, categories, payees, schedules, category_groups")],
        budget_id: BudgetId = None,
        tableOptions: Annotated[Optional[Dict[str, Any]], Field(description="Table options, e.g. {\"splits\": \"grouped\"}")] = None,
        filterExpressions: Annotated[Optional[List[Dict[str, Any]]], Field(description="Filter conditions")] = None,
        selectExpressions: Annotated[Optional[List[Expression]], Field(description="Fields to select")] = None,
        groupExpressions: Annotated[Optional[List[Expression]], Field(description="Fields to group by")] = None,
        orderExpressions: Annotated[Optional[List[Expression]], Field(description="Sort order")] = None,
        limit: Annotated[Optional[int], Field(description="Max rows to return")] = None,
        offset: Annotated[Optional[int], Field(description="Rows to skip")] = None,
        rawMode: Annotated[bool, Field(description="Return raw DB values")] = False,
        withDead: Annotated[bool, Field(description="Include soft-deleted records")] = False,
    ) -> CallToolResult:
        """Execute an AQL (Actual Query Language) query against the budget database.

        Call get_aql_schema first: do not guess field names or syntax.

        Example - 10 uncategorized transactions:
        {"table": "transactions",
         "filterExpressions": [{"category": null}, {"is_parent": false}],
         "selectExpressions": ["id", "date", "amount", {"payee_name": "payee.name"}],
         "orderExpressions": [{"date": "desc"}],
         "limit": 10}
        """
        try:
            params = ExecuteQueryInput(
                budget_id=budget_id,
                table=table,
                tableOptions=tableOptions,
                filterExpressions=filterExpressions,
                selectExpressions=selectExpressions,
                groupExpressions=groupExpressions,
                orderExpressions=orderExpressions,
                limit=limit,
                offset=offset,
                rawMode=rawMode,
                withDead=withDead,
            )
        except ValidationError as e:
            return invalid_arguments(e)
        return to_call_result(await tools.execute_query(params))

    @mcp.tool(
        name="get_aql_schema",
        annotations={
            "title": "Get AQL Schema",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        structured_output=False,
    )
    async def get_aql_schema(
        section: Annotated[SchemaSection, Field(description="'all', 'tables', 'operators' or 'functions'")] = SchemaSection.ALL,
        table: Annotated[Optional[str], Field(description="With 'tables' or 'all', only this table")] = None,
    ) -> CallToolResult:
        """Get AQL schema information (tables, fields, operators, functions) for building queries."""
        try:
            params = GetSchemaInput(section=section, table=table)
        except ValidationError as e:
            return invalid_arguments(e)
        return to_call_result(await tools.get_schema(params))

    # ========================================================================
    # RULE TOOLS
    # ========================================================================

    @mcp.tool(
        name="get_rules",
        annotations={
            "title": "Get Rules",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": False,
        },
        structured_output=False,
    )
    async def get_rules(
        budget_id: BudgetId = None,
        format: Annotated[RulesFormat, Field(description="'dsl' (compact) or 'json' (full data)")] = RulesFormat.DSL,
        stage: Annotated[RuleStage, Field(description="'pre', 'run' (normal), 'post' or 'all'")] = RuleStage.ALL,
        resolve_names: Annotated[bool, Field(description="Show names instead of UUIDs, e.g. @cat:Groceries")] = True,
    ) -> CallToolResult:
        """Get budget rules in a compact DSL (default) or full JSON.

        DSL: one rule per line, [id] [stage] IF conditions THEN actions, with
        entity references like @payee:Name, @cat:Name, @acct:Name, @sched:Name.

        Example:
          abc123-... RUN IF payee_name contains AMAZON THEN set(category=@cat:Shopping)

        To update a rule, fetch it with format=json, then call_api_method updateRule.
        """
        try:
            params = GetRulesInput(
                budget_id=budget_id,
                format=format,
                stage=stage,
                resolve_names=resolve_names,
            )
        except ValidationError as e:
            return invalid_arguments(e)
        return to_call_result(await tools.get_rules(params))

    return mcp


# ============================================================================
# CLI ENTRY POINT
# ============================================================================

def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def main():
    """Main entry point for the MCP server."""
    import argparse

    parser = argparse.ArgumentParser(description="Actual Budget MCP Server")
    parser.add_argument(
        "command",
        nargs="?",
        choices=["run", "store-password", "check-config"],
        default="run",
        help="Command to execute (default: run)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args()

    if args.command == "store-password":
        print("Enter your Actual sync server password:")
        password = input("> ").strip()
        if password:
            if store_password(password):
                print("✓ Password stored securely in OS keyring.")
            else:
                print("✗ Failed to store password. Set ACTUAL_PASSWORD environment variable instead.")
        else:
            print("✗ No password provided.")
        return

    if args.command == "check-config":
        try:
            settings = load_settings()
        except ConfigurationError as e:
            print(f"✗ {e}")
            sys.exit(1)
        print(f"✓ Server URL: {settings.server_url}")
        print(f"  Bridge URL: {settings.bridge_url}")
        print(f"  Data dir: {settings.data_dir}")
        print(f"  Budget: {settings.budget_id or '(none, load one per session)'}")
        print(f"  Password: {'set' if get_password() else 'not set'}")
        return

    # Default: run the MCP server (stdio)
    try:
        settings = load_settings()
    except ConfigurationError as e:
        configure_logging()
        logger.error("%s. %s", e, e.hint or "")
        sys.exit(1)

    configure_logging(settings.debug)

    # SIGTERM shuts down like Ctrl-C so the lifespan can release the API
    signal.signal(signal.SIGTERM, signal.default_int_handler)

    logger.info("Actual Budget MCP server starting")
    logger.info("Server URL: %s", settings.server_url)
    logger.info("Data dir: %s", settings.data_dir)
    logger.info("Budget: %s", settings.budget_id or "(auto-detect)")

    mcp = create_server(settings)
    try:
        mcp.run()
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
