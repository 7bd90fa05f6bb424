from __future__ import annotations

import json

from actual_mcp_server.api import ActualAPIError
from actual_mcp_server.manifest import load_manifest
from actual_mcp_server.models import (
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
from actual_mcp_server.rule_dsl import DSL_HEADER
from actual_mcp_server.tools import ID_PARAM_NOTE, ToolResponse

from .conftest import BUDGET_ID

RULES = [
    {
        "id": "rule-1",
        "stage": None,
        "conditionsOp": "and",
        "conditions": [{"field": "payee", "op": "is", "value": "payee-1"}],
        "actions": [{"op": "set", "field": "category", "value": "cat-1"}],
    },
    {
        "id": "rule-2",
        "stage": "pre",
        "conditionsOp": "or",
        "conditions": [],
        "actions": [{"op": "link-schedule", "value": "sched-1"}],
    },
]


def test_tool_response_text():
    assert ToolResponse("plain").text == "plain"
    assert json.loads(ToolResponse({"a": [1]}).text) == {"a": [1]}


# ============================================================================
# METHOD DISCOVERY
# ============================================================================

async def test_list_methods_summary(tools):
    response = await tools.list_methods(ListMethodsInput(summary_only=True))

    assert not response.is_error
    assert response.payload["total_methods"] == len(load_manifest())
    assert "bank-sync" in response.payload["categories"]
    assert response.payload["methods_per_category"]["accounts"] == 7


async def test_list_methods_by_category_marks_id_params(tools):
    response = await tools.list_methods(ListMethodsInput(category=CategoryFilter.ACCOUNTS))

    payload = response.payload
    assert payload["category"] == "accounts"
    assert payload["count"] == len(payload["methods"]) == 7

    close = next(m for m in payload["methods"] if m["name"] == "closeAccount")
    params = {p["name"]: p for p in close["parameters"]}
    assert params["transferAccountId"]["description"].endswith(ID_PARAM_NOTE)
    assert not params["id"]["description"].endswith(ID_PARAM_NOTE)
    assert close["returns"]["type"]


async def test_list_all_methods(tools):
    response = await tools.list_methods(ListMethodsInput())

    assert response.payload["count"] == len(load_manifest())
    assert "Names are automatically resolved" in response.payload["note"]


# ============================================================================
# METHOD CALLS
# ============================================================================

async def test_call_method_success(tools):
    response = await tools.call_method(CallMethodInput(method="getBudgets"))

    assert not response.is_error
    assert response.payload["success"] is True
    assert response.payload["method"] == "getBudgets"


async def test_call_method_failure_is_flagged(tools):
    response = await tools.call_method(CallMethodInput(method="getAccounts", params={"x": 1}))

    assert response.is_error
    assert response.payload["error"] == "No budget is loaded."
    assert response.payload["params"] == {"x": 1}


# ============================================================================
# QUERIES
# ============================================================================

async def test_execute_query_builds_query(tools, client):
    client.results["aqlQuery"] = [{"id": "tx-1", "amount": -500}]

    response = await tools.execute_query(ExecuteQueryInput(
        budget_id=BUDGET_ID,
        table="transactions",
        filterExpressions=[{"category": None}, {"is_parent": False}],
        selectExpressions=["id", "amount"],
        orderExpressions=[{"date": "desc"}],
        limit=10,
    ))

    assert not response.is_error
    assert response.payload == {"success": True, "data": [{"id": "tx-1", "amount": -500}]}

    state = client.queries[0].serialize()
    assert state["table"] == "transactions"
    assert state["filterExpressions"] == [{"category": None}, {"is_parent": False}]
    assert state["selectExpressions"] == ["id", "amount"]
    assert state["orderExpressions"] == [{"date": "desc"}]
    assert state["limit"] == 10
    assert state["offset"] is None
    assert state["rawMode"] is False


async def test_execute_query_requires_budget(tools, client):
    response = await tools.execute_query(ExecuteQueryInput(table="transactions"))

    assert response.is_error
    assert "No budget is loaded" in response.payload["error"]
    assert client.queries == []


async def test_execute_query_reports_api_errors(tools, client):
    client.errors["aqlQuery"] = ActualAPIError("no such field: amout")

    response = await tools.execute_query(ExecuteQueryInput(budget_id=BUDGET_ID, table="transactions"))

    assert response.is_error
    assert response.payload["error"] == "no such field: amout"


# ============================================================================
# SCHEMA
# ============================================================================

async def test_get_schema_section(tools):
    response = await tools.get_schema(GetSchemaInput(section=SchemaSection.OPERATORS))

    assert "$eq" in response.payload
    assert "transactions" not in response.payload


async def test_get_schema_single_table(tools):
    response = await tools.get_schema(GetSchemaInput(section=SchemaSection.TABLES, table="payees"))

    assert list(response.payload) == ["payees"]


async def test_get_schema_unknown_table(tools):
    response = await tools.get_schema(GetSchemaInput(table="ledger"))

    assert not response.is_error
    assert response.payload["error"] == 'Table "ledger" not found'
    assert "transactions" in response.payload["availableTables"]


# ============================================================================
# RULES
# ============================================================================

async def test_get_rules_json(tools, client):
    client.listings["getRules"] = RULES

    response = await tools.get_rules(GetRulesInput(budget_id="Household", format=RulesFormat.JSON))

    assert response.payload == {"count": 2, "rules": RULES}


async def test_get_rules_stage_filter(tools, client):
    client.listings["getRules"] = RULES

    run = await tools.get_rules(GetRulesInput(budget_id=BUDGET_ID, format=RulesFormat.JSON, stage=RuleStage.RUN))
    pre = await tools.get_rules(GetRulesInput(budget_id=BUDGET_ID, format=RulesFormat.JSON, stage=RuleStage.PRE))

    assert [r["id"] for r in run.payload["rules"]] == ["rule-1"]
    assert [r["id"] for r in pre.payload["rules"]] == ["rule-2"]


async def test_get_rules_dsl_resolves_names(tools, client):
    client.listings["getRules"] = RULES

    response = await tools.get_rules(GetRulesInput(budget_id=BUDGET_ID))

    assert isinstance(response.payload, str)
    assert response.payload.startswith(DSL_HEADER)
    lines = response.payload.splitlines()
    assert "rule-1 RUN IF payee is @payee:Grocer THEN set(category=@cat:Groceries)" in lines
    assert "rule-2 PRE IF (always) THEN link-schedule(@sched:Rent)" in lines


async def test_get_rules_dsl_names_categories_without_group(tools, client):
    client.listings["getCategories"] = [
        {"id": "group-food", "name": "Food"},
        {"id": "cat-1", "name": "Groceries", "group_id": None},
    ]
    client.listings["getRules"] = [RULES[0]]

    response = await tools.get_rules(GetRulesInput(budget_id=BUDGET_ID))

    assert "rule-1 RUN IF payee is @payee:Grocer THEN set(category=@cat:Groceries)" in response.payload.splitlines()


async def test_get_rules_dsl_without_names(tools, client):
    client.listings["getRules"] = RULES

    response = await tools.get_rules(GetRulesInput(budget_id=BUDGET_ID, resolve_names=False))

    assert "rule-1 RUN IF payee is payee-1 THEN set(category=cat-1)" in response.payload.splitlines()
    assert client.count("getPayees") == 0


async def test_get_rules_requires_budget(tools):
    response = await tools.get_rules(GetRulesInput())

    assert response.is_error
    assert "No budget is loaded" in response.payload["error"]
    assert "hint" in response.payload


async def test_get_rules_unknown_budget(tools):
    response = await tools.get_rules(GetRulesInput(budget_id="Vacation"))

    assert response.is_error
    assert response.payload["available"] == ["Household", "Remote Only"]
    assert response.payload["hint"] == "Use getBudgets() to list budgets."
