from __future__ import annotations

import pytest

from actual_mcp_server.api import ActualAPIError
from actual_mcp_server.config import Settings
from actual_mcp_server.invoker import MethodInvoker, build_args
from actual_mcp_server.manifest import get_method
from actual_mcp_server.query import q
from actual_mcp_server.registry import MethodRegistry
from actual_mcp_server.resolver import IdResolver
from actual_mcp_server.session import Session

from .conftest import BUDGET_ID, REMOTE_LOCAL_ID


def test_build_args_follows_manifest_order():
    method = get_method("getTransactions")

    args = build_args(method, {"endDate": "2024-01-31", "startDate": "2024-01-01", "accountId": "acct-1"})

    assert args == ["acct-1", "2024-01-01", "2024-01-31"]


def test_build_args_drops_trailing_missing_params():
    method = get_method("closeAccount")

    assert build_args(method, {"id": "acct-1"}) == ["acct-1"]
    assert build_args(method, {"id": "acct-1", "transferCategoryId": "cat-1"}) == ["acct-1", None, "cat-1"]


async def test_unknown_method(invoker, client):
    outcome = await invoker.invoke("getEverything")

    assert not outcome.ok
    payload = outcome.to_payload()
    assert payload["error"] == "Unknown method: getEverything"
    assert "list_api_methods" in payload["hint"]
    assert payload["method"] == "getEverything"
    assert client.calls == []


@pytest.mark.parametrize("method", ["batchBudgetUpdates", "runImport"])
async def test_callback_methods_are_unsupported(invoker, client, method):
    outcome = await invoker.invoke(method, {"func": "noop"})

    assert not outcome.ok
    assert "callback" in outcome.error["error"]
    assert client.calls == []


async def test_budget_required_before_data_methods(invoker, client):
    outcome = await invoker.invoke("getAccounts")

    assert not outcome.ok
    assert outcome.error["error"] == "No budget is loaded."
    assert "loadBudget" in outcome.error["hint"]
    assert client.count("init") == 1
    assert client.count("getAccounts") == 0


async def test_get_budgets_needs_no_budget(invoker, client):
    outcome = await invoker.invoke("getBudgets")

    assert outcome.ok
    assert [b["name"] for b in outcome.result] == ["Household", "Remote Only"]


async def test_params_map_to_positional_args_regardless_of_key_order(invoker, session, client):
    session.mark_budget_loaded(BUDGET_ID)
    client.results["getTransactions"] = [{"id": "tx-1"}]

    outcome = await invoker.invoke(
        "getTransactions",
        {"endDate": "2024-01-31", "accountId": "Checking", "startDate": "2024-01-01"},
    )

    assert outcome.ok
    assert outcome.to_payload() == {
        "success": True,
        "method": "getTransactions",
        "result": [{"id": "tx-1"}],
    }
    assert client.calls[-1] == ("getTransactions", "acct-1", "2024-01-01", "2024-01-31")


async def test_unresolvable_name_is_reported(invoker, session, client):
    session.mark_budget_loaded(BUDGET_ID)

    params = {"accountId": "Brokerage", "startDate": "2024-01-01", "endDate": "2024-01-31"}

    outcome = await invoker.invoke("getTransactions", params)

    assert not outcome.ok
    assert outcome.error["available"] == ["Checking", "Savings"]
    assert outcome.to_payload()["params"] == params
    assert client.count("getTransactions") == 0


async def test_load_budget_marks_session(invoker, session, client):
    outcome = await invoker.invoke("loadBudget", {"budgetId": "Household"})

    assert outcome.ok
    assert client.calls[-1] == ("loadBudget", BUDGET_ID)
    assert session.budget_loaded
    assert session.current_budget_id == BUDGET_ID


async def test_download_budget_looks_up_local_id(invoker, session, client):
    client.downloads["group-remote"] = REMOTE_LOCAL_ID

    outcome = await invoker.invoke("downloadBudget", {"syncId": "group-remote"})

    assert outcome.ok
    assert ("downloadBudget", "group-remote") in client.calls
    assert session.budget_loaded
    assert session.current_budget_id == REMOTE_LOCAL_ID


async def test_download_budget_without_local_copy_still_counts_as_loaded(invoker, session, client):
    outcome = await invoker.invoke("downloadBudget", {"syncId": "group-remote"})

    assert outcome.ok
    assert session.budget_loaded
    assert session.current_budget_id is None


async def test_failed_load_leaves_session_unloaded(invoker, session, client):
    client.errors["loadBudget"] = ActualAPIError("budget file is corrupt")

    outcome = await invoker.invoke("loadBudget", {"budgetId": BUDGET_ID})

    assert not outcome.ok
    assert outcome.error["error"] == "budget file is corrupt"
    assert not session.budget_loaded


async def test_api_error_hides_stack_unless_debug(invoker, session, client):
    session.mark_budget_loaded(BUDGET_ID)
    client.errors["getPayees"] = ActualAPIError("boom", name="TypeError", stack="at getPayees (api.js:1)")

    outcome = await invoker.invoke("getPayees")

    assert outcome.error == {"error": "boom"}


async def test_api_error_includes_stack_in_debug(client, tmp_path):
    settings = Settings(server_url="http://localhost:5006", data_dir=tmp_path, debug=True)
    session = Session(client, settings)
    registry = MethodRegistry.from_manifest(client)
    invoker = MethodInvoker(session, registry, IdResolver(registry))
    session.mark_budget_loaded(BUDGET_ID)
    client.errors["getPayees"] = ActualAPIError("boom", stack="at getPayees (api.js:1)")

    outcome = await invoker.invoke("getPayees")

    assert outcome.error == {"error": "boom", "stack": "at getPayees (api.js:1)"}


async def test_unexpected_errors_become_payloads(invoker, session, client):
    session.mark_budget_loaded(BUDGET_ID)
    client.errors["getPayees"] = RuntimeError("socket closed")

    outcome = await invoker.invoke("getPayees")

    assert not outcome.ok
    assert outcome.error["error"] == "Unexpected error - RuntimeError: socket closed"


async def test_aql_query_accepts_serialized_state(invoker, session, client):
    session.mark_budget_loaded(BUDGET_ID)
    client.results["aqlQuery"] = [{"id": "tx-1"}]
    state = q("transactions").filter({"amount": {"$lt": 0}}).limit(5).serialize()

    outcome = await invoker.invoke("aqlQuery", {"query": state})

    assert outcome.ok
    assert outcome.result == {"data": [{"id": "tx-1"}]}
    assert client.queries[0].serialize() == state


async def test_aql_query_rejects_state_without_table(invoker, session):
    session.mark_budget_loaded(BUDGET_ID)

    outcome = await invoker.invoke("aqlQuery", {"query": {"limit": 5}})

    assert not outcome.ok
    assert "table" in outcome.error["error"]


async def test_downloaded_budget_stays_active_for_its_sync_id(invoker, session, client):
    await invoker.invoke("downloadBudget", {"syncId": "group-remote"})

    await session.ensure_active("group-remote")

    assert client.count("downloadBudget") == 1
    assert client.count("loadBudget") == 0
