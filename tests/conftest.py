from __future__ import annotations

from typing import Any, Optional

import pytest

from actual_mcp_server.config import Settings
from actual_mcp_server.invoker import MethodInvoker
from actual_mcp_server.registry import MethodRegistry
from actual_mcp_server.resolver import IdResolver
from actual_mcp_server.session import Session
from actual_mcp_server.tools import ActualTools

BUDGET_ID = "11111111-2222-3333-4444-555555555555"
REMOTE_LOCAL_ID = "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"


class FakeActualClient:
    """Records calls; serves canned budgets, listings and results."""

    def __init__(
        self,
        budgets: Optional[list[dict]] = None,
        listings: Optional[dict[str, list]] = None,
        results: Optional[dict[str, Any]] = None,
    ) -> None:
        self.budgets = [dict(b) for b in budgets or []]
        self.listings = dict(listings or {})
        self.results = dict(results or {})
        self.errors: dict[str, Exception] = {}
        self.downloads: dict[str, str] = {}
        self.calls: list[tuple] = []
        self.queries: list = []
        self.closed = False

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    async def init(self, data_dir, server_url, password) -> None:
        self.calls.append(("init", str(data_dir), server_url, password))

    async def shutdown(self) -> None:
        self.calls.append(("shutdown",))

    async def close(self) -> None:
        self.closed = True

    async def call(self, method: str, *args: Any) -> Any:
        self.calls.append((method, *args))
        if method in self.errors:
            raise self.errors[method]
        if method == "getBudgets":
            return [dict(b) for b in self.budgets]
        if method == "downloadBudget":
            local_id = self.downloads.get(args[0])
            for budget in self.budgets:
                if local_id and budget.get("groupId") == args[0]:
                    budget["id"] = local_id
            return None
        if method in self.listings:
            return self.listings[method]
        return self.results.get(method)

    async def get_budgets(self):
        return await self.call("getBudgets")

    async def load_budget(self, budget_id: str) -> None:
        await self.call("loadBudget", budget_id)

    async def download_budget(self, sync_id: str, options=None) -> None:
        await self.call("downloadBudget", sync_id)

    async def get_accounts(self):
        return await self.call("getAccounts")

    async def get_categories(self):
        return await self.call("getCategories")

    async def get_payees(self):
        return await self.call("getPayees")

    async def get_schedules(self):
        return await self.call("getSchedules")

    async def get_rules(self):
        return await self.call("getRules")

    async def aql_query(self, query):
        self.queries.append(query)
        if "aqlQuery" in self.errors:
            raise self.errors["aqlQuery"]
        return {"data": self.results.get("aqlQuery", [])}


@pytest.fixture(autouse=True)
def _no_keyring(monkeypatch):
    monkeypatch.setattr("keyring.get_password", lambda service, username: None)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(server_url="http://localhost:5006", data_dir=tmp_path / "actual-data")


@pytest.fixture
def client() -> FakeActualClient:
    return FakeActualClient(
        budgets=[
            {"id": BUDGET_ID, "name": "Household", "groupId": "group-household"},
            {"name": "Remote Only", "groupId": "group-remote"},
        ],
        listings={
            "getAccounts": [
                {"id": "acct-1", "name": "Checking"},
                {"id": "acct-2", "name": "Savings"},
            ],
            "getPayees": [{"id": "payee-1", "name": "Grocer"}],
            "getCategories": [
                {"id": "group-food", "name": "Food"},
                {"id": "cat-1", "name": "Groceries", "group_id": "group-food"},
            ],
            "getSchedules": [{"id": "sched-1", "name": "Rent"}],
        },
    )


@pytest.fixture
def session(client, settings) -> Session:
    return Session(client, settings)


@pytest.fixture
def registry(client) -> MethodRegistry:
    return MethodRegistry.from_manifest(client)


@pytest.fixture
def invoker(session, registry) -> MethodInvoker:
    return MethodInvoker(session, registry, IdResolver(registry))


@pytest.fixture
def tools(session, invoker) -> ActualTools:
    return ActualTools(session, invoker)
