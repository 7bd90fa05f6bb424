"""
Actual API Client - Handles all communication with the Actual API bridge.

The Actual Budget data-access library runs inside a small bridge process;
this client forwards calls to it over HTTP.

SECURITY AUDIT NOTES:
- All requests go ONLY to the configured bridge URL
- The sync server password is sent once, in the init call, and NEVER logged
- All results are returned as-is from the Actual API

Bridge protocol:
    POST /init            {"dataDir", "serverURL", "password"}
    POST /call/{method}   {"args": [...]}          -> {"data": ...}
    POST /query           {"query": {...}}          -> {"data": ...}
    POST /shutdown
Failures come back as {"error": {"message", "name", "stack", ...}}.
"""

import logging
from pathlib import Path
from typing import Optional, Dict, Any, List

import httpx

from .errors import ActualMCPError
from .query import Query

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 120.0  # seconds; budget downloads can be slow


class ActualAPIError(ActualMCPError):
    """
    Exception raised for failures surfaced by the Actual API itself.

    `name`, `stack` and `extra` carry diagnostic detail reported by the
    bridge. They are logged, not shown to the caller.
    """

    def __init__(
        self,
        message: str,
        name: Optional[str] = None,
        stack: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message, hint)
        self.name = name or "Error"
        self.stack = stack
        self.extra = dict(extra or {})

    def details(self) -> Dict[str, Any]:
        """Full error record for diagnostic logging."""
        return {
            "name": self.name,
            "message": self.message,
            "stack": self.stack,
            **self.extra,
        }


class ActualClient:
    """
    Async client for the Actual API bridge.

    All methods in this class:
    - Only contact the bridge
    - Return raw API results (no modification)
    - Raise ActualAPIError on failure
    """

    def __init__(self, bridge_url: str, timeout: float = REQUEST_TIMEOUT):
        self._bridge_url = bridge_url.rstrip("/")
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._bridge_url,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(self, endpoint: str, data: Optional[Dict[str, Any]] = None) -> Any:
        """
        POST to the bridge and unwrap the result.

        Args:
            endpoint: Bridge endpoint (e.g., "/call/getAccounts")
            data: JSON request body

        Returns:
            The "data" member of the bridge response

        Raises:
            ActualAPIError: On API, HTTP or network errors
        """
        client = await self._get_client()

        try:
            response = await client.post(endpoint, json=data or {})
        except httpx.TimeoutException:
            raise ActualAPIError("Request to the Actual API bridge timed out. Please try again.")
        except httpx.RequestError as e:
            raise ActualAPIError(
                f"Network error: {e}",
                hint=f"Check that the Actual API bridge is running at {self._bridge_url}.",
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            raise _error_from_body(error)

        if response.status_code == 401:
            raise ActualAPIError("Authentication with the Actual API bridge failed.")
        if response.status_code == 404:
            raise ActualAPIError(
                f"Bridge endpoint not found: {endpoint}",
                hint="This may be a version mismatch between the manifest and the bridge.",
            )
        if response.status_code == 429:
            raise ActualAPIError("Rate limit exceeded. Please wait before making more requests.")
        if response.is_error:
            raise ActualAPIError(f"Bridge error {response.status_code}: {response.text[:200]}")

        if not isinstance(body, dict):
            raise ActualAPIError("Malformed response from the Actual API bridge.")
        return body.get("data")

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def init(self, data_dir: Path, server_url: str, password: Optional[str]) -> None:
        """Initialize the Actual API with a cache directory and sync server."""
        await self._request(
            "/init",
            {"dataDir": str(data_dir), "serverURL": server_url, "password": password or ""},
        )

    async def shutdown(self) -> None:
        """Release the Actual API's resources (closes the open budget)."""
        await self._request("/shutdown")

    async def call(self, method: str, *args: Any) -> Any:
        """Call an Actual API method with positional arguments."""
        logger.debug("Calling %s with %d argument(s)", method, len(args))
        return await self._request(f"/call/{method}", {"args": list(args)})

    # ========================================================================
    # BUDGET FILES
    # ========================================================================

    async def get_budgets(self) -> List[Dict[str, Any]]:
        """List local and remote budget files."""
        return await self.call("getBudgets")

    async def load_budget(self, budget_id: str) -> None:
        """Open a local budget file by its ID."""
        await self.call("loadBudget", budget_id)

    async def download_budget(self, sync_id: str, options: Optional[Dict[str, Any]] = None) -> None:
        """Download a budget from the sync server by its sync ID (groupId)."""
        if options:
            await self.call("downloadBudget", sync_id, options)
        else:
            await self.call("downloadBudget", sync_id)

    # ========================================================================
    # ENTITY LISTINGS
    # ========================================================================

    async def get_accounts(self) -> List[Dict[str, Any]]:
        return await self.call("getAccounts")

    async def get_categories(self) -> List[Dict[str, Any]]:
        return await self.call("getCategories")

    async def get_payees(self) -> List[Dict[str, Any]]:
        return await self.call("getPayees")

    async def get_schedules(self) -> List[Dict[str, Any]]:
        return await self.call("getSchedules")

    async def get_rules(self) -> List[Dict[str, Any]]:
        return await self.call("getRules")

    # ========================================================================
    # QUERIES
    # ========================================================================

    async def aql_query(self, query: Query) -> Dict[str, Any]:
        """Run an AQL query. Returns an object with a "data" member."""
        data = await self._request("/query", {"query": query.serialize()})
        return {"data": data}


def _error_from_body(error: Any) -> ActualAPIError:
    """Build an ActualAPIError from the bridge's error record."""
    if not isinstance(error, dict):
        return ActualAPIError(str(error))

    extra = {k: v for k, v in error.items() if k not in ("name", "message", "stack")}
    return ActualAPIError(
        str(error.get("message") or "Unknown error"),
        name=error.get("name"),
        stack=error.get("stack"),
        extra=extra,
    )
