"""
Dynamic method invocation.

Calls any manifest method by name with a bag of named parameters:
validate against the manifest, check session preconditions, resolve entity
names to IDs, map named parameters to positional arguments, call, and
normalize the outcome into a success or error payload.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .api import ActualAPIError
from .budgets import local_id_for_sync_id
from .errors import ActualMCPError, PreconditionError, UnknownMethodError, UnsupportedError, format_error
from .manifest import MethodDescriptor, get_method
from .registry import MethodRegistry
from .resolver import IdResolver
from .session import Session

logger = logging.getLogger(__name__)

# Methods that don't require a budget to be loaded first
NO_BUDGET_REQUIRED = frozenset({
    "getBudgets",
    "loadBudget",
    "downloadBudget",
    "sync",
    "getServerVersion",
})

# Methods that load a budget as a side effect
LOADS_BUDGET = frozenset({"loadBudget", "downloadBudget"})

# Methods that take a callback function (not callable with named parameters)
CALLBACK_METHODS = frozenset({"batchBudgetUpdates", "runImport"})


@dataclass
class InvocationResult:
    """Outcome of a method call: `result` on success, `error` payload otherwise."""
    ok: bool
    method: str
    params: Dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        if self.ok:
            return {"success": True, "method": self.method, "result": self.result}
        return {**(self.error or {}), "method": self.method, "params": self.params}


def build_args(method: MethodDescriptor, params: Dict[str, Any]) -> List[Any]:
    """
    Positional arguments in manifest parameter order.

    Missing parameters become None; trailing missing ones are dropped so the
    API sees them as omitted rather than explicitly null.
    """
    args = [params.get(p.name) for p in method.params]
    while args and args[-1] is None and method.params[len(args) - 1].name not in params:
        args.pop()
    return args


class MethodInvoker:
    """Validates and executes API method calls for a session."""

    def __init__(self, session: Session, registry: MethodRegistry, resolver: IdResolver):
        self._session = session
        self._registry = registry
        self._resolver = resolver

    async def invoke(self, method_name: str, params: Optional[Dict[str, Any]] = None) -> InvocationResult:
        """Call `method_name` with named `params`. Never raises."""
        params = dict(params or {})
        try:
            result = await self._invoke(method_name, params)
        except ActualMCPError as e:
            error = self._error_payload(e, method_name, params)
            return InvocationResult(ok=False, method=method_name, params=params, error=error)
        except Exception as e:
            logger.exception("Unexpected error calling %s", method_name)
            return InvocationResult(
                ok=False,
                method=method_name,
                params=params,
                error=format_error(e),
            )
        return InvocationResult(ok=True, method=method_name, params=params, result=result)

    async def _invoke(self, method_name: str, params: Dict[str, Any]) -> Any:
        method = get_method(method_name)
        if method is None:
            raise UnknownMethodError(f"Unknown method: {method_name}")

        if method_name in CALLBACK_METHODS:
            raise UnsupportedError(
                f"Method '{method_name}' requires a callback function and cannot be called via MCP."
            )

        await self._session.ensure_initialized()

        if method_name not in NO_BUDGET_REQUIRED and not self._session.budget_loaded:
            raise PreconditionError("No budget is loaded.")

        handler = self._registry.get(method_name)
        if handler is None:
            raise UnknownMethodError(
                f"Method '{method_name}' is defined in the manifest but not available in the API.",
                hint="This may be a version mismatch between the manifest and the Actual API.",
            )

        resolved = await self._resolver.resolve_params(params)
        args = build_args(method, resolved)

        logger.info("Calling %s", method_name)
        if method_name not in LOADS_BUDGET:
            return await handler(*args)

        async with self._session.budget_lock:
            result = await handler(*args)
            await self._track_loaded_budget(method_name, resolved)
        return result

    async def _track_loaded_budget(self, method_name: str, params: Dict[str, Any]) -> None:
        if method_name == "loadBudget":
            budget_id = params.get("budgetId") or params.get("id")
            self._session.mark_budget_loaded(budget_id)
            return

        # downloadBudget does not return the new local ID; look it up
        budget_id = None
        sync_id = params.get("syncId")
        if sync_id:
            try:
                budget_id = await local_id_for_sync_id(self._session.client, sync_id)
            except ActualAPIError as e:
                logger.warning("Could not look up local ID for sync ID %s: %s", sync_id, e)
        self._session.mark_budget_loaded(budget_id, sync_id)

    def _error_payload(self, error: ActualMCPError, method_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if isinstance(error, ActualAPIError):
            logger.debug(
                "API method error (raw): %s",
                json.dumps({"method": method_name, "params": params, "error": error.details()}, default=str, indent=2),
            )

        return format_error(error, include_stack=self._session.settings.debug)
