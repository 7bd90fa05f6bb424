"""
Error taxonomy for the Actual MCP server.

Every error carries a human-readable message and, where the caller can do
something about it, a remediation hint. Tools turn these into structured
error payloads instead of letting them cross the protocol boundary.
"""

from typing import Any, Dict, List, Optional


class ActualMCPError(Exception):
    """Base class for all errors raised by this package."""

    hint: Optional[str] = None
    stack: Optional[str] = None

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if hint is not None:
            self.hint = hint

    def to_payload(self, include_stack: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.hint:
            payload["hint"] = self.hint
        if include_stack and self.stack:
            payload["stack"] = self.stack
        return payload


class ConfigurationError(ActualMCPError):
    """Required configuration is missing at startup."""


class UnknownMethodError(ActualMCPError):
    """The requested method is not in the manifest."""

    hint = "Use list_api_methods to see available methods."


class UnsupportedError(ActualMCPError):
    """The method cannot be expressed as a flat named-parameter call."""

    hint = "Use the individual methods that this function would wrap instead."


class PreconditionError(ActualMCPError):
    """A session precondition is not met (no budget loaded)."""

    hint = (
        "Call loadBudget(budgetId) first or pass a budget_id. "
        "Use getBudgets() to see available budgets."
    )


class NotFoundError(ActualMCPError):
    """A name or ID did not match any listed entity."""

    def __init__(
        self,
        message: str,
        available: Optional[List[str]] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message, hint)
        self.available = list(available or [])

    def to_payload(self, include_stack: bool = False) -> Dict[str, Any]:
        payload = super().to_payload(include_stack)
        if self.available:
            payload["available"] = self.available
        return payload


class DownloadError(ActualMCPError):
    """A budget download finished but no local copy appeared."""

    hint = "Try again. If it keeps failing, check the sync server."


def format_error(e: Exception, include_stack: bool = False) -> Dict[str, Any]:
    """Error payload for consistent error responses."""
    if isinstance(e, ActualMCPError):
        return e.to_payload(include_stack)
    return {"error": f"Unexpected error - {type(e).__name__}: {e}"}
