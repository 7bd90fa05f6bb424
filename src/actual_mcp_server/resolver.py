"""
ID resolution layer.

Lets callers pass entity names wherever an API method expects an ID:
accountId="Checking" becomes the account's UUID. Values that already look
like UUIDs are passed through untouched.

Which listing method to search is decided by a route table:
1. Named overrides (syncId searches budgets by groupId)
2. Suffix patterns (transferAccountId searches accounts, ...)
3. The naming convention: fooId -> getFoos
A route whose listing method is not registered passes the value through.
"""

import logging
import re
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Pattern, Tuple

from .errors import NotFoundError
from .registry import MethodRegistry

logger = logging.getLogger(__name__)

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_category(entity: Dict[str, Any]) -> bool:
    """getCategories also lists category groups; only categories carry a group_id."""
    return "group_id" in entity


class ListingRoute(NamedTuple):
    listing: str
    id_field: str = "id"
    accepts: Optional[Callable[[Dict[str, Any]], bool]] = None


NAMED_ROUTES: Dict[str, ListingRoute] = {
    "syncId": ListingRoute("getBudgets", "groupId"),
}

PATTERN_ROUTES: Tuple[Tuple[Pattern[str], ListingRoute], ...] = (
    (re.compile(r"(?:^a|A)ccountId$"), ListingRoute("getAccounts")),
    (re.compile(r"(?:^c|C)ategoryId$"), ListingRoute("getCategories", accepts=is_category)),
    (re.compile(r"(?:^p|P)ayeeId$"), ListingRoute("getPayees")),
    (re.compile(r"(?:^s|S)cheduleId$"), ListingRoute("getSchedules")),
    (re.compile(r"^budgetId$"), ListingRoute("getBudgets")),
)


def is_uuid(value: str) -> bool:
    return bool(UUID_RE.match(value))


def derive_listing(param_name: str) -> Optional[str]:
    """accountId -> getAccounts. None if the name does not end in 'Id'."""
    if not param_name.endswith("Id") or len(param_name) <= 2:
        return None
    entity = param_name[:-2]
    return f"get{entity[0].upper()}{entity[1:]}s"


def route_for(param_name: str) -> Optional[ListingRoute]:
    route = NAMED_ROUTES.get(param_name)
    if route is not None:
        return route

    for pattern, pattern_route in PATTERN_ROUTES:
        if pattern.search(param_name):
            return pattern_route

    listing = derive_listing(param_name)
    return ListingRoute(listing) if listing else None


class IdResolver:
    """Resolves entity names to IDs using the registry's listing methods."""

    def __init__(self, registry: MethodRegistry):
        self._registry = registry

    async def resolve(self, param_name: str, value: str) -> str:
        """
        Resolve a parameter value from a name to an ID.

        Raises:
            NotFoundError: If no listed entity matches the value
        """
        if is_uuid(value):
            return value

        route = route_for(param_name)
        handler = self._registry.get(route.listing) if route else None
        if handler is None:
            return value

        entities: List[Dict[str, Any]] = await handler() or []
        if route.accepts is not None:
            entities = [e for e in entities if route.accepts(e)]

        match = next(
            (
                e for e in entities
                if e.get("id") == value or e.get("name") == value or e.get(route.id_field) == value
            ),
            None,
        )
        if match is None:
            available = [str(e.get("name") or e.get("id")) for e in entities]
            raise NotFoundError(
                f'{param_name} "{value}" not found. Available: {", ".join(available)}',
                available=available,
            )

        resolved = match.get(route.id_field)
        if not resolved:
            raise NotFoundError(
                f'{param_name} "{value}" matched "{match.get("name")}", which has no {route.id_field}.',
                hint="If this is a remote budget, download it first.",
            )

        if resolved != value:
            logger.debug("Resolved %s %r to %s via %s", param_name, value, resolved, route.listing)
        return resolved

    async def resolve_params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Resolve every string-valued parameter whose name ends in 'Id'."""
        resolved = dict(params)
        for key, value in params.items():
            if isinstance(value, str) and key.endswith("Id"):
                resolved[key] = await self.resolve(key, value)
        return resolved
