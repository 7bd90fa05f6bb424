"""
Smart budget loading.

Loads a budget by ID, name or sync ID. Budgets that only exist on the sync
server have no local ID until they are downloaded, so loading one is a
two-phase protocol: list, download, list again, then load the local copy.
"""

import logging
from typing import Any, Dict, List, NamedTuple, Optional

from .api import ActualClient
from .errors import DownloadError, NotFoundError

logger = logging.getLogger(__name__)


class LoadedBudget(NamedTuple):
    id: str
    name: str
    group_id: Optional[str] = None


def _describe(budget: Dict[str, Any]) -> str:
    text = f'"{budget.get("name")}"'
    if budget.get("id"):
        text += f' (id: {budget["id"]})'
    return text


def find_budget(budgets: List[Dict[str, Any]], id_or_name: str) -> Optional[Dict[str, Any]]:
    """First budget whose id, name or groupId equals the input."""
    for budget in budgets:
        if id_or_name in (budget.get("id"), budget.get("name"), budget.get("groupId")):
            return budget
    return None


async def smart_load_budget(client: ActualClient, id_or_name: str) -> LoadedBudget:
    """
    Load a budget, downloading it from the sync server if needed.

    Args:
        client: Actual API client
        id_or_name: Budget ID, name, or sync ID (groupId)

    Returns:
        The loaded budget's local id and name

    Raises:
        NotFoundError: If no budget matches
        DownloadError: If a download did not produce a local copy
    """
    budgets = await client.get_budgets()
    match = find_budget(budgets, id_or_name)

    if match is None:
        available = [_describe(b) for b in budgets]
        raise NotFoundError(
            f'Budget "{id_or_name}" not found. Available: {", ".join(available)}',
            available=[str(b.get("name")) for b in budgets],
            hint="Use getBudgets() to list budgets.",
        )

    group_id = match.get("groupId")
    if group_id and not match.get("id"):
        logger.info("Downloading remote budget %s", _describe(match))
        await client.download_budget(group_id)

        refreshed = await client.get_budgets()
        downloaded = next(
            (b for b in refreshed if b.get("groupId") == group_id and b.get("id")),
            None,
        )
        if downloaded is None:
            raise DownloadError(f'Failed to download budget "{id_or_name}". Try again.')
        match = downloaded

    if not match.get("id"):
        raise NotFoundError(f'Budget "{id_or_name}" has no local ID to load.')

    await client.load_budget(match["id"])
    logger.info("Loaded budget %s", _describe(match))
    return LoadedBudget(id=match["id"], name=str(match.get("name")), group_id=match.get("groupId"))


async def local_id_for_sync_id(client: ActualClient, sync_id: str) -> Optional[str]:
    """Local ID of a downloaded budget, looked up by its sync ID."""
    for budget in await client.get_budgets():
        if budget.get("groupId") == sync_id and budget.get("id"):
            return budget["id"]
    return None
