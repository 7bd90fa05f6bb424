"""
Session state for the MCP server.

One Session exists per server process. It owns the Actual client, knows
whether the API has been initialized and which budget is loaded, and
serializes first-time initialization and budget activation so concurrent
tool calls cannot start either twice.
"""

import asyncio
import logging
from typing import FrozenSet, Optional

from .api import ActualAPIError, ActualClient
from .budgets import LoadedBudget, smart_load_budget
from .config import Settings
from .errors import ActualMCPError, PreconditionError

logger = logging.getLogger(__name__)


class Session:
    """
    Process-wide session: initialization flag and active budget.

    `initialized` only ever goes from False to True. `budget_loaded` and
    `current_budget_id` change together, and only after a load succeeded.
    """

    def __init__(self, client: ActualClient, settings: Settings):
        self.client = client
        self.settings = settings
        self._client_ready = False
        self._initialized = False
        self._budget_loaded = False
        self._current_budget_id: Optional[str] = None
        self._current_aliases: FrozenSet[str] = frozenset()
        self._init_lock = asyncio.Lock()
        self._budget_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def budget_loaded(self) -> bool:
        return self._budget_loaded

    @property
    def budget_lock(self) -> asyncio.Lock:
        """Held while the active budget changes."""
        return self._budget_lock

    @property
    def current_budget_id(self) -> Optional[str]:
        return self._current_budget_id

    def mark_budget_loaded(self, budget_id: Optional[str], *aliases: Optional[str]) -> None:
        """
        Record a successful budget load.

        budget_id may be None when a load happened through a method that
        does not report the local ID (a raw downloadBudget call). `aliases`
        are other names for the same budget (its name, its sync ID) that
        ensure_active treats as already active.
        """
        self._budget_loaded = True
        self._current_budget_id = budget_id
        self._current_aliases = frozenset(a for a in (budget_id, *aliases) if a)

    def _activate(self, loaded: LoadedBudget) -> None:
        self.mark_budget_loaded(loaded.id, loaded.name, loaded.group_id)

    # ========================================================================
    # INITIALIZATION
    # ========================================================================

    async def ensure_initialized(self) -> None:
        """
        Initialize the Actual API once, then load the default budget if configured.

        `initialized` is published only after the default budget attempt, so
        concurrent first callers wait on the lock until the budget is ready.
        """
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            data_dir = self.settings.data_dir
            if not data_dir.exists():
                data_dir.mkdir(parents=True, exist_ok=True)
                logger.info("Created data directory: %s", data_dir)

            if not self._client_ready:
                await self.client.init(data_dir, self.settings.server_url, self.settings.password)
                self._client_ready = True
                logger.info("Actual API initialized (server: %s)", self.settings.server_url)

            if self.settings.budget_id:
                await self._load_default_budget(self.settings.budget_id)
            self._initialized = True

    async def _load_default_budget(self, id_or_name: str) -> None:
        async with self._budget_lock:
            try:
                loaded = await smart_load_budget(self.client, id_or_name)
            except ActualMCPError as e:
                logger.warning("Could not load default budget %s: %s", id_or_name, e)
                return
            self._activate(loaded)

    # ========================================================================
    # BUDGET ACTIVATION
    # ========================================================================

    async def ensure_active(self, id_or_name: Optional[str] = None) -> None:
        """
        Make sure a budget is loaded before working on it.

        - No budget given, one already loaded: reuse it
        - No budget given, none loaded: PreconditionError
        - Budget given and already active (by ID, name or sync ID): nothing to do
        - Budget given and different: smart-load it

        Raises:
            PreconditionError: If no budget is given and none is loaded
        """
        await self.ensure_initialized()

        if not id_or_name:
            if self._budget_loaded:
                return
            raise PreconditionError(
                "No budget is loaded. Supply a budget_id or load a budget first."
            )

        async with self._budget_lock:
            if self._budget_loaded and id_or_name in self._current_aliases:
                return
            loaded = await smart_load_budget(self.client, id_or_name)
            self._activate(loaded)

    # ========================================================================
    # SHUTDOWN
    # ========================================================================

    async def shutdown(self) -> None:
        """Release the Actual API and the HTTP client."""
        try:
            if self._client_ready:
                await self.client.shutdown()
        except ActualAPIError as e:
            logger.warning("Actual API shutdown failed: %s", e)
        finally:
            await self.client.close()
