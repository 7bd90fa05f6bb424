"""
Method registry: maps manifest method names to async handlers.

Built once at startup. Every handler takes positional arguments in
manifest parameter order and awaits the Actual API.
"""

from functools import partial
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from .api import ActualClient
from .manifest import MethodDescriptor, load_manifest
from .query import Query, query_from_state

Handler = Callable[..., Awaitable[Any]]


class MethodRegistry:
    """Name → handler lookup for the API methods the server can call."""

    def __init__(self, handlers: Dict[str, Handler]):
        self._handlers = dict(handlers)

    @classmethod
    def from_manifest(
        cls,
        client: ActualClient,
        methods: Optional[Iterable[MethodDescriptor]] = None,
    ) -> "MethodRegistry":
        handlers: Dict[str, Handler] = {}
        for method in methods if methods is not None else load_manifest():
            handlers[method.name] = partial(client.call, method.name)

        # Queries arrive as serialized state and must be rebuilt first
        if "aqlQuery" in handlers:
            handlers["aqlQuery"] = partial(_run_aql_query, client)
        return cls(handlers)

    def get(self, name: str) -> Optional[Handler]:
        return self._handlers.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


async def _run_aql_query(client: ActualClient, query: Any = None) -> Any:
    if not isinstance(query, Query):
        query = query_from_state(query)
    return await client.aql_query(query)
