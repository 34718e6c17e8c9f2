"""Per-node configuration cache."""

import copy
from collections import OrderedDict
from typing import Any, Dict, Optional

from .logging import get_logger

logger = get_logger(__name__)


class NodeConfigCache:
    """Keeps the last edited parameter map of each node.

    Entries are independent copies of what the caller saved, so later
    mutations of the graph never leak into the cache and the reverse. The
    cache is bounded; the least recently used entry is evicted first.
    """

    def __init__(self, max_entries: int = 256):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._entries

    def save(self, node_id: str, parameters: Dict[str, Any]) -> None:
        """Store a copy of ``parameters`` for ``node_id``; last write wins."""
        self._entries[node_id] = copy.deepcopy(dict(parameters))
        self._entries.move_to_end(node_id)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted cached configuration for node {evicted}")

    def load(self, node_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the cached parameters, or None."""
        entry = self._entries.get(node_id)
        if entry is None:
            return None
        self._entries.move_to_end(node_id)
        return copy.deepcopy(entry)

    def delete(self, node_id: str) -> bool:
        return self._entries.pop(node_id, None) is not None

    def clear(self) -> None:
        if self._entries:
            logger.debug(f"Clearing {len(self._entries)} cached node configurations")
        self._entries.clear()

    def resolve(self, node_id: str, fallback: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Parameters to seed a configuration panel with.

        The cached map wins only when it is non-empty; otherwise a copy of
        ``fallback`` (the graph's own value) is returned.
        """
        cached = self.load(node_id)
        if cached:
            return cached
        return copy.deepcopy(dict(fallback or {}))
