"""Identifier helpers for nodes, edges and port handles."""

import hashlib
import uuid
from typing import Callable, Optional

OUTPUT_HANDLE_PREFIX = "output-"
INPUT_HANDLE_PREFIX = "input-"

NodeIdFactory = Callable[[str], str]


def edge_id(
    source: str,
    source_handle: Optional[str],
    target: str,
    target_handle: Optional[str]
) -> str:
    """Derive an edge identifier from its endpoint fields.

    The same four fields always produce the same identifier, so re-creating an
    edge from persisted data is idempotent and two connections between the
    same ports collapse onto one id. Prefixed and bare handles naming the
    same port are equivalent.
    """
    key = "\x1f".join([
        source,
        strip_handle(source_handle, OUTPUT_HANDLE_PREFIX) or "",
        target,
        strip_handle(target_handle, INPUT_HANDLE_PREFIX) or "",
    ])
    return "edge_" + hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def random_node_id(type_id: str) -> str:
    return f"{type_id}_{uuid.uuid4().hex[:8]}"


def strip_handle(handle: Optional[str], prefix: str) -> Optional[str]:
    """Port name referenced by a prefixed or bare handle."""
    if handle is None:
        return None
    if handle.startswith(prefix):
        return handle[len(prefix):]
    return handle
