"""Conversation tree: append-only node store and pure navigation helpers."""

from branchchat.tree.navigator import InvalidThreadError, path_to_root, validate_thread
from branchchat.tree.store import NodeNotFoundError, NodeStore, OrphanParentError

__all__ = [
    "InvalidThreadError",
    "NodeNotFoundError",
    "NodeStore",
    "OrphanParentError",
    "path_to_root",
    "validate_thread",
]
