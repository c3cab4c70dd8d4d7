"""Pure, side-effect-free walks over a NodeStore.

Roots are treated as single-member branch groups: two independent roots in
the same store are never reported as siblings of each other.
"""

from collections.abc import Sequence

from branchchat.models import BranchInfo
from branchchat.tree.store import NodeStore


def path_to_root(store: NodeStore, node_id: str) -> list[str]:
    """Return [root, ..., node_id] by walking parent pointers.

    Raises NodeNotFoundError if node_id is unknown. Terminates because a
    parent always exists before its child and is never retargeted.
    """
    path: list[str] = []
    current: str | None = node_id
    while current is not None:
        node = store.get(current)
        path.append(node.node_id)
        current = node.parent_id
    path.reverse()
    return path


def sibling_ids(store: NodeStore, node_id: str) -> list[str]:
    """Ids sharing node_id's parent, in creation order (including node_id)."""
    node = store.get(node_id)
    if node.parent_id is None:
        return [node.node_id]
    return list(store.get(node.parent_id).children_ids)


def sibling_count(store: NodeStore, node_id: str) -> int:
    return len(sibling_ids(store, node_id))


def branch_index(store: NodeStore, node_id: str) -> int:
    """0-based position of node_id among its siblings."""
    return sibling_ids(store, node_id).index(node_id)


def has_siblings(store: NodeStore, node_id: str) -> bool:
    return sibling_count(store, node_id) > 1


def branch_info(store: NodeStore, node_id: str) -> BranchInfo:
    siblings = sibling_ids(store, node_id)
    return BranchInfo(
        node_id=node_id,
        branch_index=siblings.index(node_id),
        sibling_count=len(siblings),
        has_siblings=len(siblings) > 1,
        sibling_ids=siblings,
    )


def latest_leaf(store: NodeStore, node_id: str) -> str:
    """Follow the newest child from node_id down to a leaf."""
    node = store.get(node_id)
    while node.children_ids:
        node = store.get(node.children_ids[-1])
    return node.node_id


def validate_thread(store: NodeStore, thread: Sequence[str]) -> bool:
    """Check the active-thread path condition.

    The empty thread is valid. Unknown ids make the thread invalid rather
    than raising.
    """
    if not thread:
        return True
    if any(node_id not in store for node_id in thread):
        return False
    if store.get(thread[0]).parent_id is not None:
        return False
    for parent_id, child_id in zip(thread, thread[1:]):
        if child_id not in store.get(parent_id).children_ids:
            return False
    return True


def ensure_valid_thread(store: NodeStore, thread: Sequence[str]) -> list[str]:
    """Return thread as a list, or raise InvalidThreadError."""
    if not validate_thread(store, thread):
        raise InvalidThreadError(list(thread))
    return list(thread)


def verify_integrity(store: NodeStore) -> None:
    """Check referential integrity and parent/child consistency.

    Raises IntegrityError describing the first violation found.
    """
    expected: dict[str, list[str]] = {node.node_id: [] for node in store}
    for node in store:
        if node.parent_id is None:
            continue
        if node.parent_id not in expected:
            raise IntegrityError(
                f"Node {node.node_id} references missing parent {node.parent_id}"
            )
        expected[node.parent_id].append(node.node_id)

    for node in store:
        if list(node.children_ids) != expected[node.node_id]:
            raise IntegrityError(
                f"Node {node.node_id} children {list(node.children_ids)} "
                f"do not match {expected[node.node_id]}"
            )


class InvalidThreadError(Exception):
    def __init__(self, thread: list[str]) -> None:
        self.thread = thread
        super().__init__(f"Not a root-to-node path: {thread}")


class IntegrityError(Exception):
    pass
