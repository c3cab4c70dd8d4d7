"""Append-only in-memory node store for one conversation tree."""

import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from uuid import uuid4

from branchchat.models import Node, Turn

logger = logging.getLogger(__name__)


class NodeStore:
    """Holds every node ever created in a conversation, keyed by id.

    Insertion order is preserved, so iteration yields nodes in creation
    order. There is no update or delete: the only way a stored record
    changes is a parent gaining a child id.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}

    def create_node(self, parent_id: str | None, turn: Turn) -> str:
        """Insert a new node under parent_id and return its id.

        Raises OrphanParentError if parent_id is given but unknown.
        """
        node = Node(
            node_id=str(uuid4()),
            parent_id=parent_id,
            turn=turn,
            created_at=datetime.now(UTC),
        )
        self._insert(node)
        logger.debug(
            "Created %s node %s under %s", turn.kind, node.node_id, parent_id
        )
        return node.node_id

    def restore_node(self, node: Node) -> None:
        """Re-insert a previously created node, e.g. while replaying events.

        The node arrives without children; they are re-linked as their own
        records are restored.
        """
        if node.node_id in self._nodes:
            raise DuplicateNodeError(node.node_id)
        self._insert(node.model_copy(update={"children_ids": ()}))

    def get(self, node_id: str) -> Node:
        """Return the node with node_id. Raises NodeNotFoundError if absent."""
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NodeNotFoundError(node_id) from None

    def roots(self) -> list[Node]:
        """All parentless nodes, in creation order."""
        return [n for n in self._nodes.values() if n.parent_id is None]

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    def _insert(self, node: Node) -> None:
        if node.parent_id is not None:
            parent = self._nodes.get(node.parent_id)
            if parent is None:
                raise OrphanParentError(node.parent_id)
            self._nodes[parent.node_id] = parent.model_copy(
                update={"children_ids": (*parent.children_ids, node.node_id)}
            )
        self._nodes[node.node_id] = node


class NodeNotFoundError(Exception):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class OrphanParentError(Exception):
    def __init__(self, parent_id: str) -> None:
        self.parent_id = parent_id
        super().__init__(f"Parent node does not exist: {parent_id}")


class DuplicateNodeError(Exception):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node already exists: {node_id}")
