"""Export: markdown transcript of the active thread, JSON dump of the whole tree."""

from branchchat.models import Node
from branchchat.tree import navigator
from branchchat.tree.store import NodeStore

_ROLE_HEADINGS = {"user": "User", "assistant": "AI"}


def render_markdown(title: str | None, nodes: list[Node]) -> str:
    """Render a thread as a markdown chat transcript.

    System turns are left out; an empty thread yields just the title.
    """
    content = f"# {title or 'Untitled conversation'}\n\n"
    spoken = [n for n in nodes if n.turn.kind in _ROLE_HEADINGS]
    if spoken:
        content += "## Chat Thread\n\n"
        for node in spoken:
            content += f"### {_ROLE_HEADINGS[node.turn.kind]}\n\n{node.turn.text}\n\n"
    return content


def export_tree(
    conversation_id: str,
    title: str | None,
    store: NodeStore,
    active_thread: list[str],
) -> dict:
    """Every node of the conversation, every branch, in creation order."""
    export_nodes = []
    for node in store:
        info = navigator.branch_info(store, node.node_id)
        export_nodes.append({
            "node_id": node.node_id,
            "parent_id": node.parent_id,
            "children_ids": list(node.children_ids),
            "turn": node.turn.model_dump(),
            "created_at": node.created_at.isoformat(),
            "branch_index": info.branch_index,
            "sibling_count": info.sibling_count,
        })

    return {
        "conversation_id": conversation_id,
        "title": title,
        "active_thread": list(active_thread),
        "node_count": len(export_nodes),
        "nodes": export_nodes,
    }
