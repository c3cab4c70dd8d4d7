"""Conversation controller: the only surface that mutates a conversation.

Owns the active thread for one conversation, creates nodes through the
NodeStore, and calls the ResponseGenerator whenever a new assistant turn is
needed. The newest assistant node always becomes the tip unless the caller
asks otherwise.

Concurrent generations are not serialized. If two are in flight, whichever
completes last sets the active thread (last write wins). Node creation never
conflicts, so the tree itself stays consistent regardless of completion
order.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from pydantic import BaseModel

from branchchat.generation.generator import ResponseGenerator
from branchchat.models import (
    ActiveThreadChangedPayload,
    AssistantTurn,
    BranchInfo,
    BranchPreview,
    GeneratedResponse,
    GenerationFailedPayload,
    Node,
    NodeCreatedPayload,
    Turn,
    UserTurn,
)
from branchchat.tree import navigator
from branchchat.tree.store import NodeStore

logger = logging.getLogger(__name__)

# Receives (event_type, payload) for every mutation, in mutation order. A call
# that raises has not recorded the event; it is offered again on the next flush.
EventJournal = Callable[[str, BaseModel], Awaitable[None]]

PREVIEW_LENGTH = 60


class ConversationController:
    """Mutation surface for one conversation tree."""

    def __init__(
        self,
        store: NodeStore,
        generator: ResponseGenerator,
        *,
        active_thread: Sequence[str] | None = None,
        journal: EventJournal | None = None,
    ) -> None:
        self._store = store
        self._generator = generator
        self._thread = navigator.ensure_valid_thread(store, active_thread or [])
        self._journal = journal
        self._pending: list[tuple[str, BaseModel]] = []
        self._flush_lock = asyncio.Lock()

    @property
    def store(self) -> NodeStore:
        return self._store

    @property
    def active_thread(self) -> list[str]:
        return list(self._thread)

    @property
    def tip(self) -> str | None:
        return self._thread[-1] if self._thread else None

    # -- Reads --

    def active_thread_nodes(self) -> list[Node]:
        """Full node records for the active thread, root first."""
        return [self._store.get(node_id) for node_id in self._thread]

    def history(self, node_id: str) -> list[Turn]:
        """Turns from the root down to node_id, as sent to the generator."""
        return [
            self._store.get(nid).turn
            for nid in navigator.path_to_root(self._store, node_id)
        ]

    def active_turns(self) -> list[Turn]:
        return [node.turn for node in self.active_thread_nodes()]

    def branch_info(self, node_id: str) -> BranchInfo:
        return navigator.branch_info(self._store, node_id)

    def branch_previews(self, node_id: str) -> list[BranchPreview]:
        """One preview per sibling of node_id, for a branch-switcher menu."""
        on_thread = set(self._thread)
        previews: list[BranchPreview] = []
        for index, sibling_id in enumerate(navigator.sibling_ids(self._store, node_id)):
            sibling = self._store.get(sibling_id)
            reply_preview = None
            if sibling.children_ids:
                first_child = self._store.get(sibling.children_ids[0])
                reply_preview = _preview(first_child.turn.text)
            previews.append(
                BranchPreview(
                    node_id=sibling_id,
                    index=index,
                    is_current=sibling_id in on_thread,
                    text_preview=_preview(sibling.turn.text),
                    reply_preview=reply_preview,
                )
            )
        return previews

    # -- Mutations --

    async def add_message(
        self, text: str, *, cancel: asyncio.Event | None = None
    ) -> Node:
        """Append a user turn at the tip and generate the reply to it.

        Returns the new assistant node. If generation fails the user node
        stays in the tree as the tip and GenerationFailedError is raised;
        regenerate_response() on it retries.
        """
        user_node_id = self._store.create_node(self.tip, UserTurn(text=text))
        self._queue_node(user_node_id)
        self._set_thread([*self._thread, user_node_id])
        await self._flush()

        response = await self._generate(user_node_id, cancel)
        return await self.add_response_node(
            user_node_id, response.text, response.model
        )

    async def add_response_node(
        self, parent_id: str, text: str, model: str, *, switch: bool = True
    ) -> Node:
        """Create an assistant node under parent_id.

        With switch (the default) the new node becomes the tip of the active
        thread. Pass switch=False to add it without changing what is shown.
        """
        node_id = self._store.create_node(
            parent_id, AssistantTurn(text=text, model=model)
        )
        self._queue_node(node_id)
        if switch:
            self._set_thread(navigator.path_to_root(self._store, node_id))
        await self._flush()
        return self._store.get(node_id)

    async def regenerate_response(
        self, user_node_id: str, *, cancel: asyncio.Event | None = None
    ) -> Node:
        """Generate a new sibling answer under an existing user node."""
        node = self._store.get(user_node_id)
        if node.turn.kind != "user":
            raise NotAUserNodeError(user_node_id, node.turn.kind)

        response = await self._generate(user_node_id, cancel)
        return await self.add_response_node(
            user_node_id, response.text, response.model
        )

    async def switch_branch(self, node_id: str) -> list[str]:
        """Show the path from the root to node_id.

        Descendants of node_id are not re-attached; the next message will
        branch from node_id.
        """
        self._set_thread(navigator.path_to_root(self._store, node_id))
        await self._flush()
        return self.active_thread

    async def set_active_thread(self, thread: Sequence[str]) -> list[str]:
        """Adopt an externally supplied thread. Raises InvalidThreadError."""
        self._set_thread(navigator.ensure_valid_thread(self._store, thread))
        await self._flush()
        return self.active_thread

    # -- Internals --

    async def _generate(
        self, parent_id: str, cancel: asyncio.Event | None
    ) -> GeneratedResponse:
        turns = self.history(parent_id)
        try:
            if cancel is None:
                return await self._generator.generate(turns)
            return await _unless_cancelled(self._generator.generate(turns), cancel)
        except GenerationCancelledError:
            logger.info("Generation under %s cancelled", parent_id)
            self._queue(
                "GenerationFailed",
                GenerationFailedPayload(parent_node_id=parent_id, reason="cancelled"),
            )
            await self._flush()
            raise GenerationCancelledError(parent_id) from None
        except Exception as exc:
            logger.warning("Generation under %s failed: %s", parent_id, exc)
            self._queue(
                "GenerationFailed",
                GenerationFailedPayload(parent_node_id=parent_id, reason=str(exc)),
            )
            await self._flush()
            raise GenerationFailedError(parent_id, str(exc)) from exc

    def _set_thread(self, thread: list[str]) -> None:
        self._thread = thread
        logger.debug("Active thread now ends at %s", self.tip)
        self._queue("ActiveThreadChanged", ActiveThreadChangedPayload(thread=thread))

    def _queue_node(self, node_id: str) -> None:
        node = self._store.get(node_id)
        self._queue(
            "NodeCreated",
            NodeCreatedPayload(
                node_id=node.node_id,
                parent_id=node.parent_id,
                turn=node.turn,
                created_at=node.created_at,
            ),
        )

    def _queue(self, event_type: str, payload: BaseModel) -> None:
        if self._journal is not None:
            self._pending.append((event_type, payload))

    async def _flush(self) -> None:
        """Write queued events to the journal in the order they were queued.

        An event leaves the queue only once the journal has accepted it, so a
        failed write is retried ahead of anything queued after it.
        """
        if self._journal is None:
            return
        async with self._flush_lock:
            while self._pending:
                event_type, payload = self._pending[0]
                await self._journal(event_type, payload)
                self._pending.pop(0)


async def _unless_cancelled(
    call: Awaitable[GeneratedResponse], cancel: asyncio.Event
) -> GeneratedResponse:
    """Await call, abandoning it if cancel is set first."""
    task = asyncio.ensure_future(call)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
    if task in done:
        return task.result()
    raise GenerationCancelledError("")


def _preview(text: str, max_length: int = PREVIEW_LENGTH) -> str:
    return f"{text[:max_length]}..." if len(text) > max_length else text


class NotAUserNodeError(Exception):
    def __init__(self, node_id: str, kind: str) -> None:
        self.node_id = node_id
        self.kind = kind
        super().__init__(f"Node {node_id} is a {kind} node, not a user node")


class GenerationFailedError(Exception):
    def __init__(self, parent_node_id: str, reason: str) -> None:
        self.parent_node_id = parent_node_id
        self.reason = reason
        super().__init__(f"Generation under {parent_node_id} failed: {reason}")


class GenerationCancelledError(GenerationFailedError):
    def __init__(self, parent_node_id: str) -> None:
        super().__init__(parent_node_id, "cancelled")
