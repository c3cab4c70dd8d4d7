"""FastAPI routes for conversations: chat, regenerate, branch switching, export."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse

from branchchat.conversation.controller import GenerationFailedError, NotAUserNodeError
from branchchat.conversation.schemas import (
    AddMessageRequest,
    ConversationDetail,
    ConversationSummary,
    CreateConversationRequest,
    GenerationFailureResponse,
    SwitchBranchRequest,
)
from branchchat.conversation.service import ConversationNotFoundError, ConversationService
from branchchat.models import BranchPreview
from branchchat.tree.store import NodeNotFoundError

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


def get_conversation_service() -> ConversationService:
    """Dependency placeholder, overridden at app startup."""
    raise RuntimeError("ConversationService not initialized")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_conversation(
    request: CreateConversationRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationDetail:
    return await service.create_conversation(request)


@router.get("")
async def list_conversations(
    service: ConversationService = Depends(get_conversation_service),
) -> list[ConversationSummary]:
    return await service.list_conversations()


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationDetail:
    try:
        return await service.get_conversation(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"Conversation not found: {conversation_id}"
        )


@router.post("/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def add_message(
    conversation_id: str,
    request: AddMessageRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationDetail:
    try:
        return await service.add_message(conversation_id, request.text)
    except ConversationNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"Conversation not found: {conversation_id}"
        )
    except GenerationFailedError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post(
    "/{conversation_id}/nodes/{node_id}/regenerate",
    status_code=status.HTTP_201_CREATED,
)
async def regenerate(
    conversation_id: str,
    node_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationDetail:
    try:
        return await service.regenerate(conversation_id, node_id)
    except ConversationNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"Conversation not found: {conversation_id}"
        )
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    except NotAUserNodeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GenerationFailedError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/{conversation_id}/switch")
async def switch_branch(
    conversation_id: str,
    request: SwitchBranchRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationDetail:
    try:
        return await service.switch_branch(
            conversation_id, request.node_id, follow_latest=request.follow_latest
        )
    except ConversationNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"Conversation not found: {conversation_id}"
        )
    except NodeNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"Node not found: {request.node_id}"
        )


@router.post("/{conversation_id}/clear")
async def clear_thread(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationDetail:
    try:
        return await service.clear_thread(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"Conversation not found: {conversation_id}"
        )


@router.get("/{conversation_id}/failures")
async def list_generation_failures(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> list[GenerationFailureResponse]:
    try:
        return await service.generation_failures(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"Conversation not found: {conversation_id}"
        )


@router.get("/{conversation_id}/nodes/{node_id}/branches")
async def get_branches(
    conversation_id: str,
    node_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> list[BranchPreview]:
    try:
        return await service.branch_previews(conversation_id, node_id)
    except ConversationNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"Conversation not found: {conversation_id}"
        )
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")


@router.get("/{conversation_id}/export")
async def export_conversation(
    conversation_id: str,
    format: Literal["markdown", "json"] = Query("markdown"),
    service: ConversationService = Depends(get_conversation_service),
) -> Response:
    """Export the active thread as markdown, or the whole tree as JSON."""
    try:
        if format == "json":
            return JSONResponse(content=await service.export_json(conversation_id))
        content = await service.export_markdown(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(
            status_code=404, detail=f"Conversation not found: {conversation_id}"
        )
    return Response(
        content=content,
        media_type="text/markdown",
        headers={
            "Content-Disposition": f'attachment; filename="{conversation_id}.md"',
        },
    )
