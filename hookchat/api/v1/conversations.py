"""Conversation REST API routes - V1."""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, Header, UploadFile, File
from fastapi.responses import JSONResponse

from ...models.conversation import (
    MessageModel,
    AttachmentResponse,
    ConversationResponse,
    ConversationSummaryResponse,
    ConversationListResponse,
    CreateConversationRequest,
    RenameConversationRequest,
    ArchiveConversationRequest,
    SendMessageRequest,
    SendMessageResponse,
    DispatchErrorInfo,
    AwaitReplyResponse,
)
from ...services import ConversationOrchestrator, AgentRegistry
from ...services.orchestrator import SendResult
from ..handlers import status_code_for
from .agents import get_agent_registry

router = APIRouter(prefix="/api/v1/conversations", tags=["Conversations"])

# Conversation orchestrator (set by main.py)
orchestrator: ConversationOrchestrator = None


def get_orchestrator() -> ConversationOrchestrator:
    """Dependency to get the conversation orchestrator."""
    if orchestrator is None:
        raise HTTPException(status_code=500, detail="Conversation orchestrator not initialized")
    return orchestrator


def get_owner(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Dependency to get the caller identity."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def _send_response(result: SendResult) -> SendMessageResponse:
    error = None
    if result.error is not None:
        error = DispatchErrorInfo(
            kind=result.error.kind,
            message=result.error.message,
            status=getattr(result.error, "status", None),
        )
    return SendMessageResponse(
        success=result.success,
        response=result.assistant_text,
        conversation=ConversationResponse.from_do(result.conversation),
        error=error,
    )


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    include_archived: bool = Query(True, description="Include archived conversations"),
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator)
):
    """List the caller's conversations, most recently updated first."""
    conversations = manager.list_conversations(owner, include_archived=include_archived)
    return ConversationListResponse(
        conversations=[ConversationSummaryResponse.from_do(c) for c in conversations],
        total=len(conversations)
    )


@router.post("", response_model=ConversationResponse, status_code=201)
async def create_conversation(
    request: CreateConversationRequest,
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator),
    registry: AgentRegistry = Depends(get_agent_registry)
):
    """Create a conversation, or update it when the id already exists."""
    agent = None
    if request.agent_id:
        agent = registry.binding_for(request.agent_id)
        if agent is None:
            raise HTTPException(status_code=400, detail=f"Unknown agent: {request.agent_id}")
    elif request.agent is not None:
        agent = request.agent.to_do()

    messages = None
    if request.messages is not None:
        messages = [m.to_do() for m in request.messages]

    conversation = await manager.create_conversation(
        owner,
        conversation_id=request.conversation_id,
        title=request.title,
        agent=agent,
        messages=messages,
        is_archived=request.is_archived,
    )
    return ConversationResponse.from_do(conversation)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Get a conversation with its messages."""
    return ConversationResponse.from_do(manager.get_conversation(owner, conversation_id))


@router.patch("/{conversation_id}/rename", response_model=ConversationResponse)
async def rename_conversation(
    conversation_id: str,
    request: RenameConversationRequest,
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Rename a conversation."""
    conversation = await manager.rename(owner, conversation_id, request.title)
    return ConversationResponse.from_do(conversation)


@router.patch("/{conversation_id}/archive", response_model=ConversationResponse)
async def archive_conversation(
    conversation_id: str,
    request: ArchiveConversationRequest,
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Archive or unarchive a conversation."""
    conversation = await manager.set_archived(owner, conversation_id, request.is_archived)
    return ConversationResponse.from_do(conversation)


@router.delete("/{conversation_id}", response_model=dict)
async def delete_conversation(
    conversation_id: str,
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Delete a conversation and its attachment files."""
    await manager.delete(owner, conversation_id)
    return {
        "status": "deleted",
        "message": f"Conversation {conversation_id} deleted successfully"
    }


@router.post("/{conversation_id}/reset", response_model=ConversationResponse)
async def reset_conversation(
    conversation_id: str,
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Clear the messages and attachments of a conversation."""
    conversation = await manager.reset(owner, conversation_id)
    return ConversationResponse.from_do(conversation)


@router.post("/{conversation_id}/messages", response_model=SendMessageResponse)
async def send_message(
    conversation_id: str,
    request: SendMessageRequest,
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator)
):
    """
    Send a message to the conversation's workflow and wait for the reply.

    An unknown conversation id creates the conversation. When the webhook
    fails the error is recorded as an assistant message and the updated
    conversation is returned with a 502 (504 on timeout).
    """
    result = await manager.send_message(
        owner,
        conversation_id,
        request.message,
        webhook_url=request.webhook_url,
        account_id=request.account_id,
    )
    response = _send_response(result)
    if result.error is not None:
        return JSONResponse(
            status_code=status_code_for(result.error),
            content=response.model_dump(mode="json")
        )
    return response


@router.get("/{conversation_id}/await", response_model=AwaitReplyResponse)
async def await_reply(
    conversation_id: str,
    since: str = Query(..., min_length=1, description="Text of the user message whose reply is awaited"),
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Poll the conversation until the assistant reply to ``since`` appears."""
    outcome = await manager.await_reply(owner, conversation_id, since)
    return AwaitReplyResponse(
        status=outcome.status,
        attempts=outcome.attempts,
        messages=[MessageModel.from_do(m) for m in outcome.messages],
        notice=MessageModel.from_do(outcome.notice) if outcome.notice else None
    )


@router.post("/{conversation_id}/attachments", response_model=AttachmentResponse, status_code=201)
async def upload_attachment(
    conversation_id: str,
    file: UploadFile = File(...),
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Upload a file; it is sent with the next message."""
    content = await file.read()
    attachment = await manager.upload_attachment(
        owner,
        conversation_id,
        name=file.filename or "",
        mime_type=file.content_type or "application/octet-stream",
        content=content,
    )
    return AttachmentResponse.from_do(attachment)


@router.delete("/{conversation_id}/attachments/{attachment_id}", response_model=ConversationResponse)
async def remove_attachment(
    conversation_id: str,
    attachment_id: str,
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Delete an attachment and its stored file."""
    conversation = await manager.remove_attachment(owner, conversation_id, attachment_id)
    return ConversationResponse.from_do(conversation)


@router.post("/{conversation_id}/attachments/{attachment_id}/error", response_model=AttachmentResponse)
async def mark_attachment_error(
    conversation_id: str,
    attachment_id: str,
    owner: str = Depends(get_owner),
    manager: ConversationOrchestrator = Depends(get_orchestrator)
):
    """Mark a pending attachment as failed."""
    attachment = await manager.mark_attachment_error(owner, conversation_id, attachment_id)
    return AttachmentResponse.from_do(attachment)
