from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.server.errors import BadRequestError, NotFoundError

from .dependencies import ChatRuntime, get_chat_runtime
from .handler import run_chat_turn
from .models import TranscriptMessage
from .schemas import (
    ChatRequest,
    ChatResponse,
    ClearHistoryRequest,
    ClearHistoryResponse,
    HistoryMessage,
    HistoryResponse,
    WorkflowAcceptedResponse,
    WorkflowChatRequest,
    WorkflowStatusResponse,
)

router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/chat", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    runtime: ChatRuntime = Depends(get_chat_runtime),
) -> ChatResponse:
    turn = await run_chat_turn(
        message=payload.message,
        session_id=payload.session_id,
        transcripts=runtime.transcripts,
        inference=runtime.inference,
        system_prompt=runtime.system_prompt,
    )
    return ChatResponse(response=turn.response, session_id=turn.session_id, timestamp=turn.timestamp)


@router.post("/chat/workflow", response_model=WorkflowAcceptedResponse)
async def chat_workflow(
    payload: WorkflowChatRequest,
    runtime: ChatRuntime = Depends(get_chat_runtime),
) -> WorkflowAcceptedResponse:
    instance = await runtime.workflows.create(
        message=payload.message,
        session_id=payload.session_id,
        user_id=payload.user_id,
    )
    return WorkflowAcceptedResponse(workflow_id=instance.id, status="processing")


@router.get("/chat/workflow/{workflow_id}", response_model=WorkflowStatusResponse)
async def chat_workflow_status(
    workflow_id: str,
    runtime: ChatRuntime = Depends(get_chat_runtime),
) -> WorkflowStatusResponse:
    instance = await runtime.workflows.status(workflow_id)
    if instance is None:
        raise NotFoundError(f"Workflow {workflow_id} not found", error="Workflow not found")
    return WorkflowStatusResponse(
        workflow_id=instance.id,
        status=instance.status,
        output=instance.output,
        error=instance.error,
    )


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    runtime: ChatRuntime = Depends(get_chat_runtime),
) -> HistoryResponse:
    if not session_id:
        raise BadRequestError("Missing sessionId", error="Missing sessionId")
    messages = await runtime.transcripts.read_all(session_id)
    return HistoryResponse(messages=[_to_history_message(message) for message in messages])


@router.delete("/history", response_model=ClearHistoryResponse)
async def clear_history(
    payload: ClearHistoryRequest,
    runtime: ChatRuntime = Depends(get_chat_runtime),
) -> ClearHistoryResponse:
    if not payload.session_id:
        raise BadRequestError("Missing sessionId", error="Missing sessionId")
    await runtime.transcripts.clear(payload.session_id)
    return ClearHistoryResponse(success=True, message="History cleared")


def _to_history_message(message: TranscriptMessage) -> HistoryMessage:
    return HistoryMessage(role=message.role, content=message.content, timestamp=message.timestamp)
