from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(_CamelModel):
    # Missing fields are rejected by the handler with a 400.
    message: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class WorkflowChatRequest(ChatRequest):
    user_id: Optional[str] = Field(default=None, alias="userId")


class ChatResponse(_CamelModel):
    response: str
    session_id: str = Field(alias="sessionId")
    timestamp: int


class WorkflowAcceptedResponse(_CamelModel):
    workflow_id: str = Field(alias="workflowId")
    status: str = "processing"


class WorkflowStatusResponse(_CamelModel):
    workflow_id: str = Field(alias="workflowId")
    status: str
    output: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class HistoryMessage(BaseModel):
    role: str
    content: str
    timestamp: int


class HistoryResponse(BaseModel):
    messages: list[HistoryMessage] = Field(default_factory=list)


class ClearHistoryRequest(_CamelModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ClearHistoryResponse(BaseModel):
    success: bool
    message: str


class HealthResponse(BaseModel):
    status: str
    service: str
    timestamp: str
