from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

MESSAGE_ROLES = frozenset({"user", "assistant", "system"})

WORKFLOW_QUEUED = "queued"
WORKFLOW_RUNNING = "running"
WORKFLOW_COMPLETE = "complete"
WORKFLOW_ERRORED = "errored"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class TranscriptMessage:
    role: str
    content: str
    timestamp: int = field(default_factory=now_ms)

    def __post_init__(self) -> None:
        if self.role not in MESSAGE_ROLES:
            raise ValueError(f"Unsupported message role: {self.role!r}")

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TranscriptMessage":
        return cls(
            role=data["role"],
            content=data["content"],
            timestamp=int(data.get("timestamp") or now_ms()),
        )


@dataclass(slots=True)
class ChatTurn:
    response: str
    session_id: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"response": self.response, "sessionId": self.session_id, "timestamp": self.timestamp}


@dataclass(slots=True)
class WorkflowInstance:
    id: str
    status: str
    params: dict[str, Any]
    output: Optional[dict[str, Any]]
    error: Optional[str]
    created_at: datetime
    updated_at: datetime
