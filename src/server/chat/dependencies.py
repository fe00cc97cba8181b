from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import Depends

from src.config.loader import get_str_env
from src.llms.llm import Inference, ModelSettings, get_inference

from .sqlite import resolve_db_path
from .storage import InMemoryKeyValueStorage, KeyValueStorage, SQLiteKeyValueStorage
from .transcript import TranscriptStore
from .workflow import SQLiteWorkflowLog, WorkflowEngine

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChatRuntime:
    """Collaborators shared by the chat endpoints."""

    storage: KeyValueStorage
    transcripts: TranscriptStore
    inference: Inference
    workflows: WorkflowEngine
    system_prompt: str

    async def start(self) -> None:
        await self.storage.init()
        await self.workflows.init()
        resumed = await self.workflows.resume_incomplete()
        if resumed:
            logger.info("Resumed %d unfinished workflow(s)", len(resumed))

    async def close(self) -> None:
        await self.workflows.close()
        await self.storage.close()


_CHAT_RUNTIME: Optional[ChatRuntime] = None


def build_chat_runtime(
    *,
    db_path: str,
    inference: Inference,
    system_prompt: str,
    storage: Optional[KeyValueStorage] = None,
    checkpoint_db_path: Optional[str] = None,
) -> ChatRuntime:
    storage = storage or SQLiteKeyValueStorage(db_path)
    if checkpoint_db_path is None:
        db_file = Path(resolve_db_path(db_path))
        checkpoint_db_path = str(db_file.with_name(f"{db_file.stem}_checkpoints.db"))
    transcripts = TranscriptStore(storage)
    workflows = WorkflowEngine(
        SQLiteWorkflowLog(db_path),
        checkpoint_db_path,
        transcripts,
        inference,
        system_prompt=system_prompt,
    )
    return ChatRuntime(
        storage=storage,
        transcripts=transcripts,
        inference=inference,
        workflows=workflows,
        system_prompt=system_prompt,
    )


def initialise_chat_runtime() -> ChatRuntime:
    """Create the chat runtime from configuration."""
    global _CHAT_RUNTIME
    if _CHAT_RUNTIME is not None:
        return _CHAT_RUNTIME

    db_path = get_str_env("CHAT_DB_PATH", "chat_relay.db")
    backend = get_str_env("TRANSCRIPT_STORAGE", "sqlite").lower()
    if backend == "memory":
        storage: KeyValueStorage = InMemoryKeyValueStorage()
    elif backend == "sqlite":
        storage = SQLiteKeyValueStorage(db_path)
    else:
        raise ValueError(f"Unknown TRANSCRIPT_STORAGE backend: {backend!r}")

    settings = ModelSettings.from_env()
    runtime = build_chat_runtime(
        db_path=db_path,
        inference=get_inference(settings),
        system_prompt=settings.system_prompt,
        storage=storage,
        checkpoint_db_path=get_str_env("LANGGRAPH_CHECKPOINT_DB_PATH") or None,
    )
    _CHAT_RUNTIME = runtime
    logger.info("Initialised chat runtime (storage=%s, db=%s)", backend, db_path)
    return runtime


def set_chat_runtime(runtime: Optional[ChatRuntime]) -> None:
    global _CHAT_RUNTIME
    _CHAT_RUNTIME = runtime


def get_chat_runtime(_: ChatRuntime = Depends(initialise_chat_runtime)) -> ChatRuntime:
    if _CHAT_RUNTIME is None:
        raise RuntimeError("Chat runtime has not been initialised")
    return _CHAT_RUNTIME
