from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

import aiosqlite
from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.checkpoint.sqlite.aio import AsyncSqliteSaver
from langgraph.func import entrypoint
from langgraph.pregel import Pregel

from src.llms.llm import DEFAULT_SYSTEM_PROMPT, Inference
from src.server.errors import BadRequestError, NotFoundError

from .handler import require_chat_fields, run_chat_turn
from .models import (
    WORKFLOW_COMPLETE,
    WORKFLOW_ERRORED,
    WORKFLOW_QUEUED,
    WORKFLOW_RUNNING,
    WorkflowInstance,
)
from .sqlite import SQLiteDatabase, parse_ts, resolve_db_path, utc_now_str
from .steps import DurableStepRunner
from .transcript import TranscriptStore

logger = logging.getLogger(__name__)


_INSTANCES_DDL = """
CREATE TABLE IF NOT EXISTS workflow_instances (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    params TEXT NOT NULL,
    output TEXT,
    error TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_workflow_instances_status ON workflow_instances(status);",
]

_INSTANCE_COLUMNS = "id, status, params, output, error, created_at, updated_at"


class SQLiteWorkflowLog:
    """Status, params and output of each workflow instance.

    Step results are not stored here; they live in the LangGraph checkpoint of
    the thread named after the workflow id.
    """

    def __init__(self, db_path: str) -> None:
        self._db = SQLiteDatabase(db_path)
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db.db_path

    async def init(self) -> None:
        await asyncio.to_thread(self._db.executescript, _INSTANCES_DDL, *_CREATE_INDEXES)
        logger.info("Workflow log initialised at %s", self._db.db_path)

    async def create_instance(self, params: dict[str, Any]) -> WorkflowInstance:
        workflow_id = uuid4().hex
        now = utc_now_str()
        async with self._write_lock:
            await asyncio.to_thread(
                self._db.execute,
                f"INSERT INTO workflow_instances ({_INSTANCE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (workflow_id, WORKFLOW_QUEUED, json.dumps(params, ensure_ascii=False), None, None, now, now),
            )
        return WorkflowInstance(
            id=workflow_id,
            status=WORKFLOW_QUEUED,
            params=dict(params),
            output=None,
            error=None,
            created_at=parse_ts(now),
            updated_at=parse_ts(now),
        )

    async def get_instance(self, workflow_id: str) -> Optional[WorkflowInstance]:
        row = await asyncio.to_thread(
            self._db.fetchone,
            f"SELECT {_INSTANCE_COLUMNS} FROM workflow_instances WHERE id = ?",
            (workflow_id,),
        )
        return _row_to_instance(row)

    async def list_unfinished(self) -> list[WorkflowInstance]:
        rows = await asyncio.to_thread(
            self._db.fetchall,
            f"SELECT {_INSTANCE_COLUMNS} FROM workflow_instances WHERE status IN (?, ?) ORDER BY created_at ASC",
            (WORKFLOW_QUEUED, WORKFLOW_RUNNING),
        )
        return [_row_to_instance(row) for row in rows]

    async def set_status(
        self,
        workflow_id: str,
        status: str,
        *,
        output: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        async with self._write_lock:
            await asyncio.to_thread(
                self._db.execute,
                "UPDATE workflow_instances SET status = ?, output = ?, error = ?, updated_at = ? WHERE id = ?",
                (
                    status,
                    json.dumps(output, ensure_ascii=False) if output is not None else None,
                    error,
                    utc_now_str(),
                    workflow_id,
                ),
            )


def build_chat_workflow(
    transcripts: TranscriptStore,
    inference: Inference,
    checkpointer: BaseCheckpointSaver,
    *,
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
) -> Pregel:
    """Wrap one chat turn in a checkpointed LangGraph entrypoint."""

    @entrypoint(checkpointer=checkpointer)
    async def chat_workflow(params: dict) -> dict:
        turn = await run_chat_turn(
            message=params.get("message"),
            session_id=params.get("sessionId"),
            transcripts=transcripts,
            inference=inference,
            steps=DurableStepRunner(),
            system_prompt=system_prompt,
        )
        return {"success": True, **turn.to_dict()}

    return chat_workflow


class WorkflowEngine:
    """Runs chat turns as durable step sequences in background tasks."""

    def __init__(
        self,
        log: SQLiteWorkflowLog,
        checkpoint_db_path: str,
        transcripts: TranscriptStore,
        inference: Inference,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self._log = log
        self._checkpoint_db_path = resolve_db_path(checkpoint_db_path)
        self._transcripts = transcripts
        self._inference = inference
        self._system_prompt = system_prompt
        self._connection: Optional[aiosqlite.Connection] = None
        self._checkpointer: Optional[AsyncSqliteSaver] = None
        self._workflow: Optional[Pregel] = None
        self._tasks: dict[str, asyncio.Task] = {}

    async def init(self) -> None:
        await self._log.init()
        Path(self._checkpoint_db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._checkpoint_db_path)
        self._checkpointer = AsyncSqliteSaver(self._connection)
        await self._checkpointer.setup()
        self._workflow = build_chat_workflow(
            self._transcripts,
            self._inference,
            self._checkpointer,
            system_prompt=self._system_prompt,
        )
        logger.info("Workflow checkpoints stored at %s", self._checkpoint_db_path)

    async def create(
        self,
        *,
        message: Optional[str],
        session_id: Optional[str],
        user_id: Optional[str] = None,
    ) -> WorkflowInstance:
        message, session_id = require_chat_fields(message, session_id)
        instance = await self._log.create_instance(
            {"message": message, "sessionId": session_id, "userId": user_id or "anonymous"}
        )
        logger.info("Created workflow %s for session %s", instance.id, session_id)
        self._schedule(instance.id)
        return instance

    async def status(self, workflow_id: str) -> Optional[WorkflowInstance]:
        return await self._log.get_instance(workflow_id)

    async def restart(self, workflow_id: str) -> WorkflowInstance:
        instance = await self._log.get_instance(workflow_id)
        if instance is None:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        if instance.status != WORKFLOW_ERRORED:
            raise BadRequestError(f"Workflow {workflow_id} is {instance.status}; only errored workflows can restart")
        await self._log.set_status(workflow_id, WORKFLOW_QUEUED)
        logger.info("Restarting workflow %s", workflow_id)
        self._schedule(workflow_id)
        return await self._log.get_instance(workflow_id) or instance

    async def resume_incomplete(self) -> list[str]:
        pending = await self._log.list_unfinished()
        for instance in pending:
            logger.info("Resuming workflow %s (%s)", instance.id, instance.status)
            self._schedule(instance.id)
        return [instance.id for instance in pending]

    async def wait(self, workflow_id: str) -> Optional[WorkflowInstance]:
        task = self._tasks.get(workflow_id)
        if task is not None:
            await asyncio.wait({task})
        return await self._log.get_instance(workflow_id)

    async def close(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._checkpointer = None
            self._workflow = None

    def _schedule(self, workflow_id: str) -> None:
        if self._workflow is None:
            raise RuntimeError("Workflow engine has not been initialised")
        existing = self._tasks.get(workflow_id)
        if existing is not None and not existing.done():
            return
        task = asyncio.create_task(self._run(workflow_id), name=f"workflow-{workflow_id}")
        self._tasks[workflow_id] = task

        def _forget(done: asyncio.Task) -> None:
            if self._tasks.get(workflow_id) is done:
                self._tasks.pop(workflow_id, None)

        task.add_done_callback(_forget)

    async def _run(self, workflow_id: str) -> None:
        instance = await self._log.get_instance(workflow_id)
        if instance is None:
            logger.error("Workflow %s vanished before it could run", workflow_id)
            return

        await self._log.set_status(workflow_id, WORKFLOW_RUNNING)
        config = {"configurable": {"thread_id": workflow_id}}
        # A thread with a checkpoint is resumed from it; completed tasks are replayed.
        checkpoint = await self._checkpointer.aget_tuple(config)
        payload = None if checkpoint is not None else instance.params
        try:
            output = await self._workflow.ainvoke(payload, config)
        except asyncio.CancelledError:
            logger.info("Workflow %s interrupted; it will resume on next start", workflow_id)
            raise
        except Exception as exc:
            logger.exception("Workflow %s failed", workflow_id)
            await self._log.set_status(workflow_id, WORKFLOW_ERRORED, error=str(exc))
            return

        await self._log.set_status(workflow_id, WORKFLOW_COMPLETE, output=output)
        logger.info("Workflow %s complete (%s)", workflow_id, "resumed" if payload is None else "first run")


def _row_to_instance(row: Optional[sqlite3.Row]) -> Optional[WorkflowInstance]:
    if row is None:
        return None
    return WorkflowInstance(
        id=row["id"],
        status=row["status"],
        params=json.loads(row["params"]),
        output=json.loads(row["output"]) if row["output"] else None,
        error=row["error"],
        created_at=parse_ts(row["created_at"]),
        updated_at=parse_ts(row["updated_at"]),
    )
