import asyncio
from typing import Optional, Sequence

import pytest
import pytest_asyncio

from src.server.chat.storage import SQLiteKeyValueStorage
from src.server.chat.transcript import TranscriptStore
from src.server.chat.workflow import SQLiteWorkflowLog, WorkflowEngine
from src.server.errors import UpstreamError


class RecordingInference:
    """Inference stand-in that records every prompt it receives."""

    def __init__(self, replies: Sequence[str] = ("Hello from the model",), error: Optional[Exception] = None):
        self._replies = list(replies)
        self._error = error
        self.calls: list[list[dict[str, str]]] = []

    async def run(self, messages):
        self.calls.append([dict(message) for message in messages])
        if self._error is not None:
            raise self._error
        return self._replies[(len(self.calls) - 1) % len(self._replies)]


@pytest.fixture
def inference() -> RecordingInference:
    return RecordingInference()


@pytest.fixture
def failing_inference() -> RecordingInference:
    return RecordingInference(error=UpstreamError("model unavailable"))


@pytest.fixture
def kv_storage(tmp_path) -> SQLiteKeyValueStorage:
    storage = SQLiteKeyValueStorage(str(tmp_path / "transcripts.db"))
    asyncio.run(storage.init())
    return storage


@pytest.fixture
def transcripts(kv_storage) -> TranscriptStore:
    return TranscriptStore(kv_storage)


@pytest_asyncio.fixture
async def make_engine(tmp_path):
    """Build initialised workflow engines sharing one status log and checkpoint file."""
    engines: list[WorkflowEngine] = []

    async def _make(transcripts, inference) -> WorkflowEngine:
        engine = WorkflowEngine(
            SQLiteWorkflowLog(str(tmp_path / "workflows.db")),
            str(tmp_path / "checkpoints.db"),
            transcripts,
            inference,
            system_prompt="Be helpful.",
        )
        await engine.init()
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        await engine.close()
