from __future__ import annotations

import logging
from typing import Awaitable, Callable, Protocol, TypeVar

from langgraph.func import task

logger = logging.getLogger(__name__)

T = TypeVar("T")

StepFn = Callable[[], Awaitable[T]]


class StepRunner(Protocol):
    """Runs named units of work; durable runners may skip steps already done."""

    async def do(self, name: str, fn: StepFn[T]) -> T: ...


class PassThroughStepRunner:
    """Executes every step immediately and records nothing."""

    async def do(self, name: str, fn: StepFn[T]) -> T:
        return await fn()


class DurableStepRunner:
    """Runs each step as a LangGraph task.

    Must be used inside a LangGraph ``entrypoint`` that has a checkpointer.
    Completed task results are written to the checkpoint and returned without
    re-running the step when the entrypoint is resumed on the same thread.
    Results must be serialisable by the checkpointer.
    """

    async def do(self, name: str, fn: StepFn[T]) -> T:
        logger.debug("Running durable step %r", name)
        return await task(name=name)(fn)()
