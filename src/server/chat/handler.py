from __future__ import annotations

import logging
from typing import Optional

from src.llms.llm import DEFAULT_SYSTEM_PROMPT, Inference
from src.server.errors import BadRequestError, ChatRelayError, UpstreamError

from .models import ChatTurn, TranscriptMessage, now_ms
from .steps import PassThroughStepRunner, StepRunner
from .transcript import TranscriptStore

logger = logging.getLogger(__name__)

STEP_FETCH_HISTORY = "fetch history"
STEP_PREPARE_CONTEXT = "prepare context"
STEP_GENERATE_RESPONSE = "generate AI response"
STEP_STORE_USER_MESSAGE = "store user message"
STEP_STORE_AI_RESPONSE = "store AI response"


def require_chat_fields(message: Optional[str], session_id: Optional[str]) -> tuple[str, str]:
    if not message or not session_id:
        raise BadRequestError("Missing message or sessionId", error="Missing message or sessionId")
    return message, session_id


def build_prompt(
    system_prompt: str,
    history: list[dict[str, str]],
    message: str,
) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        *({"role": item["role"], "content": item["content"]} for item in history),
        {"role": "user", "content": message},
    ]


async def run_chat_turn(
    *,
    message: Optional[str],
    session_id: Optional[str],
    transcripts: TranscriptStore,
    inference: Inference,
    steps: Optional[StepRunner] = None,
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
) -> ChatTurn:
    """Relay one user message to the model and record the exchange.

    The user message is stored only after the model replied, so a failed
    inference call leaves the transcript untouched.
    """
    message, session_id = require_chat_fields(message, session_id)
    steps = steps or PassThroughStepRunner()

    async def fetch_history() -> list[dict]:
        return [item.to_dict() for item in await transcripts.read_all(session_id)]

    history = await steps.do(STEP_FETCH_HISTORY, fetch_history)

    async def prepare_context() -> dict:
        return {
            "messages": build_prompt(system_prompt, history, message),
            "userMessage": message,
            "timestamp": now_ms(),
        }

    context = await steps.do(STEP_PREPARE_CONTEXT, prepare_context)
    prompt = context["messages"]

    async def generate() -> str:
        return await inference.run(prompt)

    try:
        reply = await steps.do(STEP_GENERATE_RESPONSE, generate)
    except ChatRelayError:
        logger.warning("Inference failed for session %s; user message was not stored", session_id)
        raise
    except Exception as exc:
        logger.warning("Inference failed for session %s; user message was not stored", session_id)
        raise UpstreamError(f"Inference call failed: {exc}") from exc

    async def store_user_message() -> dict:
        stored = await transcripts.append(session_id, TranscriptMessage(role="user", content=message))
        return stored.to_dict()

    async def store_ai_response() -> dict:
        stored = await transcripts.append(session_id, TranscriptMessage(role="assistant", content=reply))
        return stored.to_dict()

    await steps.do(STEP_STORE_USER_MESSAGE, store_user_message)
    await steps.do(STEP_STORE_AI_RESPONSE, store_ai_response)

    logger.debug("Session %s: relayed %d history messages, reply %d chars", session_id, len(history), len(reply))
    return ChatTurn(response=reply, session_id=session_id, timestamp=now_ms())
