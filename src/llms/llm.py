# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from src.config.loader import get_float_env, get_int_env, get_str_env
from src.server.errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Provide clear, concise, and helpful responses. "
    "Be friendly and professional."
)

_MESSAGE_TYPES = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


class Inference(Protocol):
    """Maps an ordered role/content prompt to a single reply string."""

    async def run(self, messages: Sequence[dict[str, str]]) -> str: ...


@dataclass(slots=True)
class ModelSettings:
    model: str = "gpt-4o-mini"
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    max_tokens: int = 512
    temperature: float = 0.7
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    @classmethod
    def from_env(cls) -> "ModelSettings":
        return cls(
            model=get_str_env("CHAT_MODEL", "gpt-4o-mini"),
            base_url=get_str_env("CHAT_MODEL_BASE_URL") or None,
            api_key=get_str_env("CHAT_MODEL_API_KEY") or get_str_env("OPENAI_API_KEY") or None,
            max_tokens=get_int_env("CHAT_MAX_TOKENS", 512),
            temperature=get_float_env("CHAT_TEMPERATURE", 0.7),
            system_prompt=get_str_env("CHAT_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
        )


def to_langchain_messages(messages: Sequence[dict[str, str]]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        message_type = _MESSAGE_TYPES.get(message["role"])
        if message_type is None:
            raise ValueError(f"Unsupported message role: {message['role']!r}")
        converted.append(message_type(content=message["content"]))
    return converted


class ChatModelInference:
    """Inference collaborator backed by a LangChain chat model."""

    def __init__(self, llm: BaseChatModel) -> None:
        self._llm = llm

    async def run(self, messages: Sequence[dict[str, str]]) -> str:
        prompt = to_langchain_messages(messages)
        try:
            ai_message = await self._llm.ainvoke(prompt)
        except Exception as exc:  # noqa: BLE001 - any provider failure is an upstream error
            logger.error("Chat model invocation failed: %s", exc)
            raise UpstreamError(f"Inference call failed: {exc}") from exc

        content = ai_message.content if hasattr(ai_message, "content") else ai_message
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        return str(content)


def build_chat_model(settings: ModelSettings) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    kwargs = {
        "model": settings.model,
        "max_tokens": settings.max_tokens,
        "temperature": settings.temperature,
    }
    if settings.base_url:
        kwargs["base_url"] = settings.base_url
    if settings.api_key:
        kwargs["api_key"] = settings.api_key
    logger.info("Configured chat model %s (base_url=%s)", settings.model, settings.base_url or "default")
    return ChatOpenAI(**kwargs)


def get_inference(settings: Optional[ModelSettings] = None) -> ChatModelInference:
    settings = settings or ModelSettings.from_env()
    return ChatModelInference(build_chat_model(settings))
