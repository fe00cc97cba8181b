import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from src.llms.llm import (
    DEFAULT_SYSTEM_PROMPT,
    ChatModelInference,
    ModelSettings,
    build_chat_model,
    to_langchain_messages,
)
from src.server.errors import UpstreamError


def test_to_langchain_messages_maps_roles():
    converted = to_langchain_messages(
        [
            {"role": "system", "content": "rules"},
            {"role": "user", "content": "question"},
            {"role": "assistant", "content": "answer"},
        ]
    )
    assert [type(message) for message in converted] == [SystemMessage, HumanMessage, AIMessage]
    assert [message.content for message in converted] == ["rules", "question", "answer"]


def test_to_langchain_messages_rejects_unknown_role():
    with pytest.raises(ValueError):
        to_langchain_messages([{"role": "tool", "content": "x"}])


@pytest.mark.asyncio
async def test_chat_model_inference_returns_text():
    inference = ChatModelInference(FakeListChatModel(responses=["pong"]))
    reply = await inference.run([{"role": "user", "content": "ping"}])
    assert reply == "pong"


@pytest.mark.asyncio
async def test_chat_model_inference_wraps_failures():
    class ExplodingModel:
        async def ainvoke(self, messages):
            raise ConnectionError("connection reset")

    inference = ChatModelInference(ExplodingModel())
    with pytest.raises(UpstreamError) as excinfo:
        await inference.run([{"role": "user", "content": "ping"}])
    assert "connection reset" in excinfo.value.message


def test_model_settings_from_env(monkeypatch):
    monkeypatch.setenv("CHAT_MODEL", "llama-3.3-70b")
    monkeypatch.setenv("CHAT_MODEL_BASE_URL", "http://localhost:9000/v1")
    monkeypatch.setenv("CHAT_MODEL_API_KEY", "secret")
    monkeypatch.setenv("CHAT_MAX_TOKENS", "256")
    monkeypatch.setenv("CHAT_TEMPERATURE", "0.2")
    monkeypatch.delenv("CHAT_SYSTEM_PROMPT", raising=False)

    settings = ModelSettings.from_env()
    assert settings.model == "llama-3.3-70b"
    assert settings.base_url == "http://localhost:9000/v1"
    assert settings.api_key == "secret"
    assert settings.max_tokens == 256
    assert settings.temperature == 0.2
    assert settings.system_prompt == DEFAULT_SYSTEM_PROMPT


def test_model_settings_defaults(monkeypatch):
    for name in ("CHAT_MODEL", "CHAT_MODEL_BASE_URL", "CHAT_MAX_TOKENS", "CHAT_TEMPERATURE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("CHAT_MODEL_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "fallback-key")

    settings = ModelSettings.from_env()
    assert settings.max_tokens == 512
    assert settings.temperature == 0.7
    assert settings.base_url is None
    assert settings.api_key == "fallback-key"


def test_build_chat_model_applies_settings():
    llm = build_chat_model(ModelSettings(model="my-model", api_key="test-key", max_tokens=128, temperature=0.1))
    assert llm.model_name == "my-model"
    assert llm.max_tokens == 128
    assert llm.temperature == 0.1
