"""Chat relay package: transcript storage, the chat handler and durable workflows."""

from .dependencies import ChatRuntime, get_chat_runtime
from .handler import run_chat_turn
from .transcript import TranscriptStore

__all__ = ["ChatRuntime", "TranscriptStore", "get_chat_runtime", "run_chat_turn"]
