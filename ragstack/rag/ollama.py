"""Ollama-backed LangChain models — one reserved model serves as embedder and responder."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatResult

logger = logging.getLogger(__name__)

_ROLES = {"system": "system", "human": "user", "ai": "assistant"}


def _to_ollama_messages(messages: list[BaseMessage]) -> list[dict[str, str]]:
    converted = []
    for message in messages:
        role = _ROLES.get(message.type)
        if role is None:
            raise ValueError(f"Unsupported message type for Ollama: {message.type}")
        content = message.content if isinstance(message.content, str) else str(message.content)
        converted.append({"role": role, "content": content})
    return converted


class OllamaEmbeddings(Embeddings):
    """Embeddings from Ollama's ``/api/embed`` endpoint."""

    def __init__(self, model: str, base_url: str, timeout: float = 300.0) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _payload(self, texts: list[str]) -> dict[str, Any]:
        return {"model": self.model, "input": texts}

    @staticmethod
    def _vectors(response: httpx.Response, expected: int) -> list[list[float]]:
        response.raise_for_status()
        embeddings = response.json().get("embeddings") or []
        if len(embeddings) != expected:
            raise ValueError(
                f"Ollama returned {len(embeddings)} embeddings for {expected} inputs"
            )
        return embeddings

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(f"{self.base_url}/api/embed", json=self._payload(texts))
        return self._vectors(resp, len(texts))

    def embed_query(self, text: str) -> list[float]:
        return self.embed_documents([text])[0]

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(f"{self.base_url}/api/embed", json=self._payload(texts))
        return self._vectors(resp, len(texts))

    async def aembed_query(self, text: str) -> list[float]:
        return (await self.aembed_documents([text]))[0]


class OllamaChat(BaseChatModel):
    """Non-streaming chat completions from Ollama's ``/api/chat`` endpoint."""

    model: str
    base_url: str = "http://localhost:11434"
    temperature: float = 0.0
    timeout: float = 300.0

    @property
    def _llm_type(self) -> str:
        return "ollama-chat"

    def _payload(self, messages: list[BaseMessage], stop: list[str] | None) -> dict[str, Any]:
        options: dict[str, Any] = {"temperature": self.temperature}
        if stop:
            options["stop"] = stop
        return {
            "model": self.model,
            "messages": _to_ollama_messages(messages),
            "stream": False,
            "options": options,
        }

    @staticmethod
    def _result(response: httpx.Response) -> ChatResult:
        response.raise_for_status()
        content = response.json().get("message", {}).get("content", "")
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content=content))])

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: Any = None,
        **kwargs: Any,
    ) -> ChatResult:
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(f"{self.base_url.rstrip('/')}/api/chat", json=self._payload(messages, stop))
        return self._result(resp)

    async def _agenerate(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: Any = None,
        **kwargs: Any,
    ) -> ChatResult:
        logger.debug(f"Querying Ollama model '{self.model}' with {len(messages)} messages")
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(
                f"{self.base_url.rstrip('/')}/api/chat", json=self._payload(messages, stop)
            )
        return self._result(resp)
