"""Retrieval-augmented generation backend: loaders, Ollama models, application and builder."""

from ragstack.rag.application import AddLoaderResult, QueryResponse, RagApplication
from ragstack.rag.builder import RagApplicationBuilder
from ragstack.rag.loaders import WebLoader
from ragstack.rag.ollama import OllamaChat, OllamaEmbeddings

__all__ = [
    "AddLoaderResult",
    "OllamaChat",
    "OllamaEmbeddings",
    "QueryResponse",
    "RagApplication",
    "RagApplicationBuilder",
    "WebLoader",
]
