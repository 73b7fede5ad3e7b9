"""Storage registry — name-based lookup of (metadata store, vector store) pairs.

``rag.storage`` in the config selects a backend by name. Backends are
factories taking the Settings and returning unconnected stores; the RAG
builder connects them.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from ragstack.storage.base import MetadataStore, VectorStore

if TYPE_CHECKING:
    from ragstack.config import Settings

StoreFactory = Callable[["Settings"], tuple[MetadataStore, VectorStore]]

_registry: dict[str, StoreFactory] = {}


def register(name: str) -> Callable[[StoreFactory], StoreFactory]:
    """Register a store factory under ``name``::

        @register("memory")
        def _memory(settings): ...
    """

    def decorator(factory: StoreFactory) -> StoreFactory:
        _registry[name] = factory
        return factory

    return decorator


def create_stores(settings: Settings) -> tuple[MetadataStore, VectorStore]:
    """Build the configured store pair. Raises ValueError for unknown backends."""
    name = settings.rag.storage
    if name not in _registry:
        raise ValueError(
            f"Unknown storage backend '{name}'. Available: {sorted(_registry)}"
        )
    return _registry[name](settings)


def list_backends() -> list[str]:
    return sorted(_registry)


@register("memory")
def _memory(settings: Settings) -> tuple[MetadataStore, VectorStore]:
    from ragstack.storage.memory import InMemoryStore, InMemoryVectorStore

    return InMemoryStore(), InMemoryVectorStore()


@register("oracle")
def _oracle(settings: Settings) -> tuple[MetadataStore, VectorStore]:
    from ragstack.storage.oracle import OracleStore, OracleVectorStore

    return OracleStore(settings.database), OracleVectorStore(settings.database)
