"""Vector store provider implementations."""

from docrag.providers.vector_store.chromadb_provider import ChromaDBProvider
from docrag.providers.vector_store.memory_provider import InMemoryVectorStore

__all__ = ["ChromaDBProvider", "InMemoryVectorStore"]
