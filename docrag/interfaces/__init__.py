"""Capability contracts for the external services docrag talks to.

Business logic depends only on these abstract base classes; concrete
adapters in ``docrag/providers/`` are wired in ``docrag/main.py``, and tests
inject fakes.

    Interface              →  Concrete implementations
    ────────────────────────────────────────────────────
    IEmbeddingProvider     →  OpenAIEmbeddingProvider
    IVectorStoreProvider   →  ChromaDBProvider, InMemoryVectorStore
"""

from docrag.interfaces.embedding_provider import IEmbeddingProvider
from docrag.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = ["IEmbeddingProvider", "IVectorStoreProvider"]
