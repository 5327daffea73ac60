"""Vector upload, similarity search and result ranking."""

from docrag.services.retrieval.hashing import hash_content
from docrag.services.retrieval.retrieval_engine import RetrievalEngine

__all__ = ["RetrievalEngine", "hash_content"]
