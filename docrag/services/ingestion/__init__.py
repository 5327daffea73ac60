"""Document ingestion: structure parsing, metadata extraction and chunking."""

from docrag.services.ingestion.chunker import SemanticChunker
from docrag.services.ingestion.metadata_extractor import MetadataExtractor
from docrag.services.ingestion.structure_parser import StructureParser
from docrag.services.ingestion.tokenizer import (
    HuggingFaceTokenCounter,
    TokenCounter,
    build_token_counter,
    estimate_tokens,
)

__all__ = [
    "HuggingFaceTokenCounter",
    "MetadataExtractor",
    "SemanticChunker",
    "StructureParser",
    "TokenCounter",
    "build_token_counter",
    "estimate_tokens",
]
