"""Chunk data models produced by the semantic chunker.

A :class:`Chunk` is the unit that gets embedded and stored.  Every chunk is
classified (:class:`ContentType`), scored for importance, annotated with
lightweight heuristic metadata, and linked to its neighbours through
:class:`ChunkRelationship` edges.  All models are frozen.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from docrag.models.pipeline import PipelineIssue


class ContentType(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Structural kind of a piece of text."""

    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    TABLE = "table"
    CODE = "code"
    QUOTE = "quote"
    FORMULA = "formula"
    REFERENCE = "reference"


class Complexity(str, Enum):  # noqa: UP042
    """Sentence-length based complexity bucket."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RelationshipType(str, Enum):  # noqa: UP042
    """Kind of edge between two chunks."""

    SIBLING = "sibling"
    PARENT = "parent"
    CHILD = "child"
    REFERENCE = "reference"


class ChunkingStrategy(str, Enum):  # noqa: UP042
    """How a document is cut into chunks."""

    SEMANTIC = "semantic"
    FIXED = "fixed"


# Default target token sizes per content type; always capped by max_tokens.
DEFAULT_SIZE_TARGETS: dict[ContentType, int] = {
    ContentType.HEADING: 256,
    ContentType.PARAGRAPH: 512,
    ContentType.LIST: 384,
    ContentType.TABLE: 768,
    ContentType.CODE: 1024,
    ContentType.QUOTE: 256,
    ContentType.FORMULA: 128,
    ContentType.REFERENCE: 384,
}


class ChunkPosition(BaseModel):
    """Where a chunk sits in its source document."""

    model_config = ConfigDict(frozen=True)

    document_index: int = Field(ge=0, description="Ordinal of the chunk within the document.")
    section_index: int = Field(ge=0, description="Depth-first ordinal of the originating section.")
    paragraph_index: int = Field(ge=0, description="Ordinal of the first paragraph in the section.")


class ChunkMetadata(BaseModel):
    """Heuristic annotations attached to each chunk."""

    model_config = ConfigDict(frozen=True)

    keywords: tuple[str, ...] = ()
    topics: tuple[str, ...] = ()
    complexity: Complexity = Complexity.LOW
    readability: float = Field(default=0.0, ge=0.0, le=100.0)
    source: str = ""
    title: str = ""
    section: str = ""
    language: str = "en"


class ChunkRelationship(BaseModel):
    """Directed edge from one chunk to another."""

    model_config = ConfigDict(frozen=True)

    type: RelationshipType
    target_chunk_id: str
    strength: float = Field(ge=0.0, le=1.0)


class Chunk(BaseModel):
    """A token-bounded, classified piece of a document ready for embedding."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Deterministic identifier (uuid5 of source, index and content).")
    content: str
    token_count: int = Field(ge=0)
    content_type: ContentType = ContentType.PARAGRAPH
    importance: float = Field(default=0.6, ge=0.2, le=1.0)
    position: ChunkPosition
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)
    relationships: tuple[ChunkRelationship, ...] = ()

    def related_ids(self, relationship_type: RelationshipType) -> list[str]:
        """Return target ids of all edges of *relationship_type*."""
        return [r.target_chunk_id for r in self.relationships if r.type == relationship_type]


class ChunkingConfig(BaseModel):
    """Immutable chunker configuration.

    ``overlap_words`` seeds each new chunk with the trailing words of the
    previous one; the default of zero keeps chunks disjoint.

    ``strategy`` selects structure-aware chunking (``semantic``) or plain
    word windows of ``floor(max_tokens * 0.75)`` words (``fixed``).
    """

    model_config = ConfigDict(frozen=True)

    strategy: ChunkingStrategy = ChunkingStrategy.SEMANTIC
    max_tokens: int = Field(default=512, gt=0)
    min_tokens: int = Field(default=100, ge=0)
    overlap_words: int = Field(default=0, ge=0)
    size_targets: dict[ContentType, int] = Field(
        default_factory=lambda: dict(DEFAULT_SIZE_TARGETS)
    )
    preserve_structure: bool = True

    @model_validator(mode="after")
    def _check_bounds(self) -> ChunkingConfig:
        if self.min_tokens > self.max_tokens:
            raise ValueError(
                f"min_tokens ({self.min_tokens}) must not exceed max_tokens ({self.max_tokens})"
            )
        return self

    def target_for(self, content_type: ContentType) -> int:
        """Return the token target for *content_type*, capped at ``max_tokens``."""
        target = self.size_targets.get(content_type, self.max_tokens)
        return max(1, min(target, self.max_tokens))


class ChunkingResult(BaseModel):
    """Chunks of one document plus any degenerate-split warnings."""

    model_config = ConfigDict(frozen=True)

    source: str
    title: str
    chunks: list[Chunk] = Field(default_factory=list)
    warnings: list[PipelineIssue] = Field(default_factory=list)
