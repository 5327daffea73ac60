"""Structure-aware semantic chunking with token bounds.

Turns a :class:`~docrag.models.document.DocumentStructure` into an ordered
list of :class:`~docrag.models.chunk.Chunk` objects sized for embedding
models.

The algorithm runs in four passes:

1. **Accumulate** -- sections are walked depth-first.  A section's header
   line is its first paragraph, so no text is lost.  Paragraphs (blank-line
   boundaries, never inside a code fence) are packed greedily until the
   next one would push the buffer past the section's content-type target.
   A paragraph that is too large on its own degrades to sentence
   boundaries, then word boundaries.  A single word larger than the target
   is emitted alone and reported as ``ChunkingDegenerate``.
2. **Merge** -- a piece below ``min_tokens`` is folded into its neighbour
   when the combination still fits ``max_tokens``.
3. **Enforce** -- anything still above ``max_tokens`` is re-split.
4. **Annotate** -- classification, importance, metadata and relationship
   edges (sibling, parent/child, reference).

With ``ChunkingStrategy.FIXED`` the first two passes are replaced by plain
word windows over the whole document; enforcement and annotation still run.

Chunk ids are ``uuid5`` values over source, position and content, so the
same document and configuration always yield identical chunks.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field

import structlog

from docrag.models.chunk import (
    Chunk,
    ChunkingConfig,
    ChunkingResult,
    ChunkingStrategy,
    ChunkPosition,
    ChunkRelationship,
    RelationshipType,
)
from docrag.models.document import DocumentStructure, Section, SourceDocument
from docrag.models.pipeline import IssueKind, IssueSeverity, PipelineIssue, PipelinePhase
from docrag.services.ingestion.metadata_extractor import MetadataExtractor
from docrag.services.ingestion.structure_parser import StructureParser
from docrag.services.ingestion.tokenizer import TokenCounter, estimate_tokens
from docrag.utils.text_normalizer import split_sentences

logger = structlog.get_logger(logger_name=__name__)

SIBLING_STRENGTH = 0.8
PARENT_CHILD_STRENGTH = 0.6
REFERENCE_STRENGTH = 0.5

_CHUNK_NAMESPACE = uuid.UUID("6f1c1b7e-1f0e-5a8e-9d0b-8c6f2b0c4d21")

_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_REFERENCE_DEF_RE = re.compile(r"^\s*\[(\d+)\]", re.MULTILINE)
_CITATION_RE = re.compile(r"\[(\d+)\]")


@dataclass
class _Piece:
    """Chunk text before annotation, with provenance."""

    text: str
    section_index: int
    paragraph_index: int
    section: Section
    sections: list[int] = field(default_factory=list)


class SemanticChunker:
    """Splits documents into token-bounded, annotated chunks.

    Parameters
    ----------
    config:
        Size bounds, per-type targets and overlap.
    token_counter:
        Callable returning the token count of a string.  Defaults to the
        ``ceil(len / 4)`` estimate.
    parser:
        Structure parser; a default :class:`StructureParser` when omitted.
    extractor:
        Heuristic annotator; a default :class:`MetadataExtractor` when omitted.
    """

    def __init__(
        self,
        config: ChunkingConfig | None = None,
        token_counter: TokenCounter = estimate_tokens,
        parser: StructureParser | None = None,
        extractor: MetadataExtractor | None = None,
    ) -> None:
        self._config = config or ChunkingConfig()
        self._count = token_counter
        self._parser = parser or StructureParser()
        self._extractor = extractor or MetadataExtractor()

    @property
    def config(self) -> ChunkingConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse_document(self, document: SourceDocument) -> DocumentStructure:
        """Parse one extracted document into its scored section tree."""
        return self._parser.parse(document.content, document.source)

    def chunk_document(self, document: SourceDocument) -> ChunkingResult:
        """Parse and chunk one extracted document."""
        return self.chunk_structure(self.parse_document(document))

    def chunk_structure(self, structure: DocumentStructure) -> ChunkingResult:
        """Chunk an already-parsed document.

        Never raises for any structure; a document with no text yields an
        empty chunk list and the caller decides whether that is fatal.
        """
        warnings: list[PipelineIssue] = []
        sections: list[tuple[Section, int | None]]
        if self._config.strategy == ChunkingStrategy.FIXED:
            sections = [(self._flat_section(structure), None)]
            pieces = self._fixed_windows(sections[0][0])
        else:
            sections = self._ordered_sections(structure)
            pieces = []
            for section_index, (section, _parent) in enumerate(sections):
                pieces.extend(self._accumulate_section(section, section_index, warnings))
            pieces = self._merge_small(pieces)

        pieces = self._enforce_max(pieces, warnings)

        chunks = self._build_chunks(pieces, structure)
        chunks = self._link_relationships(chunks, pieces, sections)

        logger.info(
            "chunking_complete",
            source=structure.source,
            strategy=self._config.strategy.value,
            sections=len(sections),
            num_chunks=len(chunks),
            avg_tokens=self._avg_tokens(chunks),
            degenerate=len(warnings),
        )
        return ChunkingResult(
            source=structure.source,
            title=structure.title,
            chunks=chunks,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Pass 1: accumulation
    # ------------------------------------------------------------------

    def _ordered_sections(self, structure: DocumentStructure) -> list[tuple[Section, int | None]]:
        """Flatten the tree depth-first into ``(section, parent_index)`` pairs."""
        if not self._config.preserve_structure:
            return [(self._flat_section(structure), None)]

        ordered: list[tuple[Section, int | None]] = []

        def _walk(section: Section, parent_index: int | None) -> None:
            index = len(ordered)
            ordered.append((section, parent_index))
            for child in section.subsections:
                _walk(child, index)

        for root in structure.sections:
            _walk(root, None)
        return ordered

    @staticmethod
    def _flat_section(structure: DocumentStructure) -> Section:
        """The whole document as one implicit section, headers kept inline."""
        text = "\n\n".join(
            part
            for root in structure.sections
            for node, _ in root.iter_depth_first()
            for part in (node.header, node.content)
            if part
        )
        return Section(title=structure.title, level=0, content=text)

    def _fixed_windows(self, section: Section) -> list[_Piece]:
        """Cut *section* into windows of ``floor(max_tokens * 0.75)`` words.

        Consecutive windows share ``overlap_words`` words, capped so every
        window advances by at least one word.
        """
        words = section.content.split()
        size = max(1, int(self._config.max_tokens * 0.75))
        step = size - min(self._config.overlap_words, size - 1)

        pieces: list[_Piece] = []
        for start in range(0, len(words), step):
            pieces.append(
                _Piece(
                    text=" ".join(words[start : start + size]),
                    section_index=0,
                    paragraph_index=len(pieces),
                    section=section,
                    sections=[0],
                )
            )
            if start + size >= len(words):
                break
        return pieces

    def _accumulate_section(
        self,
        section: Section,
        section_index: int,
        warnings: list[PipelineIssue],
    ) -> list[_Piece]:
        paragraphs = self._split_paragraphs(section.content)
        if section.header:
            paragraphs.insert(0, section.header)
        if not paragraphs:
            return []

        target = self._config.target_for(section.content_type)
        pieces: list[_Piece] = []
        buffer: list[str] = []
        buffer_start = 0

        def _flush() -> None:
            if buffer:
                pieces.append(
                    _Piece(
                        text="\n\n".join(buffer),
                        section_index=section_index,
                        paragraph_index=buffer_start,
                        section=section,
                        sections=[section_index],
                    )
                )

        for para_index, para in enumerate(paragraphs):
            if self._count(para) > target:
                _flush()
                buffer = []
                for text in self._split_oversized(para, target, warnings):
                    pieces.append(
                        _Piece(
                            text=text,
                            section_index=section_index,
                            paragraph_index=para_index,
                            section=section,
                            sections=[section_index],
                        )
                    )
                continue

            if buffer and self._count("\n\n".join([*buffer, para])) > target:
                flushed = "\n\n".join(buffer)
                _flush()
                buffer = self._overlap_seed(flushed, para, target)
                buffer_start = para_index
            if not buffer:
                buffer_start = para_index
            buffer.append(para)

        _flush()
        return pieces

    def _overlap_seed(self, flushed: str, next_para: str, target: int) -> list[str]:
        """Trailing words of *flushed* to prepend to the next buffer, if they fit."""
        n = self._config.overlap_words
        if n <= 0:
            return []
        seed = " ".join(flushed.split()[-n:])
        if self._count(f"{seed}\n\n{next_para}") > target:
            return []
        return [seed]

    def _split_oversized(
        self,
        text: str,
        target: int,
        warnings: list[PipelineIssue],
    ) -> list[str]:
        """Split *text* at sentence boundaries, then word boundaries."""
        parts: list[str] = []
        current: list[str] = []

        for sentence in split_sentences(text):
            if self._count(sentence) > target:
                if current:
                    parts.append(" ".join(current))
                    current = []
                parts.extend(self._split_words(sentence, target, warnings))
                continue
            if current and self._count(" ".join([*current, sentence])) > target:
                parts.append(" ".join(current))
                current = []
            current.append(sentence)

        if current:
            parts.append(" ".join(current))
        return parts

    def _split_words(
        self,
        text: str,
        target: int,
        warnings: list[PipelineIssue],
    ) -> list[str]:
        parts: list[str] = []
        current: list[str] = []

        for word in text.split():
            if self._count(word) > target:
                if current:
                    parts.append(" ".join(current))
                    current = []
                parts.append(word)
                logger.warning(
                    "chunking_degenerate",
                    word_tokens=self._count(word),
                    target=target,
                )
                warnings.append(
                    PipelineIssue(
                        kind=IssueKind.CHUNKING_DEGENERATE,
                        message=(
                            f"Single word of {self._count(word)} tokens exceeds "
                            f"the {target}-token target and was emitted alone"
                        ),
                        severity=IssueSeverity.WARNING,
                        phase=PipelinePhase.CHUNKING,
                    )
                )
                continue
            if current and self._count(" ".join([*current, word])) > target:
                parts.append(" ".join(current))
                current = []
            current.append(word)

        if current:
            parts.append(" ".join(current))
        return parts

    # ------------------------------------------------------------------
    # Passes 2 and 3: merge and enforce
    # ------------------------------------------------------------------

    def _merge_small(self, pieces: list[_Piece]) -> list[_Piece]:
        """Fold pieces below ``min_tokens`` into a neighbour when the result fits."""
        min_tokens = self._config.min_tokens
        max_tokens = self._config.max_tokens
        merged: list[_Piece] = []

        for piece in pieces:
            if merged:
                prev = merged[-1]
                small = self._count(prev.text) < min_tokens or self._count(piece.text) < min_tokens
                combined = f"{prev.text}\n\n{piece.text}"
                if small and self._count(combined) <= max_tokens:
                    prev.text = combined
                    for idx in piece.sections:
                        if idx not in prev.sections:
                            prev.sections.append(idx)
                    continue
            merged.append(piece)
        return merged

    def _enforce_max(self, pieces: list[_Piece], warnings: list[PipelineIssue]) -> list[_Piece]:
        max_tokens = self._config.max_tokens
        result: list[_Piece] = []
        for piece in pieces:
            # A lone oversized word was already reported during accumulation.
            if self._count(piece.text) <= max_tokens or len(piece.text.split()) == 1:
                result.append(piece)
                continue
            for text in self._split_oversized(piece.text, max_tokens, warnings):
                result.append(
                    _Piece(
                        text=text,
                        section_index=piece.section_index,
                        paragraph_index=piece.paragraph_index,
                        section=piece.section,
                        sections=list(piece.sections),
                    )
                )
        return result

    # ------------------------------------------------------------------
    # Pass 4: annotation
    # ------------------------------------------------------------------

    def _build_chunks(self, pieces: list[_Piece], structure: DocumentStructure) -> list[Chunk]:
        chunks: list[Chunk] = []
        for index, piece in enumerate(pieces):
            content = piece.text
            chunks.append(
                Chunk(
                    id=self.chunk_id(structure.source, index, content),
                    content=content,
                    token_count=self._count(content),
                    content_type=self._extractor.classify_content(content),
                    importance=self._extractor.calculate_importance(
                        content, piece.section.content_type
                    ),
                    position=ChunkPosition(
                        document_index=index,
                        section_index=piece.section_index,
                        paragraph_index=piece.paragraph_index,
                    ),
                    metadata=self._extractor.build_metadata(
                        content,
                        source=structure.source,
                        title=structure.title,
                        section=piece.section.title,
                    ),
                )
            )
        return chunks

    def _link_relationships(
        self,
        chunks: list[Chunk],
        pieces: list[_Piece],
        sections: list[tuple[Section, int | None]],
    ) -> list[Chunk]:
        edges: list[list[ChunkRelationship]] = [[] for _ in chunks]

        for i in range(len(chunks) - 1):
            edges[i].append(_edge(RelationshipType.SIBLING, chunks[i + 1].id, SIBLING_STRENGTH))
            edges[i + 1].append(_edge(RelationshipType.SIBLING, chunks[i].id, SIBLING_STRENGTH))

        # First chunk holding each section's text.
        first_chunk: dict[int, int] = {}
        for chunk_index, piece in enumerate(pieces):
            for section_index in piece.sections:
                first_chunk.setdefault(section_index, chunk_index)

        for section_index, (_section, parent_index) in enumerate(sections):
            if parent_index is None:
                continue
            child_at = first_chunk.get(section_index)
            parent_at = first_chunk.get(parent_index)
            if child_at is None or parent_at is None or child_at == parent_at:
                continue
            edges[child_at].append(
                _edge(RelationshipType.PARENT, chunks[parent_at].id, PARENT_CHILD_STRENGTH)
            )
            edges[parent_at].append(
                _edge(RelationshipType.CHILD, chunks[child_at].id, PARENT_CHILD_STRENGTH)
            )

        definitions: dict[str, int] = {}
        for chunk_index, chunk in enumerate(chunks):
            for number in _REFERENCE_DEF_RE.findall(chunk.content):
                definitions.setdefault(number, chunk_index)
        if definitions:
            for chunk_index, chunk in enumerate(chunks):
                body = _REFERENCE_DEF_RE.sub("", chunk.content)
                targets: list[int] = []
                for number in _CITATION_RE.findall(body):
                    target = definitions.get(number)
                    if target is not None and target != chunk_index and target not in targets:
                        targets.append(target)
                for target in targets:
                    edges[chunk_index].append(
                        _edge(RelationshipType.REFERENCE, chunks[target].id, REFERENCE_STRENGTH)
                    )

        return [
            chunk.model_copy(update={"relationships": tuple(chunk_edges)})
            for chunk, chunk_edges in zip(chunks, edges)
        ]

    # ------------------------------------------------------------------
    # Paragraph / sentence splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        """Split on blank lines, keeping fenced code blocks intact."""
        paragraphs: list[str] = []
        current: list[str] = []
        in_fence = False

        for line in text.split("\n"):
            if _FENCE_RE.match(line):
                in_fence = not in_fence
            if not line.strip() and not in_fence:
                if current:
                    paragraphs.append("\n".join(current).strip("\n"))
                    current = []
                continue
            current.append(line)

        if current:
            paragraphs.append("\n".join(current).strip("\n"))
        return [p for p in paragraphs if p.strip()]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def chunk_id(source: str, index: int, content: str) -> str:
        """Deterministic chunk id over source, position and content."""
        return str(uuid.uuid5(_CHUNK_NAMESPACE, f"{source}\x1f{index}\x1f{content}"))

    @staticmethod
    def _avg_tokens(chunks: list[Chunk]) -> int:
        if not chunks:
            return 0
        return sum(c.token_count for c in chunks) // len(chunks)


def _edge(kind: RelationshipType, target_id: str, strength: float) -> ChunkRelationship:
    return ChunkRelationship(type=kind, target_chunk_id=target_id, strength=strength)
