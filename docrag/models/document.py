"""Source document and section-tree models.

A :class:`SourceDocument` is what the external text-extraction step hands
over.  The structure parser turns it into a :class:`DocumentStructure`, a
title plus a tree of :class:`Section` nodes, which the chunker walks.
Sections are ephemeral: they only live for the duration of one chunking
pass.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docrag.models.chunk import ContentType


class SourceDocument(BaseModel):
    """Extracted text of one input document."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="Full extracted text of the document.")
    source: str = Field(description="Source name, usually the original file name.")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form metadata supplied by the extraction step.",
    )


class Section(BaseModel):
    """A node in the document's section tree.

    ``content`` holds the section's own body text (without the header line
    and without subsection text).  ``header`` is the raw header line that
    opened the section, or ``None`` for the implicit "Content" section that
    collects text appearing before any header.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    level: int = Field(ge=0, description="Header level; 0 for the implicit root section.")
    content: str = ""
    header: str | None = None
    content_type: ContentType = ContentType.PARAGRAPH
    subsections: tuple[Section, ...] = ()

    def iter_depth_first(self):
        """Yield ``(section, parent)`` pairs for this subtree in document order."""
        yield self, None
        for child in self.subsections:
            for node, parent in child.iter_depth_first():
                yield node, parent if parent is not None else self


class DocumentQuality(BaseModel):
    """Extraction quality of a whole document.

    ``confidence`` is the mean of the text, structure and completeness
    scores.  ``issues`` name problems that likely lost content; ``warnings``
    name weaker signals such as very short sections.
    """

    model_config = ConfigDict(frozen=True)

    text_quality: float = Field(default=1.0, ge=0.0, le=1.0)
    structure_quality: float = Field(default=1.0, ge=0.0, le=1.0)
    completeness: float = Field(default=1.0, ge=0.0, le=1.0)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    readability: float = Field(default=0.0, ge=0.0, le=100.0)
    language: str = "unknown"
    issues: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


class DocumentStructure(BaseModel):
    """Parsed structure of a document: detected title and top-level sections."""

    model_config = ConfigDict(frozen=True)

    title: str
    source: str
    sections: tuple[Section, ...] = ()
    quality: DocumentQuality = Field(default_factory=DocumentQuality)

    def section_count(self) -> int:
        return sum(1 for s in self.sections for _ in s.iter_depth_first())
