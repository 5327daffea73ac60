"""Hierarchical section detection for extracted document text.

Turns flat text into a :class:`~docrag.models.document.DocumentStructure`:
a detected title plus a tree of sections.  Three header styles are
recognised, in priority order:

1. Markdown headers (``#`` .. ``######``), level = number of ``#``.
2. Short all-caps lines (``INTRODUCTION``), level 2.
3. Short colon-terminated lines without a period (``Next steps:``), level 3.

A header opens a section nested under the nearest open section with a
lower level.  Text before the first header (or in a document with no
headers at all) lands in an implicit "Content" section.  Nothing inside a
fenced code block is treated as a header.

Parsing is deterministic and never raises for string input; the worst case
is a single flat "Content" section.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePath

import structlog

from docrag.models.chunk import ContentType
from docrag.models.document import DocumentStructure, Section
from docrag.services.ingestion.document_quality import DocumentQualityAssessor
from docrag.utils.text_normalizer import normalize_document_text

logger = structlog.get_logger(logger_name=__name__)

_MARKDOWN_HEADER_RE = re.compile(r"^(#{1,6})\s+(\S.*)$")
_NUMBERED_ITEM_RE = re.compile(r"^\d+[.)]\s")
_FENCE_RE = re.compile(r"^(```|~~~)")
_MAX_HEADER_LENGTH = 100
DEFAULT_SECTION_TITLE = "Content"


@dataclass
class _SectionNode:
    """Mutable section used while the tree is being built."""

    title: str
    level: int
    header: str | None = None
    lines: list[str] = field(default_factory=list)
    children: list[_SectionNode] = field(default_factory=list)

    def freeze(self) -> Section:
        return Section(
            title=self.title,
            level=self.level,
            header=self.header,
            content="\n".join(self.lines).strip("\n"),
            content_type=ContentType.HEADING if self.header else ContentType.PARAGRAPH,
            subsections=tuple(child.freeze() for child in self.children),
        )


def detect_header_level(line: str) -> int:
    """Return the header level of a stripped *line*, or 0 if it is not a header."""
    if not line:
        return 0

    md = _MARKDOWN_HEADER_RE.match(line)
    if md:
        return len(md.group(1))

    # List items, table rows, quotes, fences, citations and formulas all
    # start with a non-alphanumeric character.
    if not line[0].isalnum() or _NUMBERED_ITEM_RE.match(line):
        return 0
    if len(line) >= _MAX_HEADER_LENGTH or not any(ch.isalpha() for ch in line):
        return 0

    if len(line) > 3 and line == line.upper():
        return 2
    if line.endswith(":") and "." not in line:
        return 3
    return 0


def header_title(line: str) -> str:
    """Strip header markup (leading ``#`` or trailing ``:``) from *line*."""
    md = _MARKDOWN_HEADER_RE.match(line)
    if md:
        return md.group(2).strip().rstrip("#").strip()
    return line.rstrip(":").strip()


def detect_title(text: str, source: str) -> str:
    """Pick a document title.

    The first ``# `` header wins; otherwise a short first line without a
    period; otherwise the source file name without its extension.
    """
    lines = [ln.strip() for ln in text.split("\n") if ln.strip()]

    for line in lines:
        md = _MARKDOWN_HEADER_RE.match(line)
        if md and len(md.group(1)) == 1:
            return md.group(2).strip()

    if lines and len(lines[0]) < _MAX_HEADER_LENGTH and "." not in lines[0]:
        return lines[0]

    if source:
        return PurePath(source).stem or source
    return "Untitled"


class StructureParser:
    """Builds a section tree from normalized document text.

    The finished tree is scored by *assessor* and the result is attached as
    :attr:`DocumentStructure.quality`.
    """

    def __init__(self, assessor: DocumentQualityAssessor | None = None) -> None:
        self._assessor = assessor or DocumentQualityAssessor()

    def parse(self, text: str, source: str = "") -> DocumentStructure:
        """Parse *text* into a :class:`DocumentStructure`.

        Parameters
        ----------
        text:
            Raw extracted text; it is normalized before parsing.
        source:
            Source name, used for the title fallback.
        """
        normalized = normalize_document_text(text or "")
        title = detect_title(normalized, source)

        roots: list[_SectionNode] = []
        stack: list[_SectionNode] = []
        current: _SectionNode | None = None
        in_fence = False

        for line in normalized.split("\n"):
            stripped = line.strip()

            if _FENCE_RE.match(stripped):
                in_fence = not in_fence
            level = 0 if in_fence or _FENCE_RE.match(stripped) else detect_header_level(stripped)

            if level:
                node = _SectionNode(title=header_title(stripped), level=level, header=stripped)
                while stack and stack[-1].level >= level:
                    stack.pop()
                if stack:
                    stack[-1].children.append(node)
                else:
                    roots.append(node)
                stack.append(node)
                current = node
                continue

            if current is None:
                if not stripped:
                    continue
                current = _SectionNode(title=DEFAULT_SECTION_TITLE, level=0)
                roots.append(current)
            current.lines.append(line)

        sections = tuple(node.freeze() for node in roots)
        flattened = [node for root in sections for node, _ in root.iter_depth_first()]
        quality = self._assessor.assess(normalized, flattened)
        structure = DocumentStructure(title=title, source=source, sections=sections, quality=quality)

        logger.debug(
            "structure_parsed",
            source=source,
            title=title,
            top_level_sections=len(sections),
            total_sections=len(flattened),
            confidence=quality.confidence,
            language=quality.language,
        )
        return structure
