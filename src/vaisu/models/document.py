"""Document entity consumed by the analysis pipeline.

Documents normally come from an external parser. Document.from_text() is a
lightweight splitter used by the CLI for plain text and markdown input.
"""

import hashlib
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Markdown style headings: "# Title" ... "##### Title"
_MARKDOWN_HEADING = re.compile(r"^(#{1,5})\s+(.+)$")
# Numbered headings: "1. Title", "1.2. Title"
_NUMBERED_HEADING = re.compile(r"^(\d+(?:\.\d+)*)\.\s+(.+)$")

MAX_HEADING_LEVEL = 5


@dataclass(frozen=True)
class DocumentMetadata:
    """Descriptive document metadata.

    Attributes:
        word_count: Whitespace-separated word count
        file_type: Source file extension (txt, md, ...)
        language: ISO language code
    """

    word_count: int = 0
    file_type: str = "txt"
    language: str = "en"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "wordCount": self.word_count,
            "fileType": self.file_type,
            "language": self.language,
        }


@dataclass(frozen=True)
class Section:
    """A titled section of document text.

    Attributes:
        id: Stable section identifier (e.g., "section-0")
        level: Heading depth, 1 for top level
        title: Heading text
        content: Body text under the heading
    """

    id: str
    level: int
    title: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "level": self.level,
            "title": self.title,
            "content": self.content,
        }


@dataclass(frozen=True)
class Document:
    """Parsed document ready for analysis.

    Attributes:
        id: Content-derived identifier
        title: Document title
        content: Full document text
        metadata: Word count, file type and language
        sections: Sections in document order
    """

    id: str
    title: str
    content: str
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    sections: tuple[Section, ...] = ()

    @classmethod
    def from_text(cls, text: str, filename: str = "document.txt") -> "Document":
        """Build a document from raw text.

        Headings are detected as markdown (#), numbered (1., 1.2.) or
        ALL CAPS lines of at least three words. A document without any
        heading becomes a single section.

        Args:
            text: Document text
            filename: Original file name, used for the title fallback and file type

        Returns:
            Document instance
        """
        sections = _split_sections(text)
        file_type = Path(filename).suffix.lstrip(".").lower() or "txt"

        return cls(
            id=hashlib.sha256(text.encode("utf-8")).hexdigest()[:16],
            title=_extract_title(text, filename),
            content=text,
            metadata=DocumentMetadata(
                word_count=len(text.split()),
                file_type=file_type,
            ),
            sections=tuple(sections),
        )

    @classmethod
    def from_file(cls, path: Path) -> "Document":
        """Read a UTF-8 text file and build a document from it."""
        return cls.from_text(path.read_text(encoding="utf-8"), filename=path.name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "metadata": self.metadata.to_dict(),
            "sections": [s.to_dict() for s in self.sections],
        }


def detect_heading(line: str) -> tuple[int, str] | None:
    """Detect whether a stripped line is a heading.

    Args:
        line: Single line with surrounding whitespace removed

    Returns:
        (level, title) for headings, None otherwise
    """
    match = _MARKDOWN_HEADING.match(line)
    if match:
        return len(match.group(1)), match.group(2).strip()

    match = _NUMBERED_HEADING.match(line)
    if match:
        level = len(match.group(1).split("."))
        return min(level, MAX_HEADING_LEVEL), match.group(2).strip()

    if (
        line
        and line == line.upper()
        and any(c.isalpha() for c in line)
        and len(line.split(" ")) >= 3
        and len(line) < 100
    ):
        return 1, line

    return None


def _split_sections(text: str) -> list[Section]:
    """Split text into sections at detected headings."""
    sections: list[Section] = []
    current: tuple[int, str] | None = None
    body: list[str] = []

    def flush() -> None:
        if current is not None:
            level, title = current
            sections.append(
                Section(
                    id=f"section-{len(sections)}",
                    level=level,
                    title=title,
                    content="\n".join(body).strip(),
                )
            )

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        heading = detect_heading(line)
        if heading:
            flush()
            current = heading
            body = []
        elif line:
            body.append(line)

    flush()

    if not sections:
        sections.append(Section(id="section-0", level=1, title="Document", content=text))

    return sections


def _extract_title(text: str, filename: str) -> str:
    """Pick a title from the first lines, falling back to the file name."""
    for line in text.split("\n")[:5]:
        trimmed = line.strip()
        if 10 < len(trimmed) < 100:
            cleaned = re.sub(r"^#+\s*", "", trimmed)
            if cleaned:
                return cleaned

    return Path(filename).stem
