"""
Structure detection for source content shown in the source viewer.

Sources are stored as extracted plain text or markdown. The viewer needs each
line typed (header, table row, list item...) and the cited line range flagged
so it can scroll to and highlight a citation.
"""
import re
from typing import List, Optional

from app.schemas.sources import ContentLine, ContentTable

HEADER_RE = re.compile(r"^(#{1,6})\s+(.+)$")
TABLE_ROW_RE = re.compile(r"^\|(.+)\|$")
TABLE_SEPARATOR_CELL_RE = re.compile(r"^:?-+:?$")
LIST_ITEM_RE = re.compile(r"^(\s*)([-*+]|\d+\.)\s+(.+)$")

DOCUMENT_KEYWORDS_RE = re.compile(
    r"^(Policy|Administrative|Executive|Summary|Eligibility|Compliance|Guidelines)", re.IGNORECASE
)
CODE_KEYWORDS_RE = re.compile(r"^(import|export|function|class|const|let|var)\s")
CODE_PUNCTUATION_RE = re.compile(r"[{}\[\];]")
CODE_COMMENT_RE = re.compile(r"^//|^/\*|\*/$")


class ParsedContent:
    def __init__(self):
        self.lines: List[ContentLine] = []
        self.tables: List[ContentTable] = []
        self.has_structured_content = False


def parse_content_structure(
    content: str,
    highlight_from: Optional[int] = None,
    highlight_to: Optional[int] = None,
) -> ParsedContent:
    """Type every line of `content` and collect markdown tables."""
    parsed = ParsedContent()
    raw_lines = (content or "").split("\n")

    table_start = None
    table_headers: List[str] = []
    table_rows: List[List[str]] = []

    def finish_table(end_line: int):
        nonlocal table_start, table_headers, table_rows
        if table_start is not None:
            parsed.tables.append(ContentTable(
                start_line=table_start, end_line=end_line, headers=table_headers, rows=table_rows
            ))
        table_start, table_headers, table_rows = None, [], []

    for line_number, line in enumerate(raw_lines, start=1):
        trimmed = line.strip()
        highlighted = (
            highlight_from is not None
            and highlight_to is not None
            and highlight_from <= line_number <= highlight_to
        )

        def add(kind: str, level: Optional[int] = None):
            parsed.lines.append(ContentLine(
                line_number=line_number, content=line, type=kind, level=level, is_highlighted=highlighted
            ))

        if not trimmed:
            finish_table(line_number - 1)
            add("empty")
            continue

        header = HEADER_RE.match(trimmed)
        if header:
            parsed.has_structured_content = True
            add("header", len(header.group(1)))
            continue

        row = TABLE_ROW_RE.match(trimmed)
        if row:
            parsed.has_structured_content = True
            cells = [cell.strip() for cell in row.group(1).split("|")]
            if all(TABLE_SEPARATOR_CELL_RE.match(cell) for cell in cells):
                add("table-separator")
                continue

            if table_start is None:
                table_start = line_number
            if not table_headers:
                table_headers = cells
                add("table-header")
            else:
                table_rows.append(cells)
                add("table-row")
            continue

        item = LIST_ITEM_RE.match(line.rstrip())
        if item:
            parsed.has_structured_content = True
            add("list-item", len(item.group(1)) // 2 + 1)
            continue

        add("text")

    finish_table(len(raw_lines))
    return parsed


def detect_content_type(content: str) -> str:
    """Classify content as `document`, `code` or `mixed`."""
    document_score = 0
    code_score = 0
    for line in (content or "").split("\n"):
        trimmed = line.strip()
        if re.match(r"^#+\s", trimmed):
            document_score += 1
        if re.match(r"^\|.*\|$", trimmed):
            document_score += 1
        if re.match(r"^[-*+]\s", trimmed):
            document_score += 1
        if DOCUMENT_KEYWORDS_RE.match(trimmed):
            document_score += 2

        if CODE_KEYWORDS_RE.match(trimmed):
            code_score += 1
        if CODE_PUNCTUATION_RE.search(trimmed):
            code_score += 1
        if CODE_COMMENT_RE.search(trimmed):
            code_score += 1

    if document_score > code_score * 2:
        return "document"
    if code_score > document_score * 2:
        return "code"
    return "mixed"


def markdown_to_text(parts: List[str]) -> str:
    """Join extracted markdown fragments and strip the formatting."""
    text = "\n\n".join(parts or [])
    text = re.sub(r"^#{1,6}\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"\*\*([^*]+)\*\*", r"\1", text)
    text = re.sub(r"\*([^*]+)\*", r"\1", text)
    # Images before links, otherwise the link pattern eats the alt text
    text = re.sub(r"!\[([^\]]*)\]\([^)]+\)", "", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    text = text.replace("|", " ")
    text = re.sub(r":-+:", "", text)
    text = re.sub(r":-+", "", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()
