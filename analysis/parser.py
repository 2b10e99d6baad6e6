"""
Folio - Book Parser
Turns a plain text novel into an ordered list of titled chapters.

Detects:
    - English headings: "Chapter 12", "CHAPTER XII: Title", Prologue, Epilogue, Interlude
    - CJK headings: "第十二章 标题", "第12回", "卷三", "【第一章】"
    - Title/author from "Title (Author).txt", "Title - Author.txt", or
      "Title:" / "Author:" lines near the top of the file

Text before the first heading becomes its own chapter (a preface). When no
heading is found the whole text is one chapter. Back matter after the last
chapter (Glossary, Appendix, Acknowledgements, About the Author) is dropped.
"""

import re
from pathlib import Path
from typing import List, Optional, Tuple

from analysis.errors import DocumentParseError
from analysis.models import BookMetadata, Chapter, ParsedBook
from core.logger import log_info

UNKNOWN_TITLE = "Untitled"
PREFACE_TITLE = "Preface"
FULL_TEXT_TITLE = "Full Text"

# Headings longer than this are treated as prose
MAX_HEADING_LENGTH = 50

# Header lines scanned for Title:/Author: fields
METADATA_SCAN_LINES = 20

_CJK_NUMERALS = "一二三四五六七八九十百千万零〇两"

# =============================================================================
# HEADING PATTERNS
# =============================================================================

CHAPTER_PATTERNS = [
    # "Chapter 1", "Chapter One", "CHAPTER 1: Title"
    re.compile(r'^Chapter\s+[\w.]+(?:\s*[:\-–—.]\s*.+)?$', re.IGNORECASE),
    # "Prologue", "Epilogue: Title", "Interlude - Title"
    re.compile(r'^(?:Prologue|Epilogue|Interlude)(?:\s*[:\-–—]\s*.+)?$', re.IGNORECASE),
    # "第十二章 标题", "第12回", "第三卷"
    re.compile(rf'^第\s*[{_CJK_NUMERALS}\d]+\s*[章节回卷集部篇](?:\s+.*)?$'),
    # "12章", "十二回"
    re.compile(rf'^[{_CJK_NUMERALS}\d]+\s*[章回](?:\s+.*)?$'),
    # "卷三"
    re.compile(rf'^卷[{_CJK_NUMERALS}\d]+(?:\s+.*)?$'),
    # "【第一章】", "[第1章]"
    re.compile(rf'^[【\[]\s*第?[{_CJK_NUMERALS}\d]+[章节回]\s*[】\]].*$'),
]

BACKMATTER_PATTERNS = [
    re.compile(r'^Glossary(?:\s*[:\-–—]\s*.+)?$', re.IGNORECASE),
    re.compile(r'^Appendix(?:\s*[:\-–—]\s*.+)?$', re.IGNORECASE),
    re.compile(r'^Acknowledge?ments?(?:\s*[:\-–—]\s*.+)?$', re.IGNORECASE),
    re.compile(r'^About the Author$', re.IGNORECASE),
]

_FILENAME_PAREN = re.compile(r'^(.+?)\s*[（(](.+?)[）)]$')
_FILENAME_DASH = re.compile(r'^(.+?)\s+[-–—]\s+(.+)$')
_FILENAME_CJK_DASH = re.compile(r'^([^\x00-\x7f]+?)[-_]([^\x00-\x7f]+)$')
_TITLE_LINE = re.compile(r'^(?:title|书名|名称)\s*[：:]\s*(.+)$', re.IGNORECASE)
_AUTHOR_LINE = re.compile(r'^(?:author|作者)\s*[：:]\s*(.+)$', re.IGNORECASE)

_CJK_CHAR = re.compile(r'[一-龥]')
_LATIN_WORD = re.compile(r'[A-Za-z]+(?:\'[A-Za-z]+)?')


def count_words(text: str) -> int:
    """CJK characters plus Latin words."""
    return len(_CJK_CHAR.findall(text)) + len(_LATIN_WORD.findall(text))


def is_chapter_heading(line: str) -> bool:
    if not line or len(line) > MAX_HEADING_LENGTH:
        return False
    return any(p.match(line) for p in CHAPTER_PATTERNS)


def _is_backmatter(line: str) -> bool:
    return bool(line) and any(p.match(line) for p in BACKMATTER_PATTERNS)


def decode_text(data: bytes) -> str:
    """UTF-8 (BOM tolerated), then GBK, then UTF-8 with replacement."""
    for encoding in ("utf-8-sig", "gbk"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("utf-8", errors="replace")


def extract_metadata(text: str, filename: Optional[str] = None) -> BookMetadata:
    title, author = "", ""

    if filename:
        stem = Path(filename).stem.strip()
        match = (
            _FILENAME_PAREN.match(stem)
            or _FILENAME_DASH.match(stem)
            or _FILENAME_CJK_DASH.match(stem)
        )
        if match:
            title, author = match.group(1).strip(), match.group(2).strip()
        else:
            title = stem.replace("_", " ").strip()

    for line in text.splitlines()[:METADATA_SCAN_LINES]:
        line = line.strip()
        title_match = _TITLE_LINE.match(line)
        if title_match and not title:
            title = title_match.group(1).strip()
        author_match = _AUTHOR_LINE.match(line)
        if author_match and not author:
            author = author_match.group(1).strip()

    return BookMetadata(title=title or UNKNOWN_TITLE, author=author)


def split_chapters(text: str) -> List[Chapter]:
    """Split text at chapter headings. Chapters with no body text are dropped."""
    sections: List[Tuple[str, List[str]]] = []
    title, body = PREFACE_TITLE, []

    for line in text.splitlines():
        stripped = line.strip()
        if is_chapter_heading(stripped):
            sections.append((title, body))
            title, body = stripped, []
        else:
            body.append(line)

    # Back matter can only follow the last chapter
    if sections:
        for i, line in enumerate(body):
            if _is_backmatter(line.strip()):
                body = body[:i]
                break
    sections.append((title, body))

    chapters: List[Chapter] = []
    for section_title, lines in sections:
        content = "\n".join(lines).strip()
        if not content:
            continue
        chapters.append(Chapter(
            index=len(chapters),
            title=section_title,
            content=content,
            word_count=count_words(content),
        ))

    if not chapters and text.strip():
        content = text.strip()
        chapters.append(Chapter(index=0, title=FULL_TEXT_TITLE, content=content, word_count=count_words(content)))

    return chapters


def parse(data: bytes, filename: Optional[str] = None) -> ParsedBook:
    """
    Parse a plain text novel.

    Args:
        data: Raw file bytes
        filename: Original file name, used for title/author

    Returns:
        ParsedBook with contiguous 0-based chapter indices

    Raises:
        DocumentParseError: empty or whitespace-only content
    """
    if not data:
        raise DocumentParseError("File is empty", "txt")

    text = decode_text(data).replace("\r\n", "\n")
    if not text.strip():
        raise DocumentParseError("File contains no text", "txt")

    metadata = extract_metadata(text, filename)
    chapters = split_chapters(text)
    total_words = sum(ch.word_count for ch in chapters)

    log_info(
        f"Parsed '{metadata.title}': {len(chapters)} chapters, {total_words} words",
        prefix="📖"
    )

    return ParsedBook(metadata=metadata, chapters=chapters, total_word_count=total_words)


def parse_file(path: Path) -> ParsedBook:
    """Read and parse a .txt file."""
    path = Path(path)
    if path.suffix.lower() != ".txt":
        raise DocumentParseError(f"Unsupported format: {path.suffix or 'none'}", path.suffix.lstrip(".") or "unknown")
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DocumentParseError(f"Cannot read {path}: {e}", "txt") from e
    return parse(data, path.name)
