"""
Folio - Analysis Metadata
Records which chapter ranges of a book were analyzed, and at what depth.
"""

import json
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

import config
from analysis.models import AnalysisMode, AnalysisRange, now_iso
from core.logger import log_warning
from core.storage import FileStorage, book_folder


@dataclass(frozen=True)
class AnalysisMetadata:
    book_title: str
    book_path: str = ""
    ranges: List[AnalysisRange] = field(default_factory=list)
    last_updated: str = field(default_factory=now_iso)
    version: int = config.METADATA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bookTitle": self.book_title,
            "bookPath": self.book_path,
            "ranges": [r.to_dict() for r in self.ranges],
            "lastUpdated": self.last_updated,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisMetadata":
        if not isinstance(data.get("bookTitle"), str):
            raise ValueError("metadata has no book title")
        if not isinstance(data.get("ranges"), list):
            raise ValueError("metadata has no range list")
        return cls(
            book_title=data["bookTitle"],
            book_path=str(data.get("bookPath", "")),
            ranges=[AnalysisRange.from_dict(r) for r in data["ranges"]],
            last_updated=str(data.get("lastUpdated") or now_iso()),
            version=int(data.get("version", config.METADATA_VERSION)),
        )


class MetadataStore:
    """Range history at <notes>/<sanitized title>/.analysis-metadata.json."""

    def __init__(self, storage: FileStorage, notes_path: str = ""):
        self.storage = storage
        self.notes_path = notes_path

    def _key(self, book_title: str) -> str:
        return f"{book_folder(self.notes_path, book_title)}/{config.METADATA_FILENAME}"

    def get(self, book_title: str) -> Optional[AnalysisMetadata]:
        text = self.storage.read(self._key(book_title))
        if text is None:
            return None
        try:
            return AnalysisMetadata.from_dict(json.loads(text))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            log_warning(f"Ignoring malformed analysis metadata for '{book_title}': {e}")
            return None

    def save(self, metadata: AnalysisMetadata) -> bool:
        text = json.dumps(metadata.to_dict(), ensure_ascii=False, indent=2)
        return self.storage.write(self._key(metadata.book_title), text)

    def add_range(self, book_title: str, book_path: str, analysis_range: AnalysisRange) -> AnalysisMetadata:
        """Append a range to the book's history, creating the history if needed."""
        metadata = self.get(book_title) or AnalysisMetadata(book_title=book_title, book_path=book_path)
        metadata = replace(
            metadata,
            book_path=book_path or metadata.book_path,
            ranges=metadata.ranges + [analysis_range],
            last_updated=now_iso(),
        )
        if not self.save(metadata):
            log_warning(f"Analysis range for '{book_title}' was not recorded")
        return metadata

    def delete(self, book_title: str) -> bool:
        return self.storage.delete(self._key(book_title))

    def get_ranges(self, book_title: str) -> List[AnalysisRange]:
        metadata = self.get(book_title)
        return list(metadata.ranges) if metadata else []

    def next_start_chapter(self, book_title: str) -> int:
        """First chapter after every analyzed range (1 when nothing was analyzed)."""
        ranges = self.get_ranges(book_title)
        if not ranges:
            return 1
        return max(r.end_chapter for r in ranges) + 1

    def has_overlap(self, book_title: str, start_chapter: int, end_chapter: int) -> bool:
        return any(r.overlaps(start_chapter, end_chapter) for r in self.get_ranges(book_title))

    @staticmethod
    def create_range(start_chapter: int, end_chapter: int, mode: AnalysisMode) -> AnalysisRange:
        return AnalysisRange(
            id=f"range-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}",
            start_chapter=start_chapter,
            end_chapter=end_chapter,
            mode=mode,
        )
