"""
Folio - Checkpoint Store
Persists one in-progress analysis per book so an interrupted run can resume.

Checkpointing is best-effort: a missing, unreadable, or malformed checkpoint
reads as "no checkpoint", and a failed write is logged and ignored. None of
these ever fail the analysis itself.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

import config
from analysis.models import AnalysisConfig, ChapterRange, now_iso
from analysis.stages import Stage, parse_stage_list
from core.logger import log_debug, log_warning
from core.storage import FileStorage, book_folder


@dataclass(frozen=True)
class AnalysisCheckpoint:
    book_path: str
    book_title: str
    config: AnalysisConfig
    chapter_range: ChapterRange
    current_stage: Optional[Stage] = None
    completed_stages: List[Stage] = field(default_factory=list)
    partial_results: Dict[str, Any] = field(default_factory=dict)   # serialized (camelCase) result fields
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def is_stage_completed(self, stage: Stage) -> bool:
        return stage in self.completed_stages

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bookPath": self.book_path,
            "bookTitle": self.book_title,
            "config": self.config.to_dict(),
            "chapterRange": self.chapter_range.to_dict(),
            "currentStage": self.current_stage.value if self.current_stage else None,
            "completedStages": [s.value for s in self.completed_stages],
            "partialResults": self.partial_results,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisCheckpoint":
        """Raises ValueError/KeyError/TypeError on malformed data."""
        if not isinstance(data.get("bookTitle"), str):
            raise ValueError("checkpoint has no book title")
        if not isinstance(data.get("completedStages"), list):
            raise ValueError("checkpoint has no completed stage list")

        current = data.get("currentStage")
        partial = data.get("partialResults") or {}
        if not isinstance(partial, dict):
            raise ValueError("checkpoint partial results are not an object")

        return cls(
            book_path=str(data.get("bookPath", "")),
            book_title=data["bookTitle"],
            config=AnalysisConfig.from_dict(data.get("config") or {}),
            chapter_range=ChapterRange.from_dict(data["chapterRange"]),
            current_stage=Stage(current) if current else None,
            completed_stages=parse_stage_list(data["completedStages"]),
            partial_results=partial,
            created_at=str(data.get("createdAt") or now_iso()),
            updated_at=str(data.get("updatedAt") or now_iso()),
        )


class CheckpointStore:
    """Checkpoint files at <notes>/<sanitized title>/.analysis-checkpoint.json."""

    def __init__(self, storage: FileStorage, notes_path: str = ""):
        self.storage = storage
        self.notes_path = notes_path

    def _key(self, book_title: str) -> str:
        return f"{book_folder(self.notes_path, book_title)}/{config.CHECKPOINT_FILENAME}"

    def _save(self, checkpoint: AnalysisCheckpoint) -> bool:
        text = json.dumps(checkpoint.to_dict(), ensure_ascii=False, indent=2)
        saved = self.storage.write(self._key(checkpoint.book_title), text)
        if not saved:
            log_warning(f"Checkpoint for '{checkpoint.book_title}' was not saved")
        return saved

    def create(
        self,
        book_path: str,
        book_title: str,
        analysis_config: AnalysisConfig,
        chapter_range: ChapterRange
    ) -> AnalysisCheckpoint:
        """Start a fresh checkpoint, replacing any existing one for the book."""
        checkpoint = AnalysisCheckpoint(
            book_path=book_path,
            book_title=book_title,
            config=analysis_config,
            chapter_range=chapter_range,
        )
        self._save(checkpoint)
        log_debug(f"Checkpoint created for '{book_title}' ({chapter_range.start}-{chapter_range.end})")
        return checkpoint

    def get(self, book_title: str) -> Optional[AnalysisCheckpoint]:
        text = self.storage.read(self._key(book_title))
        if text is None:
            return None
        try:
            return AnalysisCheckpoint.from_dict(json.loads(text))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            log_warning(f"Ignoring malformed checkpoint for '{book_title}': {e}")
            return None

    def has(self, book_title: str) -> bool:
        return self.get(book_title) is not None

    def update(self, book_title: str, stage: Stage, partial_result: Dict[str, Any]) -> Optional[AnalysisCheckpoint]:
        """
        Mark a stage completed and shallow-merge its serialized output.

        No-op (returns None) when there is no checkpoint for the book.
        """
        checkpoint = self.get(book_title)
        if checkpoint is None:
            return None

        completed = list(checkpoint.completed_stages)
        if stage not in completed:
            completed.append(stage)

        updated = replace(
            checkpoint,
            completed_stages=completed,
            partial_results={**checkpoint.partial_results, **partial_result},
            updated_at=now_iso(),
        )
        self._save(updated)
        return updated

    def set_current_stage(self, book_title: str, stage: Stage) -> None:
        """Record the in-flight stage (diagnostics only)."""
        checkpoint = self.get(book_title)
        if checkpoint is None:
            return
        self._save(replace(checkpoint, current_stage=stage, updated_at=now_iso()))

    def delete(self, book_title: str) -> bool:
        return self.storage.delete(self._key(book_title))

    @staticmethod
    def format_status(checkpoint: AnalysisCheckpoint) -> str:
        """One-line summary such as "Checkpoint: chapters 1-12, 2 stages completed (2026-03-01 14:05)"."""
        try:
            updated = datetime.fromisoformat(checkpoint.updated_at).strftime("%Y-%m-%d %H:%M")
        except ValueError:
            updated = checkpoint.updated_at
        count = len(checkpoint.completed_stages)
        return (
            f"Checkpoint: chapters {checkpoint.chapter_range.start}-{checkpoint.chapter_range.end}, "
            f"{count} stage{'' if count == 1 else 's'} completed ({updated})"
        )
