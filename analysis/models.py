"""
Folio - Analysis Data Model
Books, configuration, analysis entities, and the accumulated result.

Serialized forms use camelCase keys (bookInfo, writingTechniques, growthArc,
...) so checkpoint, metadata, and result files stay stable across versions.
Entity from_dict constructors accept loose model output: unknown enum values
fall back to a default, numbers arriving as strings are converted, and an
entry missing its merge key raises ValueError so the caller can drop it.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# ENUMS
# =============================================================================

class AnalysisMode(Enum):
    """Analysis depth tier. Each tier runs every stage of the tier below."""
    QUICK = "quick"
    STANDARD = "standard"
    DEEP = "deep"

    @property
    def depth(self) -> int:
        return _MODE_DEPTH[self]


_MODE_DEPTH = {AnalysisMode.QUICK: 1, AnalysisMode.STANDARD: 2, AnalysisMode.DEEP: 3}


class NovelType(Enum):
    """Genre used to pick genre-specific prompt supplements."""
    URBAN = "urban"
    FANTASY = "fantasy"
    XIANXIA = "xianxia"
    WUXIA = "wuxia"
    SCIFI = "scifi"
    GAME = "game"
    ALTERNATE_HISTORY = "alternate-history"
    HISTORICAL = "historical"
    MILITARY = "military"
    SPORTS = "sports"
    SUPERNATURAL = "supernatural"
    ROMANCE = "romance"
    CUSTOM = "custom"


class CharacterRole(Enum):
    PROTAGONIST = "protagonist"
    ANTAGONIST = "antagonist"
    SUPPORTING = "supporting"


class ForeshadowingStatus(Enum):
    PLANTED = "planted"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"

    @property
    def priority(self) -> int:
        """Merge precedence: resolved > planted > abandoned."""
        return _STATUS_PRIORITY[self]


_STATUS_PRIORITY = {
    ForeshadowingStatus.RESOLVED: 3,
    ForeshadowingStatus.PLANTED: 2,
    ForeshadowingStatus.ABANDONED: 1,
}


class IncrementalMode(Enum):
    """How an incremental run relates to earlier runs on the same book."""
    CONTINUE = "continue"   # pick up after the last analyzed chapter
    APPEND = "append"       # analyze an arbitrary extra range
    RESTART = "restart"     # forget earlier ranges and start over


class StageStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


# =============================================================================
# COERCION HELPERS
# =============================================================================

def _text(value: Any) -> str:
    """Model output field as a trimmed string ("" for missing)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _string_list(value: Any) -> List[str]:
    """
    Model output list as distinct non-empty strings, first occurrence kept.

    Dict items (e.g. {"name": "Lin", "relation": "mentor"}) are flattened
    to "Lin: mentor".
    """
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []

    items = []
    for item in value:
        if isinstance(item, dict):
            text = ": ".join(t for t in (_text(v) for v in item.values()) if t)
        else:
            text = _text(item)
        if text and text not in items:
            items.append(text)
    return items


def _int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return default
    return default


def _enum(enum_cls, value: Any, default):
    try:
        return enum_cls(_text(value).lower())
    except ValueError:
        return default


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


# =============================================================================
# BOOK
# =============================================================================

@dataclass(frozen=True)
class BookMetadata:
    title: str
    author: str = ""
    description: Optional[str] = None
    cover_image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"title": self.title, "author": self.author}
        if self.description:
            data["description"] = self.description
        if self.cover_image:
            data["coverImage"] = self.cover_image
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookMetadata":
        return cls(
            title=_text(data.get("title")),
            author=_text(data.get("author")),
            description=_optional_text(data.get("description")),
            cover_image=_optional_text(data.get("coverImage")),
        )


@dataclass(frozen=True)
class Chapter:
    """One chapter. index is the 0-based position in the full book."""
    index: int
    title: str
    content: str
    word_count: int = 0


@dataclass(frozen=True)
class ParsedBook:
    metadata: BookMetadata
    chapters: List[Chapter]
    total_word_count: int = 0

    @property
    def title(self) -> str:
        return self.metadata.title

    @property
    def chapter_count(self) -> int:
        return len(self.chapters)

    def select_range(self, start_chapter: int, end_chapter: int) -> "ParsedBook":
        """
        Restrict to a 1-based inclusive chapter range.

        Chapters keep their whole-book index so results from different
        ranges of the same book never collide on chapter keys.
        """
        selected = self.chapters[max(start_chapter - 1, 0):max(end_chapter, 0)]
        return ParsedBook(
            metadata=self.metadata,
            chapters=list(selected),
            total_word_count=sum(ch.word_count for ch in selected),
        )


@dataclass(frozen=True)
class ChapterRange:
    """1-based inclusive chapter range."""
    start: int
    end: int

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChapterRange":
        return cls(start=int(data["start"]), end=int(data["end"]))


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class AnalysisConfig:
    mode: AnalysisMode = AnalysisMode.STANDARD
    novel_type: NovelType = NovelType.CUSTOM
    custom_prompts: Dict[str, str] = field(default_factory=dict)
    custom_type_prompts: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {"mode": self.mode.value, "novelType": self.novel_type.value}
        if self.custom_prompts:
            data["customPrompts"] = dict(self.custom_prompts)
        if self.custom_type_prompts:
            data["customTypePrompts"] = dict(self.custom_type_prompts)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisConfig":
        return cls(
            mode=AnalysisMode(data.get("mode", AnalysisMode.STANDARD.value)),
            novel_type=_enum(NovelType, data.get("novelType"), NovelType.CUSTOM),
            custom_prompts=dict(data.get("customPrompts") or {}),
            custom_type_prompts=dict(data.get("customTypePrompts") or {}),
        )


# =============================================================================
# ENTITIES
# =============================================================================

@dataclass(frozen=True)
class CharacterAnalysis:
    name: str
    role: CharacterRole = CharacterRole.SUPPORTING
    description: str = ""
    motivation: str = ""
    growth_arc: Optional[str] = None
    relationships: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "role": self.role.value,
            "description": self.description,
            "motivation": self.motivation,
            "relationships": list(self.relationships),
        }
        if self.growth_arc is not None:
            data["growthArc"] = self.growth_arc
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CharacterAnalysis":
        name = _text(data.get("name"))
        if not name:
            raise ValueError("character entry has no name")
        return cls(
            name=name,
            role=_enum(CharacterRole, data.get("role"), CharacterRole.SUPPORTING),
            description=_text(data.get("description")),
            motivation=_text(data.get("motivation")),
            growth_arc=_optional_text(data.get("growthArc")),
            relationships=_string_list(data.get("relationships")),
        )


@dataclass(frozen=True)
class TechniqueAnalysis:
    name: str
    description: str = ""
    examples: List[str] = field(default_factory=list)
    applicability: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "examples": list(self.examples),
            "applicability": self.applicability,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TechniqueAnalysis":
        name = _text(data.get("name"))
        if not name:
            raise ValueError("technique entry has no name")
        return cls(
            name=name,
            description=_text(data.get("description")),
            examples=_string_list(data.get("examples")),
            applicability=_text(data.get("applicability")),
        )


@dataclass(frozen=True)
class EmotionPoint:
    chapter: int
    intensity: int
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"chapter": self.chapter, "intensity": self.intensity, "description": self.description}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmotionPoint":
        chapter = _int(data.get("chapter"))
        if chapter is None:
            raise ValueError("emotion point has no chapter")
        intensity = _int(data.get("intensity"), 5)
        return cls(
            chapter=chapter,
            intensity=min(max(intensity, 1), 10),
            description=_text(data.get("description")),
        )


@dataclass(frozen=True)
class ChapterSummary:
    index: int
    title: str = ""
    summary: str = ""
    key_events: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "title": self.title,
            "summary": self.summary,
            "keyEvents": list(self.key_events),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChapterSummary":
        index = _int(data.get("index"))
        if index is None:
            raise ValueError("chapter summary has no index")
        return cls(
            index=index,
            title=_text(data.get("title")),
            summary=_text(data.get("summary")),
            key_events=_string_list(data.get("keyEvents")),
        )


@dataclass(frozen=True)
class Foreshadowing:
    setup_chapter: int
    description: str
    status: ForeshadowingStatus = ForeshadowingStatus.PLANTED
    payoff_chapter: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "setupChapter": self.setup_chapter,
            "description": self.description,
            "status": self.status.value,
        }
        if self.payoff_chapter is not None:
            data["payoffChapter"] = self.payoff_chapter
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Foreshadowing":
        description = _text(data.get("description"))
        if not description:
            raise ValueError("foreshadowing entry has no description")
        return cls(
            setup_chapter=_int(data.get("setupChapter"), 0),
            description=description,
            status=_enum(ForeshadowingStatus, data.get("status"), ForeshadowingStatus.PLANTED),
            payoff_chapter=_int(data.get("payoffChapter")),
        )


@dataclass(frozen=True)
class ChapterDetail:
    index: int
    title: str = ""
    analysis: str = ""
    techniques: List[str] = field(default_factory=list)
    highlights: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "title": self.title,
            "analysis": self.analysis,
            "techniques": list(self.techniques),
            "highlights": list(self.highlights),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChapterDetail":
        index = _int(data.get("index"))
        if index is None:
            raise ValueError("chapter detail has no index")
        return cls(
            index=index,
            title=_text(data.get("title")),
            analysis=_text(data.get("analysis")),
            techniques=_string_list(data.get("techniques")),
            highlights=_string_list(data.get("highlights")),
        )


# =============================================================================
# RESULT
# =============================================================================

def _encode_list(items):
    return [item.to_dict() for item in items]


def _decoder(entity_cls):
    def decode(items):
        decoded = []
        for item in items or []:
            if isinstance(item, dict):
                try:
                    decoded.append(entity_cls.from_dict(item))
                except (ValueError, TypeError):
                    continue
        return decoded
    return decode


def _identity(value):
    return value


# field name -> (serialized key, encoder, decoder)
RESULT_FIELDS = {
    "synopsis": ("synopsis", _identity, _text),
    "characters": ("characters", _encode_list, _decoder(CharacterAnalysis)),
    "writing_techniques": ("writingTechniques", _encode_list, _decoder(TechniqueAnalysis)),
    "takeaways": ("takeaways", list, _string_list),
    "emotion_curve": ("emotionCurve", _encode_list, _decoder(EmotionPoint)),
    "chapter_structure": ("chapterStructure", _encode_list, _decoder(ChapterSummary)),
    "foreshadowing": ("foreshadowing", _encode_list, _decoder(Foreshadowing)),
    "chapter_details": ("chapterDetails", _encode_list, _decoder(ChapterDetail)),
    "writing_review": ("writingReview", _identity, _text),
}


@dataclass(frozen=True)
class AnalysisResult:
    """
    Accumulated analysis of one book.

    Optional fields stay None until the stage that produces them has run:
    emotion_curve, chapter_structure and foreshadowing need standard mode,
    chapter_details and writing_review need deep mode.
    """
    book_info: BookMetadata
    synopsis: str = ""
    characters: List[CharacterAnalysis] = field(default_factory=list)
    writing_techniques: List[TechniqueAnalysis] = field(default_factory=list)
    takeaways: List[str] = field(default_factory=list)
    emotion_curve: Optional[List[EmotionPoint]] = None
    chapter_structure: Optional[List[ChapterSummary]] = None
    foreshadowing: Optional[List[Foreshadowing]] = None
    chapter_details: Optional[List[ChapterDetail]] = None
    writing_review: Optional[str] = None

    @classmethod
    def empty(cls, book_info: BookMetadata) -> "AnalysisResult":
        return cls(book_info=book_info)

    def apply(self, patch: Dict[str, Any]) -> "AnalysisResult":
        """Return a copy with the patched fields replaced."""
        return replace(self, **patch) if patch else self

    def to_dict(self) -> Dict[str, Any]:
        data = {"bookInfo": self.book_info.to_dict()}
        data.update(patch_to_dict({name: getattr(self, name) for name in RESULT_FIELDS}))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], book_info: Optional[BookMetadata] = None) -> "AnalysisResult":
        if book_info is None:
            book_info = BookMetadata.from_dict(data.get("bookInfo") or {})
        return cls(book_info=book_info).apply(patch_from_dict(data))


def patch_to_dict(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a result patch (snake_case field -> value) to camelCase keys. None values are omitted."""
    data = {}
    for name, value in patch.items():
        if value is None or name not in RESULT_FIELDS:
            continue
        key, encode, _ = RESULT_FIELDS[name]
        data[key] = encode(value)
    return data


def patch_from_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Inverse of patch_to_dict: only keys present in data produce patch entries."""
    patch = {}
    for name, (key, _, decode) in RESULT_FIELDS.items():
        if key in data and data[key] is not None:
            patch[name] = decode(data[key])
    return patch


# =============================================================================
# RANGES
# =============================================================================

@dataclass(frozen=True)
class AnalysisRange:
    """Which chapters (1-based, inclusive) were analyzed at which depth."""
    id: str
    start_chapter: int
    end_chapter: int
    mode: AnalysisMode
    analyzed_at: str = field(default_factory=now_iso)

    def contains(self, chapter: int) -> bool:
        return self.start_chapter <= chapter <= self.end_chapter

    def overlaps(self, start: int, end: int) -> bool:
        return start <= self.end_chapter and end >= self.start_chapter

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "startChapter": self.start_chapter,
            "endChapter": self.end_chapter,
            "mode": self.mode.value,
            "analyzedAt": self.analyzed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisRange":
        return cls(
            id=str(data["id"]),
            start_chapter=int(data["startChapter"]),
            end_chapter=int(data["endChapter"]),
            mode=AnalysisMode(data["mode"]),
            analyzed_at=str(data.get("analyzedAt") or now_iso()),
        )


@dataclass(frozen=True)
class ModeAnnotatedResult:
    """A result together with the range and depth that produced it."""
    result: AnalysisResult
    mode: AnalysisMode
    range: AnalysisRange

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "range": self.range.to_dict(),
            "result": self.result.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModeAnnotatedResult":
        return cls(
            result=AnalysisResult.from_dict(data["result"]),
            mode=AnalysisMode(data["mode"]),
            range=AnalysisRange.from_dict(data["range"]),
        )
