"""
Folio - Merge Service
Combines analysis results: chunk outputs within one stage, whole results
for different chapter ranges, and results produced at different depths.

Entity rules (prefer_latest selects which side's scalar fields win):
    characters      keyed by name; growth arcs concatenated, relationships unioned
    techniques      keyed by name; examples unioned (optionally capped)
    emotion curve   keyed by chapter; one side wins; sorted by chapter
    structure       keyed by index; one side wins, key events unioned; sorted
    foreshadowing   keyed by description; status lattice resolved > planted > abandoned
    chapter details keyed by index; one side wins, lists unioned; sorted
    takeaways       unioned
    synopsis/review concatenated under a label, never overwritten

Merging a result with itself returns an equal result.
"""

from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from analysis.models import (
    AnalysisMode, AnalysisRange, AnalysisResult, ChapterDetail, ChapterSummary,
    CharacterAnalysis, EmotionPoint, Foreshadowing, ModeAnnotatedResult, TechniqueAnalysis,
)

T = TypeVar("T")
K = TypeVar("K")

GROWTH_LABEL = "[Later development]"
SYNOPSIS_LABEL = "[Later plot]"
REVIEW_LABEL = "[Later review]"


def union(first: Iterable[T], second: Iterable[T], cap: Optional[int] = None) -> List[T]:
    """Order-preserving union by value equality, optionally truncated."""
    merged: List[T] = []
    for item in list(first) + list(second):
        if item not in merged:
            merged.append(item)
    return merged[:cap] if cap is not None else merged


def concat_text(existing: Optional[str], new: Optional[str], prefer_latest: bool, label: str) -> Optional[str]:
    """
    Join two narrative texts, keeping both.

    With prefer_latest the new text is treated as the later one and goes
    second; otherwise the existing text does. Equal texts are kept once.
    """
    if not existing:
        return new if new else existing
    if not new or new == existing:
        return existing
    earlier, later = (existing, new) if prefer_latest else (new, existing)
    return f"{earlier}\n\n{label}\n{later}"


def _merge_keyed(
    existing: Sequence[T],
    new: Sequence[T],
    key: Callable[[T], K],
    combine: Callable[[T, T], T]
) -> List[T]:
    merged: Dict[K, T] = {}
    for item in list(existing) + list(new):
        k = key(item)
        merged[k] = combine(merged[k], item) if k in merged else item
    return list(merged.values())


def _pick(a: T, b: T, prefer_latest: bool) -> tuple[T, T]:
    """(winner, other) for a conflict between existing a and new b."""
    return (b, a) if prefer_latest else (a, b)


class MergeService:
    """Stateless; one instance can be shared."""

    # =========================================================================
    # ENTITY MERGES
    # =========================================================================

    def merge_characters(
        self,
        existing: Sequence[CharacterAnalysis],
        new: Sequence[CharacterAnalysis],
        prefer_latest: bool = True
    ) -> List[CharacterAnalysis]:
        def combine(a: CharacterAnalysis, b: CharacterAnalysis) -> CharacterAnalysis:
            winner, other = _pick(a, b, prefer_latest)
            return CharacterAnalysis(
                name=a.name,
                role=winner.role,
                description=winner.description or other.description,
                motivation=winner.motivation or other.motivation,
                growth_arc=concat_text(a.growth_arc, b.growth_arc, prefer_latest, GROWTH_LABEL),
                relationships=union(a.relationships, b.relationships),
            )

        return _merge_keyed(existing, new, lambda c: c.name, combine)

    def merge_techniques(
        self,
        existing: Sequence[TechniqueAnalysis],
        new: Sequence[TechniqueAnalysis],
        prefer_latest: bool = True,
        example_cap: Optional[int] = None
    ) -> List[TechniqueAnalysis]:
        def combine(a: TechniqueAnalysis, b: TechniqueAnalysis) -> TechniqueAnalysis:
            winner, other = _pick(a, b, prefer_latest)
            return TechniqueAnalysis(
                name=a.name,
                description=winner.description or other.description,
                examples=union(a.examples, b.examples, example_cap),
                applicability=winner.applicability or other.applicability,
            )

        return _merge_keyed(existing, new, lambda t: t.name, combine)

    def merge_emotion_curve(
        self,
        existing: Sequence[EmotionPoint],
        new: Sequence[EmotionPoint],
        prefer_latest: bool = True
    ) -> List[EmotionPoint]:
        merged = _merge_keyed(
            existing, new,
            lambda p: p.chapter,
            lambda a, b: _pick(a, b, prefer_latest)[0]
        )
        return sorted(merged, key=lambda p: p.chapter)

    def merge_chapter_structure(
        self,
        existing: Sequence[ChapterSummary],
        new: Sequence[ChapterSummary],
        prefer_latest: bool = True
    ) -> List[ChapterSummary]:
        def combine(a: ChapterSummary, b: ChapterSummary) -> ChapterSummary:
            winner, other = _pick(a, b, prefer_latest)
            return ChapterSummary(
                index=a.index,
                title=winner.title or other.title,
                summary=winner.summary or other.summary,
                key_events=union(winner.key_events, other.key_events),
            )

        merged = _merge_keyed(existing, new, lambda s: s.index, combine)
        return sorted(merged, key=lambda s: s.index)

    def merge_foreshadowing(
        self,
        existing: Sequence[Foreshadowing],
        new: Sequence[Foreshadowing],
        prefer_latest: bool = True
    ) -> List[Foreshadowing]:
        def combine(a: Foreshadowing, b: Foreshadowing) -> Foreshadowing:
            if a.status.priority != b.status.priority:
                status = max(a.status, b.status, key=lambda s: s.priority)
            else:
                status = _pick(a, b, prefer_latest)[0].status

            winner, other = _pick(a, b, prefer_latest)
            payoff = winner.payoff_chapter if winner.payoff_chapter is not None else other.payoff_chapter

            return Foreshadowing(
                setup_chapter=a.setup_chapter or b.setup_chapter,
                description=a.description,
                status=status,
                payoff_chapter=payoff,
            )

        merged = _merge_keyed(existing, new, lambda f: f.description, combine)
        return sorted(merged, key=lambda f: f.setup_chapter)

    def merge_chapter_details(
        self,
        existing: Sequence[ChapterDetail],
        new: Sequence[ChapterDetail],
        prefer_latest: bool = True
    ) -> List[ChapterDetail]:
        def combine(a: ChapterDetail, b: ChapterDetail) -> ChapterDetail:
            winner, other = _pick(a, b, prefer_latest)
            return ChapterDetail(
                index=a.index,
                title=winner.title or other.title,
                analysis=winner.analysis or other.analysis,
                techniques=union(winner.techniques, other.techniques),
                highlights=union(winner.highlights, other.highlights),
            )

        merged = _merge_keyed(existing, new, lambda d: d.index, combine)
        return sorted(merged, key=lambda d: d.index)

    def _merge_optional(self, existing, new, merge_fn, prefer_latest: bool):
        if existing is None and new is None:
            return None
        return merge_fn(existing or [], new or [], prefer_latest)

    # =========================================================================
    # RESULT MERGES
    # =========================================================================

    def merge_results(
        self,
        existing: AnalysisResult,
        new: AnalysisResult,
        prefer_latest: bool = True,
        example_cap: Optional[int] = None
    ) -> AnalysisResult:
        """Entity-by-entity merge of two results for the same book."""
        return AnalysisResult(
            book_info=existing.book_info,
            synopsis=concat_text(existing.synopsis, new.synopsis, prefer_latest, SYNOPSIS_LABEL) or "",
            characters=self.merge_characters(existing.characters, new.characters, prefer_latest),
            writing_techniques=self.merge_techniques(
                existing.writing_techniques, new.writing_techniques, prefer_latest, example_cap
            ),
            takeaways=union(existing.takeaways, new.takeaways),
            emotion_curve=self._merge_optional(
                existing.emotion_curve, new.emotion_curve, self.merge_emotion_curve, prefer_latest
            ),
            chapter_structure=self._merge_optional(
                existing.chapter_structure, new.chapter_structure, self.merge_chapter_structure, prefer_latest
            ),
            foreshadowing=self._merge_optional(
                existing.foreshadowing, new.foreshadowing, self.merge_foreshadowing, prefer_latest
            ),
            chapter_details=self._merge_optional(
                existing.chapter_details, new.chapter_details, self.merge_chapter_details, prefer_latest
            ),
            writing_review=concat_text(existing.writing_review, new.writing_review, prefer_latest, REVIEW_LABEL),
        )

    def merge_with_mode_awareness(
        self,
        existing: AnalysisResult,
        new: AnalysisResult,
        existing_mode: AnalysisMode,
        new_mode: AnalysisMode,
        ranges: Optional[Sequence[AnalysisRange]] = None,
        prefer_latest: bool = True
    ) -> AnalysisResult:
        """
        Merge results produced at different depths.

        Standard-only fields come wholly from the non-quick side when the
        other side is quick; the writing review comes from the deep side when
        only one side is deep; chapter details are kept only from deep sides
        and, when ranges are given, only for chapters a deep range covers.
        """
        merged = self.merge_results(existing, new, prefer_latest)
        patch = {}

        if existing_mode == AnalysisMode.QUICK and new_mode != AnalysisMode.QUICK:
            patch.update(
                emotion_curve=new.emotion_curve,
                chapter_structure=new.chapter_structure,
                foreshadowing=new.foreshadowing,
            )
        elif new_mode == AnalysisMode.QUICK and existing_mode != AnalysisMode.QUICK:
            patch.update(
                emotion_curve=existing.emotion_curve,
                chapter_structure=existing.chapter_structure,
                foreshadowing=existing.foreshadowing,
            )

        if existing_mode == AnalysisMode.DEEP and new_mode != AnalysisMode.DEEP:
            patch["writing_review"] = existing.writing_review
        elif new_mode == AnalysisMode.DEEP and existing_mode != AnalysisMode.DEEP:
            patch["writing_review"] = new.writing_review

        existing_details = existing.chapter_details if existing_mode == AnalysisMode.DEEP else None
        new_details = new.chapter_details if new_mode == AnalysisMode.DEEP else None
        details = self._merge_optional(existing_details, new_details, self.merge_chapter_details, True)
        if details is not None and ranges:
            details = self.filter_chapter_details_by_ranges(details, ranges)
        patch["chapter_details"] = details

        return merged.apply(patch)

    def merge_multiple(self, results: Sequence[ModeAnnotatedResult]) -> AnalysisResult:
        """
        Fold several range results into one, ordered by starting chapter.

        Each step treats the accumulated result as having the mode of the
        result folded in last.
        """
        if not results:
            raise ValueError("No results to merge")
        if len(results) == 1:
            return results[0].result

        ordered = sorted(results, key=lambda r: r.range.start_chapter)
        ranges = [r.range for r in ordered]

        current = ordered[0].result
        current_mode = ordered[0].mode
        for item in ordered[1:]:
            current = self.merge_with_mode_awareness(
                current, item.result, current_mode, item.mode, ranges=ranges
            )
            current_mode = item.mode
        return current

    # =========================================================================
    # RANGE HELPERS
    # =========================================================================

    def get_mode_for_chapter(self, chapter: int, ranges: Sequence[AnalysisRange]) -> Optional[AnalysisMode]:
        """Mode of the most recent range covering a 1-based chapter."""
        covering = [r for r in ranges if r.contains(chapter)]
        if not covering:
            return None
        return max(covering, key=lambda r: r.analyzed_at).mode

    def has_mixed_modes(self, ranges: Sequence[AnalysisRange]) -> bool:
        return len({r.mode for r in ranges}) > 1

    def get_deep_mode_chapters(self, ranges: Sequence[AnalysisRange]) -> List[int]:
        """Sorted 1-based chapter numbers covered by deep ranges."""
        chapters = set()
        for r in ranges:
            if r.mode == AnalysisMode.DEEP:
                chapters.update(range(r.start_chapter, r.end_chapter + 1))
        return sorted(chapters)

    def filter_chapter_details_by_ranges(
        self,
        details: Sequence[ChapterDetail],
        ranges: Sequence[AnalysisRange]
    ) -> List[ChapterDetail]:
        """Keep details whose chapter (index + 1) lies in a deep range."""
        deep_chapters = set(self.get_deep_mode_chapters(ranges))
        return [d for d in details if d.index + 1 in deep_chapters]
