"""
Folio - Analysis Pipeline
Drives the ordered stages of one book's analysis.

Flow for each stage:
    1. controller.checkpoint()   - pause/stop gate (the only suspension point)
    2. handler(context, result)  - returns a patch; the result itself is immutable
    3. apply patch, checkpoint update, incremental note

A failing stage is logged and reported, and the run moves on to the next
stage with that stage's field left empty. Only AnalysisStoppedError aborts
the run. Nothing is retried; re-running failed stages is done by resuming
from the checkpoint, which is kept whenever a stage failed.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import config
from analysis.checkpoint import AnalysisCheckpoint, CheckpointStore
from analysis.chunking import (
    BookChunk, ChunkConfig, build_chapter_content, calculate_batches, sample_chapters,
    select_key_chapter_indices, select_key_chunks, split_into_chunks,
)
from analysis.controller import AnalysisController
from analysis.errors import AnalysisError, AnalysisStoppedError, ConfigurationError
from analysis.executor import CONTEXT_HEADER, StageExecutor
from analysis.merge import MergeService
from analysis.metadata import MetadataStore
from analysis.models import (
    AnalysisConfig, AnalysisResult, ChapterDetail, ChapterRange, ChapterSummary,
    CharacterAnalysis, EmotionPoint, Foreshadowing, IncrementalMode, ModeAnnotatedResult,
    ParsedBook, StageStatus, TechniqueAnalysis, patch_to_dict,
)
from analysis.notes import NoteWriter
from analysis.response_parser import coerce_entities, normalize_takeaways
from analysis.stages import Stage, get_stage_name, stages_for_mode
from core.logger import log_error, log_info, log_stage, log_success, log_warning

# Emotion points included in the context for takeaways / writing review
CONTEXT_EMOTION_POINTS = 10


ProgressCallback = Callable[[str, float, str], None]
StageResultCallback = Callable[[Stage, StageStatus, str, Optional[str]], None]
NoteCallback = Callable[[str, str], None]


@dataclass
class AnalysisCallbacks:
    """
    Optional side-channel notifications.

    on_progress(stage_name, percent, message)       before/after each sub-step
    on_stage_result(stage, status, message, result) once per stage transition
    on_note_generated(note_type, storage_key)       after each note is written
    """
    on_progress: Optional[ProgressCallback] = None
    on_stage_result: Optional[StageResultCallback] = None
    on_note_generated: Optional[NoteCallback] = None

    def progress(self, stage_name: str, percent: float, message: str) -> None:
        _notify(self.on_progress, stage_name, percent, message)

    def stage_result(self, stage: Stage, status: StageStatus, message: str, result: Optional[str] = None) -> None:
        _notify(self.on_stage_result, stage, status, message, result)

    def note_generated(self, note_type: str, key: str) -> None:
        _notify(self.on_note_generated, note_type, key)


def _notify(callback: Optional[Callable], *args) -> None:
    # Observer errors never reach the pipeline
    if callback is None:
        return
    try:
        callback(*args)
    except Exception as e:
        log_warning(f"Callback {getattr(callback, '__name__', callback)} raised: {e}")


@dataclass
class StageOutput:
    patch: Dict[str, Any]
    display: str   # human-readable output for the stage-result callback


@dataclass
class StageContext:
    """What a stage handler needs besides the current result."""
    book: ParsedBook
    config: AnalysisConfig
    stage: Stage
    stage_index: int
    stage_count: int
    callbacks: AnalysisCallbacks

    def percent(self, fraction: float = 0.0) -> float:
        return round((self.stage_index + fraction) / self.stage_count * 100, 1)

    def step(self, done: int, total: int, message: str) -> None:
        self.callbacks.progress(get_stage_name(self.stage), self.percent(done / total if total else 0.0), message)


class BatchFailureAction(Enum):
    RETRY = "retry"
    SKIP = "skip"
    ABORT = "abort"


@dataclass(frozen=True)
class BatchInfo:
    number: int          # 1-based
    total: int
    chapter_range: ChapterRange


class AnalysisService:
    """
    Runs analyses for one book at a time.

    Collaborators are injected; checkpoint_store and note_writer are
    optional, and without them the pipeline keeps everything in memory.
    """

    def __init__(
        self,
        executor: StageExecutor,
        merge_service: Optional[MergeService] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
        note_writer: Optional[NoteWriter] = None,
        chunk_config: Optional[ChunkConfig] = None,
        prefer_latest_chunk: bool = config.CHUNK_MERGE_PREFER_LATEST,
        technique_example_cap: Optional[int] = config.TECHNIQUE_EXAMPLE_CAP
    ):
        self.executor = executor
        self.merge = merge_service or MergeService()
        self.checkpoint_store = checkpoint_store
        self.note_writer = note_writer
        self.chunk_config = chunk_config or ChunkConfig()
        self.prefer_latest_chunk = prefer_latest_chunk
        self.technique_example_cap = technique_example_cap

        self._handlers: Dict[Stage, Callable[[StageContext, AnalysisResult], StageOutput]] = {
            Stage.SYNOPSIS: self._run_synopsis,
            Stage.CHARACTERS: self._run_characters,
            Stage.TECHNIQUES: self._run_techniques,
            Stage.TAKEAWAYS: self._run_takeaways,
            Stage.EMOTION_CURVE: self._run_emotion_curve,
            Stage.CHAPTER_STRUCTURE: self._run_chapter_structure,
            Stage.FORESHADOWING: self._run_foreshadowing,
            Stage.CHAPTER_DETAIL: self._run_chapter_detail,
            Stage.WRITING_REVIEW: self._run_writing_review,
        }

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def analyze(
        self,
        book: ParsedBook,
        analysis_config: AnalysisConfig,
        controller: Optional[AnalysisController] = None,
        callbacks: Optional[AnalysisCallbacks] = None,
        chapter_range: Optional[ChapterRange] = None,
        book_path: str = ""
    ) -> AnalysisResult:
        """
        Run every stage of the configured mode.

        Args:
            book: The whole parsed book
            analysis_config: Mode, genre, prompt overrides
            controller: Pause/stop gate (a private one is used if None)
            callbacks: Progress / stage-result / note notifications
            chapter_range: 1-based inclusive range to analyze (whole book if None)
            book_path: Source path recorded in the checkpoint

        Raises:
            ConfigurationError: empty book or invalid range, before any stage runs
            AnalysisStoppedError: the controller was stopped
        """
        result, _ = self._analyze(book, analysis_config, controller, callbacks, chapter_range, book_path)
        return result

    def _analyze(
        self,
        book: ParsedBook,
        analysis_config: AnalysisConfig,
        controller: Optional[AnalysisController],
        callbacks: Optional[AnalysisCallbacks],
        chapter_range: Optional[ChapterRange],
        book_path: str
    ) -> tuple[AnalysisResult, List[Stage]]:
        chapter_range = self._validate_range(book, chapter_range)
        scoped = book.select_range(chapter_range.start, chapter_range.end)
        callbacks = callbacks or AnalysisCallbacks()

        if self.checkpoint_store:
            self.checkpoint_store.create(book_path, book.title, analysis_config, chapter_range)

        log_info(
            f"Analyzing '{book.title}' chapters {chapter_range.start}-{chapter_range.end} "
            f"({analysis_config.mode.value} mode)",
            prefix="📖"
        )

        result, failed = self._run_stages(
            scoped,
            analysis_config,
            AnalysisResult.empty(book.metadata),
            stages_for_mode(analysis_config.mode),
            completed=[],
            controller=controller or AnalysisController(),
            callbacks=callbacks,
        )
        self._finish(book.title, failed, callbacks)
        return result, failed

    def resume_from_checkpoint(
        self,
        book: ParsedBook,
        checkpoint: Optional[AnalysisCheckpoint] = None,
        controller: Optional[AnalysisController] = None,
        callbacks: Optional[AnalysisCallbacks] = None
    ) -> AnalysisResult:
        """
        Continue an interrupted analysis.

        Completed stages are skipped (and reported as completed); the
        result is seeded from the checkpoint's partial results.

        Raises:
            ConfigurationError: no checkpoint exists for the book
        """
        if checkpoint is None and self.checkpoint_store:
            checkpoint = self.checkpoint_store.get(book.title)
        if checkpoint is None:
            raise ConfigurationError(f"No checkpoint to resume for '{book.title}'")

        chapter_range = self._validate_range(book, checkpoint.chapter_range)
        scoped = book.select_range(chapter_range.start, chapter_range.end)
        seed = AnalysisResult.from_dict(checkpoint.partial_results, book_info=book.metadata)

        log_info(
            f"Resuming '{book.title}': {len(checkpoint.completed_stages)} stage(s) already completed",
            prefix="⏯️"
        )

        callbacks = callbacks or AnalysisCallbacks()
        result, failed = self._run_stages(
            scoped,
            checkpoint.config,
            seed,
            stages_for_mode(checkpoint.config.mode),
            completed=checkpoint.completed_stages,
            controller=controller or AnalysisController(),
            callbacks=callbacks,
        )
        self._finish(book.title, failed, callbacks)
        return result

    def analyze_incremental(
        self,
        book: ParsedBook,
        analysis_config: AnalysisConfig,
        incremental_mode: IncrementalMode,
        metadata_store: MetadataStore,
        chapter_range: Optional[ChapterRange] = None,
        controller: Optional[AnalysisController] = None,
        callbacks: Optional[AnalysisCallbacks] = None,
        book_path: str = ""
    ) -> ModeAnnotatedResult:
        """
        Analyze part of a book and record the range in its history.

        continue - from the chapter after the last analyzed one (or the
                   given range) to the end
        append   - exactly the given range
        restart  - clear the history, then the given range or the whole book
        """
        total = book.chapter_count

        if incremental_mode == IncrementalMode.CONTINUE:
            if chapter_range is None:
                start = metadata_store.next_start_chapter(book.title)
                if start > total:
                    raise ConfigurationError(f"All {total} chapters of '{book.title}' are already analyzed")
                chapter_range = ChapterRange(start=start, end=total)
        elif incremental_mode == IncrementalMode.APPEND:
            if chapter_range is None:
                raise ConfigurationError("Append mode needs an explicit chapter range")
        elif incremental_mode == IncrementalMode.RESTART:
            metadata_store.delete(book.title)

        chapter_range = self._validate_range(book, chapter_range)

        if metadata_store.has_overlap(book.title, chapter_range.start, chapter_range.end):
            log_warning(
                f"Chapters {chapter_range.start}-{chapter_range.end} overlap an earlier analysis; "
                f"merged results will prefer this run"
            )

        result = self.analyze(book, analysis_config, controller, callbacks, chapter_range, book_path)

        analysis_range = metadata_store.create_range(chapter_range.start, chapter_range.end, analysis_config.mode)
        metadata_store.add_range(book.title, book_path, analysis_range)
        return ModeAnnotatedResult(result=result, mode=analysis_config.mode, range=analysis_range)

    def analyze_batched(
        self,
        book: ParsedBook,
        analysis_config: AnalysisConfig,
        batch_size: int,
        metadata_store: Optional[MetadataStore] = None,
        chapter_range: Optional[ChapterRange] = None,
        controller: Optional[AnalysisController] = None,
        callbacks: Optional[AnalysisCallbacks] = None,
        on_batch_complete: Optional[Callable[[BatchInfo, AnalysisResult], None]] = None,
        on_batch_failure: Optional[Callable[[BatchInfo, Exception], BatchFailureAction]] = None,
        book_path: str = ""
    ) -> ModeAnnotatedResult:
        """
        Analyze a long book in consecutive batches of chapters.

        Batch results are folded together with merge_results(prefer_latest).
        A batch fails when every one of its stages fails; on_batch_failure
        then decides whether to retry it, skip it, or abort. Without a
        callback the batch is skipped.

        Raises:
            ConfigurationError: bad batch size or range
            AnalysisError: aborted, or every batch failed
            AnalysisStoppedError: the controller was stopped
        """
        if batch_size < 1:
            raise ConfigurationError("Batch size must be at least 1")

        chapter_range = self._validate_range(book, chapter_range)
        batches = calculate_batches(chapter_range.start, chapter_range.end, batch_size)
        controller = controller or AnalysisController()
        stage_count = len(stages_for_mode(analysis_config.mode))

        log_info(f"Batched analysis of '{book.title}': {len(batches)} batch(es) of up to {batch_size} chapters")

        merged: Optional[AnalysisResult] = None
        i = 0
        while i < len(batches):
            info = BatchInfo(number=i + 1, total=len(batches), chapter_range=batches[i])
            controller.checkpoint()

            try:
                result, failed = self._analyze(
                    book, analysis_config, controller, callbacks, info.chapter_range, book_path
                )
                if len(failed) == stage_count:
                    r = info.chapter_range
                    raise AnalysisError(f"every stage failed for chapters {r.start}-{r.end}")
            except AnalysisStoppedError:
                raise
            except AnalysisError as e:
                action = on_batch_failure(info, e) if on_batch_failure else BatchFailureAction.SKIP
                log_warning(f"Batch {info.number}/{info.total} failed ({e}); {action.value}")
                if action == BatchFailureAction.ABORT:
                    raise
                if action == BatchFailureAction.SKIP:
                    i += 1
                continue

            merged = result if merged is None else self.merge.merge_results(merged, result, prefer_latest=True)

            if metadata_store:
                metadata_store.add_range(
                    book.title,
                    book_path,
                    metadata_store.create_range(info.chapter_range.start, info.chapter_range.end,
                                                analysis_config.mode)
                )
            if on_batch_complete:
                on_batch_complete(info, result)
            i += 1

        if merged is None:
            raise AnalysisError(f"No batch of '{book.title}' completed")

        overall = MetadataStore.create_range(chapter_range.start, chapter_range.end, analysis_config.mode)
        return ModeAnnotatedResult(result=merged, mode=analysis_config.mode, range=overall)

    # =========================================================================
    # STAGE LOOP
    # =========================================================================

    def _validate_range(self, book: ParsedBook, chapter_range: Optional[ChapterRange]) -> ChapterRange:
        total = book.chapter_count
        if total == 0:
            raise ConfigurationError(f"'{book.title}' has no chapters to analyze")
        if chapter_range is None:
            return ChapterRange(start=1, end=total)
        if not 1 <= chapter_range.start <= chapter_range.end <= total:
            raise ConfigurationError(
                f"Chapter range {chapter_range.start}-{chapter_range.end} is outside 1-{total}"
            )
        return chapter_range

    def _run_stages(
        self,
        book: ParsedBook,
        analysis_config: AnalysisConfig,
        result: AnalysisResult,
        stages: Sequence[Stage],
        completed: Sequence[Stage],
        controller: AnalysisController,
        callbacks: AnalysisCallbacks
    ) -> tuple[AnalysisResult, List[Stage]]:
        """Returns the final result and the stages that failed."""
        failed: List[Stage] = []

        for i, stage in enumerate(stages):
            name = get_stage_name(stage)

            if stage in completed:
                callbacks.stage_result(stage, StageStatus.COMPLETED, f"{name} completed (resumed)")
                continue

            controller.checkpoint()

            context = StageContext(
                book=book,
                config=analysis_config,
                stage=stage,
                stage_index=i,
                stage_count=len(stages),
                callbacks=callbacks,
            )
            callbacks.progress(name, context.percent(), f"Running {name.lower()}...")
            callbacks.stage_result(stage, StageStatus.RUNNING, f"{name} running")
            if self.checkpoint_store:
                self.checkpoint_store.set_current_stage(book.title, stage)
            log_stage(name, "started")

            try:
                output = self._handlers[stage](context, result)
            except AnalysisStoppedError:
                raise
            except Exception as e:
                log_error(f"{name} failed: {e}")
                failed.append(stage)
                callbacks.stage_result(stage, StageStatus.ERROR, f"{name} failed: {e}")
                continue

            result = result.apply(output.patch)
            callbacks.progress(name, context.percent(1.0), f"{name} completed")
            callbacks.stage_result(stage, StageStatus.COMPLETED, f"{name} completed", output.display)
            log_stage(name, "completed")

            if self.checkpoint_store:
                self.checkpoint_store.update(book.title, stage, patch_to_dict(output.patch))
            self._write_notes(stage, result, callbacks)

        return result, failed

    def _finish(self, book_title: str, failed: List[Stage], callbacks: AnalysisCallbacks) -> None:
        if failed:
            names = ", ".join(get_stage_name(s) for s in failed)
            log_warning(f"Analysis finished with failed stages: {names}. Resume to re-run them.")
        else:
            if self.checkpoint_store:
                self.checkpoint_store.delete(book_title)
            log_success(f"Analysis of '{book_title}' complete")
        callbacks.progress("Done", 100.0, "Analysis complete")

    def _write_notes(self, stage: Stage, result: AnalysisResult, callbacks: AnalysisCallbacks) -> None:
        if not self.note_writer:
            return
        for note_type, key in self.note_writer.write_stage_note(stage, result):
            callbacks.note_generated(note_type, key)

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def _chunks(self, context: StageContext) -> List[BookChunk]:
        return split_into_chunks(context.book.chapters, self.chunk_config)

    def _structured_output(self, patch: Dict[str, Any]) -> StageOutput:
        return StageOutput(patch=patch, display=json.dumps(patch_to_dict(patch), ensure_ascii=False, indent=2))

    def _run_synopsis(self, context: StageContext, result: AnalysisResult) -> StageOutput:
        sampled = sample_chapters(context.book.chapters)
        context.step(0, 1, f"Sampling {len(sampled)} of {context.book.chapter_count} chapters")
        text = self.executor.complete(Stage.SYNOPSIS, context.config, build_chapter_content(sampled))
        synopsis = text.strip()
        return StageOutput(patch={"synopsis": synopsis}, display=synopsis)

    def _run_characters(self, context: StageContext, result: AnalysisResult) -> StageOutput:
        chunks = self._chunks(context)
        characters: List[CharacterAnalysis] = []

        for n, chunk in enumerate(chunks):
            context.step(n, len(chunks), f"Characters: chunk {n + 1}/{len(chunks)}")
            _, data = self.executor.complete_json(
                Stage.CHARACTERS, context.config, build_chapter_content(chunk.chapters), {"characters": []}
            )
            found = coerce_entities(data.get("characters"), CharacterAnalysis.from_dict)
            characters = self.merge.merge_characters(characters, found, self.prefer_latest_chunk)

        return self._structured_output({"characters": characters})

    def _run_techniques(self, context: StageContext, result: AnalysisResult) -> StageOutput:
        chunks = select_key_chunks(self._chunks(context))
        techniques: List[TechniqueAnalysis] = []

        for n, chunk in enumerate(chunks):
            context.step(n, len(chunks), f"Techniques: chunk {n + 1}/{len(chunks)}")
            _, data = self.executor.complete_json(
                Stage.TECHNIQUES, context.config, build_chapter_content(chunk.chapters), {"techniques": []}
            )
            found = coerce_entities(data.get("techniques"), TechniqueAnalysis.from_dict)
            techniques = self.merge.merge_techniques(
                techniques, found, self.prefer_latest_chunk, self.technique_example_cap
            )

        return self._structured_output({"writing_techniques": techniques})

    def _run_takeaways(self, context: StageContext, result: AnalysisResult) -> StageOutput:
        _, data = self.executor.complete_json(
            Stage.TAKEAWAYS, context.config, build_analysis_context(context.book, result),
            {"takeaways": []}, header=CONTEXT_HEADER
        )
        return self._structured_output({"takeaways": normalize_takeaways(data.get("takeaways"))})

    def _run_emotion_curve(self, context: StageContext, result: AnalysisResult) -> StageOutput:
        chunks = self._chunks(context)
        points: List[EmotionPoint] = []

        for n, chunk in enumerate(chunks):
            context.step(n, len(chunks), f"Emotion curve: chunk {n + 1}/{len(chunks)}")
            _, data = self.executor.complete_json(
                Stage.EMOTION_CURVE, context.config, build_chapter_content(chunk.chapters), {"emotionCurve": []}
            )
            found = coerce_entities(data.get("emotionCurve"), EmotionPoint.from_dict)
            points = self.merge.merge_emotion_curve(points, found, self.prefer_latest_chunk)

        return self._structured_output({"emotion_curve": points})

    def _run_chapter_structure(self, context: StageContext, result: AnalysisResult) -> StageOutput:
        chunks = self._chunks(context)
        summaries: List[ChapterSummary] = []

        for n, chunk in enumerate(chunks):
            context.step(n, len(chunks), f"Chapter structure: chunk {n + 1}/{len(chunks)}")
            _, data = self.executor.complete_json(
                Stage.CHAPTER_STRUCTURE, context.config, build_chapter_content(chunk.chapters),
                {"chapterStructure": []}
            )
            found = coerce_entities(data.get("chapterStructure"), ChapterSummary.from_dict)
            summaries = self.merge.merge_chapter_structure(
                summaries, _anchor_summaries(found, chunk), self.prefer_latest_chunk
            )

        return self._structured_output({"chapter_structure": summaries})

    def _run_foreshadowing(self, context: StageContext, result: AnalysisResult) -> StageOutput:
        sampled = sample_chapters(context.book.chapters)
        context.step(0, 1, f"Sampling {len(sampled)} of {context.book.chapter_count} chapters")
        _, data = self.executor.complete_json(
            Stage.FORESHADOWING, context.config, build_chapter_content(sampled), {"foreshadowing": []}
        )
        found = coerce_entities(data.get("foreshadowing"), Foreshadowing.from_dict)
        # merging into nothing collapses duplicate descriptions
        items = self.merge.merge_foreshadowing([], found)
        return self._structured_output({"foreshadowing": items})

    def _run_chapter_detail(self, context: StageContext, result: AnalysisResult) -> StageOutput:
        chapters = context.book.chapters
        positions = select_key_chapter_indices(len(chapters))
        details: List[ChapterDetail] = []

        for n, pos in enumerate(positions):
            chapter = chapters[pos]
            context.step(n, len(positions), f"Chapter detail {n + 1}/{len(positions)}: {chapter.title}")
            text, data = self.executor.complete_json(
                Stage.CHAPTER_DETAIL, context.config, build_chapter_content([chapter]), {}
            )
            detail = _chapter_detail_from(data, text, chapter.index, chapter.title)
            details = self.merge.merge_chapter_details(details, [detail])

        return self._structured_output({"chapter_details": details})

    def _run_writing_review(self, context: StageContext, result: AnalysisResult) -> StageOutput:
        text = self.executor.complete(
            Stage.WRITING_REVIEW, context.config, build_analysis_context(context.book, result),
            header=CONTEXT_HEADER
        )
        review = text.strip()
        return StageOutput(patch={"writing_review": review}, display=review)


# =============================================================================
# HELPERS
# =============================================================================

def _anchor_summaries(summaries: List[ChapterSummary], chunk: BookChunk) -> List[ChapterSummary]:
    """
    Map chunk-relative summary indices to whole-book chapter indices.

    Summaries whose index does not name a chapter of the chunk are dropped.
    """
    anchored = []
    for summary in summaries:
        if not 0 <= summary.index < len(chunk.chapters):
            log_warning(f"Dropping chapter summary with out-of-range index {summary.index}")
            continue
        chapter = chunk.chapters[summary.index]
        anchored.append(ChapterSummary(
            index=chapter.index,
            title=summary.title or chapter.title,
            summary=summary.summary,
            key_events=summary.key_events,
        ))
    return anchored


def _chapter_detail_from(data: Dict[str, Any], raw_text: str, index: int, title: str) -> ChapterDetail:
    """Detail for one chapter; the raw reply becomes the analysis text when no JSON came back."""
    payload = data.get("chapterDetail")
    if not isinstance(payload, dict) and "analysis" in data:
        payload = data

    if isinstance(payload, dict):
        try:
            detail = ChapterDetail.from_dict({**payload, "index": index})
            return ChapterDetail(
                index=index,
                title=detail.title or title,
                analysis=detail.analysis,
                techniques=detail.techniques,
                highlights=detail.highlights,
            )
        except (ValueError, TypeError):
            pass

    return ChapterDetail(index=index, title=title, analysis=raw_text.strip())


def build_analysis_context(book: ParsedBook, result: AnalysisResult) -> str:
    """Summary of the results so far, fed to the takeaways and writing review stages."""
    lines = [
        f"Title: {book.metadata.title}",
        f"Author: {book.metadata.author or 'Unknown'}",
        f"Chapters analyzed: {book.chapter_count}",
        "",
    ]

    if result.synopsis:
        lines += ["## Synopsis", result.synopsis, ""]

    if result.characters:
        lines.append("## Characters")
        lines += [f"- {c.name} ({c.role.value}): {c.description}" for c in result.characters]
        lines.append("")

    if result.writing_techniques:
        lines.append("## Writing techniques")
        lines += [f"- {t.name}: {t.description}" for t in result.writing_techniques]
        lines.append("")

    if result.emotion_curve:
        lines.append("## Emotion curve")
        lines += [
            f"- Chapter {p.chapter}: {p.intensity}/10 {p.description}"
            for p in result.emotion_curve[:CONTEXT_EMOTION_POINTS]
        ]
        lines.append("")

    if result.foreshadowing:
        lines.append("## Foreshadowing")
        lines += [f"- [{f.status.value}] {f.description}" for f in result.foreshadowing]
        lines.append("")

    return "\n".join(lines).strip()
