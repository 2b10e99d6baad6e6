"""
End-to-end tests for the analysis pipeline.

A scripted router stands in for the LLM: it recognises which stage a request
belongs to from the stage prompt at the start of the user message and replies
with canned text. Checkpoints and notes go to a temporary directory.
"""

import tempfile
import unittest
from pathlib import Path

from analysis.checkpoint import CheckpointStore
from analysis.controller import AnalysisController
from analysis.errors import AnalysisError, AnalysisStoppedError, ConfigurationError
from analysis.executor import StageExecutor
from analysis.merge import MergeService
from analysis.metadata import MetadataStore
from analysis.models import (
    AnalysisConfig,
    AnalysisMode,
    BookMetadata,
    Chapter,
    ChapterRange,
    CharacterRole,
    ForeshadowingStatus,
    IncrementalMode,
    ParsedBook,
    StageStatus,
)
from analysis.notes import NoteWriter
from analysis.pipeline import AnalysisCallbacks, AnalysisService, BatchFailureAction
from analysis.prompts import ALL_STAGE_PROMPTS
from analysis.stages import QUICK_STAGES, Stage
from core.storage import FileStorage
from llm.router import LLMProvider, LLMResponse

TITLE = "The Lantern House"

QUICK_REPLIES = {
    Stage.SYNOPSIS: "Mara returns to the island and relights the lamp.",
    Stage.CHARACTERS: (
        'Here are the characters:\n```json\n'
        '{"characters": [{"name": "Mara", "role": "protagonist", "description": "Keeper"},'
        ' {"name": "Ilse", "role": "supporting", "description": "Sister"}]}\n```'
    ),
    Stage.TECHNIQUES: '{"techniques": [{"name": "Motif", "description": "Light", "examples": ["the lamp"]}]}',
    Stage.TAKEAWAYS: '{"takeaways": [{"title": "Place", "content": "Anchor scenes"}, "Open late"]}',
}

STANDARD_REPLIES = {
    **QUICK_REPLIES,
    Stage.EMOTION_CURVE: '{"emotionCurve": [{"chapter": 4, "intensity": 12, "description": "Storm"},'
                         ' {"chapter": 3, "intensity": 2}]}',
    Stage.CHAPTER_STRUCTURE: '{"chapterStructure": [{"index": 0, "summary": "a"}, {"index": 1, "summary": "b"},'
                             ' {"index": 2, "title": "Named", "summary": "c"}, {"index": 7, "summary": "z"}]}',
    Stage.FORESHADOWING: '{"foreshadowing": ['
                         '{"setupChapter": 3, "description": "The locked room", "status": "planted"},'
                         '{"setupChapter": 3, "description": "The locked room", "status": "resolved",'
                         ' "payoffChapter": 5}]}',
}

DEEP_REPLIES = {
    **STANDARD_REPLIES,
    Stage.CHAPTER_DETAIL: "No JSON here, just a close reading of the chapter.",
    Stage.WRITING_REVIEW: "## Review\nPatient and atmospheric.",
}


def stage_of(messages):
    """The stage whose prompt starts the user message (longest match wins)."""
    user = messages[-1]["content"]
    matches = [stage for stage, prompt in ALL_STAGE_PROMPTS.items() if user.startswith(prompt)]
    return max(matches, key=lambda stage: len(ALL_STAGE_PROMPTS[stage]))


class ScriptedRouter:
    """
    Replies per stage. A reply may be a string, None (request fails), or a
    callable returning either. fail_requests holds 1-based request numbers
    that fail regardless of stage.
    """

    def __init__(self, replies, fail_requests=()):
        self.replies = dict(replies)
        self.fail_requests = set(fail_requests)
        self.calls = []
        self.requests = []

    def complete(self, messages, model=None, on_chunk=None):
        stage = stage_of(messages)
        self.calls.append(stage)
        self.requests.append((stage, messages[-1]["content"]))

        reply = self.replies[stage]
        if callable(reply):
            reply = reply()
        if reply is None or len(self.calls) in self.fail_requests:
            return LLMResponse(
                text="", success=False, provider=LLMProvider.OPENAI,
                status_code=500, error="HTTP 500: upstream error", error_type="http_error"
            )
        return LLMResponse(text=reply, success=True, provider=LLMProvider.OPENAI, tokens_in=10, tokens_out=5)


class Recorder:
    def __init__(self):
        self.progress = []
        self.stages = []
        self.notes = []

    def callbacks(self):
        return AnalysisCallbacks(
            on_progress=lambda name, percent, message: self.progress.append((name, percent, message)),
            on_stage_result=lambda stage, status, message, result=None: self.stages.append((stage, status)),
            on_note_generated=lambda note_type, key: self.notes.append(note_type),
        )


def make_book(count=12):
    chapters = [
        Chapter(index=i, title=f"Chapter {i + 1}", content=f"Text of chapter {i + 1}.", word_count=4)
        for i in range(count)
    ]
    return ParsedBook(metadata=BookMetadata(title=TITLE, author="R. Vale"), chapters=chapters,
                      total_word_count=4 * count)


class PipelineTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.storage = FileStorage(self.root)
        self.checkpoints = CheckpointStore(self.storage)
        self.metadata = MetadataStore(self.storage)
        self.book = make_book()
        self.quick = AnalysisConfig(mode=AnalysisMode.QUICK)

    def tearDown(self):
        self._tmp.cleanup()

    def make_service(self, router, notes=False):
        return AnalysisService(
            executor=StageExecutor(router),
            checkpoint_store=self.checkpoints,
            note_writer=NoteWriter(self.storage) if notes else None,
        )

    def clean_quick_result(self):
        service = AnalysisService(executor=StageExecutor(ScriptedRouter(QUICK_REPLIES)))
        return service.analyze(self.book, self.quick)


class TestAnalyze(PipelineTestCase):

    def test_quick_end_to_end(self):
        router = ScriptedRouter(QUICK_REPLIES)
        recorder = Recorder()
        result = self.make_service(router, notes=True).analyze(self.book, self.quick, callbacks=recorder.callbacks())

        self.assertEqual(router.calls, QUICK_STAGES)
        self.assertEqual(result.synopsis, QUICK_REPLIES[Stage.SYNOPSIS])
        self.assertEqual([(c.name, c.role) for c in result.characters],
                         [("Mara", CharacterRole.PROTAGONIST), ("Ilse", CharacterRole.SUPPORTING)])
        self.assertEqual(result.writing_techniques[0].examples, ["the lamp"])
        self.assertEqual(result.takeaways, ["Place: Anchor scenes", "Open late"])
        self.assertIsNone(result.emotion_curve)
        self.assertIsNone(result.writing_review)

        expected = []
        for stage in QUICK_STAGES:
            expected += [(stage, StageStatus.RUNNING), (stage, StageStatus.COMPLETED)]
        self.assertEqual(recorder.stages, expected)
        self.assertEqual(recorder.progress[-1][:2], ("Done", 100.0))

        self.assertIsNone(self.checkpoints.get(TITLE), "A fully successful run removes its checkpoint")
        self.assertEqual(recorder.notes, ["overview", "characters", "techniques", "overview"])
        self.assertTrue((self.root / TITLE / "overview.md").is_file())
        self.assertIn("Open late", (self.root / TITLE / "overview.md").read_text(encoding="utf-8"))

    def test_stage_failure_continues(self):
        replies = {**QUICK_REPLIES, Stage.TECHNIQUES: None}
        recorder = Recorder()
        result = self.make_service(ScriptedRouter(replies)).analyze(
            self.book, self.quick, callbacks=recorder.callbacks()
        )

        self.assertEqual(result.writing_techniques, [])
        self.assertEqual(result.takeaways, ["Place: Anchor scenes", "Open late"])
        self.assertIn((Stage.TECHNIQUES, StageStatus.ERROR), recorder.stages)
        self.assertNotIn((Stage.TECHNIQUES, StageStatus.COMPLETED), recorder.stages)

        checkpoint = self.checkpoints.get(TITLE)
        self.assertIsNotNone(checkpoint, "The checkpoint is kept so failed stages can be re-run")
        self.assertEqual(checkpoint.completed_stages, [Stage.SYNOPSIS, Stage.CHARACTERS, Stage.TAKEAWAYS])

    def test_failed_stage_rerun_on_resume(self):
        replies = {**QUICK_REPLIES, Stage.TECHNIQUES: None}
        self.make_service(ScriptedRouter(replies)).analyze(self.book, self.quick)

        router = ScriptedRouter(QUICK_REPLIES)
        result = self.make_service(router).resume_from_checkpoint(self.book)

        self.assertEqual(router.calls, [Stage.TECHNIQUES])
        self.assertEqual(result, self.clean_quick_result())
        self.assertIsNone(self.checkpoints.get(TITLE))

    def test_unparseable_reply_degrades_to_empty(self):
        replies = {**QUICK_REPLIES, Stage.CHARACTERS: "Sorry, I can't list characters."}
        result = self.make_service(ScriptedRouter(replies)).analyze(self.book, self.quick)

        self.assertEqual(result.characters, [])
        self.assertIsNone(self.checkpoints.get(TITLE), "A degraded reply is not a failed stage")

    def test_repeated_list_items_collapse_so_self_merge_is_identity(self):
        replies = {
            **QUICK_REPLIES,
            Stage.CHARACTERS: '{"characters": [{"name": "Mara", "role": "protagonist",'
                              ' "relationships": ["Ilse", "Ilse"]}]}',
            Stage.TAKEAWAYS: '{"takeaways": ["Open late", "Open late", {"title": "Open late"}]}',
        }
        result = self.make_service(ScriptedRouter(replies)).analyze(self.book, self.quick)

        self.assertEqual(result.characters[0].relationships, ["Ilse"])
        self.assertEqual(result.takeaways, ["Open late"])
        self.assertEqual(MergeService().merge_results(result, result), result)

    def test_invalid_input_rejected_before_any_stage(self):
        router = ScriptedRouter(QUICK_REPLIES)
        service = self.make_service(router)

        with self.assertRaises(ConfigurationError):
            service.analyze(self.book, self.quick, chapter_range=ChapterRange(5, 20))
        with self.assertRaises(ConfigurationError):
            service.analyze(self.book, self.quick, chapter_range=ChapterRange(6, 5))
        with self.assertRaises(ConfigurationError):
            service.analyze(make_book(0), self.quick)

        self.assertEqual(router.calls, [])
        self.assertIsNone(self.checkpoints.get(TITLE))

    def test_standard_mode_range(self):
        """Chapter structure indices are anchored to whole-book chapters."""
        router = ScriptedRouter(STANDARD_REPLIES)
        result = self.make_service(router).analyze(
            self.book, AnalysisConfig(mode=AnalysisMode.STANDARD), chapter_range=ChapterRange(3, 5)
        )

        self.assertEqual(len(router.calls), 7)
        self.assertEqual([(s.index, s.title) for s in result.chapter_structure],
                         [(2, "Chapter 3"), (3, "Chapter 4"), (4, "Named")])
        self.assertEqual([(p.chapter, p.intensity) for p in result.emotion_curve], [(3, 2), (4, 10)])
        self.assertEqual(len(result.foreshadowing), 1)
        self.assertEqual(result.foreshadowing[0].status, ForeshadowingStatus.RESOLVED)
        self.assertEqual(result.foreshadowing[0].payoff_chapter, 5)
        self.assertIsNone(result.chapter_details)

    def test_ranged_requests_carry_whole_book_chapter_numbers(self):
        router = ScriptedRouter(STANDARD_REPLIES)
        self.make_service(router).analyze(
            self.book, AnalysisConfig(mode=AnalysisMode.STANDARD), chapter_range=ChapterRange(3, 5)
        )

        emotion = [content for stage, content in router.requests if stage == Stage.EMOTION_CURVE]
        self.assertEqual(len(emotion), 1)
        for number in (3, 4, 5):
            self.assertIn(f"## [{number}] Chapter {number}\n", emotion[0])
        self.assertNotIn("## [1] ", emotion[0])

    def test_deep_mode_chapter_detail_fallback(self):
        book = make_book(4)
        router = ScriptedRouter(DEEP_REPLIES)
        result = self.make_service(router, notes=True).analyze(book, AnalysisConfig(mode=AnalysisMode.DEEP))

        self.assertEqual(router.calls.count(Stage.CHAPTER_DETAIL), 4)
        self.assertEqual([d.index for d in result.chapter_details], [0, 1, 2, 3])
        self.assertEqual(result.chapter_details[0].analysis, DEEP_REPLIES[Stage.CHAPTER_DETAIL])
        self.assertEqual(result.chapter_details[0].title, "Chapter 1")
        self.assertEqual(result.writing_review, DEEP_REPLIES[Stage.WRITING_REVIEW])
        self.assertTrue((self.root / TITLE / "chapters" / "001-Chapter 1.md").is_file())


class TestStopAndResume(PipelineTestCase):

    def test_stop_propagates_and_resume_matches_clean_run(self):
        controller = AnalysisController()

        def characters_then_stop():
            controller.stop()
            return QUICK_REPLIES[Stage.CHARACTERS]

        router = ScriptedRouter({**QUICK_REPLIES, Stage.CHARACTERS: characters_then_stop})
        with self.assertRaises(AnalysisStoppedError):
            self.make_service(router).analyze(self.book, self.quick, controller=controller)

        self.assertEqual(router.calls, [Stage.SYNOPSIS, Stage.CHARACTERS], "The running stage finishes")
        checkpoint = self.checkpoints.get(TITLE)
        self.assertEqual(checkpoint.completed_stages, [Stage.SYNOPSIS, Stage.CHARACTERS])

        resume_router = ScriptedRouter(QUICK_REPLIES)
        recorder = Recorder()
        result = self.make_service(resume_router).resume_from_checkpoint(
            self.book, callbacks=recorder.callbacks()
        )

        self.assertEqual(resume_router.calls, [Stage.TECHNIQUES, Stage.TAKEAWAYS])
        self.assertEqual(recorder.stages[:2], [(Stage.SYNOPSIS, StageStatus.COMPLETED),
                                               (Stage.CHARACTERS, StageStatus.COMPLETED)])
        self.assertEqual(result, self.clean_quick_result())

    def test_stopped_before_start(self):
        controller = AnalysisController()
        controller.stop()
        router = ScriptedRouter(QUICK_REPLIES)

        with self.assertRaises(AnalysisStoppedError):
            self.make_service(router).analyze(self.book, self.quick, controller=controller)
        self.assertEqual(router.calls, [])

    def test_resume_without_checkpoint(self):
        with self.assertRaises(ConfigurationError):
            self.make_service(ScriptedRouter(QUICK_REPLIES)).resume_from_checkpoint(self.book)


class TestIncremental(PipelineTestCase):

    def test_append_then_continue(self):
        service = self.make_service(ScriptedRouter(QUICK_REPLIES))

        first = service.analyze_incremental(
            self.book, self.quick, IncrementalMode.APPEND, self.metadata, chapter_range=ChapterRange(1, 6)
        )
        second = service.analyze_incremental(self.book, self.quick, IncrementalMode.CONTINUE, self.metadata)

        self.assertEqual((first.range.start_chapter, first.range.end_chapter), (1, 6))
        self.assertEqual((second.range.start_chapter, second.range.end_chapter), (7, 12))
        self.assertEqual(second.mode, AnalysisMode.QUICK)
        self.assertEqual(len(self.metadata.get_ranges(TITLE)), 2)

        with self.assertRaises(ConfigurationError):
            service.analyze_incremental(self.book, self.quick, IncrementalMode.CONTINUE, self.metadata)

    def test_append_needs_range(self):
        service = self.make_service(ScriptedRouter(QUICK_REPLIES))
        with self.assertRaises(ConfigurationError):
            service.analyze_incremental(self.book, self.quick, IncrementalMode.APPEND, self.metadata)

    def test_restart_clears_history(self):
        service = self.make_service(ScriptedRouter(QUICK_REPLIES))
        service.analyze_incremental(
            self.book, self.quick, IncrementalMode.APPEND, self.metadata, chapter_range=ChapterRange(1, 6)
        )
        service.analyze_incremental(self.book, self.quick, IncrementalMode.RESTART, self.metadata)

        ranges = self.metadata.get_ranges(TITLE)
        self.assertEqual([(r.start_chapter, r.end_chapter) for r in ranges], [(1, 12)])


class TestBatched(PipelineTestCase):

    def setUp(self):
        super().setUp()
        self.book = make_book(5)
        self.completed = []

    def on_complete(self, info, result):
        self.completed.append(info.number)

    def test_batches_merged(self):
        router = ScriptedRouter(QUICK_REPLIES)
        annotated = self.make_service(router).analyze_batched(
            self.book, self.quick, 2, self.metadata, on_batch_complete=self.on_complete
        )

        self.assertEqual(self.completed, [1, 2, 3])
        self.assertEqual(len(router.calls), 12)
        self.assertEqual((annotated.range.start_chapter, annotated.range.end_chapter), (1, 5))
        self.assertEqual([(r.start_chapter, r.end_chapter) for r in self.metadata.get_ranges(TITLE)],
                         [(1, 2), (3, 4), (5, 5)])
        self.assertEqual(annotated.result.synopsis, QUICK_REPLIES[Stage.SYNOPSIS])
        self.assertEqual([c.name for c in annotated.result.characters], ["Mara", "Ilse"])

    def test_failed_batch_retried_on_request(self):
        # requests 5-8 are every stage of the second batch
        router = ScriptedRouter(QUICK_REPLIES, fail_requests=range(5, 9))
        failures = []

        def on_failure(info, error):
            failures.append(info.number)
            return BatchFailureAction.RETRY

        self.make_service(router).analyze_batched(
            self.book, self.quick, 2, self.metadata,
            on_batch_complete=self.on_complete, on_batch_failure=on_failure
        )

        self.assertEqual(failures, [2])
        self.assertEqual(self.completed, [1, 2, 3])
        self.assertEqual(len(router.calls), 16)

    def test_failed_batch_skipped_by_default(self):
        router = ScriptedRouter(QUICK_REPLIES, fail_requests=range(5, 9))
        self.make_service(router).analyze_batched(
            self.book, self.quick, 2, self.metadata, on_batch_complete=self.on_complete
        )

        self.assertEqual(self.completed, [1, 3])
        self.assertEqual([(r.start_chapter, r.end_chapter) for r in self.metadata.get_ranges(TITLE)],
                         [(1, 2), (5, 5)])

    def test_abort(self):
        router = ScriptedRouter(QUICK_REPLIES, fail_requests=range(1, 5))
        with self.assertRaises(AnalysisError):
            self.make_service(router).analyze_batched(
                self.book, self.quick, 2, self.metadata,
                on_batch_failure=lambda info, error: BatchFailureAction.ABORT
            )
        self.assertEqual(len(router.calls), 4)

    def test_bad_batch_size(self):
        with self.assertRaises(ConfigurationError):
            self.make_service(ScriptedRouter(QUICK_REPLIES)).analyze_batched(self.book, self.quick, 0)


if __name__ == '__main__':
    unittest.main()
