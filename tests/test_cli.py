"""
Tests for the console front end: command handling, the worker run loop,
and batch failure prompts.
"""

import io
import unittest
from unittest.mock import MagicMock

from rich.console import Console

from analysis.controller import AnalysisController
from analysis.errors import AnalysisStoppedError
from analysis.models import AnalysisResult, BookMetadata, ChapterRange, StageStatus
from analysis.pipeline import BatchFailureAction, BatchInfo
from analysis.stages import Stage
from interface.cli import AnalysisCLI, PREVIEW_CHARS
from llm.router import TokenUsage


class CLITestCase(unittest.TestCase):

    def setUp(self):
        self.output = io.StringIO()
        self.controller = AnalysisController()
        self.cli = AnalysisCLI(self.controller, Console(file=self.output, width=120, color_system=None))
        # Keep the run loop off the real stdin
        self.cli._input_thread = MagicMock()

    def printed(self) -> str:
        return self.output.getvalue()


class TestCommands(CLITestCase):

    def test_pause_resume_stop(self):
        self.cli.handle_command("p\n")
        self.assertTrue(self.controller.is_paused)

        self.cli.handle_command("Resume")
        self.assertTrue(self.controller.is_running)

        self.cli.handle_command("stop")
        self.assertTrue(self.controller.is_stopped)

    def test_invalid_transitions_reported(self):
        self.cli.handle_command("r")
        self.assertIn("Not paused", self.printed())
        self.assertTrue(self.controller.is_running)

    def test_unknown_and_blank(self):
        self.cli.handle_command("   \n")
        self.cli.handle_command("xyz")
        self.assertIn("Unknown command: xyz", self.printed())
        self.assertTrue(self.controller.is_running)

    def test_queued_commands_drained(self):
        self.cli._input_queue.put("p\n")
        self.cli._input_queue.put("s\n")
        self.cli._drain_commands()
        self.assertTrue(self.controller.is_stopped)


class TestRunLoop(CLITestCase):

    def test_returns_job_value(self):
        self.assertEqual(self.cli.run(lambda: 42), 42)

    def test_reraises_job_error(self):
        def job():
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            self.cli.run(job)

    def test_stop_reaches_running_job(self):
        """A stop typed while the job waits at a checkpoint ends the job."""
        self.controller.pause()
        self.cli._input_queue.put("s\n")

        def job():
            self.controller.checkpoint(timeout=5)

        with self.assertRaises(AnalysisStoppedError):
            self.cli.run(job)


class TestBatchPrompts(CLITestCase):

    def setUp(self):
        super().setUp()
        self.info = BatchInfo(number=2, total=3, chapter_range=ChapterRange(51, 100))

    def test_answer_chosen(self):
        self.cli._input_queue.put(" Retry \n")
        action = self.cli.on_batch_failure(self.info, RuntimeError("every stage failed"))
        self.assertEqual(action, BatchFailureAction.RETRY)
        self.assertIn("chapters 51-100", self.printed())

    def test_unrecognized_answer_skips(self):
        self.cli._input_queue.put("maybe\n")
        self.assertEqual(self.cli.on_batch_failure(self.info, RuntimeError("x")), BatchFailureAction.SKIP)


class TestDisplay(CLITestCase):

    def test_long_result_truncated(self):
        text = "z" * (PREVIEW_CHARS + 500)
        self.cli._on_stage_result(Stage.CHARACTERS, StageStatus.COMPLETED, "done", text)
        self.assertIn("...", self.printed())
        self.assertEqual(self.printed().count("z"), PREVIEW_CHARS)

    def test_error_status_prints_message(self):
        self.cli._on_stage_result(Stage.TAKEAWAYS, StageStatus.ERROR, "Takeaways failed: HTTP 500")
        self.assertIn("Takeaways failed: HTTP 500", self.printed())

    def test_summary_and_usage(self):
        result = AnalysisResult(book_info=BookMetadata(title="The Lantern House"), synopsis="x", takeaways=["a", "b"])
        self.cli.show_result_summary(result)
        self.cli.show_usage(TokenUsage(requests=3, failures=1, tokens_in=100, tokens_out=40))

        out = self.printed()
        self.assertIn("The Lantern House", out)
        self.assertIn("3 request(s), 1 failed", out)
        self.assertIn("140 tokens", out)


if __name__ == '__main__':
    unittest.main()
