"""
Tests for markdown note rendering and writing.
"""

import tempfile
import unittest
from pathlib import Path

from analysis.models import (
    AnalysisResult,
    BookMetadata,
    ChapterDetail,
    CharacterAnalysis,
    CharacterRole,
    EmotionPoint,
    Foreshadowing,
    ForeshadowingStatus,
)
from analysis.notes import NoteWriter, chapter_note_name, render_overview, render_plot
from analysis.stages import Stage
from core.storage import FileStorage


class TestRendering(unittest.TestCase):

    def test_overview(self):
        result = AnalysisResult(
            book_info=BookMetadata(title="The Lantern House", author="R. Vale"),
            synopsis="Mara inherits a lighthouse.",
            takeaways=["Anchor scenes in place"],
        )
        text = render_overview(result)

        self.assertTrue(text.startswith("# The Lantern House"))
        self.assertIn("*R. Vale*", text)
        self.assertIn("- [ ] Anchor scenes in place", text)
        self.assertNotIn("## Writing Review", text)

    def test_plot(self):
        result = AnalysisResult(
            book_info=BookMetadata(title="Book"),
            emotion_curve=[EmotionPoint(chapter=2, intensity=3, description="calm")],
            foreshadowing=[Foreshadowing(setup_chapter=1, description="The ledger",
                                         status=ForeshadowingStatus.RESOLVED, payoff_chapter=9)],
        )
        text = render_plot(result)

        self.assertIn("| 2 | ███ 3 | calm |", text)
        self.assertIn("- **[resolved]** ch. 1 → ch. 9: The ledger", text)
        self.assertNotIn("## Chapter Structure", text)

    def test_chapter_note_name(self):
        self.assertEqual(chapter_note_name(ChapterDetail(index=2, title="Night: Part 1")), "003-Night Part 1.md")
        self.assertEqual(chapter_note_name(ChapterDetail(index=0, title="???")), "001-chapter.md")


class TestNoteWriter(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.writer = NoteWriter(FileStorage(self.root), "notes")
        self.result = AnalysisResult(
            book_info=BookMetadata(title="The Lantern House"),
            characters=[CharacterAnalysis(name="Mara", role=CharacterRole.PROTAGONIST, relationships=["Ilse"])],
            chapter_details=[ChapterDetail(index=0, title="Arrival", analysis="Strong"),
                             ChapterDetail(index=1, title="Storm", highlights=["the lamp"])],
        )

    def tearDown(self):
        self._tmp.cleanup()

    def test_stage_note(self):
        written = self.writer.write_stage_note(Stage.CHARACTERS, self.result)

        self.assertEqual(written, [("characters", "notes/The Lantern House/characters.md")])
        text = (self.root / "notes" / "The Lantern House" / "characters.md").read_text(encoding="utf-8")
        self.assertIn("**Role:** Protagonist", text)
        self.assertIn("- Ilse", text)

    def test_chapter_notes(self):
        written = self.writer.write_stage_note(Stage.CHAPTER_DETAIL, self.result)

        self.assertEqual([k for _, k in written], [
            "notes/The Lantern House/chapters/001-Arrival.md",
            "notes/The Lantern House/chapters/002-Storm.md",
        ])
        self.assertTrue((self.root / "notes" / "The Lantern House" / "chapters" / "002-Storm.md").is_file())


if __name__ == '__main__':
    unittest.main()
