"""
Tests for file storage, the checkpoint store, and the range metadata store.
"""

import json
import tempfile
import unittest
from pathlib import Path

from analysis.checkpoint import AnalysisCheckpoint, CheckpointStore
from analysis.metadata import MetadataStore
from analysis.models import AnalysisConfig, AnalysisMode, ChapterRange, NovelType
from analysis.stages import Stage
from core.storage import FileStorage, book_folder, sanitize_file_name


class StorageTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.storage = FileStorage(self.root)

    def tearDown(self):
        self._tmp.cleanup()


class TestFileStorage(StorageTestCase):

    def test_write_read_delete(self):
        self.assertTrue(self.storage.write("book/notes/a.md", "hello"))
        self.assertTrue(self.storage.exists("book/notes/a.md"))
        self.assertEqual(self.storage.read("book/notes/a.md"), "hello")
        self.assertTrue((self.root / "book" / "notes" / "a.md").is_file())

        self.assertTrue(self.storage.delete("book/notes/a.md"))
        self.assertIsNone(self.storage.read("book/notes/a.md"))

    def test_delete_missing_is_success(self):
        self.assertTrue(self.storage.delete("nothing/here.json"))

    def test_rejects_parent_paths(self):
        with self.assertRaises(ValueError):
            self.storage.write("../escape.txt", "x")

    def test_sanitize_file_name(self):
        self.assertEqual(sanitize_file_name('What? A "Title": Part 1/2'), "What A Title Part 12")
        self.assertEqual(len(sanitize_file_name("x" * 300)), 100)
        self.assertEqual(book_folder("", "a/b"), "ab")
        self.assertEqual(book_folder("notes/", "Title"), "notes/Title")
        self.assertEqual(book_folder("", "???"), "untitled")

    def test_dot_only_names_fall_back(self):
        self.assertEqual(sanitize_file_name("<..>"), "")
        self.assertEqual(sanitize_file_name(" . "), "")
        self.assertEqual(sanitize_file_name("...And Then"), "...And Then")
        self.assertEqual(book_folder("", "<..>"), "untitled")
        self.assertEqual(book_folder("notes", "?.?"), "notes/untitled")


class TestCheckpointStore(StorageTestCase):

    def setUp(self):
        super().setUp()
        self.store = CheckpointStore(self.storage)
        self.config = AnalysisConfig(mode=AnalysisMode.QUICK, novel_type=NovelType.FANTASY)

    def test_create_and_get(self):
        self.store.create("/books/lantern.txt", "The Lantern House", self.config, ChapterRange(1, 12))
        checkpoint = self.store.get("The Lantern House")

        self.assertIsNotNone(checkpoint)
        self.assertEqual(checkpoint.book_path, "/books/lantern.txt")
        self.assertEqual(checkpoint.config, self.config)
        self.assertEqual(checkpoint.chapter_range, ChapterRange(1, 12))
        self.assertEqual(checkpoint.completed_stages, [])
        self.assertTrue(self.store.has("The Lantern House"))

    def test_title_of_dots_stays_inside_root(self):
        self.store.create("", "<..>", self.config, ChapterRange(1, 12))

        checkpoint = self.store.get("<..>")
        self.assertIsNotNone(checkpoint)
        self.assertEqual(checkpoint.chapter_range, ChapterRange(1, 12))
        self.assertTrue((self.root / "untitled" / ".analysis-checkpoint.json").is_file())

    def test_create_replaces_existing(self):
        self.store.create("", "Book", self.config, ChapterRange(1, 12))
        self.store.update("Book", Stage.SYNOPSIS, {"synopsis": "x"})
        self.store.create("", "Book", self.config, ChapterRange(3, 4))

        checkpoint = self.store.get("Book")
        self.assertEqual(checkpoint.chapter_range, ChapterRange(3, 4))
        self.assertEqual(checkpoint.completed_stages, [])
        self.assertEqual(checkpoint.partial_results, {})

    def test_update_accumulates(self):
        self.store.create("", "Book", self.config, ChapterRange(1, 12))
        self.store.update("Book", Stage.SYNOPSIS, {"synopsis": "Once"})
        self.store.update("Book", Stage.CHARACTERS, {"characters": [{"name": "Mara"}]})
        self.store.update("Book", Stage.SYNOPSIS, {"synopsis": "Twice"})

        checkpoint = self.store.get("Book")
        self.assertEqual(checkpoint.completed_stages, [Stage.SYNOPSIS, Stage.CHARACTERS])
        self.assertEqual(checkpoint.partial_results["synopsis"], "Twice")
        self.assertEqual(checkpoint.partial_results["characters"], [{"name": "Mara"}])
        self.assertTrue(checkpoint.is_stage_completed(Stage.CHARACTERS))
        self.assertFalse(checkpoint.is_stage_completed(Stage.TAKEAWAYS))

    def test_update_without_checkpoint_is_noop(self):
        self.assertIsNone(self.store.update("Missing", Stage.SYNOPSIS, {"synopsis": "x"}))
        self.assertFalse(self.store.has("Missing"))

    def test_set_current_stage(self):
        self.store.create("", "Book", self.config, ChapterRange(1, 2))
        self.store.set_current_stage("Book", Stage.TECHNIQUES)
        self.assertEqual(self.store.get("Book").current_stage, Stage.TECHNIQUES)

    def test_malformed_reads_as_missing(self):
        key = f"{book_folder('', 'Book')}/.analysis-checkpoint.json"
        for text in ("not json", json.dumps({"bookTitle": 5, "completedStages": []}),
                     json.dumps({"bookTitle": "Book", "completedStages": "synopsis"})):
            self.storage.write(key, text)
            self.assertIsNone(self.store.get("Book"), text)

    def test_unknown_stages_dropped(self):
        checkpoint = AnalysisCheckpoint.from_dict({
            "bookTitle": "Book",
            "chapterRange": {"start": 1, "end": 3},
            "completedStages": ["synopsis", "bogus", "synopsis", "characters"],
        })
        self.assertEqual(checkpoint.completed_stages, [Stage.SYNOPSIS, Stage.CHARACTERS])

    def test_delete(self):
        self.store.create("", "Book", self.config, ChapterRange(1, 2))
        self.assertTrue(self.store.delete("Book"))
        self.assertIsNone(self.store.get("Book"))

    def test_format_status(self):
        checkpoint = AnalysisCheckpoint(
            book_path="",
            book_title="Book",
            config=self.config,
            chapter_range=ChapterRange(1, 12),
            completed_stages=[Stage.SYNOPSIS, Stage.CHARACTERS],
            updated_at="2026-03-01T14:05:09",
        )
        self.assertEqual(
            CheckpointStore.format_status(checkpoint),
            "Checkpoint: chapters 1-12, 2 stages completed (2026-03-01 14:05)"
        )


class TestMetadataStore(StorageTestCase):

    def setUp(self):
        super().setUp()
        self.store = MetadataStore(self.storage)

    def test_empty_history(self):
        self.assertIsNone(self.store.get("Book"))
        self.assertEqual(self.store.get_ranges("Book"), [])
        self.assertEqual(self.store.next_start_chapter("Book"), 1)
        self.assertFalse(self.store.has_overlap("Book", 1, 5))

    def test_add_ranges(self):
        first = MetadataStore.create_range(1, 10, AnalysisMode.QUICK)
        second = MetadataStore.create_range(11, 20, AnalysisMode.DEEP)
        self.store.add_range("Book", "/books/book.txt", first)
        metadata = self.store.add_range("Book", "", second)

        self.assertEqual(metadata.book_path, "/books/book.txt")
        self.assertEqual(self.store.get_ranges("Book"), [first, second])
        self.assertEqual(self.store.next_start_chapter("Book"), 21)
        self.assertTrue(self.store.has_overlap("Book", 18, 25))
        self.assertFalse(self.store.has_overlap("Book", 21, 25))

    def test_range_ids_unique(self):
        ids = {MetadataStore.create_range(1, 2, AnalysisMode.QUICK).id for _ in range(20)}
        self.assertEqual(len(ids), 20)
        self.assertTrue(all(i.startswith("range-") for i in ids))

    def test_delete_clears_history(self):
        self.store.add_range("Book", "", MetadataStore.create_range(1, 5, AnalysisMode.STANDARD))
        self.store.delete("Book")
        self.assertEqual(self.store.next_start_chapter("Book"), 1)

    def test_malformed_reads_as_missing(self):
        self.storage.write("Book/.analysis-metadata.json", json.dumps({"bookTitle": "Book"}))
        self.assertIsNone(self.store.get("Book"))


if __name__ == '__main__':
    unittest.main()
