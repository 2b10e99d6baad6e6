"""
Folio - Chunking and Sampling
Splits a chapter sequence into model-sized units and picks representative
chapters for the stages that only need a global impression.

Three unit-selection strategies:
    split_into_chunks          - full coverage (characters, emotion curve, structure)
    sample_chapter_indices     - head + stride + tail (synopsis, foreshadowing)
    select_key_chapter_indices - first/last few + stride (per-chapter detail)
"""

from dataclasses import dataclass, field
from typing import List, Sequence

import config
from analysis.models import Chapter, ChapterRange

CHAPTER_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class ChunkConfig:
    max_chars_per_chunk: int = config.CHUNK_MAX_CHARS
    max_chapters_per_chunk: int = config.CHUNK_MAX_CHAPTERS


@dataclass
class BookChunk:
    """Contiguous chapters sent to the model together. start/end are chapter indices."""
    chapters: List[Chapter] = field(default_factory=list)
    start_index: int = 0
    end_index: int = 0
    total_chars: int = 0


def split_into_chunks(chapters: Sequence[Chapter], chunk_config: ChunkConfig = ChunkConfig()) -> List[BookChunk]:
    """
    Split chapters into chunks bounded by character and chapter counts.

    A chapter longer than the character ceiling gets a chunk of its own;
    chapters are never split or reordered.
    """
    chunks: List[BookChunk] = []
    current: List[Chapter] = []
    current_chars = 0

    for chapter in chapters:
        chapter_chars = len(chapter.content)
        too_long = current_chars + chapter_chars > chunk_config.max_chars_per_chunk
        too_many = len(current) >= chunk_config.max_chapters_per_chunk

        if current and (too_long or too_many):
            chunks.append(_make_chunk(current, current_chars))
            current = []
            current_chars = 0

        current.append(chapter)
        current_chars += chapter_chars

    if current:
        chunks.append(_make_chunk(current, current_chars))

    return chunks


def _make_chunk(chapters: List[Chapter], total_chars: int) -> BookChunk:
    return BookChunk(
        chapters=list(chapters),
        start_index=chapters[0].index,
        end_index=chapters[-1].index,
        total_chars=total_chars,
    )


def sample_chapter_indices(count: int, stride_divisor: int = config.SAMPLE_STRIDE_DIVISOR) -> List[int]:
    """
    Positions of sampled chapters: 0, every count//stride_divisor-th, and the last.

    Always sorted and unique; empty only when count is 0.
    """
    if count <= 0:
        return []

    step = max(1, count // stride_divisor)
    indices = {0}
    indices.update(range(step, count - 1, step))
    if count > 1:
        indices.add(count - 1)
    return sorted(indices)


def sample_chapters(chapters: Sequence[Chapter]) -> List[Chapter]:
    return [chapters[i] for i in sample_chapter_indices(len(chapters))]


def select_key_chunks(chunks: Sequence[BookChunk]) -> List[BookChunk]:
    """First, middle and last chunk (or all of them when there are three or fewer)."""
    if len(chunks) <= 3:
        return list(chunks)
    return [chunks[0], chunks[len(chunks) // 2], chunks[-1]]


def select_key_chapter_indices(
    count: int,
    edge_count: int = config.KEY_CHAPTER_EDGE_COUNT,
    stride_divisor: int = config.KEY_CHAPTER_DIVISOR
) -> List[int]:
    """Positions of the first/last edge_count chapters plus every count//stride_divisor-th between."""
    if count <= 0:
        return []

    indices = set(range(min(edge_count, count)))

    step = max(1, count // stride_divisor)
    indices.update(range(step, count - edge_count, step))

    indices.update(range(max(0, count - edge_count), count))
    return sorted(indices)


def build_chapter_content(chapters: Sequence[Chapter]) -> str:
    """
    Render chapters as "## [n] title" blocks separated by horizontal rules.

    n is the 1-based whole-book chapter number, so replies that cite chapters
    by their heading stay correct when only a range or chunk is sent.
    """
    return CHAPTER_SEPARATOR.join(f"## [{ch.index + 1}] {ch.title}\n\n{ch.content}" for ch in chapters)


def calculate_batches(start_chapter: int, end_chapter: int, batch_size: int) -> List[ChapterRange]:
    """Split a 1-based inclusive chapter range into consecutive batches."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    batches = []
    start = start_chapter
    while start <= end_chapter:
        end = min(start + batch_size - 1, end_chapter)
        batches.append(ChapterRange(start=start, end=end))
        start = end + 1
    return batches
