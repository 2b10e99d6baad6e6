"""
Folio - Incremental Notes
Writes markdown notes as stages finish, so a long run leaves readable output
even if it is stopped part-way.

Each note is re-rendered from the current result, so rewriting one after a
later stage is harmless.
"""

from typing import Callable, Dict, List

from analysis.models import AnalysisResult, ChapterDetail
from analysis.stages import Stage
from core.logger import log_warning
from core.storage import FileStorage, book_folder, sanitize_file_name

ROLE_LABELS = {"protagonist": "Protagonist", "antagonist": "Antagonist", "supporting": "Supporting"}


def render_overview(result: AnalysisResult) -> str:
    lines = [f"# {result.book_info.title}", ""]
    if result.book_info.author:
        lines += [f"*{result.book_info.author}*", ""]
    if result.synopsis:
        lines += ["## Synopsis", "", result.synopsis, ""]
    if result.takeaways:
        lines += ["## Takeaways", ""]
        lines += [f"- [ ] {t}" for t in result.takeaways]
        lines.append("")
    if result.writing_review:
        lines += ["## Writing Review", "", result.writing_review, ""]
    return "\n".join(lines)


def render_characters(result: AnalysisResult) -> str:
    lines = [f"# Characters - {result.book_info.title}", ""]
    for char in result.characters:
        lines += [f"## {char.name}", "", f"**Role:** {ROLE_LABELS[char.role.value]}", ""]
        if char.description:
            lines += [char.description, ""]
        if char.motivation:
            lines += [f"**Motivation:** {char.motivation}", ""]
        if char.growth_arc:
            lines += [f"**Growth:** {char.growth_arc}", ""]
        if char.relationships:
            lines += ["**Relationships:**", ""] + [f"- {r}" for r in char.relationships] + [""]
    return "\n".join(lines)


def render_techniques(result: AnalysisResult) -> str:
    lines = [f"# Writing Techniques - {result.book_info.title}", ""]
    for tech in result.writing_techniques:
        lines += [f"## {tech.name}", ""]
        if tech.description:
            lines += [tech.description, ""]
        if tech.examples:
            lines += ["**Examples:**", ""] + [f"> {e}" for e in tech.examples] + [""]
        if tech.applicability:
            lines += [f"**How to use it:** {tech.applicability}", ""]
    return "\n".join(lines)


def render_plot(result: AnalysisResult) -> str:
    lines = [f"# Plot - {result.book_info.title}", ""]

    if result.emotion_curve:
        lines += ["## Emotion Curve", "", "| Chapter | Intensity | |", "|---|---|---|"]
        for point in result.emotion_curve:
            bar = "█" * point.intensity
            lines.append(f"| {point.chapter} | {bar} {point.intensity} | {point.description} |")
        lines.append("")

    if result.chapter_structure:
        lines += ["## Chapter Structure", ""]
        for summary in result.chapter_structure:
            lines += [f"### {summary.index + 1}. {summary.title}", "", summary.summary, ""]
            lines += [f"- {e}" for e in summary.key_events]
            lines.append("")

    if result.foreshadowing:
        lines += ["## Foreshadowing", ""]
        for item in result.foreshadowing:
            payoff = f" → ch. {item.payoff_chapter}" if item.payoff_chapter is not None else ""
            lines.append(f"- **[{item.status.value}]** ch. {item.setup_chapter}{payoff}: {item.description}")
        lines.append("")

    return "\n".join(lines)


def render_chapter_detail(detail: ChapterDetail) -> str:
    lines = [f"# {detail.title}", "", detail.analysis, ""]
    if detail.techniques:
        lines += ["## Techniques", ""] + [f"- {t}" for t in detail.techniques] + [""]
    if detail.highlights:
        lines += ["## Highlights", ""] + [f"- {h}" for h in detail.highlights] + [""]
    return "\n".join(lines)


def chapter_note_name(detail: ChapterDetail) -> str:
    """"003-Title.md" for index 2."""
    return f"{detail.index + 1:03d}-{sanitize_file_name(detail.title) or 'chapter'}.md"


_STAGE_NOTES: Dict[Stage, tuple[str, Callable[[AnalysisResult], str]]] = {
    Stage.SYNOPSIS: ("overview", render_overview),
    Stage.TAKEAWAYS: ("overview", render_overview),
    Stage.WRITING_REVIEW: ("overview", render_overview),
    Stage.CHARACTERS: ("characters", render_characters),
    Stage.TECHNIQUES: ("techniques", render_techniques),
    Stage.EMOTION_CURVE: ("plot", render_plot),
    Stage.CHAPTER_STRUCTURE: ("plot", render_plot),
    Stage.FORESHADOWING: ("plot", render_plot),
}


class NoteWriter:
    """Markdown notes under <notes>/<sanitized title>/."""

    def __init__(self, storage: FileStorage, notes_path: str = ""):
        self.storage = storage
        self.notes_path = notes_path

    def write_stage_note(self, stage: Stage, result: AnalysisResult) -> List[tuple[str, str]]:
        """
        Write the note(s) a finished stage affects.

        Returns:
            (note type, storage key) for each note written
        """
        folder = book_folder(self.notes_path, result.book_info.title)
        written = []

        if stage == Stage.CHAPTER_DETAIL:
            for detail in result.chapter_details or []:
                key = f"{folder}/chapters/{chapter_note_name(detail)}"
                if self.storage.write(key, render_chapter_detail(detail)):
                    written.append(("chapter", key))
        else:
            note_type, render = _STAGE_NOTES[stage]
            key = f"{folder}/{note_type}.md"
            if self.storage.write(key, render(result)):
                written.append((note_type, key))

        if not written:
            log_warning(f"No notes written for {stage.value}")
        return written
