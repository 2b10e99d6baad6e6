"""
Folio - Analysis Stages
Stage identifiers, which stages each mode runs, and where their output lands
"""

from enum import Enum
from typing import Dict, List

from analysis.models import AnalysisMode


class Stage(Enum):
    """One named analytical task. Values are the names stored in checkpoints."""
    SYNOPSIS = "synopsis"
    CHARACTERS = "characters"
    TECHNIQUES = "techniques"
    TAKEAWAYS = "takeaways"
    EMOTION_CURVE = "emotionCurve"
    CHAPTER_STRUCTURE = "chapterStructure"
    FORESHADOWING = "foreshadowing"
    CHAPTER_DETAIL = "chapterDetail"
    WRITING_REVIEW = "writingReview"


QUICK_STAGES = [Stage.SYNOPSIS, Stage.CHARACTERS, Stage.TECHNIQUES, Stage.TAKEAWAYS]
STANDARD_STAGES = QUICK_STAGES + [Stage.EMOTION_CURVE, Stage.CHAPTER_STRUCTURE, Stage.FORESHADOWING]
DEEP_STAGES = STANDARD_STAGES + [Stage.CHAPTER_DETAIL, Stage.WRITING_REVIEW]

_MODE_STAGES: Dict[AnalysisMode, List[Stage]] = {
    AnalysisMode.QUICK: QUICK_STAGES,
    AnalysisMode.STANDARD: STANDARD_STAGES,
    AnalysisMode.DEEP: DEEP_STAGES,
}

# AnalysisResult attribute each stage fills
STAGE_RESULT_FIELDS: Dict[Stage, str] = {
    Stage.SYNOPSIS: "synopsis",
    Stage.CHARACTERS: "characters",
    Stage.TECHNIQUES: "writing_techniques",
    Stage.TAKEAWAYS: "takeaways",
    Stage.EMOTION_CURVE: "emotion_curve",
    Stage.CHAPTER_STRUCTURE: "chapter_structure",
    Stage.FORESHADOWING: "foreshadowing",
    Stage.CHAPTER_DETAIL: "chapter_details",
    Stage.WRITING_REVIEW: "writing_review",
}

STAGE_DISPLAY_NAMES: Dict[Stage, str] = {
    Stage.SYNOPSIS: "Synopsis",
    Stage.CHARACTERS: "Character analysis",
    Stage.TECHNIQUES: "Writing techniques",
    Stage.TAKEAWAYS: "Takeaways",
    Stage.EMOTION_CURVE: "Emotion curve",
    Stage.CHAPTER_STRUCTURE: "Chapter structure",
    Stage.FORESHADOWING: "Foreshadowing",
    Stage.CHAPTER_DETAIL: "Chapter detail",
    Stage.WRITING_REVIEW: "Writing review",
}


def stages_for_mode(mode: AnalysisMode) -> List[Stage]:
    """Ordered stages for a mode (a fresh list the caller may modify)."""
    return list(_MODE_STAGES[mode])


def get_stage_name(stage: Stage) -> str:
    return STAGE_DISPLAY_NAMES[stage]


def parse_stage_list(values) -> List[Stage]:
    """Stage names from storage to Stage members, dropping unknown and duplicate names."""
    stages: List[Stage] = []
    for value in values or []:
        try:
            stage = Stage(value)
        except ValueError:
            continue
        if stage not in stages:
            stages.append(stage)
    return stages
