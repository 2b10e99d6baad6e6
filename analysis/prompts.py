"""
Folio - Prompt Templates
System prompt, per-stage prompts, and genre supplements.

Structured stages ask for a single JSON object with a fixed schema; the
synopsis and writing review are free-form markdown. Callers can override any
stage prompt (custom_prompts[stage value]), the system prompt
(custom_prompts["system"]), or a genre supplement
(custom_type_prompts[novel type value]).
"""

from typing import Dict, Optional

from analysis.models import AnalysisConfig, AnalysisMode, NovelType
from analysis.stages import Stage, stages_for_mode


SYSTEM_PROMPT = """You are a professional fiction analyst and writing coach. You help
aspiring novelists learn craft by taking apart published serial fiction.

Your analysis is:
- Concrete: point at specific scenes, lines, and chapters rather than generalities
- Practical: every observation should be something a writer could try
- Honest: name weaknesses as clearly as strengths

When asked for JSON, reply with exactly one JSON object and nothing else."""


# =============================================================================
# QUICK MODE
# =============================================================================

BASE_PROMPTS: Dict[Stage, str] = {
    Stage.SYNOPSIS: """<task>
Write a detailed synopsis of the novel from the excerpts below.

The excerpts are a sample: the opening, chapters spread through the book, and the
latest chapter. Bridge the gaps sensibly but do not invent major events.

Cover:
1. The premise and the protagonist's starting situation
2. The main conflict and what drives it
3. The major turning points, in order
4. Where the story stands at the last excerpt

Write 500-800 words of markdown prose.
</task>""",

    Stage.CHARACTERS: """<task>
Analyze the important characters in the chapters below.

For each character give their role, personality, what they want, how they change,
and their key relationships. Skip walk-on characters.

<output_format>
{
  "characters": [
    {
      "name": "Character name",
      "role": "protagonist | antagonist | supporting",
      "description": "Personality and how the text establishes it",
      "motivation": "What they want and why",
      "growthArc": "How they change across these chapters",
      "relationships": ["Other character: nature of the relationship"]
    }
  ]
}
</output_format>
</task>""",

    Stage.TECHNIQUES: """<task>
Identify the writing techniques this novel uses well.

Look at pacing, hooks, point of view, dialogue, scene construction, tension and
release, information control, and genre-specific devices. For each technique,
quote or paraphrase concrete examples from the text.

<output_format>
{
  "techniques": [
    {
      "name": "Short technique name",
      "description": "What the author does and why it works",
      "examples": ["Concrete example from the text"],
      "applicability": "When and how another writer could use it"
    }
  ]
}
</output_format>
</task>""",

    Stage.TAKEAWAYS: """<task>
Based on the analysis so far, write a checklist of lessons a writer could apply
to their own novel. Each item should be specific and actionable, not a platitude.

<output_format>
{
  "takeaways": ["Lesson one", "Lesson two"]
}
</output_format>
</task>""",
}


# =============================================================================
# STANDARD MODE
# =============================================================================

STANDARD_PROMPTS: Dict[Stage, str] = {
    Stage.EMOTION_CURVE: """<task>
Chart the emotional intensity of the chapters below.

For each chapter rate the reader's emotional intensity from 1 (calm) to 10
(peak tension or release) and say what produces it. Use the chapter number
in square brackets at the start of each heading, e.g. "## [12] ..." is chapter 12.

<output_format>
{
  "emotionCurve": [
    {"chapter": 1, "intensity": 4, "description": "What drives the emotion"}
  ]
}
</output_format>
</task>""",

    Stage.CHAPTER_STRUCTURE: """<task>
Summarize the structure of each chapter below.

"index" is the chapter's position counted from 0 in the order given.

<output_format>
{
  "chapterStructure": [
    {
      "index": 0,
      "title": "Chapter title",
      "summary": "Two or three sentence summary",
      "keyEvents": ["Event that changes the situation"]
    }
  ]
}
</output_format>
</task>""",

    Stage.FORESHADOWING: """<task>
Find the foreshadowing in the excerpts below: setups that promise a later payoff.

For each one give the chapter where it is planted, the chapter where it pays
off if it has, and its status: "planted" (not yet paid off), "resolved" (paid
off), or "abandoned" (dropped without payoff). Chapters are numbered by the
value in square brackets at the start of each heading.

<output_format>
{
  "foreshadowing": [
    {
      "setupChapter": 3,
      "payoffChapter": 12,
      "description": "What is set up",
      "status": "planted | resolved | abandoned"
    }
  ]
}
</output_format>
</task>""",
}


# =============================================================================
# DEEP MODE
# =============================================================================

DEEP_PROMPTS: Dict[Stage, str] = {
    Stage.CHAPTER_DETAIL: """<task>
Take this single chapter apart in depth.

Explain how it is built: its opening, its turns, how it ends, what it sets up.
Name the techniques it uses and pick out the passages most worth studying.

<output_format>
{
  "chapterDetail": {
    "index": 0,
    "title": "Chapter title",
    "analysis": "Several paragraphs of structural and craft analysis",
    "techniques": ["Technique used in this chapter"],
    "highlights": ["Passage or moment worth studying, and why"]
  }
}
</output_format>
</task>""",

    Stage.WRITING_REVIEW: """<task>
Write an overall craft review of this novel from the analysis so far.

Cover its strongest qualities, its weaknesses, how its structure serves (or
fails) the story, and what a writer at an intermediate level should copy or
avoid. Write 600-1000 words of markdown prose with headings.
</task>""",
}


# =============================================================================
# GENRE SUPPLEMENTS
# =============================================================================

TYPE_SPECIFIC_PROMPTS: Dict[NovelType, str] = {
    NovelType.URBAN: """For this urban fiction, pay particular attention to:
- How the protagonist's advantage (system, rebirth, hidden skill) is introduced and paced
- Face-slapping and status-reversal scenes and how their payoff is built
- Realism of the social setting and how it grounds the fantasy""",

    NovelType.FANTASY: """For this fantasy novel, pay particular attention to:
- How the power system is revealed and how progression is paced
- Worldbuilding delivered through action rather than exposition
- Escalation of stakes between arcs""",

    NovelType.XIANXIA: """For this xianxia novel, pay particular attention to:
- Cultivation realms and how breakthroughs are staged as climaxes
- Sect politics and the master/disciple dynamics
- How the Dao and immortality themes are dramatized""",

    NovelType.WUXIA: """For this wuxia novel, pay particular attention to:
- The code of the jianghu and how characters live by or break it
- Fight choreography and how martial arts express character
- Loyalty, revenge, and righteousness as plot engines""",

    NovelType.SCIFI: """For this science fiction novel, pay particular attention to:
- How the central speculative idea is introduced and explored
- Consistency of the technology and its social consequences
- Balance between idea density and character drama""",

    NovelType.GAME: """For this game-world novel, pay particular attention to:
- How game mechanics (levels, stats, quests) are made readable and exciting
- The relationship between in-game and real-world stakes
- Pacing of rewards and loot as reader gratification""",

    NovelType.ALTERNATE_HISTORY: """For this alternate history novel, pay particular attention to:
- The point of divergence and how its consequences are reasoned out
- Use of real historical figures and events
- How modern knowledge is deployed without breaking plausibility""",

    NovelType.HISTORICAL: """For this historical novel, pay particular attention to:
- Period detail and how it is woven into scenes
- How historical constraints shape character choices
- Balance between historical record and invention""",

    NovelType.MILITARY: """For this military novel, pay particular attention to:
- Tactical and strategic clarity of battle scenes
- Chain of command and camaraderie as sources of drama
- The cost of war and how it is shown""",

    NovelType.SPORTS: """For this sports novel, pay particular attention to:
- How matches are structured for tension when outcomes are predictable
- Training arcs and visible growth
- Rivalries and team dynamics""",

    NovelType.SUPERNATURAL: """For this supernatural novel, pay particular attention to:
- Atmosphere and how dread is built and released
- Rules of the supernatural and how they are revealed
- Mystery structure and clue placement""",

    NovelType.ROMANCE: """For this romance, pay particular attention to:
- The obstacles keeping the leads apart and how they are removed
- Emotional beats and the pacing of intimacy
- How each lead's inner wound is addressed by the relationship""",

    NovelType.CUSTOM: """Tailor the analysis to this novel's own genre conventions:
- Identify the genre and what its readers expect
- Note where the novel meets, subverts, or ignores those expectations""",
}

ALL_STAGE_PROMPTS: Dict[Stage, str] = {**BASE_PROMPTS, **STANDARD_PROMPTS, **DEEP_PROMPTS}

SYSTEM_PROMPT_KEY = "system"


def get_system_prompt(custom_prompts: Optional[Dict[str, str]] = None) -> str:
    if custom_prompts and custom_prompts.get(SYSTEM_PROMPT_KEY):
        return custom_prompts[SYSTEM_PROMPT_KEY]
    return SYSTEM_PROMPT


def get_type_prompt(novel_type: NovelType, custom_type_prompts: Optional[Dict[str, str]] = None) -> str:
    if custom_type_prompts and custom_type_prompts.get(novel_type.value):
        return custom_type_prompts[novel_type.value]
    return TYPE_SPECIFIC_PROMPTS.get(novel_type, TYPE_SPECIFIC_PROMPTS[NovelType.CUSTOM])


def get_analysis_prompt(
    stage: Stage,
    novel_type: NovelType = NovelType.CUSTOM,
    custom_prompts: Optional[Dict[str, str]] = None,
    custom_type_prompts: Optional[Dict[str, str]] = None
) -> str:
    """
    Prompt text for one stage.

    A custom prompt for the stage replaces the built-in template. Any
    genre other than "custom" gets its supplement appended.
    """
    if custom_prompts and custom_prompts.get(stage.value):
        prompt = custom_prompts[stage.value]
    else:
        prompt = ALL_STAGE_PROMPTS[stage]

    if novel_type != NovelType.CUSTOM:
        prompt += f"\n\n{get_type_prompt(novel_type, custom_type_prompts)}"

    return prompt


def get_config_prompt(stage: Stage, analysis_config: AnalysisConfig) -> str:
    return get_analysis_prompt(
        stage,
        analysis_config.novel_type,
        analysis_config.custom_prompts,
        analysis_config.custom_type_prompts,
    )


def get_prompt_template(
    mode: AnalysisMode,
    novel_type: NovelType = NovelType.CUSTOM,
    custom_prompts: Optional[Dict[str, str]] = None,
    custom_type_prompts: Optional[Dict[str, str]] = None
) -> Dict[str, str]:
    """Every prompt a run in this mode would send, keyed by stage value (plus "system")."""
    template = {SYSTEM_PROMPT_KEY: get_system_prompt(custom_prompts)}
    for stage in stages_for_mode(mode):
        template[stage.value] = get_analysis_prompt(stage, novel_type, custom_prompts, custom_type_prompts)
    return template
