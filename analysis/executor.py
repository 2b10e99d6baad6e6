"""
Folio - Stage Executor
Runs one stage's prompt against one unit of content
"""

from typing import Any, Dict, List, Optional

from analysis.errors import CompletionError
from analysis.models import AnalysisConfig
from analysis.prompts import get_config_prompt, get_system_prompt
from analysis.response_parser import parse_json_response
from analysis.stages import Stage
from llm.router import LLMRouter

CONTENT_HEADER = "Novel text:"
CONTEXT_HEADER = "Analysis so far:"


class StageExecutor:
    """
    Sends [system, user] messages for a stage and returns the reply.

    Failed requests raise CompletionError so the pipeline can mark the
    stage as failed. Unparseable structured replies do not raise; they
    fall back to the caller's default.
    """

    def __init__(self, router: LLMRouter, model: Optional[str] = None):
        self.router = router
        self.model = model

    def build_messages(
        self,
        stage: Stage,
        analysis_config: AnalysisConfig,
        content: str,
        header: str = CONTENT_HEADER
    ) -> List[Dict[str, str]]:
        prompt = get_config_prompt(stage, analysis_config)
        return [
            {"role": "system", "content": get_system_prompt(analysis_config.custom_prompts)},
            {"role": "user", "content": f"{prompt}\n\n{header}\n\n{content}"},
        ]

    def complete(
        self,
        stage: Stage,
        analysis_config: AnalysisConfig,
        content: str,
        header: str = CONTENT_HEADER
    ) -> str:
        """Run the stage prompt and return the raw reply text."""
        messages = self.build_messages(stage, analysis_config, content, header)
        response = self.router.complete(messages, model=self.model)
        if not response.success:
            raise CompletionError(
                response.error or f"{stage.value} request failed",
                status_code=response.status_code,
                body=response.error
            )
        return response.text

    def complete_json(
        self,
        stage: Stage,
        analysis_config: AnalysisConfig,
        content: str,
        default: Dict[str, Any],
        header: str = CONTENT_HEADER
    ) -> tuple[str, Dict[str, Any]]:
        """Run the stage prompt and decode its JSON reply. Returns (raw text, data)."""
        text = self.complete(stage, analysis_config, content, header)
        return text, parse_json_response(text, default)
