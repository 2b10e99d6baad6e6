"""
Folio - CLI Interface
Rich console front end for a running analysis.

The pipeline runs on a worker thread. The main thread watches it and reads
single-letter commands from stdin:
    p - pause before the next stage
    r - resume
    s - stop (the current stage finishes, then the run ends)
"""

import queue
import sys
import threading
from typing import Any, Callable, Dict, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from analysis.checkpoint import AnalysisCheckpoint, CheckpointStore
from analysis.controller import AnalysisController
from analysis.metadata import AnalysisMetadata
from analysis.models import AnalysisResult, StageStatus
from analysis.pipeline import AnalysisCallbacks, BatchFailureAction, BatchInfo
from analysis.stages import Stage, get_stage_name
from core.logger import get_timestamp
from llm.router import TokenUsage

# Stage output longer than this is cut in the result panel
PREVIEW_CHARS = 1200

# How often the main thread checks on the worker (seconds)
POLL_INTERVAL = 0.2

STATUS_STYLES = {
    StageStatus.PENDING: "dim",
    StageStatus.RUNNING: "cyan",
    StageStatus.COMPLETED: "green",
    StageStatus.ERROR: "red",
}

MARKDOWN_STAGES = {Stage.SYNOPSIS, Stage.WRITING_REVIEW}


class AnalysisCLI:
    """
    Console display and run control for one analysis at a time.

    Provides:
    - Progress and stage-result display
    - Worker thread with p/r/s commands
    - Token usage and checkpoint summaries
    """

    def __init__(self, controller: AnalysisController, console: Optional[Console] = None):
        self.console = console or Console()
        self.controller = controller
        self._commands: Dict[str, Callable[[], None]] = {
            "p": self._cmd_pause,
            "r": self._cmd_resume,
            "s": self._cmd_stop,
        }
        self._input_queue: queue.Queue = queue.Queue()
        self._input_thread: Optional[threading.Thread] = None

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def make_callbacks(self) -> AnalysisCallbacks:
        return AnalysisCallbacks(
            on_progress=self._on_progress,
            on_stage_result=self._on_stage_result,
            on_note_generated=self._on_note_generated,
        )

    def _on_progress(self, stage_name: str, percent: float, message: str) -> None:
        self.console.print(
            f"[dim]{get_timestamp()}[/dim] [bold blue]{percent:5.1f}%[/bold blue] "
            f"[cyan]{stage_name}[/cyan] {message}"
        )

    def _on_stage_result(
        self,
        stage: Stage,
        status: StageStatus,
        message: str,
        result: Optional[str] = None
    ) -> None:
        style = STATUS_STYLES[status]
        if status != StageStatus.COMPLETED or result is None:
            self.console.print(f"[{style}]• {message}[/{style}]")
            return

        preview = result if len(result) <= PREVIEW_CHARS else result[:PREVIEW_CHARS] + "\n..."
        body = Markdown(preview) if stage in MARKDOWN_STAGES else preview
        self.console.print(Panel(
            body,
            title=f"[bold green]{get_stage_name(stage)}[/bold green]",
            title_align="left",
            border_style="green",
            padding=(0, 1)
        ))

    def _on_note_generated(self, note_type: str, key: str) -> None:
        self.console.print(f"[dim]📝 {note_type} note: {key}[/dim]")

    def on_batch_complete(self, info: BatchInfo, result: AnalysisResult) -> None:
        r = info.chapter_range
        self.console.print(
            f"[bold green]✓ Batch {info.number}/{info.total} done (chapters {r.start}-{r.end})[/bold green]"
        )

    def on_batch_failure(self, info: BatchInfo, error: Exception) -> BatchFailureAction:
        """Ask what to do with a failed batch. Defaults to skip."""
        r = info.chapter_range
        self.console.print(
            f"[bold red]✗ Batch {info.number}/{info.total} (chapters {r.start}-{r.end}) failed: {error}[/bold red]"
        )
        self.console.print("[yellow]Type 'retry', 'skip' or 'abort' (default skip):[/yellow]")
        answer = self._next_line(timeout=None) or ""
        try:
            return BatchFailureAction(answer.strip().lower())
        except ValueError:
            return BatchFailureAction.SKIP

    # =========================================================================
    # RUN LOOP
    # =========================================================================

    def run(self, job: Callable[[], Any]) -> Any:
        """
        Run job on a worker thread and accept p/r/s until it finishes.

        Returns the job's return value; exceptions raised by the job are
        re-raised here.
        """
        outcome: Dict[str, Any] = {}

        def worker():
            try:
                outcome["value"] = job()
            except BaseException as e:
                outcome["error"] = e

        thread = threading.Thread(target=worker, name="analysis-worker", daemon=True)
        self._start_input_reader()
        self.console.print("[dim]Commands: p = pause, r = resume, s = stop[/dim]")
        thread.start()

        while thread.is_alive():
            thread.join(timeout=POLL_INTERVAL)
            self._drain_commands()

        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("value")

    def _start_input_reader(self) -> None:
        if self._input_thread is not None:
            return

        def reader():
            for line in sys.stdin:
                self._input_queue.put(line)

        self._input_thread = threading.Thread(target=reader, name="cli-input", daemon=True)
        self._input_thread.start()

    def _next_line(self, timeout: Optional[float] = POLL_INTERVAL) -> Optional[str]:
        try:
            return self._input_queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def _drain_commands(self) -> None:
        while True:
            try:
                line = self._input_queue.get_nowait()
            except queue.Empty:
                return
            self.handle_command(line)

    def handle_command(self, line: str) -> None:
        command = line.strip().lower()[:1]
        if not command:
            return
        handler = self._commands.get(command)
        if handler:
            handler()
        else:
            self.console.print(f"[yellow]Unknown command: {line.strip()}[/yellow]")

    def _cmd_pause(self) -> None:
        if self.controller.pause():
            self.console.print("[yellow]⏸️  Pausing before the next stage (r to resume)[/yellow]")
        else:
            self.console.print("[dim]Not running[/dim]")

    def _cmd_resume(self) -> None:
        if self.controller.resume():
            self.console.print("[green]▶️  Resumed[/green]")
        else:
            self.console.print("[dim]Not paused[/dim]")

    def _cmd_stop(self) -> None:
        if self.controller.stop():
            self.console.print("[red]⏹️  Stopping after the current stage...[/red]")

    # =========================================================================
    # SUMMARIES
    # =========================================================================

    def show_result_summary(self, result: AnalysisResult) -> None:
        table = Table(title=f"📖 {result.book_info.title}", show_header=True)
        table.add_column("Section", style="cyan")
        table.add_column("Items", justify="right")

        rows = [
            ("Synopsis", 1 if result.synopsis else 0),
            ("Characters", len(result.characters)),
            ("Writing techniques", len(result.writing_techniques)),
            ("Takeaways", len(result.takeaways)),
            ("Emotion curve", len(result.emotion_curve or [])),
            ("Chapter structure", len(result.chapter_structure or [])),
            ("Foreshadowing", len(result.foreshadowing or [])),
            ("Chapter details", len(result.chapter_details or [])),
            ("Writing review", 1 if result.writing_review else 0),
        ]
        for name, count in rows:
            table.add_row(name, str(count) if count else "[dim]-[/dim]")
        self.console.print(table)

    def show_usage(self, usage: TokenUsage) -> None:
        self.console.print(
            f"[dim]🔢 {usage.requests} request(s), {usage.failures} failed, "
            f"{usage.tokens_in} in / {usage.tokens_out} out ({usage.total_tokens} tokens)[/dim]"
        )

    def show_status(self, checkpoint: Optional[AnalysisCheckpoint], metadata: Optional[AnalysisMetadata]) -> None:
        if checkpoint:
            self.console.print(f"[yellow]⏯️  {CheckpointStore.format_status(checkpoint)}[/yellow]")
            done = ", ".join(get_stage_name(s) for s in checkpoint.completed_stages) or "none"
            self.console.print(f"[dim]   Completed: {done}[/dim]")
        else:
            self.console.print("[dim]No checkpoint[/dim]")

        if not metadata or not metadata.ranges:
            self.console.print("[dim]No analysis history[/dim]")
            return

        table = Table(title="Analyzed ranges", show_header=True)
        table.add_column("Chapters")
        table.add_column("Mode", style="cyan")
        table.add_column("Analyzed at", style="dim")
        for r in metadata.ranges:
            table.add_row(f"{r.start_chapter}-{r.end_chapter}", r.mode.value, r.analyzed_at)
        self.console.print(table)
