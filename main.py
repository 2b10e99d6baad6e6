#!/usr/bin/env python3
"""
Folio - Main Entry Point
LLM-driven literary analysis of novels

Usage:
    python main.py analyze book.txt                     # standard mode, whole book
    python main.py analyze book.txt --mode deep --type mystery
    python main.py analyze book.txt --start 1 --end 40  # chapter range
    python main.py analyze book.txt --incremental continue
    python main.py analyze book.txt --batch-size 50     # long books
    python main.py resume book.txt                      # continue from checkpoint
    python main.py status book.txt
    python main.py merge a.json b.json --output merged.json
    python main.py prompts --mode quick --type romance
"""

import argparse
import json
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel

import config
from core.logger import (
    setup_logging,
    log_startup_banner,
    log_config,
    log_section,
    log_subsection,
    log_success,
    log_warning,
    log_error,
)
from core.prompt_logger import get_log_stats
from core.storage import FileStorage, book_folder
from llm.router import LLMRouter, create_llm_router
from analysis import parser
from analysis.checkpoint import CheckpointStore
from analysis.controller import AnalysisController
from analysis.errors import AnalysisError, AnalysisStoppedError, DocumentParseError
from analysis.executor import StageExecutor
from analysis.merge import MergeService
from analysis.metadata import MetadataStore
from analysis.models import (
    AnalysisConfig,
    AnalysisMode,
    ChapterRange,
    IncrementalMode,
    ModeAnnotatedResult,
    NovelType,
    ParsedBook,
)
from analysis.notes import NoteWriter
from analysis.pipeline import AnalysisService
from analysis.prompts import get_prompt_template
from interface.cli import AnalysisCLI

console = Console()


def initialize_system() -> LLMRouter:
    """Set up logging and the LLM router."""
    config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    config.NOTES_DIR.mkdir(parents=True, exist_ok=True)
    setup_logging(
        log_file_path=config.DIAGNOSTIC_LOG_PATH,
        level=config.LOG_LEVEL,
        log_to_file=config.LOG_TO_FILE
    )
    log_startup_banner(config.VERSION, config.PROJECT_NAME)

    return create_llm_router(
        provider=config.LLM_PROVIDER,
        streaming=config.LLM_STREAMING,
        prompt_logging=config.PROMPT_LOGGING_ENABLED
    )


def print_configuration(router: LLMRouter) -> bool:
    """Print configuration summary. Returns False if the provider is unusable."""
    log_section("Configuration", "📡")
    log_config("Notes", config.NOTES_DIR)
    log_config("Diagnostic log", config.DIAGNOSTIC_LOG_PATH if config.LOG_TO_FILE else "off")
    log_config("Chunks", f"{config.CHUNK_MAX_CHARS} chars / {config.CHUNK_MAX_CHAPTERS} chapters max")
    if config.PROMPT_LOGGING_ENABLED:
        log_config("Prompt log", config.PROMPT_LOG_PATH)

    log_section("LLM", "🤖")
    available, status = router.check_provider()
    log_subsection(f"Provider: {router.provider.value} ({router.default_model()})")
    if available:
        log_success(status)
    else:
        log_error(status)
    return available


# =============================================================================
# HELPERS
# =============================================================================

def build_service(router: LLMRouter, storage: FileStorage, write_notes: bool) -> AnalysisService:
    note_writer = NoteWriter(storage) if write_notes and config.INCREMENTAL_NOTES_ENABLED else None
    return AnalysisService(
        executor=StageExecutor(router),
        merge_service=MergeService(),
        checkpoint_store=CheckpointStore(storage),
        note_writer=note_writer,
    )


def load_book(path: str) -> Optional[ParsedBook]:
    try:
        return parser.parse_file(Path(path))
    except DocumentParseError as e:
        log_error(f"Cannot parse {path}: {e}")
        return None


def save_result(storage: FileStorage, annotated: ModeAnnotatedResult) -> Optional[Path]:
    """Write a finished run to <notes>/<title>/results/ and return the file path."""
    r = annotated.range
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    key = (
        f"{book_folder('', annotated.result.book_info.title)}/{config.RESULTS_DIRNAME}/"
        f"{annotated.mode.value}-{r.start_chapter:04d}-{r.end_chapter:04d}-{stamp}.json"
    )
    text = json.dumps(annotated.to_dict(), ensure_ascii=False, indent=2)
    if not storage.write(key, text):
        return None
    return storage.root / key


def install_stop_handler(controller: AnalysisController) -> None:
    """Ctrl+C requests a stop; the running stage finishes first."""
    def handler(signum, frame):
        print()  # New line after ^C
        if controller.stop():
            log_warning("Stop requested, finishing the current stage...")

    signal.signal(signal.SIGINT, handler)


def run_with_cli(cli: AnalysisCLI, job) -> Optional[ModeAnnotatedResult]:
    try:
        return cli.run(job)
    except AnalysisStoppedError:
        log_warning("Analysis stopped. Progress was checkpointed; run 'resume' to continue.")
    except AnalysisError as e:
        log_error(f"Analysis failed: {e}")
    return None


def finish_run(
    cli: AnalysisCLI,
    router: LLMRouter,
    storage: FileStorage,
    annotated: Optional[ModeAnnotatedResult]
) -> int:
    cli.show_usage(router.get_usage())
    if annotated is None:
        return 1
    cli.show_result_summary(annotated.result)
    path = save_result(storage, annotated)
    if path:
        log_success(f"Result saved to {path}")
    return 0


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_analyze(args: argparse.Namespace) -> int:
    router = initialize_system()
    if not print_configuration(router):
        return 1

    book = load_book(args.file)
    if book is None:
        return 1

    storage = FileStorage(config.NOTES_DIR)
    service = build_service(router, storage, write_notes=not args.no_notes)
    metadata_store = MetadataStore(storage)
    controller = AnalysisController()
    cli = AnalysisCLI(controller, console)
    install_stop_handler(controller)

    analysis_config = AnalysisConfig(mode=AnalysisMode(args.mode), novel_type=NovelType(args.type))
    chapter_range = None
    if args.start is not None or args.end is not None:
        chapter_range = ChapterRange(start=args.start or 1, end=args.end or book.chapter_count)

    callbacks = cli.make_callbacks()
    book_path = str(Path(args.file).resolve())

    if args.incremental:
        def job():
            return service.analyze_incremental(
                book, analysis_config, IncrementalMode(args.incremental), metadata_store,
                chapter_range=chapter_range, controller=controller, callbacks=callbacks, book_path=book_path
            )
    elif args.batch_size:
        def job():
            return service.analyze_batched(
                book, analysis_config, args.batch_size, metadata_store,
                chapter_range=chapter_range, controller=controller, callbacks=callbacks,
                on_batch_complete=cli.on_batch_complete, on_batch_failure=cli.on_batch_failure,
                book_path=book_path
            )
    else:
        def job():
            result = service.analyze(book, analysis_config, controller, callbacks, chapter_range, book_path)
            scope = chapter_range or ChapterRange(start=1, end=book.chapter_count)
            analysis_range = metadata_store.create_range(scope.start, scope.end, analysis_config.mode)
            metadata_store.add_range(book.title, book_path, analysis_range)
            return ModeAnnotatedResult(result=result, mode=analysis_config.mode, range=analysis_range)

    return finish_run(cli, router, storage, run_with_cli(cli, job))


def cmd_resume(args: argparse.Namespace) -> int:
    router = initialize_system()
    if not print_configuration(router):
        return 1

    book = load_book(args.file)
    if book is None:
        return 1

    storage = FileStorage(config.NOTES_DIR)
    checkpoint_store = CheckpointStore(storage)
    checkpoint = checkpoint_store.get(book.title)
    if checkpoint is None:
        log_error(f"No checkpoint for '{book.title}'")
        return 1

    service = build_service(router, storage, write_notes=True)
    metadata_store = MetadataStore(storage)
    controller = AnalysisController()
    cli = AnalysisCLI(controller, console)
    install_stop_handler(controller)
    console.print(f"[yellow]⏯️  {CheckpointStore.format_status(checkpoint)}[/yellow]")

    callbacks = cli.make_callbacks()

    def job():
        result = service.resume_from_checkpoint(book, checkpoint, controller, callbacks)
        r = checkpoint.chapter_range
        analysis_range = metadata_store.create_range(r.start, r.end, checkpoint.config.mode)
        metadata_store.add_range(book.title, checkpoint.book_path, analysis_range)
        return ModeAnnotatedResult(result=result, mode=checkpoint.config.mode, range=analysis_range)

    return finish_run(cli, router, storage, run_with_cli(cli, job))


def cmd_status(args: argparse.Namespace) -> int:
    book = load_book(args.file)
    if book is None:
        return 1

    storage = FileStorage(config.NOTES_DIR)
    console.print(f"[bold]📖 {book.title}[/bold] [dim]({book.chapter_count} chapters, "
                  f"{book.total_word_count} words)[/dim]")
    cli = AnalysisCLI(AnalysisController(), console)
    cli.show_status(CheckpointStore(storage).get(book.title), MetadataStore(storage).get(book.title))

    if config.PROMPT_LOGGING_ENABLED:
        stats = get_log_stats()
        if stats["entries"]:
            console.print(
                f"[dim]Prompt log: {stats['entries']} requests, {stats['failures']} failed, "
                f"{stats['total_tokens_in']} in / {stats['total_tokens_out']} out since {stats['first_entry']}[/dim]"
            )
    return 0


def cmd_merge(args: argparse.Namespace) -> int:
    results: List[ModeAnnotatedResult] = []
    for path in args.results:
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
            results.append(ModeAnnotatedResult.from_dict(data))
        except (OSError, ValueError, KeyError, TypeError) as e:
            log_error(f"Cannot load {path}: {e}")
            return 1

    if not results:
        log_error("Nothing to merge")
        return 1

    merge_service = MergeService()
    merged = merge_service.merge_multiple(results)
    ranges = [r.range for r in results]
    if merge_service.has_mixed_modes(ranges):
        deep = merge_service.get_deep_mode_chapters(ranges)
        log_warning(f"Merged results mix analysis modes; {len(deep)} chapter(s) were analyzed in deep mode")

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(merged.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
    log_success(f"Merged {len(results)} result(s) into {output}")
    return 0


def cmd_prompts(args: argparse.Namespace) -> int:
    template = get_prompt_template(AnalysisMode(args.mode), NovelType(args.type))
    for key, prompt in template.items():
        console.print(Panel(prompt, title=f"[bold cyan]{key}[/bold cyan]", title_align="left", border_style="cyan"))
    return 0


def build_parser() -> argparse.ArgumentParser:
    arg_parser = argparse.ArgumentParser(
        description="Folio - LLM-driven literary analysis of novels",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    commands = arg_parser.add_subparsers(dest="command", required=True)

    modes = [m.value for m in AnalysisMode]
    types = [t.value for t in NovelType]

    analyze = commands.add_parser("analyze", help="Analyze a .txt novel")
    analyze.add_argument("file", help="Path to the novel (.txt)")
    analyze.add_argument("--mode", choices=modes, default=config.DEFAULT_ANALYSIS_MODE)
    analyze.add_argument("--type", choices=types, default=config.DEFAULT_NOVEL_TYPE, help="Genre")
    analyze.add_argument("--start", type=int, help="First chapter (1-based)")
    analyze.add_argument("--end", type=int, help="Last chapter (inclusive)")
    analyze.add_argument("--incremental", choices=[m.value for m in IncrementalMode],
                         help="Record the range in the book's history")
    analyze.add_argument("--batch-size", type=int, nargs="?", const=config.DEFAULT_BATCH_SIZE,
                         help=f"Analyze in batches of this many chapters (default {config.DEFAULT_BATCH_SIZE})")
    analyze.add_argument("--no-notes", action="store_true", help="Do not write markdown notes")
    analyze.set_defaults(handler=cmd_analyze)

    resume = commands.add_parser("resume", help="Continue an interrupted analysis")
    resume.add_argument("file")
    resume.set_defaults(handler=cmd_resume)

    status = commands.add_parser("status", help="Show checkpoint and analyzed ranges")
    status.add_argument("file")
    status.set_defaults(handler=cmd_status)

    merge = commands.add_parser("merge", help="Merge saved result files")
    merge.add_argument("results", nargs="+", help="Result JSON files, oldest first")
    merge.add_argument("--output", "-o", required=True)
    merge.set_defaults(handler=cmd_merge)

    prompts = commands.add_parser("prompts", help="Print the prompts a run would use")
    prompts.add_argument("--mode", choices=modes, default=config.DEFAULT_ANALYSIS_MODE)
    prompts.add_argument("--type", choices=types, default=config.DEFAULT_NOVEL_TYPE)
    prompts.set_defaults(handler=cmd_prompts)

    return arg_parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
