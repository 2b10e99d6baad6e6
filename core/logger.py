"""
Folio - Logging
Rich console output for long analysis runs, mirrored to a diagnostic log file.

Console lines carry an HH:MM:SS stamp; the file gets the full date and the
level. Debug messages are file-only so chunk-level chatter stays off screen.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.theme import Theme

THEME = Theme({
    "timestamp": "dim white",
    "info": "cyan",
    "success": "bold green",
    "warning": "yellow",
    "error": "bold red",
    "header": "bold magenta",
    "config": "dim cyan",
    "stage": "bold blue",
})

console = Console(theme=THEME)

_file_logger: Optional[logging.Logger] = None

DEFAULT_PREFIXES = {
    "success": "✅",
    "warning": "⚠️",
    "error": "❌",
}

RULE = "=" * 60


def setup_logging(
    log_file_path: Path,
    level: str = "INFO",
    log_to_file: bool = True
) -> Optional[logging.Logger]:
    """
    Configure the diagnostic log.

    Args:
        log_file_path: Where the file log goes
        level: Minimum level written to the file (DEBUG, INFO, ...)
        log_to_file: False leaves console output only

    Returns:
        The file logger, or None when file logging is off
    """
    global _file_logger

    logger = logging.getLogger("folio")
    logger.handlers.clear()
    logger.propagate = False

    if not log_to_file:
        _file_logger = None
        return None

    log_file_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(
        "[%(asctime)s] %(levelname)-7s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    _file_logger = logger
    return logger


def get_timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def _to_file(level: int, text: str) -> None:
    if _file_logger:
        _file_logger.log(level, text)


def _stamped(markup: str, **kwargs) -> None:
    console.print(f"[timestamp][{get_timestamp()}][/timestamp] {markup}", **kwargs)


def log(message: str, level: str = "info", prefix: str = "") -> None:
    """
    Log to the console and the diagnostic file.

    Args:
        message: Text to log
        level: debug, info, success, warning or error
        prefix: Emoji shown before the message (levels have defaults)
    """
    prefix = prefix or DEFAULT_PREFIXES.get(level, "")
    text = f"{prefix} {message}" if prefix else message

    if level != "debug":
        _stamped(text, style=level if level in THEME.styles else "info", highlight=False)

    # success is an INFO record in the file
    _to_file(getattr(logging, level.upper(), logging.INFO), text)


def log_debug(message: str) -> None:
    log(message, "debug")


def log_info(message: str, prefix: str = "") -> None:
    log(message, "info", prefix)


def log_success(message: str, prefix: str = "") -> None:
    log(message, "success", prefix)


def log_warning(message: str, prefix: str = "") -> None:
    log(message, "warning", prefix)


def log_error(message: str, prefix: str = "") -> None:
    log(message, "error", prefix)


def log_header(title: str) -> None:
    """Framed title between two rules."""
    for line in (RULE, title, RULE):
        _stamped(f"[header]{line}[/header]")
        _to_file(logging.INFO, line)


def log_startup_banner(version: str, project_name: str) -> None:
    console.print()
    log_header(f"📚 {project_name} v{version} - novel analysis")


def log_section(title: str, emoji: str = "📋") -> None:
    console.print()
    _stamped(f"[header]{emoji} {title}:[/header]")
    _to_file(logging.INFO, f"{title}:")


def log_subsection(message: str, emoji: str = "", indent: int = 1) -> None:
    """Indented detail line under a section."""
    text = f"{'   ' * indent}{emoji + ' ' if emoji else ''}{message}"
    _stamped(f"[config]{text}[/config]")
    _to_file(logging.INFO, text)


def log_config(key: str, value, indent: int = 1) -> None:
    """One `key: value` configuration line."""
    log_subsection(f"{key}: {value}", indent=indent)


def log_stage(stage_name: str, message: str) -> None:
    """Stage start/finish marker for the pipeline."""
    _stamped(f"[stage]▶ {stage_name}[/stage] {message}", highlight=False)
    _to_file(logging.INFO, f"[{stage_name}] {message}")
