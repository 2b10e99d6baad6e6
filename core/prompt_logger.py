"""
Folio - Prompt Log
Append-only JSON Lines record of every completion request, for auditing what
an analysis run actually sent and what it cost.

One line per request:
    {"timestamp", "provider", "model", "messages",
     "response": {"text", "tokens_in", "tokens_out", "success", "error"}}
"""

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import config
from core.logger import log_warning


class PromptLog:
    """A JSON Lines file with locked appends and tolerant reads."""

    _lock = threading.Lock()  # shared so two logs on one path never interleave

    def __init__(self, path: Path):
        self.path = Path(path)

    def append(self, entry: Dict[str, Any]) -> bool:
        line = json.dumps(entry, ensure_ascii=False)
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                log_warning(f"Prompt log not written: {e}")
                return False
        return True

    def entries(self) -> Iterator[Dict[str, Any]]:
        """Decoded entries, oldest first; undecodable lines are skipped."""
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                for raw in f:
                    raw = raw.strip()
                    if not raw:
                        continue
                    try:
                        yield json.loads(raw)
                    except json.JSONDecodeError:
                        continue
        except OSError as e:
            log_warning(f"Prompt log not readable: {e}")

    def recent(self, limit: int) -> List[Dict[str, Any]]:
        return list(self.entries())[-limit:] if limit > 0 else []

    def stats(self) -> Dict[str, Any]:
        summary = {
            "entries": 0,
            "failures": 0,
            "total_tokens_in": 0,
            "total_tokens_out": 0,
            "first_entry": None,
            "last_entry": None,
        }
        for entry in self.entries():
            response = entry.get("response") or {}
            summary["entries"] += 1
            summary["failures"] += 0 if response.get("success", True) else 1
            summary["total_tokens_in"] += response.get("tokens_in", 0)
            summary["total_tokens_out"] += response.get("tokens_out", 0)
            stamp = entry.get("timestamp")
            if stamp:
                summary["first_entry"] = summary["first_entry"] or stamp
                summary["last_entry"] = stamp
        return summary


def _log(log_path: Optional[Path]) -> PromptLog:
    return PromptLog(log_path or config.PROMPT_LOG_PATH)


def log_api_request(
    provider: str,
    model: str,
    messages: List[Dict[str, str]],
    response_text: str,
    tokens_in: int,
    tokens_out: int,
    success: bool,
    error: Optional[str] = None,
    log_path: Optional[Path] = None
) -> None:
    """
    Record one request and its outcome.

    Failures to write are logged as warnings; a run never stops because its
    prompt log could not be written.

    Args:
        log_path: Overrides config.PROMPT_LOG_PATH
    """
    _log(log_path).append({
        "timestamp": datetime.now().isoformat(),
        "provider": provider,
        "model": model,
        "messages": messages,
        "response": {
            "text": response_text,
            "tokens_in": tokens_in,
            "tokens_out": tokens_out,
            "success": success,
            "error": error,
        },
    })


def read_recent_logs(limit: int = 10, log_path: Optional[Path] = None) -> List[Dict[str, Any]]:
    """The last `limit` entries, oldest first."""
    return _log(log_path).recent(limit)


def get_log_stats(log_path: Optional[Path] = None) -> Dict[str, Any]:
    """Request count, failures, token totals, and first/last timestamps."""
    return _log(log_path).stats()
