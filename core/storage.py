"""
Folio - File Storage
Minimal key-to-text persistence used by checkpoints, metadata, and notes.

Keys are "/"-separated relative paths resolved under a root directory.
Failures are logged and reported through the return value (None / False)
so callers handle the failure path in one place.
"""

import re
from pathlib import Path
from typing import Optional

from core.logger import log_warning

_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE = re.compile(r'\s+')

MAX_FILENAME_LENGTH = 100


def sanitize_file_name(name: str) -> str:
    """
    Strip characters that are illegal in file names and cap the length.

    A name made only of dots would read as "." or ".." in a key, so it
    sanitizes to "".
    """
    cleaned = _INVALID_FILENAME_CHARS.sub("", name)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    if not cleaned.strip("."):
        return ""
    return cleaned[:MAX_FILENAME_LENGTH]


def book_folder(notes_path: str, book_title: str) -> str:
    """Storage key of the per-book folder."""
    folder = sanitize_file_name(book_title) or "untitled"
    notes_path = notes_path.strip("/")
    return f"{notes_path}/{folder}" if notes_path else folder


class FileStorage:
    """Text files under a root directory, addressed by relative keys."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _resolve(self, key: str) -> Path:
        parts = [p for p in key.replace("\\", "/").split("/") if p and p != "."]
        if any(p == ".." for p in parts):
            raise ValueError(f"Storage key escapes the root: {key}")
        return self.root.joinpath(*parts)

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def read(self, key: str) -> Optional[str]:
        """Return the stored text, or None if missing or unreadable."""
        path = self._resolve(key)
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log_warning(f"Failed to read {key}: {e}")
            return None

    def write(self, key: str, text: str) -> bool:
        path = self._resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
            return True
        except OSError as e:
            log_warning(f"Failed to write {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Remove a stored file. Deleting a missing key counts as success."""
        path = self._resolve(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            log_warning(f"Failed to delete {key}: {e}")
            return False
