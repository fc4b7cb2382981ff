"""Read files the user attaches by hand so their text can join the first message."""

from __future__ import annotations

import mimetypes
from pathlib import Path

from .models import FileContent

TEXT_SUFFIXES = frozenset(
    {
        ".csv", ".tsv", ".md", ".txt", ".log", ".json", ".xml", ".yaml", ".yml",
        ".ini", ".cfg", ".html", ".htm", ".css", ".js", ".ts", ".py", ".java",
        ".c", ".cpp", ".h", ".rb", ".go", ".rs", ".sql",
    }
)
TEXT_MIME_TYPES = frozenset({"application/json", "application/xml"})


def is_text_upload(name: str, mime_type: str = "") -> bool:
    if mime_type.startswith("text/") or mime_type in TEXT_MIME_TYPES:
        return True
    return Path(name).suffix.lower() in TEXT_SUFFIXES


def describe_binary(name: str, size: int, mime_type: str = "") -> str:
    return (
        f"[Attached binary file: {name} ({size / 1024:.1f} KB, "
        f"type: {mime_type or 'unknown'})]\n"
        "Note: Binary file content cannot be read as text. Please describe what "
        "you need help with regarding this file."
    )


def read_upload(path: str | Path) -> FileContent:
    """Load ``path`` as text, or as a short description when it is binary.

    Unreadable files become a placeholder rather than an error, so one bad
    attachment does not block the rest.
    """
    path = Path(path)
    mime_type = mimetypes.guess_type(path.name)[0] or ""
    try:
        if is_text_upload(path.name, mime_type):
            return FileContent(path.name, path.read_text(encoding="utf-8", errors="replace"))
        return FileContent(path.name, describe_binary(path.name, path.stat().st_size, mime_type))
    except OSError:
        return FileContent(path.name, f"[Could not read file: {path.name}]")
