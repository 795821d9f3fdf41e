"""String sanitizers for values that leave the sandbox boundary."""

import re

_SHELL_METACHARACTERS = re.compile(r"[`$\\!\"'&|;><(){}\[\]*?#~]")
_CONTROL_CHARACTERS = re.compile(r"[\x00-\x1f\x7f]")
_ABSOLUTE_PATH = re.compile(r"(?:[A-Za-z]:)?[/\\][^\s:'\"]+")
_LINE_COLUMN = re.compile(r":\d+:\d+")


def truncate(text: str, max_length: int) -> str:
    """Shortens ``text`` to ``max_length`` characters, marking the cut with an ellipsis."""
    if len(text) <= max_length:
        return text
    if max_length <= 3:
        return text[:max_length]
    return text[: max_length - 3] + "..."


def sanitize_commit_message(message: str, max_length: int = 200) -> str:
    """Strips shell metacharacters and control characters from a commit message."""
    cleaned = _CONTROL_CHARACTERS.sub(" ", message or "")
    cleaned = _SHELL_METACHARACTERS.sub("", cleaned)
    cleaned = " ".join(cleaned.split())
    if not cleaned:
        cleaned = "Update"
    return truncate(cleaned, max_length)


def sanitize_error(message: str, max_length: int = 200) -> str:
    """Removes host paths and source positions from an error message.

    The raw stream is kept in the execution log; this is what callers show.
    """
    cleaned = _ABSOLUTE_PATH.sub("[path]", message)
    cleaned = _LINE_COLUMN.sub("", cleaned)
    return truncate(cleaned.strip(), max_length)


def last_meaningful_line(stream: str) -> str:
    """Returns the last non-empty line of a captured stream."""
    for line in reversed(stream.splitlines()):
        if line.strip():
            return line.strip()
    return ""
