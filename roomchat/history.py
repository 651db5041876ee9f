"""Persistent chat history kept as one UTF-8 line per message."""

from __future__ import annotations

from pathlib import Path

DEFAULT_HISTORY_PATH = Path("..") / "history.info"


class HistoryFile:
    """A text file that stores relayed chat lines in order."""

    def __init__(self, path: str | Path = DEFAULT_HISTORY_PATH) -> None:
        self.path = Path(path)

    def check_readable(self) -> None:
        """Raise ``OSError`` if the history file cannot be opened for reading."""
        with self.path.open("r", encoding="utf-8", errors="replace"):
            pass

    def append(self, line: str) -> None:
        """Add one line to the end of the history, creating the file if needed."""
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def lines(self) -> list[str]:
        """Return every stored line in order; a missing file has none."""
        try:
            with self.path.open("r", encoding="utf-8", errors="replace") as handle:
                return [line.rstrip("\n") for line in handle]
        except FileNotFoundError:
            return []