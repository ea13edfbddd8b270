"""Newest-first page arithmetic over mailbox sequence numbers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SequenceWindow:
    """Inclusive range of message sequence numbers."""

    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start + 1

    def as_message_set(self) -> str:
        """Return the window in IMAP ``start:end`` syntax."""
        return f"{self.start}:{self.end}"


def compute_page_window(total: int, page: int, page_size: int) -> SequenceWindow | None:
    """Map a 1-based page onto sequence numbers, newest message first.

    Sequence ``total`` is the newest message, so page 1 covers the
    ``page_size`` highest sequence numbers. A page reaching past the oldest
    message is shortened; a page entirely past it yields ``None``.
    """
    if page < 1:
        raise ValueError("page must be at least 1")
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    if total <= 0:
        return None
    end = total - (page - 1) * page_size
    if end < 1:
        return None
    start = max(1, end - page_size + 1)
    return SequenceWindow(start=start, end=end)


__all__ = ["SequenceWindow", "compute_page_window"]
