"""Offset/has-more bookkeeping for one listing."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class PaginationCursor:
    offset: int = 0
    has_more: bool = True

    def reset(self) -> None:
        self.offset = 0
        self.has_more = True

    def advance(self, batch_size: int, page_size: int) -> None:
        """Record a fetched batch; a short batch means the listing is exhausted."""
        if batch_size < 0 or page_size < 1:
            raise ValueError("batch_size must be >= 0 and page_size >= 1")
        self.offset += batch_size
        self.has_more = batch_size >= page_size
