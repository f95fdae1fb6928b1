"""
URL Queue Management - persistent scrape queue.

Provides FIFO URL queuing with deduplication and crash recovery for the
queue worker.
"""

from .scrape_queue import ClaimedEntry, ScrapeQueue

__all__ = [
    "ClaimedEntry",
    "ScrapeQueue",
]
