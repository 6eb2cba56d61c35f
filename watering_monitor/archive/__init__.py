"""Lectura del archivo histórico (HTTP, ThingSpeak)."""

from .poller import HistoryPoller
from .schemas import FeedEntry, FeedsResponse, decode_feeds, format_label

__all__ = [
    "HistoryPoller",
    "FeedEntry",
    "FeedsResponse",
    "decode_feeds",
    "format_label",
]
