"""Source table, feed probing and source lifecycle."""

from __future__ import annotations

from .models import Source, SourceOpenTarget, SourceTable
from .pipeline import FetchProgress, ItemFetchPipeline
from .probe import FeedInfo, FeedProbeError, HttpFeedProbe
from .service import FeedProber, SourceRepository, SourceService

__all__: list[str] = [
    "Source",
    "SourceOpenTarget",
    "SourceTable",
    "FetchProgress",
    "ItemFetchPipeline",
    "FeedInfo",
    "FeedProbeError",
    "HttpFeedProbe",
    "FeedProber",
    "SourceRepository",
    "SourceService",
]
