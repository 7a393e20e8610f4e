"""
Pydantic schemas for task payloads and API request/response validation
"""

from .sitemap import (
    SitemapBatch, SitemapEntry, RebuildStatus, RebuildResult, BatchResult,
    PublishEvent, PublishEventResponse, SitemapState, SitemapStatus
)

__all__ = [
    # Task payloads and results
    "SitemapBatch", "SitemapEntry", "RebuildStatus", "RebuildResult", "BatchResult",
    # API schemas
    "PublishEvent", "PublishEventResponse", "SitemapState", "SitemapStatus"
]
