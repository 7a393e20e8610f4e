"""
Pydantic schemas for sitemap task payloads and API bodies
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
from enum import Enum


class SitemapBatch(BaseModel):
    """One slice of content identifiers processed by a single batch task"""

    post_ids: List[int] = Field(
        ...,
        description="Content identifiers in ascending order",
        example=[1, 2, 3]
    )

    is_last: bool = Field(
        False,
        description="Whether this batch closes the document"
    )

    batch_index: int = Field(
        0,
        ge=0,
        description="Position of the batch within the rebuild"
    )

    total_batches: int = Field(
        1,
        ge=1,
        description="Number of batches scheduled for the rebuild"
    )

    generation: str = Field(
        "",
        description="Identifier of the rebuild this batch belongs to"
    )

    @validator('post_ids')
    def validate_post_ids(cls, v):
        """A batch always carries at least one identifier"""
        if not v:
            raise ValueError("Batch must contain at least one content identifier")
        return v

    class Config:
        frozen = True


class SitemapEntry(BaseModel):
    """A single <url> element"""

    loc: str
    lastmod: str = Field(..., description="Date only, YYYY-MM-DD")
    changefreq: str = "daily"
    priority: str = "0.9"


class RebuildStatus(str, Enum):
    """Outcome of a coordinator run"""
    SCHEDULED = "scheduled"
    SKIPPED = "skipped"
    ERROR = "error"


class RebuildResult(BaseModel):
    """Coordinator run summary"""

    status: RebuildStatus
    generation: Optional[str] = None
    identifier_count: int = 0
    batch_count: int = 0
    message: Optional[str] = None


class BatchResult(BaseModel):
    """Batch writer run summary"""

    status: str = Field(..., description="written, duplicate or stale")
    batch_index: int
    urls_written: int = 0
    footer_written: bool = False


class PublishEvent(BaseModel):
    """Webhook body sent by the CMS when content is published"""

    content_id: int = Field(..., ge=1, example=42)
    old_status: str = Field(
        "draft",
        description="Status before the transition to publish",
        example="draft"
    )


class PublishEventResponse(BaseModel):
    scheduled: bool
    message: str


class SitemapState(str, Enum):
    ABSENT = "absent"
    BUILDING = "building"
    COMPLETE = "complete"


class SitemapStatus(BaseModel):
    """Current state of the sitemap file and its rebuild progress"""

    state: SitemapState
    path: str
    url_count: Optional[int] = None
    generation: Optional[str] = None
    total_batches: Optional[int] = None
    written_batches: int = 0
    rebuild_pending: bool = False
