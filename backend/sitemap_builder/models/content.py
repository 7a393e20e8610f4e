"""
Content item model: the publishable items the sitemap is built from
"""

from sqlalchemy import Column, String, Boolean, DateTime, Text
from sqlalchemy.orm import validates
from sqlalchemy.sql import func

from sitemap_builder.models.base import BaseModel

PUBLISH_STATUS = "publish"

CONTENT_STATUSES = ("draft", "pending", "private", "future", PUBLISH_STATUS, "trash")

class ContentItem(BaseModel):
    """
    A publishable item (page, post, case study...) owned by the CMS
    """
    __tablename__ = "content_items"

    post_type = Column(
        String(50),
        nullable=False,
        index=True,
        comment="Content type (page, post, ...)"
    )

    status = Column(
        String(20),
        nullable=False,
        default="draft",
        index=True,
        comment="Publication status"
    )

    title = Column(
        String(500),
        nullable=False,
        default="",
        comment="Item title"
    )

    permalink = Column(
        Text,
        nullable=False,
        comment="Canonical public URL"
    )

    modified_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last modification timestamp"
    )

    noindex = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="Excluded from search engine indexing"
    )

    __table_args__ = (
        {"comment": "Publishable content read by the sitemap builder"}
    )

    @validates('status')
    def validate_status(self, key: str, status: str) -> str:
        """Validate content status"""
        if status not in CONTENT_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(CONTENT_STATUSES)}")
        return status

    @property
    def is_published(self) -> bool:
        return self.status == PUBLISH_STATUS
