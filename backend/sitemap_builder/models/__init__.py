"""
Database models package
"""

from .base import Base, BaseModel
from .content import ContentItem, CONTENT_STATUSES, PUBLISH_STATUS

__all__ = [
    "Base", "BaseModel", "ContentItem", "CONTENT_STATUSES", "PUBLISH_STATUS"
]
