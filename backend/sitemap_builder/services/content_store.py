"""
Read-only access to the CMS content table
"""

import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sitemap_builder.models.content import ContentItem, PUBLISH_STATUS

logger = logging.getLogger(__name__)


class ContentStoreError(Exception):
    """Raised when the content store cannot be queried"""
    pass


class ContentStore:
    """Lookups the sitemap pipeline needs from the content table"""

    def __init__(self, db: Session):
        self.db = db

    def list_identifiers(self, post_types: Iterable[str],
                         status: str = PUBLISH_STATUS) -> List[int]:
        """
        List identifiers of all items with the given types and status

        Args:
            post_types: Content types to include
            status: Publication status to match

        Returns:
            Identifiers in ascending order
        """
        stmt = (
            select(ContentItem.id)
            .where(ContentItem.post_type.in_(list(post_types)))
            .where(ContentItem.status == status)
            .order_by(ContentItem.id.asc())
        )
        try:
            return list(self.db.scalars(stmt))
        except SQLAlchemyError as e:
            logger.error(f"Failed to list content identifiers: {e}")
            raise ContentStoreError(f"Failed to list content identifiers: {e}") from e

    def get_item(self, content_id: int) -> Optional[ContentItem]:
        try:
            return self.db.get(ContentItem, content_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load content item {content_id}: {e}")
            raise ContentStoreError(f"Failed to load content item {content_id}: {e}") from e

    def get_items(self, content_ids: Sequence[int],
                  post_types: Optional[Iterable[str]] = None,
                  status: Optional[str] = PUBLISH_STATUS) -> List[ContentItem]:
        """
        Load full items for a batch of identifiers

        Items that no longer match the type/status filter are left out, the
        rest keep the order of ``content_ids``.
        """
        if not content_ids:
            return []

        stmt = select(ContentItem).where(ContentItem.id.in_(list(content_ids)))
        if post_types is not None:
            stmt = stmt.where(ContentItem.post_type.in_(list(post_types)))
        if status is not None:
            stmt = stmt.where(ContentItem.status == status)

        try:
            found = {item.id: item for item in self.db.scalars(stmt)}
        except SQLAlchemyError as e:
            logger.error(f"Failed to load {len(content_ids)} content items: {e}")
            raise ContentStoreError(f"Failed to load content items: {e}") from e

        return [found[content_id] for content_id in content_ids if content_id in found]
