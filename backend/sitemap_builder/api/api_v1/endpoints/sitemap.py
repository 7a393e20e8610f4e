"""
Sitemap endpoints: publish webhook, manual rebuild and status
"""

from fastapi import APIRouter, HTTPException, Depends, status
from sqlalchemy.orm import Session
import logging

from sitemap_builder.core.config import settings
from sitemap_builder.core.database import get_db
from sitemap_builder.schemas.sitemap import PublishEvent, PublishEventResponse, SitemapStatus
from sitemap_builder.services.content_store import ContentStore, ContentStoreError
from sitemap_builder.services.sitemap_builder import (
    CREATE_SITEMAP_TASK, handle_content_published, schedule_rebuild
)
from sitemap_builder.services.sitemap_file import SitemapFile, get_sitemap_file
from sitemap_builder.services.task_queue import TaskQueue, get_task_queue

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/events/published", response_model=PublishEventResponse)
async def content_published(
    event: PublishEvent,
    db: Session = Depends(get_db),
    queue: TaskQueue = Depends(get_task_queue),
):
    """
    Webhook for the CMS: a content item transitioned to published
    """
    try:
        item = ContentStore(db).get_item(event.content_id)
    except ContentStoreError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": str(e)}
        )

    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Content {event.content_id} not found"
        )

    if not item.is_published or item.post_type not in settings.SITEMAP_POST_TYPES:
        return PublishEventResponse(
            scheduled=False,
            message=f"Content {item.id} ({item.post_type}, {item.status}) does not feed the sitemap"
        )

    try:
        scheduled = handle_content_published(
            item.id, event.old_status, queue, settings.SITEMAP_REBUILD_DELAY_SECONDS
        )
    except Exception as e:
        logger.error(f"Failed to schedule sitemap rebuild: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "Task queue unavailable"}
        )

    return PublishEventResponse(
        scheduled=scheduled,
        message="Sitemap rebuild scheduled" if scheduled else "Sitemap rebuild already pending"
    )

@router.post("/rebuild", response_model=PublishEventResponse, status_code=status.HTTP_202_ACCEPTED)
async def rebuild_sitemap(queue: TaskQueue = Depends(get_task_queue)):
    """
    Schedule a rebuild now, unless one is already pending
    """
    try:
        scheduled = schedule_rebuild(queue, 0)
    except Exception as e:
        logger.error(f"Failed to schedule sitemap rebuild: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "Task queue unavailable"}
        )

    return PublishEventResponse(
        scheduled=scheduled,
        message="Sitemap rebuild scheduled" if scheduled else "Sitemap rebuild already pending"
    )

@router.get("/status", response_model=SitemapStatus)
async def sitemap_status(
    sitemap_file: SitemapFile = Depends(get_sitemap_file),
    queue: TaskQueue = Depends(get_task_queue),
):
    """
    State of the sitemap file and of the current rebuild
    """
    result = sitemap_file.status()
    try:
        result.rebuild_pending = queue.has_pending(CREATE_SITEMAP_TASK)
    except Exception as e:
        logger.warning(f"Could not query pending sitemap rebuild: {e}")
    return result
