"""
Background tasks for rebuilding the XML sitemap
"""

import logging
from typing import Dict, Any, Optional

from celery import shared_task

from sitemap_builder.core.config import settings
from sitemap_builder.core.database import SessionLocal
from sitemap_builder.schemas.sitemap import SitemapBatch
from sitemap_builder.services.content_store import ContentStore, ContentStoreError
from sitemap_builder.services.sitemap_builder import (
    CREATE_SITEMAP_TASK, PROCESS_BATCH_TASK,
    SitemapBatchWriter, SitemapCoordinator, schedule_rebuild
)
from sitemap_builder.services.sitemap_file import (
    BatchOutOfOrderError, SitemapFileError, get_sitemap_file
)
from sitemap_builder.services.task_queue import get_task_queue

logger = logging.getLogger(__name__)

REQUEST_REBUILD_TASK = "sitemap.request_rebuild"


@shared_task(name=CREATE_SITEMAP_TASK)
def create_xml_sitemap(payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Coordinator: write the sitemap header and schedule one task per batch

    Args:
        payload: Unused

    Returns:
        Dict with the rebuild summary
    """
    db = SessionLocal()

    try:
        coordinator = SitemapCoordinator(
            store=ContentStore(db),
            sitemap_file=get_sitemap_file(),
            queue=get_task_queue(),
            post_types=settings.SITEMAP_POST_TYPES.keys(),
            batch_size=settings.SITEMAP_BATCH_SIZE,
            batch_delay=settings.SITEMAP_BATCH_DELAY_SECONDS,
        )
        result = coordinator.run()
        return result.model_dump(mode="json")

    finally:
        db.close()


@shared_task(bind=True, name=PROCESS_BATCH_TASK, max_retries=None)
def process_sitemap_batch(self, payload: Dict[str, Any], write_attempts: int = 0,
                          order_waits: int = 0) -> Dict[str, Any]:
    """
    Batch writer: append one batch of <url> entries to the sitemap

    Waiting for earlier batches and recovering from write failures draw on
    separate retry budgets, carried in the task kwargs, so time spent
    waiting never uses up the allowance for write errors. Write failures
    back off exponentially; a batch that arrives ahead of its predecessors
    is retried after the batch delay, with an allowance that grows with
    its position.

    Args:
        payload: Serialized SitemapBatch
        write_attempts: Write failures retried so far
        order_waits: Early arrivals retried so far

    Returns:
        Dict with the batch result
    """
    batch = SitemapBatch(**payload)
    db = SessionLocal()

    try:
        writer = SitemapBatchWriter(
            store=ContentStore(db),
            sitemap_file=get_sitemap_file(),
            site_url=settings.SITE_URL,
            type_priorities=settings.SITEMAP_POST_TYPES,
            aux_path=settings.SITEMAP_AUX_PATH,
        )
        result = writer.process(batch)
        return result.model_dump()

    except BatchOutOfOrderError as e:
        if order_waits >= settings.SITEMAP_TASK_MAX_RETRIES * (batch.batch_index + 1):
            logger.error(f"Sitemap batch {batch.batch_index} gave up waiting for earlier batches: {e}")
            raise
        logger.info(f"Sitemap batch {batch.batch_index} waiting for earlier batches: {e}")
        raise self.retry(
            exc=e,
            kwargs={"payload": payload, "write_attempts": write_attempts,
                    "order_waits": order_waits + 1},
            countdown=settings.SITEMAP_BATCH_DELAY_SECONDS,
        )

    except (SitemapFileError, ContentStoreError) as e:
        if write_attempts >= settings.SITEMAP_TASK_MAX_RETRIES:
            logger.error(
                f"Error writing sitemap batch {batch.batch_index}, "
                f"giving up after {write_attempts} retries: {e}"
            )
            raise
        logger.error(f"Error writing sitemap batch {batch.batch_index}: {e}")
        # Retry with exponential backoff
        raise self.retry(
            exc=e,
            kwargs={"payload": payload, "write_attempts": write_attempts + 1,
                    "order_waits": order_waits},
            countdown=settings.SITEMAP_RETRY_BACKOFF_SECONDS * (2 ** write_attempts),
        )

    finally:
        db.close()


@shared_task(name=REQUEST_REBUILD_TASK)
def request_sitemap_rebuild() -> Dict[str, Any]:
    """
    Schedule a rebuild right away unless one is already pending

    Returns:
        Dict telling whether a rebuild was scheduled
    """
    scheduled = schedule_rebuild(get_task_queue(), 0)
    return {'status': 'success', 'scheduled': scheduled}
