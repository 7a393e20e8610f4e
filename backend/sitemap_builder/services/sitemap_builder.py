"""
Batched sitemap generation.

1. A publish event schedules the coordinator a few minutes out (deduplicated)
2. The coordinator writes the XML header and fans out one task per batch of
   content identifiers, with increasing delays
3. Each batch task renders its <url> entries and appends them to the file
4. The last batch appends the auxiliary entry and the closing tag once every
   batch has landed
"""

import logging
import uuid
from datetime import date
from typing import Iterable, List, Mapping, Optional, Sequence

from sitemap_builder.models.content import PUBLISH_STATUS
from sitemap_builder.schemas.sitemap import BatchResult, RebuildResult, RebuildStatus, SitemapBatch
from sitemap_builder.services.content_store import ContentStore, ContentStoreError
from sitemap_builder.services.sitemap_file import SitemapFile, SitemapFileError, StaleGenerationError
from sitemap_builder.services.sitemap_xml import (
    auxiliary_entry, build_entry, home_url, render_entries, render_footer
)
from sitemap_builder.services.task_queue import TaskQueue

logger = logging.getLogger(__name__)

CREATE_SITEMAP_TASK = "sitemap.create_xml_sitemap"
PROCESS_BATCH_TASK = "sitemap.process_sitemap_batch"

DEFAULT_BATCH_SIZE = 200
DEFAULT_BATCH_DELAY = 5


def partition_batches(post_ids: Sequence[int], batch_size: int = DEFAULT_BATCH_SIZE,
                      generation: str = "") -> List[SitemapBatch]:
    """Split ordered identifiers into batches; only the final one is marked last."""
    if batch_size < 1:
        raise ValueError("batch_size must be a positive integer")

    chunks = [list(post_ids[i:i + batch_size]) for i in range(0, len(post_ids), batch_size)]
    total = len(chunks)
    return [
        SitemapBatch(
            post_ids=chunk,
            is_last=index == total - 1,
            batch_index=index,
            total_batches=total,
            generation=generation,
        )
        for index, chunk in enumerate(chunks)
    ]


def schedule_rebuild(queue: TaskQueue, delay: float) -> bool:
    """Schedule the coordinator unless one is already pending."""
    if queue.has_pending(CREATE_SITEMAP_TASK):
        logger.debug("Sitemap rebuild already scheduled")
        return False

    queue.schedule(CREATE_SITEMAP_TASK, None, delay)
    logger.info(f"Sitemap rebuild scheduled in {delay}s")
    return True


def handle_content_published(content_id: int, old_status: Optional[str],
                             queue: TaskQueue, delay: float) -> bool:
    """
    React to a content item transitioning to published.

    Bursts of publishes inside the delay window collapse into one rebuild.
    Scheduling errors propagate to the caller.

    Returns:
        True if a rebuild was scheduled by this call
    """
    if old_status == PUBLISH_STATUS:
        logger.debug(f"Content {content_id} was already published, no rebuild needed")
        return False

    return schedule_rebuild(queue, delay)


class SitemapCoordinator:
    """Writes the header and fans out the batch tasks for one rebuild"""

    def __init__(self, store: ContentStore, sitemap_file: SitemapFile, queue: TaskQueue,
                 post_types: Iterable[str], batch_size: int = DEFAULT_BATCH_SIZE,
                 batch_delay: float = DEFAULT_BATCH_DELAY):
        self.store = store
        self.sitemap_file = sitemap_file
        self.queue = queue
        self.post_types = list(post_types)
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    def run(self) -> RebuildResult:
        # The rebuild is no longer pending once it runs; publishes from now on
        # need a fresh one
        self.queue.clear_pending(CREATE_SITEMAP_TASK)

        try:
            post_ids = self.store.list_identifiers(self.post_types, PUBLISH_STATUS)
        except ContentStoreError as e:
            logger.error(f"Sitemap generation: could not enumerate content: {e}")
            return RebuildResult(status=RebuildStatus.ERROR, message=str(e))

        if not post_ids:
            logger.info("Sitemap generation: no published content, leaving sitemap untouched")
            return RebuildResult(status=RebuildStatus.SKIPPED, message="No published content")

        generation = uuid.uuid4().hex
        batches = partition_batches(post_ids, self.batch_size, generation)

        try:
            self.sitemap_file.write_header(generation, len(batches))
        except SitemapFileError as e:
            logger.error(f"Sitemap generation: failed to write sitemap header: {e}")
            return RebuildResult(status=RebuildStatus.ERROR, message=str(e))

        delay = 0
        for batch in batches:
            self.queue.schedule(PROCESS_BATCH_TASK, batch.model_dump(), delay)
            delay += self.batch_delay

        logger.info(
            f"Sitemap generation {generation}: {len(post_ids)} items in "
            f"{len(batches)} batches scheduled"
        )

        return RebuildResult(
            status=RebuildStatus.SCHEDULED,
            generation=generation,
            identifier_count=len(post_ids),
            batch_count=len(batches),
        )


class SitemapBatchWriter:
    """Renders one batch and appends it to the sitemap file"""

    def __init__(self, store: ContentStore, sitemap_file: SitemapFile, site_url: str,
                 type_priorities: Mapping[str, str], aux_path: str = "/llms.txt",
                 today: Optional[date] = None):
        self.store = store
        self.sitemap_file = sitemap_file
        self.site_url = site_url
        self.type_priorities = dict(type_priorities)
        self.aux_path = aux_path
        self.today = today

    def render(self, batch: SitemapBatch) -> tuple[str, int]:
        """Fragment of <url> elements for the batch and the number of entries in it"""
        items = self.store.get_items(batch.post_ids, post_types=self.type_priorities.keys())
        home = home_url(self.site_url)
        entries = [
            build_entry(item, home, self.type_priorities)
            for item in items
            if not item.noindex
        ]
        return render_entries(entries), len(entries)

    def process(self, batch: SitemapBatch) -> BatchResult:
        """
        Append the batch, then close the document if it is the last one.

        Raises:
            SitemapFileError, BatchOutOfOrderError, ContentStoreError: the
            task should be retried
        """
        fragment, entry_count = self.render(batch)

        try:
            written = self.sitemap_file.append_batch(batch, fragment)
            if not written:
                logger.info(
                    f"Sitemap batch {batch.batch_index} of generation {batch.generation} "
                    f"already written, skipping"
                )

            footer_written = False
            if batch.is_last:
                aux = auxiliary_entry(self.site_url, self.aux_path, self.today)
                footer_written = self.sitemap_file.append_footer(batch.generation, render_footer(aux))

        except StaleGenerationError as e:
            logger.warning(f"Sitemap generation: dropping batch {batch.batch_index}: {e}")
            return BatchResult(status="stale", batch_index=batch.batch_index)

        except SitemapFileError as e:
            logger.warning(
                f"Sitemap generation: failed to write batch with {len(batch.post_ids)} posts: {e}"
            )
            raise

        return BatchResult(
            status="written" if written else "duplicate",
            batch_index=batch.batch_index,
            urls_written=entry_count if written else 0,
            footer_written=footer_written,
        )
