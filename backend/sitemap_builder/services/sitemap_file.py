"""
Sitemap File — the single writer for sitemap.xml.

Every write (header, batch fragment, footer) goes through SitemapFile and
happens under an exclusive flock on a sidecar lock file. The lock is held
for one write only, never across a whole rebuild.

Sidecar files next to the sitemap:
    sitemap.xml.lock            <- flock target
    sitemap.xml.progress.json   <- rebuild generation + batches already appended

The progress file makes appends idempotent (a replayed batch is a no-op),
keeps batches in identifier order (batch i waits for 0..i-1) and gates the
closing tag on every batch having landed.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import time
import xml.etree.ElementTree as ET
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from sitemap_builder.schemas.sitemap import SitemapBatch, SitemapState, SitemapStatus
from sitemap_builder.services.sitemap_xml import SITEMAP_NAMESPACE, XML_HEADER

logger = logging.getLogger(__name__)

_NS = {"sm": SITEMAP_NAMESPACE}
_POLL_INTERVAL = 0.05  # seconds between non-blocking lock attempts


class SitemapFileError(Exception):
    """Raised when the sitemap file cannot be opened or written"""
    pass


class SitemapLockError(SitemapFileError):
    """Raised when the exclusive lock cannot be acquired in time"""
    pass


class BatchOutOfOrderError(Exception):
    """Raised when a write arrives before the writes it must follow"""
    pass


class StaleGenerationError(Exception):
    """Raised when a write belongs to a rebuild that has been superseded"""
    pass


class RebuildProgress(BaseModel):
    """Contents of the progress sidecar"""

    generation: str
    total_batches: int
    written: List[int] = Field(default_factory=list)
    complete: bool = False

    @property
    def next_index(self) -> int:
        return len(self.written)

    @property
    def all_batches_written(self) -> bool:
        return len(self.written) >= self.total_batches


class SitemapFile:
    """Locked, append-only access to one sitemap document"""

    def __init__(self, path: Union[str, Path], lock_timeout: float = 10.0):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.progress_path = self.path.with_name(self.path.name + ".progress.json")
        self.lock_timeout = lock_timeout

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the exclusive lock for the duration of the block."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(self.lock_path, "a")
        except OSError as e:
            raise SitemapFileError(f"Failed to open lock file {self.lock_path}: {e}") from e

        try:
            deadline = time.monotonic() + self.lock_timeout
            while True:
                try:
                    fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        raise SitemapLockError(
                            f"Timed out after {self.lock_timeout}s waiting for lock on {self.path}"
                        )
                    time.sleep(_POLL_INTERVAL)
                except OSError as e:
                    raise SitemapLockError(f"Failed to acquire lock on {self.path}: {e}") from e

            try:
                yield
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)
        finally:
            handle.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_header(self, generation: str, total_batches: int) -> None:
        """
        Start a new generation and truncate the file to the document header.

        The generation is recorded before the file is truncated, so batches
        of the previous rebuild can never append onto the new header.
        """
        with self.locked():
            self._write_progress(RebuildProgress(generation=generation, total_batches=total_batches))

            try:
                with open(self.path, "w", encoding="utf-8") as fh:
                    fh.write(XML_HEADER)
                    fh.flush()
                    os.fsync(fh.fileno())
            except OSError as e:
                raise SitemapFileError(f"Failed to write sitemap header to {self.path}: {e}") from e

        logger.info(f"Sitemap header written for generation {generation} ({total_batches} batches)")

    def append_batch(self, batch: SitemapBatch, fragment: str) -> bool:
        """
        Append one batch's <url> entries.

        Returns:
            True if the fragment was appended, False if this batch had
            already been appended for the current generation.

        Raises:
            StaleGenerationError: a newer rebuild owns the file
            BatchOutOfOrderError: earlier batches have not been appended yet
            SitemapFileError / SitemapLockError: I/O or lock failure
        """
        with self.locked():
            progress = self._current_progress(batch.generation)

            if batch.batch_index in progress.written:
                return False

            if batch.batch_index != progress.next_index:
                raise BatchOutOfOrderError(
                    f"Batch {batch.batch_index} of generation {batch.generation} arrived "
                    f"before batch {progress.next_index}"
                )

            self._append(fragment)
            progress.written.append(batch.batch_index)
            self._write_progress(progress)

        return True

    def append_footer(self, generation: str, footer: str) -> bool:
        """
        Append the closing part of the document once every batch is in.

        Returns:
            True if written, False if the document was already closed.
        """
        with self.locked():
            progress = self._current_progress(generation)

            if progress.complete:
                return False

            if not progress.all_batches_written:
                raise BatchOutOfOrderError(
                    f"Footer for generation {generation} requested with "
                    f"{len(progress.written)}/{progress.total_batches} batches written"
                )

            self._append(footer)
            progress.complete = True
            self._write_progress(progress)

        logger.info(f"Sitemap generation {generation} complete: {self.path}")
        return True

    def _append(self, text: str) -> None:
        """Append text; on failure, cut the file back to where it was."""
        try:
            size = self.path.stat().st_size
        except OSError as e:
            raise SitemapFileError(f"Sitemap file {self.path} is missing its header: {e}") from e

        try:
            with open(self.path, "a", encoding="utf-8") as fh:
                fh.write(text)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as e:
            try:
                os.truncate(self.path, size)
            except OSError as truncate_error:
                logger.error(f"Failed to roll back partial write to {self.path}: {truncate_error}")
            raise SitemapFileError(f"Failed to append to {self.path}: {e}") from e

    # ------------------------------------------------------------------
    # Progress sidecar
    # ------------------------------------------------------------------

    def read_progress(self) -> Optional[RebuildProgress]:
        try:
            with open(self.progress_path, "r", encoding="utf-8") as fh:
                return RebuildProgress(**json.load(fh))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Unreadable sitemap progress file {self.progress_path}: {e}")
            return None

    def _current_progress(self, generation: str) -> RebuildProgress:
        progress = self.read_progress()
        if progress is None or progress.generation != generation:
            current = progress.generation if progress else None
            raise StaleGenerationError(
                f"Generation {generation} is not the current rebuild (current: {current})"
            )
        return progress

    def _write_progress(self, progress: RebuildProgress) -> None:
        tmp_path = self.progress_path.with_name(self.progress_path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as fh:
                json.dump(progress.model_dump(), fh)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.progress_path)
        except OSError as e:
            raise SitemapFileError(f"Failed to record sitemap progress: {e}") from e

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def count_urls(self) -> Optional[int]:
        """Number of <url> entries, or None if the file is not a parseable document."""
        try:
            root = ET.parse(self.path).getroot()
        except (OSError, ET.ParseError) as e:
            logger.debug(f"Sitemap {self.path} is not parseable: {e}")
            return None
        return len(root.findall("sm:url", _NS))

    def status(self) -> SitemapStatus:
        progress = self.read_progress()

        if not self.path.exists():
            state = SitemapState.ABSENT
        elif progress is None or progress.complete:
            state = SitemapState.COMPLETE
        else:
            state = SitemapState.BUILDING

        return SitemapStatus(
            state=state,
            path=str(self.path),
            url_count=self.count_urls() if state == SitemapState.COMPLETE else None,
            generation=progress.generation if progress else None,
            total_batches=progress.total_batches if progress else None,
            written_batches=len(progress.written) if progress else 0,
        )


def get_sitemap_file() -> SitemapFile:
    """SitemapFile for the configured output path"""
    from sitemap_builder.core.config import settings

    return SitemapFile(settings.SITEMAP_PATH, lock_timeout=settings.SITEMAP_LOCK_TIMEOUT)
