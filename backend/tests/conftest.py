"""
Shared fixtures: in-memory content store, recording task queue and a
sitemap file in a temporary directory.
"""

from collections import namedtuple
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sitemap_builder.models import Base, ContentItem
from sitemap_builder.services.content_store import ContentStore
from sitemap_builder.services.sitemap_file import SitemapFile
from sitemap_builder.services.task_queue import TaskQueue

SITE_URL = "https://example.com"
TYPE_PRIORITIES = {"page": "0.9", "post": "0.7"}
MODIFIED_AT = datetime(2024, 5, 1, 12, 30, 0)

ScheduledTask = namedtuple("ScheduledTask", ["task_id", "name", "payload", "delay"])


class RecordingTaskQueue(TaskQueue):
    """TaskQueue that records scheduled tasks instead of running them."""

    def __init__(self):
        self.scheduled = []
        self.pending = set()

    def schedule(self, task_name, payload, delay):
        task = ScheduledTask(f"task-{len(self.scheduled) + 1}", task_name, payload, delay)
        self.scheduled.append(task)
        self.pending.add(task_name)
        return task.task_id

    def has_pending(self, task_name):
        return task_name in self.pending

    def clear_pending(self, task_name):
        self.pending.discard(task_name)

    def take(self, task_name):
        """Remove and return scheduled tasks with this name, earliest first."""
        taken = sorted(
            (task for task in self.scheduled if task.name == task_name),
            key=lambda task: task.delay,
        )
        self.scheduled = [task for task in self.scheduled if task.name != task_name]
        self.pending.discard(task_name)
        return taken


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def content_store(db_session):
    return ContentStore(db_session)


@pytest.fixture
def task_queue():
    return RecordingTaskQueue()


@pytest.fixture
def sitemap_file(tmp_path):
    return SitemapFile(tmp_path / "public" / "sitemap.xml", lock_timeout=0.2)


@pytest.fixture
def make_items(db_session):
    """Factory that inserts content items and returns them."""

    def _make_items(count, post_type="page", status="publish", noindex=False,
                    permalink="https://example.com/{post_type}-{n}/"):
        items = []
        for n in range(count):
            item = ContentItem(
                post_type=post_type,
                status=status,
                title=f"{post_type} {n}",
                permalink=permalink.format(post_type=post_type, n=n),
                modified_at=MODIFIED_AT,
                noindex=noindex,
            )
            db_session.add(item)
            items.append(item)
        db_session.commit()
        return items

    return _make_items
