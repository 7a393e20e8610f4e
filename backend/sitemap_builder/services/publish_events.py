"""
Turns committed status changes on ContentItem into publish events
"""

import logging
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from sitemap_builder.models.content import ContentItem, PUBLISH_STATUS

logger = logging.getLogger(__name__)

_PENDING_KEY = "sitemap_published"

PublishHandler = Callable[[int, Optional[str]], object]


def _collect_publishes(session: Session, post_types: set) -> List[Tuple[int, Optional[str]]]:
    """Items flushed into the published state, with their previous status"""
    published = []
    for obj in list(session.new) + list(session.dirty):
        if not isinstance(obj, ContentItem):
            continue
        if obj.status != PUBLISH_STATUS or obj.post_type not in post_types:
            continue

        history = inspect(obj).attrs.status.history
        if obj in session.new:
            old_status = None
        elif history.has_changes():
            old_status = history.deleted[0] if history.deleted else None
        else:
            continue

        published.append((obj.id, old_status))
    return published


def register_publish_listener(session_target, on_publish: PublishHandler,
                              post_types: Iterable[str]) -> None:
    """
    Call ``on_publish(content_id, old_status)`` after a transaction that
    published content of one of ``post_types`` commits.

    Args:
        session_target: Session class or sessionmaker to listen on
        on_publish: Handler; its exceptions propagate out of commit()
        post_types: Content types that feed the sitemap
    """
    types = set(post_types)

    @event.listens_for(session_target, "after_flush")
    def record_publishes(session, flush_context):
        found = _collect_publishes(session, types)
        if found:
            session.info.setdefault(_PENDING_KEY, []).extend(found)

    @event.listens_for(session_target, "after_commit")
    def dispatch_publishes(session):
        pending = session.info.pop(_PENDING_KEY, [])
        for content_id, old_status in pending:
            logger.debug(f"Content {content_id} published (was {old_status})")
            on_publish(content_id, old_status)

    @event.listens_for(session_target, "after_rollback")
    def discard_publishes(session):
        session.info.pop(_PENDING_KEY, None)
