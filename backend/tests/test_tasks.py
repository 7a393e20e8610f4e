"""Tests for the Celery task entry points, called in-process."""

import xml.etree.ElementTree as ET

import pytest
from celery.exceptions import Retry

from sitemap_builder.services.sitemap_builder import CREATE_SITEMAP_TASK, PROCESS_BATCH_TASK
from sitemap_builder.services.sitemap_file import BatchOutOfOrderError, SitemapFileError
from sitemap_builder.services.sitemap_xml import SITEMAP_NAMESPACE
from sitemap_builder.tasks import sitemap_tasks

NS = {"sm": SITEMAP_NAMESPACE}


@pytest.fixture
def wired_tasks(monkeypatch, session_factory, task_queue, sitemap_file):
    monkeypatch.setattr(sitemap_tasks, "SessionLocal", session_factory)
    monkeypatch.setattr(sitemap_tasks, "get_task_queue", lambda: task_queue)
    monkeypatch.setattr(sitemap_tasks, "get_sitemap_file", lambda: sitemap_file)
    monkeypatch.setattr(sitemap_tasks.settings, "SITEMAP_POST_TYPES", {"page": "0.9"})
    monkeypatch.setattr(sitemap_tasks.settings, "SITEMAP_BATCH_SIZE", 200)
    monkeypatch.setattr(sitemap_tasks.settings, "SITE_URL", "https://example.com")
    return sitemap_tasks


class TestTaskRegistration:

    def test_task_names(self):
        assert sitemap_tasks.create_xml_sitemap.name == CREATE_SITEMAP_TASK
        assert sitemap_tasks.process_sitemap_batch.name == PROCESS_BATCH_TASK
        assert sitemap_tasks.request_sitemap_rebuild.name == sitemap_tasks.REQUEST_REBUILD_TASK


class TestSitemapTasks:

    def test_coordinator_and_batches(self, wired_tasks, task_queue, sitemap_file, make_items):
        make_items(401)

        result = wired_tasks.create_xml_sitemap(None)

        assert result["status"] == "scheduled"
        assert result["batch_count"] == 3

        for task in task_queue.take(PROCESS_BATCH_TASK):
            batch_result = wired_tasks.process_sitemap_batch(task.payload)
            assert batch_result["status"] == "written"

        root = ET.parse(sitemap_file.path).getroot()
        assert len(root.findall("sm:url", NS)) == 402

    def test_coordinator_without_content(self, wired_tasks, task_queue, sitemap_file):
        result = wired_tasks.create_xml_sitemap(None)

        assert result["status"] == "skipped"
        assert task_queue.scheduled == []
        assert not sitemap_file.path.exists()

    def test_out_of_order_batch_raises_for_retry(self, wired_tasks, task_queue, make_items):
        make_items(250)
        wired_tasks.create_xml_sitemap(None)
        tasks = task_queue.take(PROCESS_BATCH_TASK)

        with pytest.raises(BatchOutOfOrderError):
            wired_tasks.process_sitemap_batch(tasks[1].payload)

    def test_write_failure_raises_for_retry(self, wired_tasks, task_queue, sitemap_file,
                                            make_items, monkeypatch):
        make_items(3)
        wired_tasks.create_xml_sitemap(None)
        [task] = task_queue.take(PROCESS_BATCH_TASK)

        def broken_append(batch, fragment):
            raise SitemapFileError("permission denied")

        monkeypatch.setattr(sitemap_file, "append_batch", broken_append)

        with pytest.raises(SitemapFileError):
            wired_tasks.process_sitemap_batch(task.payload)

    def test_request_rebuild(self, wired_tasks, task_queue):
        assert wired_tasks.request_sitemap_rebuild() == {'status': 'success', 'scheduled': True}
        assert wired_tasks.request_sitemap_rebuild() == {'status': 'success', 'scheduled': False}
        assert task_queue.has_pending(CREATE_SITEMAP_TASK)


class RecordingRetry:
    """Stands in for Task.retry and records what would be resent"""

    def __init__(self):
        self.calls = []

    def __call__(self, exc=None, kwargs=None, countdown=None, **options):
        self.calls.append({"exc": exc, "kwargs": kwargs, "countdown": countdown})
        return Retry(exc=exc, when=countdown)


@pytest.fixture
def retry_calls(wired_tasks, monkeypatch):
    monkeypatch.setattr(wired_tasks.settings, "SITEMAP_TASK_MAX_RETRIES", 5)
    monkeypatch.setattr(wired_tasks.settings, "SITEMAP_RETRY_BACKOFF_SECONDS", 10)
    monkeypatch.setattr(wired_tasks.settings, "SITEMAP_BATCH_DELAY_SECONDS", 5)
    recorder = RecordingRetry()
    monkeypatch.setattr(wired_tasks.process_sitemap_batch, "retry", recorder)
    return recorder.calls


def run_batch_task(tasks_module, payload, retries=0, **kwargs):
    """Run the batch task body as a worker would on its nth delivery"""
    task = tasks_module.process_sitemap_batch
    task.push_request(retries=retries, called_directly=False)
    try:
        return task.run(payload, **kwargs)
    finally:
        task.pop_request()


class TestBatchRetryBudgets:
    """Early arrivals and write failures are retried against separate allowances"""

    @pytest.fixture
    def broken_append(self, sitemap_file, monkeypatch):
        def broken(batch, fragment):
            raise SitemapFileError("permission denied")

        monkeypatch.setattr(sitemap_file, "append_batch", broken)

    def test_write_failure_after_long_wait_is_retried(self, wired_tasks, task_queue, make_items,
                                                      retry_calls, broken_append):
        make_items(3)
        wired_tasks.create_xml_sitemap(None)
        [task] = task_queue.take(PROCESS_BATCH_TASK)

        # Six deliveries already spent waiting on earlier batches
        with pytest.raises(Retry):
            run_batch_task(wired_tasks, task.payload, retries=6, order_waits=6)

        [call] = retry_calls
        assert isinstance(call["exc"], SitemapFileError)
        assert call["countdown"] == 10
        assert call["kwargs"] == {"payload": task.payload, "write_attempts": 1, "order_waits": 6}

    def test_write_backoff_grows_with_write_attempts(self, wired_tasks, task_queue, make_items,
                                                     retry_calls, broken_append):
        make_items(3)
        wired_tasks.create_xml_sitemap(None)
        [task] = task_queue.take(PROCESS_BATCH_TASK)

        with pytest.raises(Retry):
            run_batch_task(wired_tasks, task.payload, retries=9, write_attempts=3, order_waits=6)

        [call] = retry_calls
        assert call["countdown"] == 80
        assert call["kwargs"]["write_attempts"] == 4

    def test_write_failure_gives_up_when_write_budget_is_spent(self, wired_tasks, task_queue,
                                                               make_items, retry_calls,
                                                               broken_append):
        make_items(3)
        wired_tasks.create_xml_sitemap(None)
        [task] = task_queue.take(PROCESS_BATCH_TASK)

        with pytest.raises(SitemapFileError):
            run_batch_task(wired_tasks, task.payload, retries=5, write_attempts=5)

        assert retry_calls == []

    def test_waiting_does_not_spend_write_attempts(self, wired_tasks, task_queue, make_items,
                                                   retry_calls):
        make_items(250)
        wired_tasks.create_xml_sitemap(None)
        tasks = task_queue.take(PROCESS_BATCH_TASK)

        with pytest.raises(Retry):
            run_batch_task(wired_tasks, tasks[1].payload, retries=3, write_attempts=2,
                           order_waits=1)

        [call] = retry_calls
        assert isinstance(call["exc"], BatchOutOfOrderError)
        assert call["countdown"] == 5
        assert call["kwargs"] == {"payload": tasks[1].payload, "write_attempts": 2,
                                  "order_waits": 2}

    def test_waiting_gives_up_after_position_scaled_allowance(self, wired_tasks, task_queue,
                                                             make_items, retry_calls):
        make_items(250)
        wired_tasks.create_xml_sitemap(None)
        tasks = task_queue.take(PROCESS_BATCH_TASK)

        # batch 1 may wait 5 * (1 + 1) times
        with pytest.raises(BatchOutOfOrderError):
            run_batch_task(wired_tasks, tasks[1].payload, order_waits=10)

        assert retry_calls == []
