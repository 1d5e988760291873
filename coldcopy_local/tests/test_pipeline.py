from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from conftest import FakeCompletionClient, FakeScraper, create_job_with_rows

from coldcopy_local.pipeline import JobWorker


SINGLE_EMAIL = (
    "Subject: Denver ramp for Acme\n\n"
    "Hi Dana,\n\nCongrats on the Denver facility.\n\nRamp ups bring pick errors.\n\nOpen to a call?"
)


@pytest.fixture
def worker_factory(base_config, data_manager):
    workers = []

    def build(client=None, scraper=None):
        worker = JobWorker(
            base_config,
            data_manager=data_manager,
            llm_client=client or FakeCompletionClient(default=SINGLE_EMAIL),
            scraper=scraper or FakeScraper(),
        )
        workers.append(worker)
        return worker

    yield build
    for worker in workers:
        worker.shutdown()


@pytest.fixture
def settings(job_settings):
    job_settings["followUpCount"] = 0
    return job_settings


def test_job_runs_to_completion(worker_factory, data_manager, settings):
    client = FakeCompletionClient(default=SINGLE_EMAIL)
    worker = worker_factory(client)
    job_id, prospect_ids = create_job_with_rows(
        data_manager, settings, [{"activity_context": f"Signal {i}"} for i in range(3)]
    )

    assert worker.enqueue_job(job_id) == 3
    job = worker.wait_for_job(job_id, timeout=30)

    assert job["status"] == "completed"
    assert job["processed_rows"] == 3
    assert job["error_count"] == 0
    assert job["started_at"] is not None
    assert all(data_manager.get_prospect(pid)["status"] == "completed" for pid in prospect_ids)
    assert sorted(client.request_ids) == sorted(f"job_{job_id}_row_{i}" for i in range(3))


def test_failed_rows_still_complete_the_job(worker_factory, data_manager, settings):
    worker = worker_factory(FakeCompletionClient(fail_on=["job_"]))
    job_id, _ = create_job_with_rows(data_manager, settings, [{"activity_context": "Signal"}, {}])

    worker.enqueue_job(job_id)
    job = worker.wait_for_job(job_id, timeout=30)

    assert job["status"] == "completed"
    assert job["error_count"] == 2


def test_paused_and_unknown_jobs_are_not_enqueued(worker_factory, data_manager, settings):
    worker = worker_factory()
    job_id, _ = create_job_with_rows(data_manager, settings, [{"activity_context": "Signal"}])
    data_manager.pause_job(job_id)

    assert worker.enqueue_job(job_id) == 0
    assert worker.enqueue_job(job_id + 100) == 0
    assert data_manager.get_job(job_id)["status"] == "paused"


def test_start_resumes_active_jobs(worker_factory, data_manager, settings):
    queued, _ = create_job_with_rows(data_manager, settings, [{"activity_context": "Signal"}])
    paused, _ = create_job_with_rows(data_manager, settings, [{"activity_context": "Signal"}])
    data_manager.pause_job(paused)
    worker = worker_factory()

    assert worker.start() == [queued]
    assert worker.wait_for_job(queued, timeout=30)["status"] == "completed"
    assert data_manager.get_job(paused)["status"] == "paused"


def test_rows_in_flight_are_not_submitted_twice(worker_factory, data_manager, settings):
    worker = worker_factory()
    job_id, prospect_ids = create_job_with_rows(
        data_manager, settings, [{"activity_context": "Signal"}, {"activity_context": "Signal"}]
    )
    worker.init()
    worker._in_flight.add(prospect_ids[0])

    assert worker.enqueue_job(job_id) == 1


def test_shutdown_closes_scraper(base_config, data_manager):
    scraper = FakeScraper()
    worker = JobWorker(base_config, data_manager=data_manager, llm_client=FakeCompletionClient(), scraper=scraper)
    worker.init()

    worker.shutdown()

    assert scraper.closed
    assert worker.concurrency == 2


def test_finished_rows_are_released(worker_factory, data_manager, settings):
    worker = worker_factory()
    first, _ = create_job_with_rows(data_manager, settings, [{"activity_context": "Signal"}] * 2)
    second, _ = create_job_with_rows(data_manager, settings, [{"activity_context": "Signal"}])

    worker.enqueue_job(first)
    worker.wait_for_job(first, timeout=30)
    assert worker._futures == {}

    worker.enqueue_job(second)
    assert worker.wait_for_job(second, timeout=30)["status"] == "completed"
    assert worker._futures == {}
    assert worker._in_flight == set()
