"""
ColdCopy Job Worker
Runs queued prospect rows through the generation stage on a bounded worker pool
"""

from typing import Dict, Any, List, Optional, Set
import concurrent.futures
import threading

from .stages import EmailGenerationStage
from .utils.data_manager import LocalDataManager
from .utils.logger import get_logger, log_error, log_job_complete, log_job_start
from .utils.scraper import WebsiteScraper


class JobWorker:
    """
    Bounded-concurrency queue shared by every job.

    Rows of one job are submitted in ascending row order; completion order
    is not guaranteed. Pausing a job stops further rows from starting but
    lets rows already in flight finish.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        data_manager: Optional[LocalDataManager] = None,
        llm_client: Optional[Any] = None,
        scraper: Optional[WebsiteScraper] = None,
        prompt_manager: Optional[Any] = None
    ):
        """
        Initialize the worker with configuration.

        Args:
            config: Runtime configuration dictionary
            data_manager: Shared data manager, created from ``data_dir`` otherwise
            llm_client: Optional completion client, passed to the generation stage
            scraper: Optional website scraper, built from config otherwise
            prompt_manager: Optional prompt manager
        """
        self.config = config
        self.logger = get_logger("pipeline")
        self.data_manager = data_manager or LocalDataManager(config.get('data_dir', './coldcopy_data'))
        self.scraper = scraper or WebsiteScraper.from_config(config)
        self.stage = EmailGenerationStage(
            config,
            data_manager=self.data_manager,
            llm_client=llm_client,
            prompt_manager=prompt_manager,
            scraper=self.scraper,
        )
        self.concurrency = max(1, int(config.get('worker_concurrency', 3) or 1))

        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self._futures: Dict[int, List[concurrent.futures.Future]] = {}
        self._in_flight: Set[int] = set()

    def init(self) -> None:
        """Create the worker pool. Safe to call more than once."""
        with self._lock:
            if self._executor is None:
                self._executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=self.concurrency, thread_name_prefix="coldcopy-worker"
                )
                self.logger.debug(f"Worker pool started with {self.concurrency} workers")

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor = self._executor
            self._executor = None
        if executor is not None:
            executor.shutdown(wait=wait)
        self.scraper.close()
        self.logger.debug("Worker pool stopped")

    def start(self) -> List[int]:
        """
        Enqueue every job still queued or running, e.g. after a restart.

        Returns:
            Ids of the jobs that were enqueued
        """
        self.init()
        job_ids = self.data_manager.list_active_job_ids()
        for job_id in job_ids:
            self.enqueue_job(job_id)
        return job_ids

    def enqueue_job(self, job_id: int) -> int:
        """
        Submit a job's queued rows to the worker pool.

        Paused jobs are left alone. Otherwise the job becomes ``running``
        and its first ``started_at`` is kept.

        Args:
            job_id: Job id

        Returns:
            Number of rows submitted
        """
        self.init()
        job = self.data_manager.get_job(job_id)
        if not job:
            self.logger.warning(f"Cannot enqueue unknown job {job_id}")
            return 0
        if str(job.get('status') or '').lower() == 'paused':
            self.logger.info(f"Job {job_id} is paused, not enqueuing")
            return 0

        self.data_manager.mark_job_running(job_id)
        pending = self.data_manager.list_pending_prospect_ids(job_id)
        if pending:
            log_job_start(job_id, job.get('total_rows', 0), job.get('settings') or {})

        submitted = 0
        with self._lock:
            self._prune_finished()
            for prospect_id in pending:
                if prospect_id in self._in_flight:
                    continue
                self._in_flight.add(prospect_id)
                future = self._executor.submit(self._run_row, job_id, prospect_id)
                self._futures.setdefault(job_id, []).append(future)
                submitted += 1

        self.logger.debug(f"Enqueued {submitted} rows for job {job_id}")
        return submitted

    def wait_for_job(self, job_id: int, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """
        Block until every submitted row of a job has settled.

        Args:
            job_id: Job id
            timeout: Optional limit in seconds

        Returns:
            The job record after the wait
        """
        with self._lock:
            futures = list(self._futures.get(job_id, []))
        if futures:
            concurrent.futures.wait(futures, timeout=timeout)
        with self._lock:
            self._prune_finished()

        job = self.data_manager.get_job(job_id)
        if job and job.get('status') == 'completed':
            log_job_complete(job_id, job.get('processed_rows', 0), job.get('error_count', 0))
        return job

    def _prune_finished(self) -> None:
        # Caller holds self._lock.
        for job_id in list(self._futures):
            pending = [future for future in self._futures[job_id] if not future.done()]
            if pending:
                self._futures[job_id] = pending
            else:
                del self._futures[job_id]

    def _run_row(self, job_id: int, prospect_id: int) -> Optional[Dict[str, Any]]:
        try:
            return self.stage.process_prospect_row(prospect_id)
        except Exception as e:
            log_error("pipeline", e, {'job_id': job_id, 'prospect_id': prospect_id})
            raise
        finally:
            with self._lock:
                self._in_flight.discard(prospect_id)
