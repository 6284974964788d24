import os
import concurrent.futures
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Union

from loguru import logger

from pixel_alchemy import config
from pixel_alchemy.file_io import TransformResult, sink_for
from pixel_alchemy.logger import create_logger
from pixel_alchemy.pipeline.processor import PipelineExecutor
from pixel_alchemy.pipeline.request import TransformRequest


@dataclass
class BatchJob:
    request: TransformRequest
    dest: Optional[Union[str, os.PathLike]] = None


@dataclass
class BatchOutcome:
    job_id: str
    result: Optional[TransformResult] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchTransformer:
    """
    Run many independent transform jobs on a thread pool.
    Jobs share nothing; a failing job is reported in its outcome and never
    affects the others.
    """

    def __init__(self, max_workers: Optional[int] = None, levels_mode: Optional[str] = None):
        self.max_workers = max_workers or config.get_settings().max_workers
        self.executor = PipelineExecutor(levels_mode)

    @staticmethod
    def run_job(executor: PipelineExecutor, job: BatchJob, job_id: str) -> BatchOutcome:
        """Static so the pool only ever touches job-local state"""
        log = create_logger(file_id=job_id)
        try:
            result = executor.run(job.request, sink_for(job.dest), log=log)
            log.success(f"Done -> {result.path or result.format}")
            return BatchOutcome(job_id, result=result)
        except Exception as e:
            log.error(f"❌ {type(e).__name__}: {e}")
            return BatchOutcome(job_id, error=e)

    def run(
        self,
        jobs: Iterable[BatchJob],
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[BatchOutcome]:
        """
        Process jobs concurrently.

        Args:
            jobs: the jobs to run
            on_progress: called with (completed, total) after every job

        Returns:
            List[BatchOutcome]: one outcome per job, in submission order
        """
        jobs = list(jobs)
        total = len(jobs)
        outcomes: List[Optional[BatchOutcome]] = [None] * total
        if not jobs:
            return []

        logger.info(f"[Batch] Processing {total} job(s) with {self.max_workers} worker(s)")

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {
                pool.submit(self.run_job, self.executor, job, job.request.request_id or f"job-{index}"): index
                for index, job in enumerate(jobs)
            }

            completed = 0
            for future in concurrent.futures.as_completed(futures):
                outcomes[futures[future]] = future.result()
                completed += 1
                if on_progress:
                    on_progress(completed, total)

        failed = sum(1 for outcome in outcomes if not outcome.ok)
        logger.info(f"[Batch] Finished: {total - failed} ok, {failed} failed")
        return outcomes
