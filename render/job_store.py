# render/job_store.py
import threading
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from core import config, paths
from core.errors import InvalidTransitionError, NotFoundError
from core.logger import log
from .views import JobStatus, RenderJob, utcnow


class JobStore:
    """
    In-memory table of render jobs.

    Every read and write goes through one lock and touches a single record;
    callers always get copies, so the stored record only changes through the
    transition methods below. Status only moves forward:
    queued -> rendering -> complete | failed.
    """

    def __init__(self, retention_sec: Optional[int] = None):
        self._jobs: Dict[str, RenderJob] = {}
        self._lock = threading.Lock()
        self.retention_sec = config.JOB_RETENTION_SEC if retention_sec is None else retention_sec

    def create(self, detection_id: str, status: JobStatus, queue_position: int) -> RenderJob:
        job = RenderJob(
            job_id=paths.new_id(),
            detection_id=detection_id,
            status=status,
            queue_position=queue_position,
        )
        with self._lock:
            self._prune_locked()
            self._jobs[job.job_id] = job
        log("INFO", "job_created", "Render job created",
            job_id=job.job_id, status=job.status.value, queue_position=queue_position)
        return job.model_copy()

    def get(self, job_id: str) -> RenderJob:
        with self._lock:
            return self._require(job_id).model_copy()

    def jobs(self, statuses: Optional[Iterable[JobStatus]] = None) -> List[RenderJob]:
        wanted = set(statuses) if statuses else None
        with self._lock:
            return [j.model_copy() for j in self._jobs.values() if wanted is None or j.status in wanted]

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    # --------------------------
    # Transitions
    # --------------------------
    def mark_rendering(self, job_id: str) -> RenderJob:
        with self._lock:
            job = self._require(job_id)
            if job.status == JobStatus.RENDERING:
                return job.model_copy()
            self._check(job, JobStatus.RENDERING, (JobStatus.QUEUED,))
            job.status = JobStatus.RENDERING
            job.started_at = utcnow()
            return job.model_copy()

    def update_progress(self, job_id: str, progress: int) -> None:
        with self._lock:
            job = self._require(job_id)
            if job.status != JobStatus.RENDERING:
                return
            job.progress = max(job.progress, min(99, max(0, int(progress))))

    def mark_complete(self, job_id: str, video_location: str) -> RenderJob:
        with self._lock:
            job = self._require(job_id)
            self._check(job, JobStatus.COMPLETE, (JobStatus.RENDERING,))
            job.status = JobStatus.COMPLETE
            job.progress = 100
            job.video_location = video_location
            job.completed_at = utcnow()
            return job.model_copy()

    def mark_failed(self, job_id: str, error_detail: str) -> RenderJob:
        with self._lock:
            job = self._require(job_id)
            self._check(job, JobStatus.FAILED, (JobStatus.RENDERING,))
            job.status = JobStatus.FAILED
            job.error_detail = error_detail or "render failed"
            job.completed_at = utcnow()
            return job.model_copy()

    # --------------------------
    # Internals (lock held)
    # --------------------------
    def _require(self, job_id: str) -> RenderJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"job {job_id} not found")
        return job

    @staticmethod
    def _check(job: RenderJob, target: JobStatus, allowed_from) -> None:
        if job.status not in allowed_from:
            raise InvalidTransitionError(
                f"job {job.job_id}: cannot move from {job.status.value} to {target.value}"
            )

    def _prune_locked(self) -> None:
        if self.retention_sec <= 0:
            return
        cutoff = utcnow() - timedelta(seconds=self.retention_sec)
        expired = [
            job_id for job_id, job in self._jobs.items()
            if job.status.is_terminal and job.completed_at and job.completed_at < cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            log("DEBUG", "job_pruned", f"Evicted {len(expired)} finished jobs", retention_sec=self.retention_sec)
