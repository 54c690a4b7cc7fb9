# render/queue.py
import asyncio
import traceback
from typing import Optional

from core import metrics
from core.errors import InvalidTransitionError
from core.logger import log
from .job_store import JobStore
from .orchestrator import RenderOrchestrator
from .views import AnimationConfig, JobStatus, RenderJob, RenderRequest


class RenderQueue:
    """
    FIFO of render requests drained by exactly one worker task.

    enqueue() records the job and returns at once; the worker pops one request,
    runs it to a terminal state, then pops the next. Only the worker calls the
    orchestrator, so at most one render subprocess exists per process.
    """

    def __init__(self, store: JobStore, orchestrator: RenderOrchestrator):
        self.store = store
        self.orchestrator = orchestrator
        self._queue: "asyncio.Queue[RenderRequest]" = asyncio.Queue()
        self._active_job: Optional[str] = None
        self._worker: Optional[asyncio.Task] = None
        self._stopping = False

    # --------------------------
    # Submission & status
    # --------------------------
    def enqueue(self, detection_id: str, animation_config: AnimationConfig) -> RenderJob:
        """Must be called from inside the event loop."""
        ahead = self.depth + (1 if self.is_busy else 0)
        status = JobStatus.RENDERING if ahead == 0 else JobStatus.QUEUED
        job = self.store.create(detection_id, status=status, queue_position=ahead)
        self._queue.put_nowait(RenderRequest(job.job_id, detection_id, animation_config))
        metrics.RENDER_QUEUE_DEPTH.set(self.depth)
        log("INFO", "render_enqueued", "Render request queued",
            job_id=job.job_id, status=status.value, queue_position=ahead)
        self.start()
        return job

    def get_status(self, job_id: str) -> RenderJob:
        return self.store.get(job_id)

    @property
    def depth(self) -> int:
        return self._queue.qsize()

    @property
    def is_busy(self) -> bool:
        return self._active_job is not None

    @property
    def active_job(self) -> Optional[str]:
        return self._active_job

    # --------------------------
    # Worker lifecycle
    # --------------------------
    def start(self):
        if self._worker and not self._worker.done():
            return
        self._stopping = False
        self._worker = asyncio.create_task(self._run(), name="render-queue-worker")
        log("DEBUG", "render_worker_start", "Render worker started")

    async def stop(self, timeout: Optional[float] = None):
        """
        Stops the worker once the active render (if any) has finished. Pending
        requests stay queued. If the active render outlives `timeout` the
        worker is cancelled.
        """
        self._stopping = True
        worker = self._worker
        if not worker or worker.done():
            return
        if not self.is_busy:
            worker.cancel()
        done, _ = await asyncio.wait({worker}, timeout=timeout)
        if not done:
            log("WARN", "render_worker_stop_timeout", "Render worker did not stop in time, cancelling",
                active_job=self._active_job)
            worker.cancel()
            await asyncio.wait({worker})
        if not worker.cancelled() and worker.exception() is not None:
            log("ERROR", "render_worker_crashed", "Render worker exited with an error",
                error=repr(worker.exception()))
        log("INFO", "render_worker_stopped", "Render worker stopped", pending=self.depth)

    async def join(self):
        """Waits until every request enqueued so far has reached a terminal state."""
        await self._queue.join()

    async def _run(self):
        while not self._stopping:
            request = await self._queue.get()
            self._active_job = request.job_id
            metrics.RENDER_QUEUE_DEPTH.set(self.depth)
            try:
                await self.orchestrator.run(request)
            except Exception as e:
                log("ERROR", "render_worker_error", "Unhandled error while rendering",
                    job_id=request.job_id, error=str(e), tb=traceback.format_exc())
                self._fail_unfinished(request.job_id, f"Internal render error: {e}")
            finally:
                self._active_job = None
                self._queue.task_done()

    def _fail_unfinished(self, job_id: str, detail: str):
        job = self.store.get(job_id)
        if job.status.is_terminal:
            return
        try:
            if job.status == JobStatus.QUEUED:
                self.store.mark_rendering(job_id)
            self.store.mark_failed(job_id, detail)
        except InvalidTransitionError as e:
            log("ERROR", "render_worker_state_error", "Could not fail job", job_id=job_id, error=str(e))
