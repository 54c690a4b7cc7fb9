import asyncio

import pytest

from render.job_store import JobStore
from render.queue import RenderQueue
from render.views import AnimationConfig, JobStatus


class FakeOrchestrator:
    """Stands in for the renderer: records call order and overlap."""

    def __init__(self, store, delay=0.01, explode=()):
        self.store = store
        self.delay = delay
        self.explode = set(explode)
        self.calls = []
        self.running = 0
        self.max_running = 0

    async def run(self, request):
        self.calls.append(request.job_id)
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            self.store.mark_rendering(request.job_id)
            await asyncio.sleep(self.delay)
            if request.detection_id in self.explode:
                raise RuntimeError("renderer crashed")
            if request.detection_id.startswith("bad"):
                self.store.mark_failed(request.job_id, "Process exited with code 1")
            else:
                self.store.mark_complete(request.job_id, f"/videos/{request.job_id}.mp4")
        finally:
            self.running -= 1


def make_queue(**kwargs):
    store = JobStore(retention_sec=0)
    orchestrator = FakeOrchestrator(store, **kwargs)
    return RenderQueue(store, orchestrator), store, orchestrator


@pytest.mark.asyncio
async def test_back_to_back_submissions_get_positions():
    queue, store, _ = make_queue()
    config = AnimationConfig()

    jobs = [queue.enqueue(f"det-{i}", config) for i in range(3)]

    assert [j.status for j in jobs] == [JobStatus.RENDERING, JobStatus.QUEUED, JobStatus.QUEUED]
    assert [j.queue_position for j in jobs] == [0, 1, 2]

    await queue.join()
    assert all(store.get(j.job_id).status == JobStatus.COMPLETE for j in jobs)
    await queue.stop()


@pytest.mark.asyncio
async def test_renders_run_one_at_a_time_in_fifo_order():
    queue, _, orchestrator = make_queue(delay=0.02)
    jobs = [queue.enqueue(f"det-{i}", AnimationConfig()) for i in range(4)]

    await queue.join()

    assert orchestrator.max_running == 1
    assert orchestrator.calls == [j.job_id for j in jobs]
    await queue.stop()


@pytest.mark.asyncio
async def test_submission_while_busy_is_queued():
    queue, store, _ = make_queue(delay=0.05)
    first = queue.enqueue("det-1", AnimationConfig())
    await asyncio.sleep(0.01)

    assert queue.is_busy
    assert queue.active_job == first.job_id
    second = queue.enqueue("det-2", AnimationConfig())
    assert second.status == JobStatus.QUEUED
    assert second.queue_position == 1

    await queue.join()
    assert store.get(second.job_id).status == JobStatus.COMPLETE
    await queue.stop()


@pytest.mark.asyncio
async def test_failed_job_does_not_block_the_next():
    queue, store, _ = make_queue()
    bad = queue.enqueue("bad-detection", AnimationConfig())
    good = queue.enqueue("det-2", AnimationConfig())

    await queue.join()

    failed = store.get(bad.job_id)
    assert failed.status == JobStatus.FAILED
    assert "code 1" in failed.error_detail
    assert store.get(good.job_id).status == JobStatus.COMPLETE
    await queue.stop()


@pytest.mark.asyncio
async def test_worker_survives_unexpected_errors():
    queue, store, _ = make_queue(explode={"det-boom"})
    boom = queue.enqueue("det-boom", AnimationConfig())
    after = queue.enqueue("det-ok", AnimationConfig())

    await queue.join()

    crashed = store.get(boom.job_id)
    assert crashed.status == JobStatus.FAILED
    assert "renderer crashed" in crashed.error_detail
    assert store.get(after.job_id).status == JobStatus.COMPLETE
    assert not queue.is_busy
    await queue.stop()


@pytest.mark.asyncio
async def test_idle_queue_reports_nothing_pending():
    queue, _, _ = make_queue()
    job = queue.enqueue("det-1", AnimationConfig())
    await queue.join()

    assert queue.depth == 0
    assert queue.active_job is None
    assert queue.get_status(job.job_id).progress == 100
    await queue.stop()


@pytest.mark.asyncio
async def test_stop_waits_for_active_render():
    queue, store, _ = make_queue(delay=0.05)
    job = queue.enqueue("det-1", AnimationConfig())
    await asyncio.sleep(0.01)

    await queue.stop(timeout=2)

    assert store.get(job.job_id).status == JobStatus.COMPLETE


@pytest.mark.asyncio
async def test_stop_cancels_idle_worker():
    queue, _, _ = make_queue()
    queue.enqueue("det-1", AnimationConfig())
    await queue.join()
    worker = queue._worker

    await queue.stop()

    assert worker.cancelled()


@pytest.mark.asyncio
async def test_cancelling_stop_leaves_active_render_running():
    queue, store, _ = make_queue(delay=0.1)
    job = queue.enqueue("det-1", AnimationConfig())
    await asyncio.sleep(0.01)

    stopper = asyncio.create_task(queue.stop(timeout=5))
    await asyncio.sleep(0.01)
    stopper.cancel()
    with pytest.raises(asyncio.CancelledError):
        await stopper

    assert not queue._worker.done()
    await queue.join()
    assert store.get(job.job_id).status == JobStatus.COMPLETE


@pytest.mark.asyncio
async def test_stop_timeout_cancels_stuck_worker():
    queue, store, _ = make_queue(delay=5)
    job = queue.enqueue("det-1", AnimationConfig())
    await asyncio.sleep(0.01)
    worker = queue._worker

    await queue.stop(timeout=0.05)

    assert worker.cancelled()
    assert store.get(job.job_id).status == JobStatus.RENDERING
