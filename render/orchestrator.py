# render/orchestrator.py
import asyncio
import json
import os
import re
import shutil
import signal
import time
from collections import deque
from typing import Deque, List, Optional, Sequence

from core import config, metrics, paths
from core.errors import CleanupFailureError, LayerFlowError, RenderFailureError
from core.logger import log
from detection.store import DetectionStore
from .job_store import JobStore
from .views import RenderRequest

# "Rendered 45/150", "Encoded frame 12/150", ...
PROGRESS_RE = re.compile(r"(?:render|encod|frame)\D{0,20}?(\d+)\s*/\s*(\d+)", re.IGNORECASE)
STDERR_TAIL_LINES = 20
STREAM_LIMIT = 1024 * 1024


class RenderOrchestrator:
    """
    Drives one dequeued render request to a terminal state.

    Inputs are staged into the renderer's public directory under the job id,
    the renderer runs as an argument-vector subprocess with a wall-clock
    timeout, and every staged file is removed before the job is marked
    complete or failed.
    """

    def __init__(
        self,
        store: JobStore,
        detections: DetectionStore,
        renderer_command: Optional[Sequence[str]] = None,
        renderer_dir: Optional[str] = None,
        public_dir: Optional[str] = None,
        temp_dir: Optional[str] = None,
        videos_root: Optional[str] = None,
        composition_id: str = config.RENDER_COMPOSITION_ID,
        timeout_sec: float = config.RENDER_TIMEOUT_SEC,
        concurrency: int = config.RENDER_CONCURRENCY,
        extra_args: Optional[Sequence[str]] = None,
        animation_preset: str = config.ANIMATION_PRESET,
    ):
        self.store = store
        self.detections = detections
        self.renderer_command = list(renderer_command or config.RENDERER_COMMAND)
        self.renderer_dir = renderer_dir or config.RENDERER_DIR
        self.public_dir = public_dir or config.RENDERER_PUBLIC_DIR
        self.temp_dir = temp_dir
        self.videos_root = videos_root
        self.composition_id = composition_id
        self.timeout_sec = timeout_sec
        self.concurrency = concurrency
        self.extra_args = list(config.RENDERER_EXTRA_ARGS if extra_args is None else extra_args)
        self.animation_preset = animation_preset

    async def run(self, request: RenderRequest) -> None:
        job_id = request.job_id
        self.store.mark_rendering(job_id)
        log("INFO", "render_job_start", "Starting render", job_id=job_id, detection_id=request.detection_id,
            animations=len(request.animation_config.animations))

        staged: List[str] = []
        output_path = paths.video_path(job_id, self.videos_root)
        error: Optional[str] = None
        rendered = False
        start = time.time()
        metrics.RENDER_ACTIVE.set(1)
        try:
            props_path = self.stage(request, staged)
            await self.invoke(job_id, props_path, output_path)
            if not os.path.exists(output_path):
                raise RenderFailureError("Renderer exited with code 0 but wrote no video")
            rendered = True
        except RenderFailureError as e:
            error = str(e)
        except (OSError, LayerFlowError) as e:
            error = f"Could not stage render inputs: {e}"
        finally:
            if not rendered:
                # a failed or interrupted render may leave a truncated video behind
                staged.append(output_path)
            self.cleanup(job_id, staged)
            metrics.RENDER_ACTIVE.set(0)
            metrics.RENDER_DURATION.observe(time.time() - start)

        if error:
            self.store.mark_failed(job_id, error)
            metrics.RENDER_JOBS_TOTAL.labels(status="failed").inc()
            log("ERROR", "render_job_failed", "Render failed", job_id=job_id, error=error)
        else:
            self.store.mark_complete(job_id, output_path)
            metrics.RENDER_JOBS_TOTAL.labels(status="complete").inc()
            log("INFO", "render_job_complete", "Render complete", job_id=job_id, output=output_path,
                duration_ms=int((time.time() - start) * 1000))

    # --------------------------
    # Staging
    # --------------------------
    def stage(self, request: RenderRequest, staged: List[str]) -> str:
        """
        Copies the job's inputs where the renderer reads them and writes the
        input-properties file. Every path is appended to `staged` as soon as it
        exists so a partial failure still gets cleaned up.
        """
        job_id = request.job_id
        os.makedirs(self.public_dir, exist_ok=True)
        temp_dir = paths.temp_dir(self.temp_dir)

        config_path = os.path.join(temp_dir, f"{job_id}-config.json")
        self._write_json(config_path, request.animation_config.to_json_dict(), staged)

        screenshot_name = f"{job_id}-screenshot.png"
        detection_name = f"{job_id}-detection.json"
        config_name = f"{job_id}-config.json"

        self._copy(self.detections.screenshot_path(request.detection_id),
                   os.path.join(self.public_dir, screenshot_name), staged)
        self._copy(self.detections.detection_path(request.detection_id),
                   os.path.join(self.public_dir, detection_name), staged)
        self._copy(config_path, os.path.join(self.public_dir, config_name), staged)

        # public/ file names, resolved by the composition via staticFile()
        props = {
            "screenshotUrl": screenshot_name,
            "detectionDataPath": detection_name,
            "animationConfigPath": config_name,
            "animationPreset": self.animation_preset,
        }
        props_path = os.path.join(temp_dir, f"{job_id}-props.json")
        self._write_json(props_path, props, staged)
        log("DEBUG", "render_staged", "Staged render inputs", job_id=job_id, files=staged)
        return props_path

    @staticmethod
    def _write_json(path: str, payload: dict, staged: List[str]) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        staged.append(path)

    @staticmethod
    def _copy(src: str, dst: str, staged: List[str]) -> None:
        shutil.copyfile(src, dst)
        staged.append(dst)

    # --------------------------
    # Invocation
    # --------------------------
    def build_argv(self, props_path: str, output_path: str) -> List[str]:
        return [
            *self.renderer_command,
            self.composition_id,
            output_path,
            f"--props={props_path}",
            f"--timeout={int(self.timeout_sec * 1000)}",
            f"--concurrency={self.concurrency}",
            *self.extra_args,
        ]

    async def invoke(self, job_id: str, props_path: str, output_path: str) -> None:
        argv = self.build_argv(props_path, output_path)
        log("INFO", "render_invoke", "Launching renderer", job_id=job_id, argv=argv, cwd=self.renderer_dir)
        try:
            # own process group so a kill reaches the renderer's helpers too
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=self.renderer_dir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
                start_new_session=True,
            )
        except OSError as e:
            raise RenderFailureError(f"Could not launch renderer: {e}")

        stderr_tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        pumps = [
            asyncio.ensure_future(self._pump(proc.stdout, job_id, "stdout", None)),
            asyncio.ensure_future(self._pump(proc.stderr, job_id, "stderr", stderr_tail)),
        ]
        try:
            await asyncio.wait_for(asyncio.gather(*pumps, proc.wait()), timeout=self.timeout_sec)
        except asyncio.TimeoutError:
            log("WARN", "render_timeout", "Renderer exceeded time limit", job_id=job_id, pid=proc.pid)
            raise RenderFailureError(f"Render timed out after {self.timeout_sec:g}s")
        finally:
            for pump in pumps:
                pump.cancel()
            await self._kill(proc, job_id)

        code = proc.returncode
        if code != 0:
            detail = f"Process exited with code {code}"
            if stderr_tail:
                detail += ": " + " | ".join(stderr_tail)
            raise RenderFailureError(detail)

    async def _pump(self, stream: asyncio.StreamReader, job_id: str, name: str,
                    tail: Optional[Deque[str]]) -> None:
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                # line longer than STREAM_LIMIT; readline already dropped the buffered part
                log("DEBUG", "render_output_overlong", "Skipped oversized renderer output line",
                    job_id=job_id, stream=name)
                continue
            if not line:
                break
            # progress bars redraw with \r; the last segment is the current state
            text = line.decode("utf-8", errors="replace").rstrip().split("\r")[-1]
            if not text:
                continue
            if tail is not None:
                tail.append(text)
            log("DEBUG", "render_output", text, job_id=job_id, stream=name)
            match = PROGRESS_RE.search(text)
            if match:
                done, total = int(match.group(1)), int(match.group(2))
                if 0 < total and done <= total:
                    self.store.update_progress(job_id, done * 100 // total)

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process, job_id: str) -> None:
        """Kills the renderer's whole process group and reaps the renderer."""
        if proc.returncode is None:
            log("WARN", "render_kill", "Killing renderer process group", job_id=job_id, pid=proc.pid)
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await proc.wait()

    # --------------------------
    # Cleanup
    # --------------------------
    def cleanup(self, job_id: str, staged: List[str]) -> None:
        for path in staged:
            try:
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                failure = CleanupFailureError(f"could not remove {path}: {e}")
                metrics.CLEANUP_FAILURES.inc()
                log("WARN", "render_cleanup_failed", str(failure), job_id=job_id, path=path)
        log("DEBUG", "render_cleanup_done", "Removed staged files", job_id=job_id, count=len(staged))
