import asyncio
import json
import os
import sys
import textwrap

import pytest

from core import paths
from detection.store import DetectionStore
from detection.views import BoundingBox, DetectionResult, Dimensions, Layer
from render.job_store import JobStore
from render.orchestrator import PROGRESS_RE, RenderOrchestrator
from render.queue import RenderQueue
from render.views import AnimationConfig, JobStatus, RenderRequest

# Fake renderer: argv is <composition> <output> --props=... --timeout=... --concurrency=...
RENDERER_PRELUDE = """
import json, os, sys
composition, output = sys.argv[1], sys.argv[2]
props_path = next(a.split("=", 1)[1] for a in sys.argv if a.startswith("--props="))
with open(props_path) as f:
    props = json.load(f)
"""

SUCCESS_BODY = """
seen = {
    "composition": composition,
    "argv": sys.argv[1:],
    "props": props,
    "public": sorted(os.listdir("public")),
}
with open("seen.json", "w") as f:
    json.dump(seen, f)
print("Rendered 75/150", flush=True)
print("Encoded 150/150", flush=True)
with open(output, "wb") as f:
    f.write(b"mp4")
"""

FAIL_BODY = """
print("Bundling...", flush=True)
print("Error: composition ExplodedUI not found", file=sys.stderr, flush=True)
sys.exit(1)
"""

HANG_BODY = """
import time
time.sleep(30)
"""

NO_OUTPUT_BODY = """
print("done", flush=True)
"""

# leaves a helper behind that writes a marker if it outlives the kill
SPAWNING_HANG_BODY = """
import subprocess, time
subprocess.Popen([sys.executable, "-c",
                  "import time; time.sleep(2); open('helper_alive.txt', 'w').write('x')"])
time.sleep(30)
"""

OVERLONG_LINE_BODY = """
sys.stdout.write("x" * (3 * 1024 * 1024))
sys.stdout.flush()
print("", flush=True)
print("Rendered 150/150", flush=True)
with open(output, "wb") as f:
    f.write(b"mp4")
"""

PARTIAL_OUTPUT_BODY = """
with open(output, "wb") as f:
    f.write(b"partial")
print("Error: encoder crashed", file=sys.stderr, flush=True)
sys.exit(1)
"""

# fails for detections of https://fail.example/, records start/end of every render
SERIAL_BODY = """
import time
with open(os.path.join("public", props["detectionDataPath"])) as f:
    detection = json.load(f)
with open("events.log", "a") as f:
    f.write("start\\n")
time.sleep(0.2)
with open("events.log", "a") as f:
    f.write("end\\n")
if "fail.example" in detection.get("url", ""):
    print("Error: could not load screenshot", file=sys.stderr, flush=True)
    sys.exit(1)
with open(output, "wb") as f:
    f.write(b"mp4")
"""


@pytest.fixture
def workspace(tmp_path):
    uploads = tmp_path / "uploads"
    renderer = tmp_path / "renderer"
    (renderer / "public").mkdir(parents=True)
    detections = DetectionStore(root=str(uploads))
    screenshot = tmp_path / "shot.png"
    screenshot.write_bytes(b"\x89PNG fake")
    result = DetectionResult(
        layers=[Layer(element_type="button", label="Go", z_depth=8, is_interactive=True,
                      bounding_box=BoundingBox(x=0, y=0, width=100, height=40))],
        dimensions=Dimensions(width=390, height=844),
    )
    detection_id = detections.save(result, screenshot_src=str(screenshot))
    return {
        "root": tmp_path,
        "renderer": renderer,
        "public": renderer / "public",
        "temp": tmp_path / "temp",
        "uploads": uploads,
        "detections": detections,
        "detection_id": detection_id,
    }


def make_orchestrator(ws, body, timeout_sec=10):
    script = ws["renderer"] / "fake_render.py"
    script.write_text(RENDERER_PRELUDE + textwrap.dedent(body))
    store = JobStore(retention_sec=0)
    orchestrator = RenderOrchestrator(
        store,
        ws["detections"],
        renderer_command=[sys.executable, str(script)],
        renderer_dir=str(ws["renderer"]),
        public_dir=str(ws["public"]),
        temp_dir=str(ws["temp"]),
        videos_root=str(ws["uploads"]),
        timeout_sec=timeout_sec,
        extra_args=[],
    )
    return orchestrator, store


def submit(store, detection_id):
    config = AnimationConfig.model_validate(
        {"animations": [{"layerId": 0, "type": "pop-out", "delay": 5, "duration": 30}]})
    job = store.create(detection_id, JobStatus.RENDERING, queue_position=0)
    return RenderRequest(job.job_id, detection_id, config)


def job_files(directory, job_id):
    if not os.path.isdir(directory):
        return []
    return [name for name in os.listdir(directory) if name.startswith(job_id)]


@pytest.mark.asyncio
async def test_successful_render(workspace):
    orchestrator, store = make_orchestrator(workspace, SUCCESS_BODY)
    request = submit(store, workspace["detection_id"])

    await orchestrator.run(request)

    job = store.get(request.job_id)
    assert job.status == JobStatus.COMPLETE
    assert job.progress == 100
    assert os.path.exists(job.video_location)
    assert job.video_location.endswith(f"{request.job_id}.mp4")

    seen = json.loads((workspace["renderer"] / "seen.json").read_text())
    assert seen["composition"] == "ExplodedUI"
    assert seen["props"] == {
        "screenshotUrl": f"{request.job_id}-screenshot.png",
        "detectionDataPath": f"{request.job_id}-detection.json",
        "animationConfigPath": f"{request.job_id}-config.json",
        "animationPreset": "focus-layer",
    }
    assert seen["public"] == sorted([
        f"{request.job_id}-config.json",
        f"{request.job_id}-detection.json",
        f"{request.job_id}-screenshot.png",
    ])
    assert "--timeout=10000" in seen["argv"]
    assert "--concurrency=1" in seen["argv"]

    assert job_files(workspace["public"], request.job_id) == []
    assert job_files(workspace["temp"], request.job_id) == []


@pytest.mark.asyncio
async def test_staged_config_matches_request(workspace):
    body = """
    with open(os.path.join("public", props["animationConfigPath"])) as f:
        config = json.load(f)
    with open("config-seen.json", "w") as f:
        json.dump(config, f)
    with open(output, "wb") as f:
        f.write(b"mp4")
    """
    orchestrator, store = make_orchestrator(workspace, body)
    request = submit(store, workspace["detection_id"])

    await orchestrator.run(request)

    config = json.loads((workspace["renderer"] / "config-seen.json").read_text())
    assert config == {"animations": [{"layerId": 0, "type": "pop-out", "delay": 5, "duration": 30}]}


@pytest.mark.asyncio
async def test_nonzero_exit_fails_with_stderr_tail(workspace):
    orchestrator, store = make_orchestrator(workspace, FAIL_BODY)
    request = submit(store, workspace["detection_id"])

    await orchestrator.run(request)

    job = store.get(request.job_id)
    assert job.status == JobStatus.FAILED
    assert job.error_detail.startswith("Process exited with code 1")
    assert "composition ExplodedUI not found" in job.error_detail
    assert job.video_location is None
    assert job_files(workspace["public"], request.job_id) == []
    assert job_files(workspace["temp"], request.job_id) == []


@pytest.mark.asyncio
async def test_timeout_kills_renderer(workspace):
    orchestrator, store = make_orchestrator(workspace, HANG_BODY, timeout_sec=0.5)
    request = submit(store, workspace["detection_id"])

    await orchestrator.run(request)

    job = store.get(request.job_id)
    assert job.status == JobStatus.FAILED
    assert job.error_detail == "Render timed out after 0.5s"
    assert job_files(workspace["public"], request.job_id) == []


@pytest.mark.asyncio
async def test_clean_exit_without_video_is_failure(workspace):
    orchestrator, store = make_orchestrator(workspace, NO_OUTPUT_BODY)
    request = submit(store, workspace["detection_id"])

    await orchestrator.run(request)

    job = store.get(request.job_id)
    assert job.status == JobStatus.FAILED
    assert "wrote no video" in job.error_detail


@pytest.mark.asyncio
async def test_missing_renderer_binary(workspace):
    orchestrator, store = make_orchestrator(workspace, SUCCESS_BODY)
    orchestrator.renderer_command = [str(workspace["root"] / "no-such-renderer")]
    request = submit(store, workspace["detection_id"])

    await orchestrator.run(request)

    job = store.get(request.job_id)
    assert job.status == JobStatus.FAILED
    assert job.error_detail.startswith("Could not launch renderer")
    assert job_files(workspace["public"], request.job_id) == []


@pytest.mark.asyncio
async def test_missing_detection_fails_during_staging(workspace):
    orchestrator, store = make_orchestrator(workspace, SUCCESS_BODY)
    request = submit(store, paths.new_id())

    await orchestrator.run(request)

    job = store.get(request.job_id)
    assert job.status == JobStatus.FAILED
    assert job.error_detail.startswith("Could not stage render inputs")
    assert job_files(workspace["temp"], request.job_id) == []
    assert not (workspace["renderer"] / "seen.json").exists()


@pytest.mark.asyncio
async def test_cleanup_happens_before_terminal_status(workspace):
    statuses = []

    class RecordingOrchestrator(RenderOrchestrator):
        def cleanup(self, job_id, staged):
            statuses.append(self.store.get(job_id).status)
            super().cleanup(job_id, staged)

    _, store = make_orchestrator(workspace, SUCCESS_BODY)
    base, _ = make_orchestrator(workspace, SUCCESS_BODY)
    orchestrator = RecordingOrchestrator(
        store, workspace["detections"],
        renderer_command=base.renderer_command,
        renderer_dir=base.renderer_dir,
        public_dir=base.public_dir,
        temp_dir=base.temp_dir,
        videos_root=base.videos_root,
        extra_args=[],
    )
    request = submit(store, workspace["detection_id"])

    await orchestrator.run(request)

    assert statuses == [JobStatus.RENDERING]
    assert store.get(request.job_id).status == JobStatus.COMPLETE


def test_cleanup_tolerates_undeletable_and_missing_files(workspace):
    orchestrator, _ = make_orchestrator(workspace, SUCCESS_BODY)
    removable = workspace["root"] / "a.json"
    removable.write_text("{}")
    undeletable = workspace["root"] / "a-directory"
    undeletable.mkdir()

    orchestrator.cleanup("job-1", [str(undeletable), str(workspace["root"] / "gone.json"), str(removable)])

    assert not removable.exists()
    assert undeletable.exists()


def test_build_argv_shape(workspace):
    orchestrator, _ = make_orchestrator(workspace, SUCCESS_BODY)
    orchestrator.extra_args = ["--gl=angle"]
    argv = orchestrator.build_argv("/tmp/p.json", "/tmp/out.mp4")
    assert argv[-6:] == ["ExplodedUI", "/tmp/out.mp4", "--props=/tmp/p.json",
                         "--timeout=10000", "--concurrency=1", "--gl=angle"]


@pytest.mark.parametrize("line,expected", [
    ("Rendered 45/150", (45, 150)),
    ("Encoded frame 12 / 150", (12, 150)),
    ("Rendering frames (3/10)", (3, 10)),
    ("Bundling 50%", None),
])
def test_progress_pattern(line, expected):
    match = PROGRESS_RE.search(line)
    if expected is None:
        assert match is None
    else:
        assert (int(match.group(1)), int(match.group(2))) == expected


@pytest.mark.asyncio
async def test_timeout_kills_renderer_helpers(workspace):
    orchestrator, store = make_orchestrator(workspace, SPAWNING_HANG_BODY, timeout_sec=1)
    request = submit(store, workspace["detection_id"])

    await orchestrator.run(request)
    await asyncio.sleep(2.5)

    assert store.get(request.job_id).error_detail == "Render timed out after 1s"
    assert not (workspace["renderer"] / "helper_alive.txt").exists()


@pytest.mark.asyncio
async def test_unexpected_error_still_kills_renderer(workspace):
    class BrokenPumpOrchestrator(RenderOrchestrator):
        async def _pump(self, stream, job_id, name, tail):
            raise RuntimeError("log pipe broke")

    base, store = make_orchestrator(workspace, SPAWNING_HANG_BODY)
    orchestrator = BrokenPumpOrchestrator(
        store, workspace["detections"],
        renderer_command=base.renderer_command,
        renderer_dir=base.renderer_dir,
        public_dir=base.public_dir,
        temp_dir=base.temp_dir,
        videos_root=base.videos_root,
        extra_args=[],
    )
    request = submit(store, workspace["detection_id"])

    with pytest.raises(RuntimeError):
        await orchestrator.run(request)
    await asyncio.sleep(2.5)

    assert not (workspace["renderer"] / "helper_alive.txt").exists()
    assert job_files(workspace["public"], request.job_id) == []


@pytest.mark.asyncio
async def test_overlong_output_line_is_skipped(workspace):
    orchestrator, store = make_orchestrator(workspace, OVERLONG_LINE_BODY)
    request = submit(store, workspace["detection_id"])

    await orchestrator.run(request)

    job = store.get(request.job_id)
    assert job.status == JobStatus.COMPLETE
    assert job.progress == 100


@pytest.mark.asyncio
async def test_failed_render_removes_partial_video(workspace):
    orchestrator, store = make_orchestrator(workspace, PARTIAL_OUTPUT_BODY)
    request = submit(store, workspace["detection_id"])

    await orchestrator.run(request)

    job = store.get(request.job_id)
    assert job.status == JobStatus.FAILED
    assert "encoder crashed" in job.error_detail
    assert not os.path.exists(paths.video_path(request.job_id, str(workspace["uploads"])))


@pytest.mark.asyncio
async def test_queue_drains_real_renders_one_at_a_time(workspace):
    orchestrator, store = make_orchestrator(workspace, SERIAL_BODY)
    queue = RenderQueue(store, orchestrator)
    failing_id = workspace["detections"].save(
        DetectionResult(
            layers=[Layer(element_type="card", label="Card", z_depth=4, is_interactive=False,
                          bounding_box=BoundingBox(x=0, y=0, width=200, height=100))],
            dimensions=Dimensions(width=390, height=844),
            url="https://fail.example/",
        ),
        screenshot_src=str(workspace["root"] / "shot.png"),
    )
    config = AnimationConfig.model_validate({"animations": [{"layerId": 0, "type": "pop-out", "duration": 30}]})

    jobs = [queue.enqueue(failing_id, config)]
    jobs += [queue.enqueue(workspace["detection_id"], config) for _ in range(2)]

    rendering_counts = []

    async def watch():
        while True:
            rendering_counts.append(len(store.jobs([JobStatus.RENDERING])))
            await asyncio.sleep(0.01)

    watcher = asyncio.create_task(watch())
    await asyncio.wait_for(queue.join(), timeout=30)
    watcher.cancel()
    await queue.stop()

    failed, *rest = [store.get(j.job_id) for j in jobs]
    assert failed.status == JobStatus.FAILED
    assert "could not load screenshot" in failed.error_detail
    assert [j.status for j in rest] == [JobStatus.COMPLETE, JobStatus.COMPLETE]
    assert all(os.path.exists(j.video_location) for j in rest)

    assert max(rendering_counts) == 1
    events = (workspace["renderer"] / "events.log").read_text().split()
    assert events == ["start", "end"] * 3
