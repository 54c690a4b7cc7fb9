from capture.browser_manager import BrowserManager
from capture.page_capture import PageCapture
from core import config, metrics
from core.errors import BrowserStartError
from core.logger import log
from detection.store import DetectionStore
from render.job_store import JobStore
from render.orchestrator import RenderOrchestrator
from render.queue import RenderQueue

_bm = None
_capture = None
_detections = None
_queue = None


async def init_services(app, start_browser: bool = True):
    global _bm, _capture, _detections, _queue
    _detections = DetectionStore()
    store = JobStore()
    _queue = RenderQueue(store, RenderOrchestrator(store, _detections))
    _queue.start()

    _bm = BrowserManager()
    if start_browser:
        try:
            await _bm.start()
        except BrowserStartError as e:
            log("ERROR", "browser_unavailable",
                "BrowserManager failed to start; URL detection disabled", error=str(e))
    _capture = PageCapture(_bm)

    try:
        metrics.start_metrics_server(config.PROMETHEUS_METRICS_PORT)
    except OSError as e:
        log("WARN", "metrics_start_failed", "Could not start Prometheus metrics server", error=str(e))


async def shutdown_services():
    if _queue:
        await _queue.stop(timeout=config.RENDER_TIMEOUT_SEC + 5)
    if _bm:
        await _bm.stop()


def get_browser_manager():
    return _bm


def get_page_capture():
    return _capture


def get_detection_store():
    return _detections


def get_render_queue():
    return _queue
