from prometheus_client import start_http_server, Counter, Gauge, Histogram
import threading

from .logger import log

# Metrics
RENDER_JOBS_TOTAL = Counter("layerflow_render_jobs_total", "Render jobs that reached a terminal state", ["status"])
RENDER_QUEUE_DEPTH = Gauge("layerflow_render_queue_depth", "Render requests waiting for the worker")
RENDER_ACTIVE = Gauge("layerflow_render_active", "1 while a render subprocess is running")
RENDER_DURATION = Histogram(
    "layerflow_render_duration_seconds",
    "Wall-clock duration of render subprocesses",
    buckets=(5, 10, 20, 30, 45, 60, 90, 120, 180),
)
DETECTIONS_TOTAL = Counter("layerflow_detections_total", "Layer detection runs", ["outcome"])
CLEANUP_FAILURES = Counter("layerflow_cleanup_failures_total", "Staged files that could not be removed")
RESTART_COUNTER = Counter("layerflow_browser_restarts_total", "Total browser restarts")
BROWSER_UP = Gauge("layerflow_browser_up", "1 if browser is up, 0 otherwise")

_metrics_server_started = False
_metrics_lock = threading.Lock()


def start_metrics_server(port: int):
    global _metrics_server_started
    if port <= 0:
        return
    with _metrics_lock:
        if _metrics_server_started:
            return
        start_http_server(port)
        _metrics_server_started = True
        log("INFO", "metrics_server_started", f"Prometheus metrics server started on port {port}")
