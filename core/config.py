# core/config.py
import os
import shlex

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Logging
LOG_LEVEL = os.getenv("LF_LOG_LEVEL", "INFO").upper()

# Storage
UPLOADS_ROOT = os.getenv("LF_UPLOADS_ROOT", os.path.join(os.getcwd(), "uploads"))
TEMP_ROOT = os.getenv("LF_TEMP_ROOT", os.path.join(os.getcwd(), "temp"))
MAX_UPLOAD_BYTES = int(os.getenv("LF_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# Browser / capture
HEADLESS = _env_bool("LF_HEADLESS", True)
BROWSER_EXEC_PATH = os.getenv("LF_BROWSER_EXEC_PATH") or None
NAVIGATION_TIMEOUT_MS = int(os.getenv("LF_NAVIGATION_TIMEOUT_MS", "30000"))
SETTLE_DELAY_MS = int(os.getenv("LF_SETTLE_DELAY_MS", "2000"))
HEALTH_PROBE_INTERVAL_SEC = int(os.getenv("LF_HEALTH_PROBE_INTERVAL_SEC", "30"))
HEALTH_PROBE_TIMEOUT_SEC = int(os.getenv("LF_HEALTH_PROBE_TIMEOUT_SEC", "5"))
RESTART_BACKOFF_BASE_SEC = float(os.getenv("LF_RESTART_BACKOFF_BASE_SEC", "1"))
RESTART_BACKOFF_MAX_SEC = float(os.getenv("LF_RESTART_BACKOFF_MAX_SEC", "30"))

# External renderer
RENDERER_DIR = os.getenv("LF_RENDERER_DIR", os.path.join(os.getcwd(), "renderer"))
RENDERER_PUBLIC_DIR = os.getenv("LF_RENDERER_PUBLIC_DIR", os.path.join(RENDERER_DIR, "public"))
RENDERER_COMMAND = shlex.split(os.getenv("LF_RENDERER_COMMAND", "npx remotion render"))
RENDERER_EXTRA_ARGS = shlex.split(
    os.getenv("LF_RENDERER_EXTRA_ARGS", "--gl=angle --ignore-gpu-blocklist --log=verbose")
)
RENDER_COMPOSITION_ID = os.getenv("LF_RENDER_COMPOSITION_ID", "ExplodedUI")
RENDER_TIMEOUT_SEC = float(os.getenv("LF_RENDER_TIMEOUT_SEC", "120"))
RENDER_CONCURRENCY = int(os.getenv("LF_RENDER_CONCURRENCY", "1"))
ANIMATION_PRESET = os.getenv("LF_ANIMATION_PRESET", "focus-layer")

# Job records
JOB_RETENTION_SEC = int(os.getenv("LF_JOB_RETENTION_SEC", "3600"))

# Observability / API
API_HOST = os.getenv("LF_HOST", "0.0.0.0")
API_PORT = int(os.getenv("LF_PORT", os.getenv("PORT", "3001")))
PROMETHEUS_METRICS_PORT = int(os.getenv("LF_PROMETHEUS_PORT", "0"))
CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("LF_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]
