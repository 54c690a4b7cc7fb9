# core/paths.py
import os
import uuid
from typing import Optional

from . import config
from .errors import InvalidInputError


def new_id() -> str:
    return str(uuid.uuid4())


def check_id(value: str) -> str:
    """Returns `value` if it is a canonical id as produced by `new_id`, else raises InvalidInputError."""
    try:
        canonical = str(uuid.UUID(value))
    except (TypeError, ValueError, AttributeError):
        canonical = None
    if canonical != value:
        raise InvalidInputError(f"invalid id: {value!r}")
    return value


def _ensure(path: str) -> str:
    os.makedirs(path, exist_ok=True)
    return path


def detections_dir(root: Optional[str] = None) -> str:
    return _ensure(os.path.join(root or config.UPLOADS_ROOT, "detections"))


def screenshots_dir(root: Optional[str] = None) -> str:
    return _ensure(os.path.join(root or config.UPLOADS_ROOT, "screenshots"))


def videos_dir(root: Optional[str] = None) -> str:
    return _ensure(os.path.join(root or config.UPLOADS_ROOT, "videos"))


def temp_dir(root: Optional[str] = None) -> str:
    return _ensure(root or config.TEMP_ROOT)


def detection_path(detection_id: str, root: Optional[str] = None) -> str:
    check_id(detection_id)
    return os.path.join(detections_dir(root), f"{detection_id}.json")


def screenshot_path(detection_id: str, root: Optional[str] = None) -> str:
    check_id(detection_id)
    return os.path.join(screenshots_dir(root), f"{detection_id}.png")


def video_path(job_id: str, root: Optional[str] = None) -> str:
    check_id(job_id)
    return os.path.join(videos_dir(root), f"{job_id}.mp4")
