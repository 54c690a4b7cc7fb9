# detection/store.py
import io
import json
import os
import shutil
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from core import paths
from core.errors import DetectionNotFoundError, InvalidInputError
from core.logger import log
from .views import DetectionResult, Dimensions

UPLOAD_FORMATS = {"JPEG", "PNG", "WEBP"}
UPLOAD_METHOD = "upload"


class DetectionStore:
    """
    File-backed store for detection results and their screenshots.
    A detection id names both `<root>/detections/<id>.json` and
    `<root>/screenshots/<id>.png`; the render orchestrator resolves its
    detection reference through here.
    """

    def __init__(self, root: Optional[str] = None):
        self.root = root

    def detection_path(self, detection_id: str) -> str:
        return paths.detection_path(detection_id, self.root)

    def screenshot_path(self, detection_id: str) -> str:
        return paths.screenshot_path(detection_id, self.root)

    def exists(self, detection_id: str) -> bool:
        return os.path.exists(self.detection_path(detection_id))

    def save(self, result: DetectionResult, screenshot_src: Optional[str] = None,
             detection_id: Optional[str] = None) -> str:
        detection_id = detection_id or paths.new_id()
        with open(self.detection_path(detection_id), "w", encoding="utf-8") as f:
            json.dump(result.to_json_dict(), f, indent=2)
        if screenshot_src and os.path.exists(screenshot_src):
            shutil.copyfile(screenshot_src, self.screenshot_path(detection_id))
        log("INFO", "detection_saved", "Detection stored",
            detection_id=detection_id, layers=len(result.layers), method=result.method)
        return detection_id

    def load(self, detection_id: str) -> DetectionResult:
        path = self.detection_path(detection_id)
        if not os.path.exists(path):
            raise DetectionNotFoundError(f"detection {detection_id} not found")
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        try:
            return DetectionResult.model_validate(data)
        except ValidationError as e:
            raise InvalidInputError(f"stored detection {detection_id} is malformed: {e}")

    def save_upload(self, data: bytes) -> Tuple[str, DetectionResult]:
        """
        Stores an uploaded screenshot (normalised to PNG) together with an
        empty detection record carrying the image's real dimensions.
        """
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidInputError(f"upload is not a readable image: {e}")
        source_format = img.format
        if source_format not in UPLOAD_FORMATS:
            raise InvalidInputError("Only image files (JPEG, PNG, WebP) are allowed")

        detection_id = paths.new_id()
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")
        img.save(self.screenshot_path(detection_id), format="PNG", optimize=True)

        result = DetectionResult(
            layers=[],
            dimensions=Dimensions(width=img.size[0], height=img.size[1]),
            method=UPLOAD_METHOD,
        )
        self.save(result, detection_id=detection_id)
        log("INFO", "upload_saved", f"Stored uploaded screenshot {img.size[0]}x{img.size[1]}",
            detection_id=detection_id, source_format=source_format)
        return detection_id, result
