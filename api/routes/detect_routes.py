# api/routes/detect_routes.py
import os
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import AnyHttpUrl, BaseModel, ConfigDict, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from capture.browser_profile import CaptureProfile
from core import config, paths
from core.errors import BrowserHealthError, DetectionUnavailableError, InvalidInputError
from core.logger import log
from ..deps import get_page_capture, get_detection_store

router = APIRouter()
_url_adapter = TypeAdapter(AnyHttpUrl)


class DetectUrlRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    is_mobile: bool = True
    dismiss_popups: bool = True
    scroll: bool = False


def _detection_response(detection_id: str, result) -> dict:
    return {
        "detectionId": detection_id,
        "screenshotUrl": f"/api/files/screenshots/{detection_id}.png",
        "detectionData": result.to_json_dict(),
    }


@router.post("/detect-url")
async def detect_url(req: DetectUrlRequest, capture=Depends(get_page_capture), store=Depends(get_detection_store)):
    try:
        _url_adapter.validate_python(req.url)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid URL format")

    profile_kwargs = {"dismiss_popups": req.dismiss_popups, "scroll": req.scroll}
    profile = CaptureProfile.mobile(**profile_kwargs) if req.is_mobile else CaptureProfile.desktop(**profile_kwargs)
    log("INFO", "detect_url_request", f"Detecting layers from {req.url}", profile=profile.name)

    detection_id = paths.new_id()
    screenshot_path = store.screenshot_path(detection_id)
    try:
        result, _ = await capture.capture(req.url, screenshot_path, profile)
    except BrowserHealthError as e:
        raise HTTPException(status_code=503, detail=f"Browser not available: {e}")
    except DetectionUnavailableError as e:
        if os.path.exists(screenshot_path):
            os.remove(screenshot_path)
        raise HTTPException(status_code=502, detail=f"Detection failed: {e}")

    store.save(result, detection_id=detection_id)
    return _detection_response(detection_id, result)


@router.post("/upload")
async def upload_screenshot(file: UploadFile = File(...), store=Depends(get_detection_store)):
    data = await file.read(config.MAX_UPLOAD_BYTES + 1)
    if not data:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large")
    try:
        detection_id, result = store.save_upload(data)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _detection_response(detection_id, result)
