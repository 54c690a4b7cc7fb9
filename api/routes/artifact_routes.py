# api/routes/artifact_routes.py
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from core.errors import InvalidInputError
from ..deps import get_detection_store
import os

router = APIRouter()

_KINDS = {
    "screenshots": ("screenshot_path", ".png"),
    "detections": ("detection_path", ".json"),
}


@router.get("/files/{kind}/{filename}")
def get_artifact(kind: str, filename: str, store=Depends(get_detection_store)):
    if kind not in _KINDS:
        raise HTTPException(status_code=404, detail="unknown artifact kind")
    resolver, ext = _KINDS[kind]
    detection_id, file_ext = os.path.splitext(os.path.basename(filename))
    if file_ext != ext or not detection_id:
        raise HTTPException(status_code=404, detail="artifact not found")
    try:
        path = getattr(store, resolver)(detection_id)
    except InvalidInputError:
        raise HTTPException(status_code=404, detail="artifact not found")
    if not os.path.exists(path):
        raise HTTPException(status_code=404, detail="artifact not found")
    return FileResponse(path, filename=f"{detection_id}{ext}")
