# api/routes/render_routes.py
import os
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from core import paths
from core.errors import DetectionNotFoundError, InvalidInputError, NotFoundError
from core.logger import log
from render.views import AnimationConfig, JobStatus
from ..deps import get_detection_store, get_render_queue

router = APIRouter()


class RenderRequestBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    detection_id: Optional[str] = None
    animation_config: Optional[Dict[str, Any]] = None


def submit_render(body: RenderRequestBody, store, queue):
    """Validates a render submission; nothing is recorded unless it is accepted."""
    if not body.detection_id:
        raise InvalidInputError("detectionId is required")
    paths.check_id(body.detection_id)
    if body.animation_config is None:
        raise InvalidInputError("animationConfig is required")
    try:
        animation_config = AnimationConfig.model_validate(body.animation_config)
    except ValidationError as e:
        raise InvalidInputError(f"invalid animationConfig: {e.errors(include_url=False)}")

    detection = store.load(body.detection_id)
    animation_config.check_layers(detection)
    return queue.enqueue(body.detection_id, animation_config)


@router.post("/render")
async def render(body: RenderRequestBody, store=Depends(get_detection_store), queue=Depends(get_render_queue)):
    try:
        job = submit_render(body, store, queue)
    except DetectionNotFoundError:
        raise HTTPException(status_code=404, detail="Detection not found")
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    log("INFO", "render_request", "Render submitted", job_id=job.job_id, detection_id=body.detection_id)
    return {"jobId": job.job_id, "status": job.status.value, "queuePosition": job.queue_position}


@router.get("/render-status/{job_id}")
def render_status(job_id: str, queue=Depends(get_render_queue)):
    try:
        job = queue.get_status(job_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    status = job.to_status()
    if job.status == JobStatus.COMPLETE:
        status["videoUrl"] = f"/api/download/{job_id}"
    return status


@router.get("/download/{job_id}")
def download(job_id: str, queue=Depends(get_render_queue)):
    try:
        job = queue.get_status(job_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    if job.status != JobStatus.COMPLETE or not job.video_location or not os.path.exists(job.video_location):
        raise HTTPException(status_code=404, detail="Video not found or still rendering")
    return FileResponse(job.video_location, media_type="video/mp4",
                        filename=f"ui-animation-{job_id}.mp4")
