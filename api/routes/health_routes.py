from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from ..deps import get_browser_manager, get_render_queue

router = APIRouter()


@router.get("/health")
def health(bm=Depends(get_browser_manager), queue=Depends(get_render_queue)):
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "browser": bm.get_health() if bm else {"browser_up": False},
        "renderQueue": {
            "pending": queue.depth if queue else 0,
            "activeJob": queue.active_job if queue else None,
        },
    }
