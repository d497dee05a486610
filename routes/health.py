from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from services.wiring import AnalyticsServices, get_services

router = APIRouter()

SERVICE_NAME = "analytics-service"


@router.get("/health")
def health_check(request: Request, services: AnalyticsServices = Depends(get_services)):
    """Reports whether the backing store accepts writes."""
    settings = request.app.state.settings
    result = services.store.ping(settings.environment)
    if result["ok"]:
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "firestore": "connected",
            "queue": services.refresh_queue.stats(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    return JSONResponse(status_code=503, content={
        "status": "error",
        "service": SERVICE_NAME,
        "firestore": "unreachable",
        "message": result["message"],
    })
