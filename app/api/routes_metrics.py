from fastapi import APIRouter, Response

from app import metrics

router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    # Counters are incremented at event points; just expose the registry.
    payload, content_type = metrics.render_latest()
    return Response(payload, media_type=content_type)
