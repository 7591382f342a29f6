"""Prometheus-compatible metrics endpoint."""

from fastapi import APIRouter, Response

from app.monitoring.metrics import realtime_online_users
from app.monitoring.registry import registry
from parley.realtime import get_room_registry

router = APIRouter(tags=["metrics"])

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4"


@router.get("/metrics", response_class=Response)
def export_metrics() -> Response:
    """Expose collected metrics, refreshing the presence gauge first."""

    realtime_online_users.set(len(get_room_registry().online_users()))
    return Response(content=registry.render(), media_type=PROMETHEUS_CONTENT_TYPE)
