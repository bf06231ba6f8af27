import time
from typing import Any, Callable, Dict

import structlog
from django.conf import settings
from django.core.cache import cache
from django.db import connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone

from modules.core.models import OutboxEvent

logger = structlog.get_logger(__name__)


def _timed(probe: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    start = time.monotonic()
    details = probe()
    return {
        "status": "up",
        "response_time_ms": round((time.monotonic() - start) * 1000, 2),
        **details,
    }


def _probe_database() -> Dict[str, Any]:
    conn = connections["default"]
    conn.ensure_connection()
    with conn.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return {}


def _probe_cache() -> Dict[str, Any]:
    # Throttle counters live here; a dead cache disables rate limiting.
    cache.set("_health_check", "ok", 10)
    if cache.get("_health_check") != "ok":
        raise ConnectionError("Cache read failed")
    return {}


def _probe_outbox() -> Dict[str, Any]:
    return {"backlog": OutboxEvent.objects.deliverable().count()}


def health_check(request: HttpRequest) -> JsonResponse:
    """Liveness of the database and cache, plus the outbox backlog.

    The payment gateway is reported by its configured backend, not probed.
    """
    services: Dict[str, Dict[str, Any]] = {}
    overall_healthy = True

    for name, probe in (("database", _probe_database), ("cache", _probe_cache)):
        try:
            services[name] = _timed(probe)
        except Exception as exc:  # noqa: BLE001 - reported as down
            services[name] = {"status": "down"}
            overall_healthy = False
            logger.error("health_check.service_down", service=name, error=str(exc))

    if services["database"]["status"] == "up":
        services["outbox"] = _timed(_probe_outbox)

    services["payment_gateway"] = {
        "status": "configured",
        "backend": settings.PAYMENT_GATEWAY_BACKEND.rsplit(".", 1)[-1],
    }

    status_code = 200 if overall_healthy else 503

    logger.info(
        "health_check.completed", status="healthy" if overall_healthy else "unhealthy"
    )

    return JsonResponse(
        {
            "status": "healthy" if overall_healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=status_code,
    )
