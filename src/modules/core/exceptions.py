"""Standard error envelope for DRF-level failures.

Every error raised by DRF itself (authentication, parsing, serializer
validation, throttling) is rendered as::

    {"type": "validation_error", "errors": [{"code": ..., "detail": ..., "attr": ...}]}

Domain errors are translated by the views, which already know the
right status code and the detail the caller needs to act on.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from rest_framework import exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = structlog.get_logger(__name__)


def standard_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, exceptions.ValidationError):
        error_type = "validation_error"
    elif response.status_code >= 500:
        error_type = "server_error"
    else:
        error_type = "client_error"

    errors = _flatten(exc.detail if isinstance(exc, exceptions.APIException) else response.data)
    response.data = {"type": error_type, "errors": errors}
    logger.info(
        "api.error",
        status_code=response.status_code,
        error_type=error_type,
        error_count=len(errors),
    )
    return response


def _flatten(detail: Any, attr: Optional[str] = None) -> List[Dict[str, Any]]:
    if isinstance(detail, dict):
        errors: List[Dict[str, Any]] = []
        for key, value in detail.items():
            nested = key if attr is None else f"{attr}.{key}"
            if key in ("detail", "non_field_errors") and attr is None:
                nested = None
            errors.extend(_flatten(value, nested))
        return errors
    if isinstance(detail, list):
        errors = []
        for index, item in enumerate(detail):
            if isinstance(item, (dict, list)):
                errors.extend(_flatten(item, f"{attr}.{index}" if attr else str(index)))
            else:
                errors.extend(_flatten(item, attr))
        return errors
    return [
        {
            "code": getattr(detail, "code", "error"),
            "detail": str(detail),
            "attr": attr,
        }
    ]
