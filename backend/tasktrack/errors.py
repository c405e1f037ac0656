from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

log = logging.getLogger(__name__)


class TrackingError(RuntimeError):
    """Base class for failures raised by the tracking engine.

    ``context`` carries the identifiers and current state a caller needs to
    decide whether to retry (task id, entry id, entry status, ...).
    """

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {key: value for key, value in context.items() if value is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} ({details})"

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, **self.context}


class NotFoundError(TrackingError):
    status_code = status.HTTP_404_NOT_FOUND


class NoActiveTimerError(TrackingError):
    status_code = status.HTTP_409_CONFLICT


class ValidationError(TrackingError):
    status_code = 422


class InvalidTransitionError(TrackingError):
    status_code = status.HTTP_409_CONFLICT


async def tracking_error_handler(request: Request, exc: TrackingError) -> JSONResponse:
    log.warning(
        "Rejected %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TrackingError, tracking_error_handler)
