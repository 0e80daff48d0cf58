"""Error taxonomy for the streak engine and its JSON error handlers."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class TransientSyncError(AppError):
    """
    A read or write against the task record store failed (network, timeout,
    locked database). Local optimistic state is kept; the next triggering
    event retries naturally.
    """

    code = "transient_sync_error"
    status_code = 503


class InvariantViolation(AppError):
    """
    Engine invariant broken: the backward walk exceeded its safety bound, or a
    record carries a missing/unparseable date. Logged, never fatal.
    """

    code = "invariant_violation"
    status_code = 500


def _error_payload(code: str, message: str) -> dict:
    return {
        "error": {"code": code, "message": message},
        "detail": message,
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    log_level = logging.ERROR if exc.status_code >= 500 and exc.status_code != 503 else logging.WARNING
    logger.log(log_level, "app.error %s %s: %s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.code, exc.message))

