"""Translate engine results into HTTP responses."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException

from rentledger.domain.errors import LedgerError
from rentledger.services.engine import ErrorInfo, OperationResult

STATUS_BY_CODE: dict[str, int] = {
    "not_found": 404,
    "invalid_state_transition": 409,
    "missing_price": 422,
    "invalid_input": 422,
    "persistence_error": 503,
}


def http_error(error: ErrorInfo) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_CODE.get(error.code, 500),
        detail=error.model_dump(),
    )


def http_error_from_exc(exc: LedgerError) -> HTTPException:
    return http_error(
        ErrorInfo(code=exc.code, message=exc.message, detail=exc.detail or None)
    )


def unwrap(result: OperationResult) -> Any:
    """Return the result data or raise the matching HTTPException."""
    if not result.success:
        raise http_error(result.error)
    return result.data
