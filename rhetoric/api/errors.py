"""Translate core errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException

from rhetoric.errors import RhetoricError


def http_exception(exc: RhetoricError) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail={"code": exc.code, "message": exc.message, "details": exc.details},
    )
