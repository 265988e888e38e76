"""Typed error taxonomy shared by the segmenter, store, embeddings and analyzer."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError as PydanticValidationError


class RhetoricError(Exception):
    """Base class for every error the core raises on purpose.

    ``code`` is the stable machine-readable identifier surfaced in result
    envelopes; ``status_code`` is what the HTTP layer answers with.
    """

    code = "RHETORIC_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(RhetoricError):
    """Malformed configuration or input, raised before any side effect."""

    code = "VALIDATION_ERROR"
    status_code = 400


class StoreError(RhetoricError):
    """Exemplar collection unreadable, unwritable or malformed on disk."""

    code = "STORE_ERROR"
    status_code = 500


class EmptyStoreError(StoreError):
    code = "NO_EXEMPLARS"
    status_code = 400


class StoreConflictError(StoreError):
    """The collection file changed on disk since this handle last read it."""

    code = "STORE_CONFLICT"
    status_code = 409


class EmbeddingError(RhetoricError):
    """Model unavailable or inference failure."""

    code = "EMBEDDING_ERROR"
    status_code = 503


class MissingDependencyError(EmbeddingError):
    code = "DEPENDENCY_ERROR"
    status_code = 503


class SegmentationError(RhetoricError):
    code = "SEGMENTATION_ERROR"
    status_code = 500


class AnalysisError(RhetoricError):
    """Catch-all for unexpected failures during orchestration."""

    code = "ANALYSIS_ERROR"
    status_code = 500


_ALL_ERRORS: tuple[type[RhetoricError], ...] = (
    RhetoricError,
    ValidationError,
    StoreError,
    EmptyStoreError,
    StoreConflictError,
    EmbeddingError,
    MissingDependencyError,
    SegmentationError,
    AnalysisError,
)

STATUS_BY_CODE: dict[str, int] = {cls.code: cls.status_code for cls in _ALL_ERRORS}


def status_for_code(code: str) -> int:
    return STATUS_BY_CODE.get(code, 500)


def format_validation_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten pydantic errors into ``"field.path: message"`` strings."""
    out: list[str] = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ()))
        out.append(f"{path}: {err.get('msg', 'invalid value')}" if path else err.get("msg", ""))
    return out


def from_pydantic(exc: PydanticValidationError, message: str = "Invalid input") -> ValidationError:
    return ValidationError(message, details=format_validation_errors(exc))
