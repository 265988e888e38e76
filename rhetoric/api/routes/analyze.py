"""Analysis endpoints: classify text, uploaded documents, or just segment."""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from rhetoric.analysis.analyzer import analyze
from rhetoric.api.errors import http_exception
from rhetoric.api.models import SegmentOut, SegmentRequest, SegmentResponse
from rhetoric.config import settings
from rhetoric.context import AppContext, get_context
from rhetoric.errors import RhetoricError, status_for_code
from rhetoric.pipeline_config import DEFAULT_SPEAKER_PATTERN, SegmenterConfig
from rhetoric.segmentation.segmenter import segment_text

router = APIRouter()

# (raw bytes, filename, mimetype) -> plain text
TextExtractor = Callable[[bytes, str, str], str]

PLAIN_TEXT_EXTENSIONS = {"txt", "text", "md", "markdown"}


class UnsupportedDocumentError(Exception):
    """The extractor cannot turn this file type into text."""


def extract_plain_text(raw: bytes, filename: str, mimetype: str) -> str:
    """Decode UTF-8 text files. PDF/DOCX parsing belongs to a richer extractor."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in PLAIN_TEXT_EXTENSIONS and not mimetype.lower().startswith("text/"):
        raise UnsupportedDocumentError(f"Unsupported document type: {filename or mimetype or 'unknown'}")
    return raw.decode("utf-8")


def get_text_extractor() -> TextExtractor:
    return extract_plain_text


async def _analysis_response(payload: dict[str, Any], context: AppContext) -> JSONResponse:
    response = await analyze(payload, context)
    status = 200 if response.success else status_for_code(response.error.code if response.error else "")
    return JSONResponse(status_code=status, content=response.to_json_dict())


@router.post("/api/analyze")
async def analyze_endpoint(
    payload: Annotated[dict[str, Any], Body(...)],
    context: Annotated[AppContext, Depends(get_context)],
) -> JSONResponse:
    """Classify rhetorical moves in ``text`` against an exemplar collection.

    The body uses the camelCase request fields (``text``,
    ``exemplarStorePath``, ``segmentationMethod``, ``confidenceThreshold`` ...).
    The response is always the result envelope; failures carry the error
    code and the matching HTTP status.
    """
    payload.setdefault("exemplarStorePath", settings.exemplar_store_path)
    return await _analysis_response(payload, context)


@router.post("/api/analyze/upload")
async def analyze_upload(
    file: Annotated[UploadFile, File(...)],
    context: Annotated[AppContext, Depends(get_context)],
    extractor: Annotated[TextExtractor, Depends(get_text_extractor)],
    exemplar_store_path: Annotated[str | None, Form(alias="exemplarStorePath")] = None,
    segmentation_method: Annotated[str, Form(alias="segmentationMethod")] = "sentence",
    confidence_threshold: Annotated[float, Form(alias="confidenceThreshold")] = 0.5,
    top_k: Annotated[int, Form(alias="topK")] = 5,
    min_exemplars_per_type: Annotated[int, Form(alias="minExemplarsPerType")] = 3,
) -> JSONResponse:
    """Extract text from an uploaded document, then analyze it."""
    raw = await file.read()
    if len(raw) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {settings.max_upload_bytes // (1024 * 1024)} MB.",
        )

    filename = file.filename or ""
    try:
        text = extractor(raw, filename, file.content_type or "")
    except UnsupportedDocumentError as exc:
        raise HTTPException(status_code=415, detail=str(exc)) from exc
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"File is not valid UTF-8 text: {exc}") from exc

    payload = {
        "text": text,
        "exemplarStorePath": exemplar_store_path or settings.exemplar_store_path,
        "inputFile": filename or "<upload>",
        "segmentationMethod": segmentation_method,
        "confidenceThreshold": confidence_threshold,
        "topK": top_k,
        "minExemplarsPerType": min_exemplars_per_type,
    }
    return await _analysis_response(payload, context)


@router.post("/api/segment", response_model=SegmentResponse, response_model_exclude_none=True)
async def segment_endpoint(request: SegmentRequest) -> SegmentResponse:
    """Split text into segments without classifying them."""
    try:
        config = SegmenterConfig(
            method=request.method,
            min_words=request.min_words,
            max_words=request.max_words,
            overlap_words=request.overlap_words,
            speaker_pattern=request.speaker_pattern or DEFAULT_SPEAKER_PATTERN,
        )
        segments = segment_text(request.text, config)
    except RhetoricError as exc:
        raise http_exception(exc) from exc

    return SegmentResponse(
        method=request.method,
        total_segments=len(segments),
        segments=[
            SegmentOut(
                text=s.text,
                start=s.start,
                end=s.end,
                index=s.index,
                word_count=s.word_count,
                speaker=s.speaker,
            )
            for s in segments
        ],
    )
