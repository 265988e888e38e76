"""Exemplar collection endpoints: list, stats, add, remove, search."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from rhetoric.api.errors import http_exception
from rhetoric.api.models import (
    AddExemplarRequest,
    ExemplarListResponse,
    MatchOut,
    RemoveResponse,
    SearchRequest,
    SearchResponse,
)
from rhetoric.config import settings
from rhetoric.context import AppContext, get_context
from rhetoric.errors import RhetoricError
from rhetoric.exemplars.models import Exemplar, ExemplarFields, StoreStats
from rhetoric.exemplars.store import ExemplarStore

router = APIRouter()

StorePath = Annotated[str | None, Query(alias="store")]


async def _open(context: AppContext, path: str | None) -> ExemplarStore:
    return await context.stores.open(path or settings.exemplar_store_path)


def _without_embedding(exemplar: Exemplar) -> Exemplar:
    return exemplar.model_copy(update={"embedding": None})


@router.get("/api/exemplars", response_model=ExemplarListResponse, response_model_exclude_none=True)
async def list_exemplars(
    context: Annotated[AppContext, Depends(get_context)],
    store: StorePath = None,
    move_type: Annotated[str | None, Query(alias="moveType")] = None,
    include_embeddings: Annotated[bool, Query(alias="includeEmbeddings")] = False,
) -> ExemplarListResponse:
    """List exemplars, optionally filtered by move type. Vectors are omitted by default."""
    try:
        exemplar_store = await _open(context, store)
        exemplars = await exemplar_store.list_exemplars(move_type)
    except RhetoricError as exc:
        raise http_exception(exc) from exc

    if not include_embeddings:
        exemplars = [_without_embedding(e) for e in exemplars]
    return ExemplarListResponse(count=len(exemplars), exemplars=exemplars)


@router.get("/api/exemplars/stats", response_model=StoreStats)
async def exemplar_stats(
    context: Annotated[AppContext, Depends(get_context)],
    store: StorePath = None,
) -> StoreStats:
    try:
        exemplar_store = await _open(context, store)
        return await exemplar_store.stats()
    except RhetoricError as exc:
        raise http_exception(exc) from exc


@router.post(
    "/api/exemplars",
    response_model=Exemplar,
    response_model_exclude_none=True,
    status_code=201,
)
async def add_exemplar(
    request: AddExemplarRequest,
    context: Annotated[AppContext, Depends(get_context)],
) -> Exemplar:
    """Embed and persist a new exemplar. The response omits the vector."""
    fields = ExemplarFields.model_validate(request.model_dump(exclude={"exemplar_store_path"}))
    try:
        exemplar_store = await _open(context, request.exemplar_store_path)
        exemplar = await exemplar_store.add(fields)
    except RhetoricError as exc:
        raise http_exception(exc) from exc
    return _without_embedding(exemplar)


@router.delete("/api/exemplars/{exemplar_id}", response_model=RemoveResponse)
async def remove_exemplar(
    exemplar_id: str,
    context: Annotated[AppContext, Depends(get_context)],
    store: StorePath = None,
) -> RemoveResponse:
    try:
        exemplar_store = await _open(context, store)
        removed = await exemplar_store.remove(exemplar_id)
    except RhetoricError as exc:
        raise http_exception(exc) from exc

    if not removed:
        raise HTTPException(status_code=404, detail="Exemplar not found")
    return RemoveResponse(removed_id=exemplar_id)


@router.post("/api/exemplars/search", response_model=SearchResponse, response_model_exclude_none=True)
async def search_exemplars(
    request: SearchRequest,
    context: Annotated[AppContext, Depends(get_context)],
) -> SearchResponse:
    """Nearest exemplars to ``text`` by cosine similarity, best first."""
    try:
        exemplar_store = await _open(context, request.exemplar_store_path)
        matches = await exemplar_store.search(
            request.text,
            top_k=request.top_k,
            threshold=request.threshold,
            move_type=request.move_type,
        )
    except RhetoricError as exc:
        raise http_exception(exc) from exc

    return SearchResponse(
        matches=[
            MatchOut(exemplar=_without_embedding(m.exemplar), similarity=round(m.similarity, 4))
            for m in matches
        ]
    )
