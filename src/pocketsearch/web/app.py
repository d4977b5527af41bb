"""FastAPI application exposing PocketSearch as a JSON API."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from pathlib import Path
from typing import Any, List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from pocketsearch.config import AppConfig
from pocketsearch.errors import PocketSearchError
from pocketsearch.models import Record, SearchResult
from pocketsearch.service import PocketSearch

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="PocketSearch", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_state_lock = threading.Lock()
_config: AppConfig | None = None
_engine: PocketSearch | None = None


class SearchPayload(BaseModel):
    query: str
    top_k: int = 10
    min_similarity: float | None = None


class SyncPayload(BaseModel):
    path: str
    extensions: List[str] | None = None


class NotePayload(BaseModel):
    title: str
    content: str


def configure(config: AppConfig | None) -> None:
    """Point the API at another database, closing the current one."""
    global _config, _engine
    with _state_lock:
        if _engine is not None:
            _engine.close()
        _config = config
        _engine = None


def get_engine() -> PocketSearch:
    global _engine
    with _state_lock:
        if _engine is None:
            _engine = PocketSearch(_config or AppConfig(), base_dir=Path.cwd())
        return _engine


def _record_to_json(record: Record) -> dict[str, Any]:
    return record.to_dict()


def _result_to_json(result: SearchResult) -> dict[str, Any]:
    return {
        "id": result.record.id,
        "title": result.record.title,
        "snippet": result.record.snippet(),
        "score": result.score,
    }


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.post("/search")
async def search_documents(payload: SearchPayload) -> dict[str, Any]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    top_k = max(1, min(payload.top_k, 50))
    engine = await asyncio.to_thread(get_engine)
    results = await asyncio.to_thread(
        engine.search, query, top_k=top_k, min_similarity=payload.min_similarity
    )
    return {"results": [_result_to_json(result) for result in results]}


@app.post("/sync")
async def sync_documents(payload: SyncPayload) -> dict[str, Any]:
    clean_path = payload.path.strip().replace("\r", "").replace("\n", "")
    if not clean_path:
        raise HTTPException(status_code=400, detail="No path provided")
    if "\0" in clean_path:
        raise HTTPException(status_code=400, detail="Invalid path: contains null byte")

    source = Path(os.path.realpath(os.path.expanduser(clean_path)))
    if not source.exists():
        raise HTTPException(status_code=404, detail=f"Path not found: {clean_path}")

    engine = await asyncio.to_thread(get_engine)
    try:
        result = await asyncio.to_thread(engine.sync, source, payload.extensions)
    except PocketSearchError as exc:
        LOGGER.error("Sync failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return {"status": "ok", "result": result.to_dict()}


@app.get("/documents")
async def list_documents() -> dict[str, Any]:
    engine = await asyncio.to_thread(get_engine)
    records = await asyncio.to_thread(engine.repository.list_records)
    return {
        "documents": [_record_to_json(record) for record in records],
        "count": len(records),
    }


@app.post("/documents")
async def add_document(payload: NotePayload) -> dict[str, Any]:
    if not payload.title.strip() and not payload.content.strip():
        raise HTTPException(status_code=400, detail="Empty document")
    engine = await asyncio.to_thread(get_engine)
    record = await asyncio.to_thread(engine.repository.add_note, payload.title, payload.content)
    return {"status": "ok", "document": _record_to_json(record)}


@app.put("/documents/{doc_id}")
async def update_document(doc_id: int, payload: NotePayload) -> dict[str, Any]:
    engine = await asyncio.to_thread(get_engine)
    record = await asyncio.to_thread(
        engine.repository.update_note, doc_id, payload.title, payload.content
    )
    if record is None:
        raise HTTPException(status_code=404, detail=f"Document with ID {doc_id} not found")
    return {"status": "ok", "document": _record_to_json(record)}


@app.delete("/documents/{doc_id}")
async def delete_document(doc_id: int) -> dict[str, Any]:
    engine = await asyncio.to_thread(get_engine)
    deleted = await asyncio.to_thread(engine.repository.delete_note, doc_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Document with ID {doc_id} not found")
    return {"status": "ok", "deleted_id": doc_id}
