from __future__ import annotations

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from api.schemas import SessionCreate, SessionRecord
from api.services.storage import SessionStore, StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def get_store(request: Request) -> SessionStore:
    return request.app.state.session_store


@router.post("", response_model=SessionRecord, status_code=201)
async def create_session(request: Request, store: SessionStore = Depends(get_store)) -> SessionRecord:
    """
    Store a completed exercise session. The body is validated manually so that malformed
    payloads map to 400 rather than FastAPI's default 422.
    """
    body = await request.body()
    try:
        payload = SessionCreate.model_validate_json(body)
    except ValidationError as exc:
        logger.warning("Rejected session payload: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid session data") from exc

    try:
        return await asyncio.to_thread(store.create, payload)
    except StorageError as exc:
        logger.error("Error creating session: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to store session") from exc


@router.get("", response_model=List[SessionRecord])
async def list_sessions(store: SessionStore = Depends(get_store)) -> List[SessionRecord]:
    try:
        return await asyncio.to_thread(store.list)
    except StorageError as exc:
        logger.error("Error fetching sessions: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to fetch sessions") from exc
