from __future__ import annotations

from fastapi import APIRouter, HTTPException

from pathtrack.application import get_session_service

router = APIRouter(tags=["reference"])


@router.get("/reference")
async def reference_status() -> dict:
    return get_session_service().cache.stats()


@router.post("/reference/refresh")
async def refresh_reference() -> dict:
    """Reload the reference dataset; also the explicit retry after a failed load."""
    cache = get_session_service().cache
    await cache.refresh()
    return cache.stats()


@router.put("/credentials")
async def set_api_key(payload: dict) -> dict:
    api_key = payload.get("api_key")
    if not api_key or not str(api_key).strip():
        raise HTTPException(status_code=400, detail="api_key is required")
    get_session_service().credentials.set(str(api_key))
    return {"configured": True}


@router.get("/credentials")
async def credential_status() -> dict:
    return {"configured": get_session_service().credentials.is_configured}
