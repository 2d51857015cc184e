from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile

from pathtrack.application import AnalysisSession, get_session_service

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _existing_session(session_id: str) -> AnalysisSession:
    session = get_session_service().find_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="session not found")
    return session


@router.get("")
async def list_sessions() -> dict:
    return {"items": get_session_service().list_sessions()}


@router.post("/{session_id}/upload")
async def upload_sequence(
    session_id: str,
    file: UploadFile = File(...),
    model: str | None = Form(default=None),
) -> dict:
    """Upload a sequence file and start tracking the resulting analysis job."""
    try:
        if not file.filename:
            raise HTTPException(status_code=400, detail="Uploaded file must have a filename")
        content = await file.read()
        if not content:
            raise HTTPException(status_code=400, detail="Uploaded file is empty")

        session = get_session_service().get_session(session_id)
        job = await session.submit(Path(file.filename).name, content, model)
    finally:
        await file.close()
    return {"session_id": session_id, "job": job.to_dict()}


@router.get("/{session_id}")
async def get_session(session_id: str) -> dict:
    return _existing_session(session_id).to_dict()


@router.delete("/{session_id}")
async def discard_session(session_id: str) -> dict:
    if not get_session_service().discard_session(session_id):
        raise HTTPException(status_code=404, detail="session not found")
    return {"session_id": session_id, "discarded": True}


@router.get("/{session_id}/job")
async def get_job(session_id: str) -> dict:
    session = _existing_session(session_id)
    if session.job is None:
        raise HTTPException(status_code=404, detail="no job submitted")
    return {"job": session.job.to_dict(), "polling": session.is_polling, "error": session.error}


@router.delete("/{session_id}/job")
async def cancel_job(session_id: str) -> dict:
    session = _existing_session(session_id)
    session.cancel()
    return {"job": session.job.to_dict() if session.job else None, "polling": session.is_polling}


@router.post("/{session_id}/assemble")
async def retry_assembly(session_id: str) -> dict:
    """Place a completed job's results again, e.g. after the reference cache was refreshed."""
    session = _existing_session(session_id)
    try:
        summary = await session.retry_assembly()
    except LookupError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"session_id": session_id, "summary": summary.to_dict(), "error": session.error}


@router.get("/{session_id}/points")
async def get_points(session_id: str, include_hidden: bool = Query(default=False)) -> dict:
    session = _existing_session(session_id)
    points = session.points if include_hidden else session.visible_points()
    highlighted = session.highlighted()
    items = []
    for point in points:
        item = point.to_dict()
        item["highlighted"] = point.id in highlighted
        items.append(item)
    return {
        "items": items,
        "summary": session.summary.to_dict() if session.summary else None,
        "time_window": session.player.state.to_dict(),
        "highlighted": sorted(highlighted),
    }


@router.post("/{session_id}/filters")
async def update_filters(session_id: str, payload: dict) -> dict:
    session = _existing_session(session_id)
    if "threshold" in payload:
        try:
            session.set_similarity_threshold(float(payload["threshold"]))
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    if "year" in payload:
        year = payload["year"]
        try:
            session.set_year(int(year) if year is not None else None)
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail="year must be an integer or null") from exc
    return {"time_window": session.player.state.to_dict()}


@router.post("/{session_id}/playback")
async def control_playback(session_id: str, payload: dict) -> dict:
    session = _existing_session(session_id)
    action = str(payload.get("action") or "").lower()
    if action == "play":
        session.play()
    elif action == "pause":
        session.pause()
    elif action == "reset":
        session.reset_playback()
    else:
        raise HTTPException(status_code=400, detail="action must be play, pause or reset")
    return {"time_window": session.player.state.to_dict()}


@router.post("/{session_id}/highlight")
async def highlight_sequence(session_id: str, payload: dict) -> dict:
    sequence_id = payload.get("sequence_id")
    if not sequence_id:
        raise HTTPException(status_code=400, detail="sequence_id is required")
    session = _existing_session(session_id)
    changed = session.highlight(str(sequence_id), bool(payload.get("on", True)))
    return {"changed": changed, "highlighted": sorted(session.highlighted())}
