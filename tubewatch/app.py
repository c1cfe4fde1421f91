"""FastAPI application for the channel monetization tracker."""
from __future__ import annotations

import csv
import datetime as dt
import io
import logging
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from . import config, database, db
from .monetization import check_channel
from .recheck import manager
from .youtube_api import ChannelMetadata, YouTubeAPIError, YouTubeDataClient, normalize_channel

config.setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="tubewatch")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

db.init_db()

DEFAULT_MIN_SUBSCRIBERS = 1000


def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """The session layer in front of the API forwards the user id."""

    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def _parse_int(value: Any, *, field: str, default: Optional[int] = None) -> Optional[int]:
    if value is None:
        return default
    if isinstance(value, bool):
        raise HTTPException(status_code=400, detail=f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and not value.strip():
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{field} must be an integer")


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def _youtube_client() -> YouTubeDataClient:
    if not config.YOUTUBE_API_KEY:
        raise HTTPException(status_code=500, detail="YouTube API key not configured")
    return YouTubeDataClient(config.YOUTUBE_API_KEY)


@app.get("/api/folders")
def api_list_folders(user_id: str = Depends(current_user)) -> JSONResponse:
    return JSONResponse({"folders": database.list_folders(user_id)})


@app.post("/api/folders")
def api_create_folder(
    payload: Dict[str, Any] = Body(...),
    user_id: str = Depends(current_user),
) -> JSONResponse:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Folder name is required")
    try:
        folder = database.create_folder(user_id, name, payload.get("color"))
    except database.FolderExistsError:
        raise HTTPException(status_code=409, detail="Folder already exists")
    return JSONResponse({"folder": folder})


@app.patch("/api/folders")
def api_update_folder(
    payload: Dict[str, Any] = Body(...),
    user_id: str = Depends(current_user),
) -> JSONResponse:
    folder_id = payload.get("id")
    if not folder_id:
        raise HTTPException(status_code=400, detail="Folder ID is required")
    try:
        folder = database.update_folder(
            user_id,
            str(folder_id),
            name=payload.get("name"),
            color=payload.get("color"),
        )
    except database.FolderExistsError:
        raise HTTPException(status_code=409, detail="Folder already exists")
    if folder is None:
        raise HTTPException(status_code=404, detail="Folder not found")
    return JSONResponse({"folder": folder})


@app.delete("/api/folders")
def api_delete_folder(
    id: Optional[str] = Query(default=None),
    user_id: str = Depends(current_user),
) -> JSONResponse:
    if not id:
        raise HTTPException(status_code=400, detail="Folder ID is required")
    if not database.delete_folder(user_id, id):
        raise HTTPException(status_code=404, detail="Folder not found")
    return JSONResponse({"success": True})


@app.get("/api/channels")
def api_list_channels(
    folder_id: Optional[str] = Query(default=None),
    user_id: str = Depends(current_user),
) -> JSONResponse:
    return JSONResponse({"channels": database.list_channels(user_id, folder_id=folder_id)})


@app.post("/api/channels")
def api_add_channel(
    payload: Dict[str, Any] = Body(...),
    user_id: str = Depends(current_user),
) -> JSONResponse:
    source = payload.get("source") or "manual"
    direct = payload.get("channelData")
    url = str(payload.get("url") or "").strip()

    if isinstance(direct, dict) and direct.get("channel_id"):
        metadata = ChannelMetadata.from_dict(direct, source=source)
    elif url:
        client = _youtube_client()
        try:
            raw = client.get_channel_by_url(url)
        except YouTubeAPIError as exc:
            logger.error("Channel lookup for %s failed: %s", url, exc)
            raise HTTPException(status_code=502, detail=str(exc))
        if not raw:
            raise HTTPException(status_code=404, detail="Channel not found")
        metadata = normalize_channel(raw, source)
    else:
        raise HTTPException(status_code=400, detail="URL or channelData is required")

    if database.channel_exists(user_id, metadata.channel_id):
        raise HTTPException(status_code=409, detail="Channel already registered")

    # An unknown verdict is stored as unchecked; it never blocks registration.
    verdict = check_channel(metadata.channel_id)
    try:
        channel = database.insert_channel(user_id, metadata, verdict)
    except database.ChannelExistsError:
        raise HTTPException(status_code=409, detail="Channel already registered")
    return JSONResponse({"channel": channel})


@app.delete("/api/channels")
def api_delete_channel(
    id: Optional[str] = Query(default=None),
    user_id: str = Depends(current_user),
) -> JSONResponse:
    if not id:
        raise HTTPException(status_code=400, detail="Channel ID is required")
    if not database.delete_channel(user_id, id):
        raise HTTPException(status_code=404, detail="Channel not found")
    return JSONResponse({"success": True})


@app.patch("/api/channels/move")
def api_move_channel(
    payload: Dict[str, Any] = Body(...),
    user_id: str = Depends(current_user),
) -> JSONResponse:
    row_id = payload.get("channelId")
    if not row_id:
        raise HTTPException(status_code=400, detail="Channel ID is required")
    folder_id = payload.get("folderId") or None
    channel = database.move_channel(user_id, str(row_id), folder_id)
    if channel is None:
        raise HTTPException(status_code=404, detail="Channel or folder not found")
    return JSONResponse({"channel": channel})


@app.post("/api/monetization/check")
def api_check_monetization(
    payload: Dict[str, Any] = Body(...),
    user_id: str = Depends(current_user),
) -> JSONResponse:
    channel_id = str(payload.get("channelId") or "").strip()
    if not channel_id:
        raise HTTPException(status_code=400, detail="Channel ID is required")
    verdict = check_channel(channel_id)
    database.record_monetization(user_id, channel_id, verdict)
    return JSONResponse({"result": verdict.to_dict()})


@app.post("/api/monetization/recheck")
def api_start_recheck(
    payload: Dict[str, Any] = Body(default={}),
    user_id: str = Depends(current_user),
) -> JSONResponse:
    limit = _parse_int(payload.get("limit"), field="limit")
    if limit is not None and limit <= 0:
        limit = None
    job = manager.start_job(user_id, limit, force_run=_coerce_bool(payload.get("forceRun")))
    return JSONResponse(job.summary())


@app.get("/api/monetization/recheck/stream/{job_id}")
def api_recheck_stream(job_id: str, user_id: str = Depends(current_user)) -> StreamingResponse:
    job = manager.get_job(job_id)
    if job is None or job.user_id != user_id:
        raise HTTPException(status_code=404, detail="Unknown recheck job")
    try:
        generator = manager.stream(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Unknown recheck job")
    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(generator, media_type="text/event-stream", headers=headers)


@app.get("/api/youtube/search")
def api_search_channels(
    q: Optional[str] = Query(default=None),
    pageToken: Optional[str] = Query(default=None),
    minSubscribers: Optional[str] = Query(default=None),
    user_id: str = Depends(current_user),
) -> JSONResponse:
    query = (q or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query is required")
    min_subscribers = _parse_int(minSubscribers, field="minSubscribers", default=DEFAULT_MIN_SUBSCRIBERS)
    client = _youtube_client()
    try:
        page = client.search_and_normalize(query, min_subscribers=min_subscribers, page_token=pageToken)
    except YouTubeAPIError as exc:
        logger.error("Channel search for %r failed: %s", query, exc)
        raise HTTPException(status_code=502, detail=str(exc))
    return JSONResponse(page.to_dict())


def _monetization_label(value: Optional[bool]) -> str:
    if value is True:
        return "Monetized"
    if value is False:
        return "Not monetized"
    return "Unchecked"


@app.get("/api/export/csv")
def api_export_csv(
    folder_id: Optional[str] = Query(default=None),
    user_id: str = Depends(current_user),
) -> PlainTextResponse:
    folders = {folder["id"]: folder["name"] for folder in database.list_folders(user_id)}
    channels = database.list_channels(user_id, folder_id=folder_id)

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(
        [
            "Channel Name",
            "URL",
            "Subscribers",
            "Videos",
            "Monetization",
            "Confidence",
            "Last Checked",
            "Folder",
        ]
    )
    for item in channels:
        writer.writerow(
            [
                item.get("channel_name") or "",
                item.get("channel_url") or "",
                item.get("subscriber_count") or 0,
                item.get("video_count") or 0,
                _monetization_label(item.get("is_monetized")),
                item.get("monetization_confidence") or "",
                item.get("monetization_checked_at") or "-",
                folders.get(item.get("folder_id"), "Uncategorized"),
            ]
        )

    export_date = dt.date.today().isoformat()
    headers = {"Content-Disposition": f'attachment; filename="channels_{export_date}.csv"'}
    return PlainTextResponse(
        content="\ufeff" + buffer.getvalue(),
        media_type="text/csv; charset=utf-8",
        headers=headers,
    )


@app.get("/api/stats")
def api_stats(user_id: str = Depends(current_user)) -> JSONResponse:
    payload: Dict[str, Any] = {
        **database.get_channel_totals(user_id),
        "folders": len(database.list_folders(user_id)),
        "recheck": manager.get_job_summaries(user_id),
    }
    return JSONResponse(payload)
