"""HTTP handlers for the session ledger."""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from aiohttp import web

from ..errors import ScribeSyncError, ValidationError
from ..models.session import ChunkUpload
from ..storage.chunk_store import ChunkStore, chunk_filename
from ..storage.ledger import SessionLedger

logger = logging.getLogger(__name__)

AUDIO_FIELD = "audio"


def setup_routes(app: web.Application) -> None:
    """Register ledger routes."""
    app.router.add_post("/upload-session", create_session_handler)
    app.router.add_post("/get-presigned-url", presigned_url_handler)
    app.router.add_post("/upload-chunk/{session_id}/{chunk_number}", upload_chunk_handler)
    app.router.add_post("/notify-chunk-uploaded", notify_chunk_handler)
    app.router.add_get("/all-session", list_sessions_handler)
    app.router.add_get("/health", health_handler)


def parse_chunk_number(value: Any) -> int:
    """Parse a chunk number from a JSON body or a path segment."""
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError("chunkNumber must be a non-negative integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError("chunkNumber must be a non-negative integer")
    if number < 0:
        raise ValidationError("chunkNumber must be a non-negative integer")
    return number


async def _read_json(request: web.Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _require_session_and_chunk(body: Dict[str, Any]):
    session_id = body.get("sessionId")
    chunk_number = body.get("chunkNumber")
    if not session_id or chunk_number is None:
        raise ValidationError("sessionId and chunkNumber are required")
    return str(session_id), parse_chunk_number(chunk_number)


def _public_base_url(request: web.Request) -> str:
    public_url = request.app["public_url"]
    if public_url:
        return public_url.rstrip("/")
    forwarded = request.headers.get("X-Forwarded-Proto")
    scheme = forwarded.split(",")[0].strip() if forwarded else request.scheme
    return f"{scheme}://{request.host}"


async def _stage_audio_field(request: web.Request, store: ChunkStore,
                             chunk_number: int) -> Optional[ChunkUpload]:
    """Stream the ``audio`` multipart field into the staging directory.

    Returns:
        The staged upload, or None when the request carries no audio file
    """
    if not request.content_type.startswith("multipart/"):
        return None

    reader = await request.multipart()
    while True:
        part = await reader.next()
        if part is None:
            return None
        if part.name != AUDIO_FIELD or not part.filename:
            await part.release()
            continue

        upload = ChunkUpload(filename=chunk_filename(chunk_number), size=0,
                             staged_path=str(store.new_staging_path()))
        try:
            with open(upload.staged_path, 'wb') as f:
                while True:
                    block = await part.read_chunk()
                    if not block:
                        break
                    f.write(block)
                    upload.size += len(block)
        except BaseException:
            logger.warning(f"Upload of chunk {chunk_number} interrupted after {upload.size} bytes")
            store.discard(upload)
            raise
        return upload


async def create_session_handler(request: web.Request) -> web.Response:
    """POST /upload-session - Create a new recording session."""
    ledger: SessionLedger = request.app["ledger"]
    session = await ledger.create_session()
    return web.json_response({
        "success": True,
        "sessionId": session.session_id,
        "message": "Session created successfully",
    })


async def presigned_url_handler(request: web.Request) -> web.Response:
    """POST /get-presigned-url - Upload target for one chunk."""
    ledger: SessionLedger = request.app["ledger"]
    session_id, chunk_number = _require_session_and_chunk(await _read_json(request))
    await ledger.lookup(session_id)

    presigned_url = f"{_public_base_url(request)}/upload-chunk/{session_id}/{chunk_number}"
    logger.info(f"Generated presigned URL for session {session_id}, chunk {chunk_number}")

    return web.json_response({
        "success": True,
        "presignedUrl": presigned_url,
        "sessionId": session_id,
        "chunkNumber": chunk_number,
        "expiresIn": request.app["expires_in"],
    })


async def upload_chunk_handler(request: web.Request) -> web.Response:
    """POST /upload-chunk/{session_id}/{chunk_number} - Upload audio chunk."""
    ledger: SessionLedger = request.app["ledger"]
    store: ChunkStore = request.app["store"]
    session_id = request.match_info["session_id"]
    chunk_number = parse_chunk_number(request.match_info["chunk_number"])

    await ledger.lookup(session_id)

    upload = await _stage_audio_field(request, store, chunk_number)
    if upload is None:
        raise ValidationError("No audio file uploaded")

    try:
        chunk, created = await ledger.record_chunk(session_id, chunk_number, upload)
    except ScribeSyncError:
        store.discard(upload)
        raise

    return web.json_response({
        "success": True,
        "sessionId": session_id,
        "chunkNumber": chunk.chunk_number,
        "filename": chunk.filename,
        "size": chunk.size,
        "message": "Chunk uploaded successfully" if created else "Chunk already exists, skipped upload",
    })


async def notify_chunk_handler(request: web.Request) -> web.Response:
    """POST /notify-chunk-uploaded - Confirm chunk receipt."""
    ledger: SessionLedger = request.app["ledger"]
    body = await _read_json(request)
    session_id, chunk_number = _require_session_and_chunk(body)

    chunk = await ledger.confirm_chunk(session_id, chunk_number, checksum=body.get("checksum"))

    return web.json_response({
        "success": True,
        "sessionId": session_id,
        "chunkNumber": chunk.chunk_number,
        "confirmed": chunk.confirmed,
        "message": "Chunk receipt confirmed",
    })


async def list_sessions_handler(request: web.Request) -> web.Response:
    """GET /all-session - Get all session data."""
    ledger: SessionLedger = request.app["ledger"]
    sessions = await ledger.list_sessions()
    return web.json_response({
        "success": True,
        "sessions": [session.to_dict() for session in sessions],
        "totalSessions": len(sessions),
    })


async def health_handler(request: web.Request) -> web.Response:
    """GET /health - Liveness check with storage usage."""
    store: ChunkStore = request.app["store"]
    return web.json_response({
        "success": True,
        "message": "scribe-sync ledger is running",
        "timestamp": datetime.now().isoformat(),
        "storage": store.get_storage_stats(),
    })
