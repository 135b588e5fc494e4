"""HTTP client for the session ledger.

Every call returns a TransferResult. Network failures, timeouts and
unexpected responses are converted at this boundary and never raised, so the
upload coordinator alone decides whether to retry.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

from ..errors import TransientTransportError
from ..models.results import ErrorKind, TransferResult

logger = logging.getLogger(__name__)


def _error_kind_for(status: int) -> ErrorKind:
    if status == 400:
        return ErrorKind.VALIDATION
    if status == 404:
        return ErrorKind.NOT_FOUND
    return ErrorKind.SERVER


def _take_field(result: TransferResult, field: str) -> TransferResult:
    """Replace a successful result's value with one field of its body."""
    if not result:
        return result
    value = result.value.get(field)
    if value is None:
        logger.warning(f"Response is missing {field}")
        return TransferResult.failure(ErrorKind.SERVER, f"Response is missing {field}", result.status)
    result.value = value
    return result


class TransferClient:
    """Request wrapper for session create, chunk upload, confirmation and listing."""

    def __init__(self, base_url: str, connect_timeout: float = 5.0, read_timeout: float = 10.0,
                 session: Optional[aiohttp.ClientSession] = None):
        """Initialize the client.

        Args:
            base_url: Ledger server root, e.g. ``http://localhost:3000``
            connect_timeout: Seconds allowed to establish a connection
            read_timeout: Seconds allowed between reads of a response
            session: Shared aiohttp session; one is created lazily if omitted
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(sock_connect=connect_timeout, sock_read=read_timeout)
        self._session = session
        self._owns_session = session is None

        logger.info(f"TransferClient initialized for {self.base_url}")

    async def __aenter__(self) -> "TransferClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}{path}"

    async def _send(self, method: str, url: str, **kwargs: Any) -> Tuple[int, Any]:
        """Perform one request and return the status and decoded JSON body.

        Raises:
            TransientTransportError: connection failure, timeout or socket error
        """
        kwargs.setdefault("timeout", self.timeout)
        try:
            async with self._get_session().request(method, url, **kwargs) as response:
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    payload = None
                return response.status, payload
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise TransientTransportError(str(e) or type(e).__name__) from e

    async def _request(self, method: str, path: str, **kwargs: Any) -> TransferResult:
        url = self._url(path)
        try:
            status, payload = await self._send(method, url, **kwargs)
        except TransientTransportError as e:
            logger.warning(f"{method} {url} failed: {e.message}")
            return TransferResult.failure(ErrorKind.TRANSIENT, e.message)

        if not isinstance(payload, dict):
            logger.warning(f"{method} {url} returned a non-JSON body (HTTP {status})")
            return TransferResult.failure(_error_kind_for(max(status, 500)),
                                          f"Unexpected response (HTTP {status})", status)

        if status < 300 and payload.get("success") is True:
            return TransferResult.success(payload, status)

        message = payload.get("message") or f"HTTP {status}"
        logger.warning(f"{method} {url} rejected (HTTP {status}): {message}")
        return TransferResult.failure(_error_kind_for(status), message, status)

    async def create_session(self) -> TransferResult:
        """Create a new recording session; the value is the session id."""
        result = _take_field(await self._request("POST", "/upload-session"), "sessionId")
        if result:
            logger.info(f"Created session {result.value}")
        return result

    async def get_upload_target(self, session_id: str, chunk_number: int) -> TransferResult:
        """Ask the server where to upload a chunk; the value is the URL."""
        result = await self._request("POST", "/get-presigned-url", json={
            "sessionId": session_id,
            "chunkNumber": chunk_number,
        })
        return _take_field(result, "presignedUrl")

    async def upload_chunk(self, session_id: str, chunk_number: int, file_path: str,
                           target_url: Optional[str] = None) -> TransferResult:
        """Upload a chunk file as the multipart ``audio`` field.

        Args:
            session_id: Session identifier
            chunk_number: Chunk number
            file_path: Local chunk file
            target_url: Upload URL from get_upload_target; defaults to the
                        server's upload route

        Returns:
            TransferResult whose value is the server's chunk record
        """
        try:
            fh = open(file_path, 'rb')
        except OSError as e:
            logger.error(f"Cannot read chunk file {file_path}: {e}")
            return TransferResult.failure(ErrorKind.VALIDATION, f"Cannot read chunk file: {e}")

        with fh:
            form = aiohttp.FormData()
            form.add_field("audio", fh, filename=f"chunk_{chunk_number}.wav", content_type="audio/wav")
            path = target_url or f"/upload-chunk/{session_id}/{chunk_number}"
            result = await self._request("POST", path, data=form)

        if result:
            logger.debug(f"Chunk {chunk_number} of {session_id}: {result.value.get('message')}")
        return result

    async def confirm_chunk(self, session_id: str, chunk_number: int,
                            checksum: Optional[str] = None) -> TransferResult:
        """Notify the server that a chunk upload completed."""
        body: Dict[str, Any] = {"sessionId": session_id, "chunkNumber": chunk_number}
        if checksum is not None:
            body["checksum"] = checksum
        return await self._request("POST", "/notify-chunk-uploaded", json=body)

    async def list_sessions(self) -> TransferResult:
        """List all sessions; the value is a list of session dictionaries."""
        result = await self._request("GET", "/all-session")
        if result:
            sessions = result.value.get("sessions", [])
            if not isinstance(sessions, list):
                return TransferResult.failure(ErrorKind.SERVER, "Response field sessions is not a list", result.status)
            result.value = sessions
        return result

    async def health(self) -> TransferResult:
        return await self._request("GET", "/health")
