"""Unit tests for the ledger HTTP routes.

Every route is exercised through aiohttp's test client:
- status codes and JSON bodies of successful calls
- failure bodies for missing fields, unknown ids and bad chunk numbers
- presigned URL construction behind a proxy
"""

import aiohttp
import pytest
from aiohttp.test_utils import TestClient, TestServer

from scribesync.server import create_app
from scribesync.server.routes import _stage_audio_field
from scribesync.storage import InMemorySessionLedger
from tests.conftest import FixedRandom, run_async

pytestmark = pytest.mark.unit


def audio_form(content: bytes = b"RIFF" + b"\x00" * 60, filename: str = "recording.wav") -> aiohttp.FormData:
    form = aiohttp.FormData()
    form.add_field("audio", content, filename=filename, content_type="audio/wav")
    return form


class BrokenUploadRequest:
    """Multipart request whose audio part fails after a few blocks."""

    content_type = "multipart/form-data"

    def __init__(self, blocks):
        self.blocks = list(blocks)
        self.name = "audio"
        self.filename = "chunk_0.wav"

    async def multipart(self):
        return self

    async def next(self):
        return self

    async def read_chunk(self):
        if not self.blocks:
            raise ConnectionResetError("Connection lost")
        return self.blocks.pop(0)


@pytest.fixture
def app(chunk_store):
    ledger = InMemorySessionLedger(chunk_store, rng=FixedRandom(42))
    return create_app(ledger, chunk_store)


class TestSessionRoutes:
    """Tests for /upload-session, /all-session and /health."""

    def test_create_session(self, app):
        """POST /upload-session returns the new id."""

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                resp = await client.post("/upload-session")
                assert resp.status == 200
                data = await resp.json()
                assert data["success"] is True
                assert data["sessionId"] == "test_042"
                assert data["message"]

        run_async(do_test())

    def test_all_session(self, app):
        """GET /all-session lists sessions with their chunks."""

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                await client.post("/upload-session")
                await client.post("/upload-session")
                resp = await client.get("/all-session")
                assert resp.status == 200
                data = await resp.json()
                assert data["success"] is True
                assert data["totalSessions"] == 2
                first = data["sessions"][0]
                assert first["sessionId"] == "test_042"
                assert first["status"] == "active"
                assert first["chunks"] == []
                assert first["totalChunks"] == 0
                assert "createdAt" in first

        run_async(do_test())

    def test_health(self, app):
        """GET /health reports liveness."""

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                resp = await client.get("/health")
                assert resp.status == 200
                data = await resp.json()
                assert data["success"] is True
                assert "timestamp" in data
                assert data["storage"]["session_count"] == 0
                assert data["storage"]["chunk_files"] == 0

        run_async(do_test())

    def test_unknown_route(self, app):
        """Unknown paths still answer with a failure body."""

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                resp = await client.get("/nope")
                assert resp.status == 404
                data = await resp.json()
                assert data["success"] is False

        run_async(do_test())


class TestPresignedUrl:
    """Tests for /get-presigned-url."""

    def test_presigned_url(self, app):
        """The URL points at the upload route of this server."""

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                await client.post("/upload-session")
                resp = await client.post("/get-presigned-url", json={"sessionId": "test_042", "chunkNumber": 3})
                assert resp.status == 200
                data = await resp.json()
                assert data["presignedUrl"] == f"http://{client.host}:{client.port}/upload-chunk/test_042/3"
                assert data["sessionId"] == "test_042"
                assert data["chunkNumber"] == 3
                assert data["expiresIn"] == 3600

        run_async(do_test())

    def test_forwarded_proto(self, app):
        """X-Forwarded-Proto from a TLS proxy selects the scheme."""

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                await client.post("/upload-session")
                resp = await client.post(
                    "/get-presigned-url",
                    json={"sessionId": "test_042", "chunkNumber": 0},
                    headers={"X-Forwarded-Proto": "https, http"},
                )
                data = await resp.json()
                assert data["presignedUrl"].startswith("https://")

        run_async(do_test())

    def test_public_url_override(self, chunk_store):
        """A configured public URL replaces scheme and host."""
        ledger = InMemorySessionLedger(chunk_store, rng=FixedRandom(42))
        app = create_app(ledger, chunk_store, public_url="https://scribe.example.com/", expires_in=600)

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                await client.post("/upload-session")
                resp = await client.post("/get-presigned-url", json={"sessionId": "test_042", "chunkNumber": 1})
                data = await resp.json()
                assert data["presignedUrl"] == "https://scribe.example.com/upload-chunk/test_042/1"
                assert data["expiresIn"] == 600

        run_async(do_test())

    @pytest.mark.parametrize("body", [
        {},
        {"sessionId": "test_042"},
        {"chunkNumber": 0},
    ])
    def test_missing_fields(self, app, body):
        """Both fields are required."""

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                resp = await client.post("/get-presigned-url", json=body)
                assert resp.status == 400
                data = await resp.json()
                assert data == {"success": False, "message": "sessionId and chunkNumber are required"}

        run_async(do_test())

    def test_unknown_session(self, app):
        async def do_test():
            async with TestClient(TestServer(app)) as client:
                resp = await client.post("/get-presigned-url", json={"sessionId": "test_999", "chunkNumber": 0})
                assert resp.status == 404

        run_async(do_test())

    def test_invalid_json(self, app):
        async def do_test():
            async with TestClient(TestServer(app)) as client:
                resp = await client.post(
                    "/get-presigned-url", data="not json", headers={"Content-Type": "application/json"})
                assert resp.status == 400
                data = await resp.json()
                assert data["success"] is False

        run_async(do_test())


class TestUploadChunk:
    """Tests for /upload-chunk/{sessionId}/{chunkNumber}."""

    def test_upload(self, app, chunk_store):
        """The file is stored under its chunk number."""
        content = b"RIFF" + b"\x07" * 12341

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                await client.post("/upload-session")
                resp = await client.post("/upload-chunk/test_042/0", data=audio_form(content))
                assert resp.status == 200
                data = await resp.json()
                assert data["success"] is True
                assert data["sessionId"] == "test_042"
                assert data["chunkNumber"] == 0
                assert data["filename"] == "chunk_0.wav"
                assert data["size"] == 12345
                assert data["message"] == "Chunk uploaded successfully"

        run_async(do_test())

        stored = chunk_store.get_session_path("test_042") / "chunk_0.wav"
        assert stored.read_bytes() == content
        assert list(chunk_store.incoming_dir.iterdir()) == []

    def test_duplicate_upload_skipped(self, app, chunk_store):
        """A second upload of the same chunk keeps the first file."""

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                await client.post("/upload-session")
                await client.post("/upload-chunk/test_042/0", data=audio_form(b"first"))
                resp = await client.post("/upload-chunk/test_042/0", data=audio_form(b"second!"))
                assert resp.status == 200
                data = await resp.json()
                assert data["message"] == "Chunk already exists, skipped upload"
                assert data["size"] == 5

                listing = await (await client.get("/all-session")).json()
                assert listing["sessions"][0]["totalChunks"] == 1

        run_async(do_test())

        assert (chunk_store.get_session_path("test_042") / "chunk_0.wav").read_bytes() == b"first"
        assert list(chunk_store.incoming_dir.iterdir()) == []

    def test_interrupted_upload_leaves_no_staged_file(self, chunk_store):
        """A body that breaks off mid-stream is removed from the staging area."""
        request = BrokenUploadRequest([b"RIFF", b"\x00" * 32])

        with pytest.raises(ConnectionResetError):
            run_async(_stage_audio_field(request, chunk_store, 0))

        assert list(chunk_store.incoming_dir.iterdir()) == []

    def test_unknown_session(self, app, chunk_store):
        """Unknown sessions are rejected and nothing is kept on disk."""

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                resp = await client.post("/upload-chunk/test_999/0", data=audio_form())
                assert resp.status == 404
                data = await resp.json()
                assert data["message"] == "Session not found"

        run_async(do_test())

        assert list(chunk_store.incoming_dir.iterdir()) == []

    def test_no_file(self, app):
        async def do_test():
            async with TestClient(TestServer(app)) as client:
                await client.post("/upload-session")
                resp = await client.post("/upload-chunk/test_042/0")
                assert resp.status == 400
                data = await resp.json()
                assert data["message"] == "No audio file uploaded"

        run_async(do_test())

    def test_wrong_field_name(self, app):
        """Only the audio field counts as the chunk file."""

        async def do_test():
            async with TestClient(TestServer(app)) as client:
                await client.post("/upload-session")
                form = aiohttp.FormData()
                form.add_field("file", b"abc", filename="chunk.wav")
                resp = await client.post("/upload-chunk/test_042/0", data=form)
                assert resp.status == 400

        run_async(do_test())

    @pytest.mark.parametrize("chunk_number", ["-1", "abc", "1.5"])
    def test_bad_chunk_number(self, app, chunk_number):
        async def do_test():
            async with TestClient(TestServer(app)) as client:
                await client.post("/upload-session")
                resp = await client.post(f"/upload-chunk/test_042/{chunk_number}", data=audio_form())
                assert resp.status == 400

        run_async(do_test())


class TestNotifyChunk:
    """Tests for /notify-chunk-uploaded."""

    def test_confirm(self, app):
        async def do_test():
            async with TestClient(TestServer(app)) as client:
                await client.post("/upload-session")
                await client.post("/upload-chunk/test_042/0", data=audio_form())
                resp = await client.post("/notify-chunk-uploaded", json={
                    "sessionId": "test_042", "chunkNumber": 0, "checksum": "abc123",
                })
                assert resp.status == 200
                data = await resp.json()
                assert data["success"] is True
                assert data["confirmed"] is True
                assert data["chunkNumber"] == 0

                listing = await (await client.get("/all-session")).json()
                chunk = listing["sessions"][0]["chunks"][0]
                assert chunk["confirmed"] is True
                assert chunk["checksum"] == "abc123"
                assert chunk["confirmedAt"] >= chunk["uploadedAt"]

        run_async(do_test())

    def test_confirm_unknown_chunk(self, app):
        async def do_test():
            async with TestClient(TestServer(app)) as client:
                await client.post("/upload-session")
                resp = await client.post("/notify-chunk-uploaded", json={"sessionId": "test_042", "chunkNumber": 9})
                assert resp.status == 404
                data = await resp.json()
                assert data["message"] == "Chunk not found"

        run_async(do_test())

    def test_confirm_missing_fields(self, app):
        async def do_test():
            async with TestClient(TestServer(app)) as client:
                resp = await client.post("/notify-chunk-uploaded", json={"sessionId": "test_042"})
                assert resp.status == 400

        run_async(do_test())
