"""aiohttp application wiring for the ledger server."""

import logging
from typing import Optional

from aiohttp import web

from ..config import ScribeSyncConfig
from ..storage import ChunkStore, InMemorySessionLedger, JsonFileSessionLedger, SessionLedger
from .middleware import error_handling_middleware, request_logging_middleware
from .routes import setup_routes

logger = logging.getLogger(__name__)


def create_app(ledger: SessionLedger, store: ChunkStore,
               public_url: Optional[str] = None,
               expires_in: int = 3600,
               max_upload_bytes: int = 100 * 1024 * 1024) -> web.Application:
    """Create and configure the aiohttp application.

    Args:
        ledger: Session ledger the handlers operate on
        store: Chunk file storage
        public_url: Base URL used in presigned URLs instead of the request host
        expires_in: Lifetime in seconds reported for presigned URLs
        max_upload_bytes: Largest accepted request body
    """
    app = web.Application(
        middlewares=[request_logging_middleware, error_handling_middleware],
        client_max_size=max_upload_bytes,
    )
    app["ledger"] = ledger
    app["store"] = store
    app["public_url"] = public_url
    app["expires_in"] = expires_in
    setup_routes(app)
    return app


def build_ledger(config: ScribeSyncConfig, store: ChunkStore) -> SessionLedger:
    """Create the ledger selected by ``storage.backend``."""
    backend = config.get('storage.backend', 'memory')
    if backend == 'memory':
        return InMemorySessionLedger(store)
    if backend == 'json':
        return JsonFileSessionLedger(store)
    raise ValueError(f"Unknown storage backend: {backend}")


def create_app_from_config(config: ScribeSyncConfig) -> web.Application:
    store = ChunkStore(config.get_data_directory())
    ledger = build_ledger(config, store)
    logger.info(f"Using {type(ledger).__name__} with data dir {store.data_dir}")
    return create_app(
        ledger,
        store,
        public_url=config.get('server.public_url'),
        expires_in=int(config.get('server.presigned_expires_in', 3600)),
        max_upload_bytes=int(config.get('server.max_upload_bytes', 100 * 1024 * 1024)),
    )


def run_server(config: ScribeSyncConfig) -> None:
    """Run the ledger server until interrupted."""
    host = config.get('server.host', '0.0.0.0')
    port = int(config.get('server.port', 3000))
    app = create_app_from_config(config)

    logger.info(f"scribe-sync ledger listening on {host}:{port}")
    web.run_app(app, host=host, port=port, print=None)
