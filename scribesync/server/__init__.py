"""HTTP surface of the session ledger."""

from .app import create_app, create_app_from_config, build_ledger, run_server

__all__ = [
    "create_app",
    "create_app_from_config",
    "build_ledger",
    "run_server",
]
