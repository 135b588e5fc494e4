"""Main application entry point for scribe-sync."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import List

from .client.transfer import TransferClient
from .config import ScribeSyncConfig
from .server.app import run_server
from .services.recording_service import RecordingService
from .ui.status_screen import StatusScreen

logger = logging.getLogger(__name__)


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/scribesync.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only warnings and above
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("scribe-sync starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


async def list_sessions(config: ScribeSyncConfig, screen: StatusScreen) -> int:
    async with TransferClient(
        base_url=config.get('client.base_url'),
        connect_timeout=config.get('client.connect_timeout', 5),
        read_timeout=config.get('client.read_timeout', 10),
    ) as client:
        result = await client.list_sessions()

    if not result:
        screen.show_error(f"Could not list sessions: {result.message}")
        return 1
    screen.show_sessions(result.value)
    return 0


async def upload_files(config: ScribeSyncConfig, screen: StatusScreen, files: List[str]) -> int:
    """Upload existing chunk files as one new session."""
    service = RecordingService(config)
    try:
        started = await service.start_recording()
        if not started["success"]:
            screen.show_error(f"Could not start session: {started['error']}")
            return 1
        screen.console.print(f"Session {started['session_id']}", style="bold blue")

        for path in files:
            added = service.add_chunk_file(path)
            if not added["success"]:
                screen.show_error(f"Skipping {path}: {added['error']}")

        await service.stop_recording()
        await service.wait_until_idle()
        screen.show_chunk_statuses(service.get_chunk_statuses())

        status = service.get_status()
        return 0 if status["confirmed"] == status["chunks"] else 1
    finally:
        await service.cleanup()


async def boot_check(config: ScribeSyncConfig, screen: StatusScreen) -> int:
    """Report an interrupted recording and push uploads left over from the last run."""
    service = RecordingService(config)
    try:
        recovery = await service.recover_after_restart()
    finally:
        await service.cleanup()

    screen.show_interruption(recovery["interrupted"])
    screen.console.print(
        f"Restored {recovery['restored']} pending uploads, "
        f"{recovery['confirmed']} confirmed, {recovery['still_pending']} still pending"
    )
    return 0


def main() -> None:
    """Main entry point for scribe-sync."""
    parser = argparse.ArgumentParser(
        description="scribe-sync - chunked audio upload ledger and client",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="scribe-sync v0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("serve", help="Run the session ledger server")
    subparsers.add_parser("sessions", help="List sessions on the server")
    upload_parser = subparsers.add_parser("upload", help="Upload chunk files as a new session")
    upload_parser.add_argument("files", nargs="+", help="Chunk files in recording order")
    subparsers.add_parser("boot-check", help="Report interrupted recordings and retry pending uploads")

    args = parser.parse_args()

    try:
        config = ScribeSyncConfig(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(1)

    setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))
    screen = StatusScreen()

    try:
        if args.command == "serve":
            run_server(config)
            exit_code = 0
        elif args.command == "sessions":
            exit_code = asyncio.run(list_sessions(config, screen))
        elif args.command == "upload":
            exit_code = asyncio.run(upload_files(config, screen, args.files))
        else:
            exit_code = asyncio.run(boot_check(config, screen))
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        exit_code = 0
    except Exception as e:
        print(f"❌ Error: {e}")
        logger.error(f"Application error: {e}", exc_info=True)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
