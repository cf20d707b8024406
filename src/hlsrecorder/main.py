"""
HLS Recorder - entry point.

Records one live M3U8 playlist:
1. Load configuration and set up logging
2. Connect the chat notifier
3. Record until the stream closes or SIGINT/SIGTERM arrives
4. Upload the recorded runs when storage upload is enabled
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from .config import Config, load_config
from .http_client import parse_headers
from .logger import get_logger, setup_logging
from .notifier import LogNotifier, Notifier, TelegramNotifier
from .recorder import RecordingOrchestrator, RecordingRequest, RecordingStatus
from .uploader import StorageUploader


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Record a live HLS stream")
    parser.add_argument("url", help="M3U8 playlist URL (master or media)")
    parser.add_argument("file_name", help="Output file name, .ts is used without an extension")
    parser.add_argument("-H", "--header", default="", help='Extra headers, "Name=Value;Other=Value"')
    parser.add_argument("-c", "--cookie", default="", help="Cookie header value")
    parser.add_argument("-d", "--delete", action="store_true", help="Delete segments after upload")
    parser.add_argument("--session", default="cli", help="Session id used in the directory name")
    parser.add_argument("--config", default="config.yaml", help="Path to config.yaml")
    return parser


def build_notifier(config: Config) -> Notifier:
    if config.telegram is None:
        return LogNotifier()
    return TelegramNotifier(
        api_id=config.telegram.api_id,
        api_hash=config.telegram.api_hash,
        chat_id=config.telegram.chat_id,
        session_name=config.telegram.session_name
    )


async def run(config: Config, args: argparse.Namespace) -> RecordingStatus:
    """Record one stream with the given configuration."""
    logger = get_logger('app')

    notifier = build_notifier(config)
    if isinstance(notifier, TelegramNotifier):
        if not await notifier.connect():
            logger.warning("Telegram unavailable, progress messages go to the log only")

    orchestrator = RecordingOrchestrator(
        config,
        notifier,
        uploader=StorageUploader() if config.upload.enabled else None
    )

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    request = RecordingRequest(
        url=args.url,
        file_name=args.file_name,
        session_id=args.session,
        headers=parse_headers(args.header, args.cookie),
        delete_after_upload=True if args.delete else None
    )

    try:
        result = await orchestrator.record(request, cancel_event)
    finally:
        if isinstance(notifier, TelegramNotifier):
            await notifier.disconnect()

    logger.info(f"Session {result.status.value} after {result.duration_formatted}")
    return result.status


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    config_missing = False
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        config = Config()
        config_missing = True
    except ValueError as e:
        print(f"Configuration error: {e}")
        return 2

    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count
    )
    if config_missing:
        get_logger('app').warning(f"{args.config} not found, using defaults")

    status = asyncio.run(run(config, args))
    return 1 if status == RecordingStatus.FAILED else 0


if __name__ == '__main__':
    sys.exit(main())
