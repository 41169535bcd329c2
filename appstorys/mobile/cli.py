"""
Admin CLI

Command-line maintenance for the SDK's local state: inspect and flush
the offline outbox, and wipe stored tokens.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from ..core.exceptions import AppStorysError, StorageError
from .config import TOKEN_BACKENDS, SDKConfig
from .delivery import DeliveryService
from .keychain import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, create_token_store
from .storage import OfflineOutbox, SQLiteKeyValueStore

logger = logging.getLogger(__name__)


def _open_outbox(config: SDKConfig) -> OfflineOutbox:
    return OfflineOutbox(SQLiteKeyValueStore(config.outbox_path))


def show_status(config: SDKConfig) -> int:
    """Print pending record counts and token presence."""
    outbox = _open_outbox(config)
    try:
        counts = outbox.pending_counts()
    finally:
        outbox.store.close()

    has_token = create_token_store(config).get(ACCESS_TOKEN_KEY) is not None

    print(f"Data directory:       {config.data_dir}")
    print(f"Token backend:        {config.token_backend}")
    print(f"Access token stored:  {'yes' if has_token else 'no'}")
    print(f"Pending events:       {counts['events']}")
    print(f"Pending CSAT:         {counts['csat']}")
    print(f"Pending attributes:   {counts['user_attributes']}")
    return 0


async def _flush(service: DeliveryService) -> int:
    try:
        try:
            await service.auth.authenticate()
        except AppStorysError as e:
            print(f"Authentication failed: {e}", file=sys.stderr)
            return 1

        result = await service.retry_pending()
    finally:
        await service.shutdown()

    print(f"User attributes:  {result['user_attributes']}")
    print(f"Events sent:      {result['events_sent']} (pending {result['events_pending']})")
    print(f"CSAT sent:        {result['csat_sent']} (pending {result['csat_pending']})")

    if result["user_attributes"] == "pending" or result["events_pending"] or result["csat_pending"]:
        return 1
    return 0


def flush(config: SDKConfig) -> int:
    """Authenticate and replay the offline outbox."""
    return asyncio.run(_flush(DeliveryService.from_config(config)))


def clear_tokens(config: SDKConfig) -> int:
    """Delete stored access and refresh tokens."""
    store = create_token_store(config)
    try:
        store.delete(ACCESS_TOKEN_KEY)
        store.delete(REFRESH_TOKEN_KEY)
    except StorageError as e:
        print(f"Failed to clear tokens: {e}", file=sys.stderr)
        return 1

    print("Tokens cleared")
    return 0


def clear_outbox(config: SDKConfig) -> int:
    """Drop every pending record."""
    outbox = _open_outbox(config)
    try:
        outbox.clear_all()
    finally:
        outbox.store.close()

    print("Outbox cleared")
    return 0


COMMANDS = {
    "status": show_status,
    "flush": flush,
    "clear-tokens": clear_tokens,
    "clear-outbox": clear_outbox,
}


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="appstorys",
        description="AppStorys SDK maintenance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  status        Show pending outbox records and token presence
  flush         Authenticate and replay the offline outbox
  clear-tokens  Delete stored access and refresh tokens
  clear-outbox  Drop every pending record

Account settings are read from APPSTORYS_* environment variables.
        """,
    )

    parser.add_argument(
        "command",
        choices=list(COMMANDS),
        help="Command to execute",
    )

    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory for the outbox and token file",
    )

    parser.add_argument(
        "--token-backend",
        choices=TOKEN_BACKENDS,
        default=None,
        help="Where tokens are kept",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    args = parser.parse_args(argv)

    # Configure logging
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        config = SDKConfig.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    if args.data_dir is not None:
        config = replace(config, data_dir=args.data_dir)
    if args.token_backend is not None:
        config = replace(config, token_backend=args.token_backend)

    return COMMANDS[args.command](config)


if __name__ == "__main__":
    sys.exit(main())
