"""Entry point for the payment mail sync.

Usage::

    python -m kitepay_sync poll        # long-running: sync every N seconds
    python -m kitepay_sync once        # single cycle, then exit
    python -m kitepay_sync authorize   # OAuth consent, writes the token file
"""

from __future__ import annotations

import asyncio
import sys

import structlog

from .errors import MissingCredentialsError

EXIT_USAGE = 1
EXIT_MISSING_CREDENTIALS = 2

MODES = ("poll", "once", "authorize")


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] not in MODES:
        print("Usage: python -m kitepay_sync <poll|once|authorize>", file=sys.stderr)
        sys.exit(EXIT_USAGE)

    mode = sys.argv[1]

    from .config import SyncConfig
    from .logging import setup_logging

    config = SyncConfig()
    setup_logging(json=config.log_json, level=config.log_level)
    logger = structlog.get_logger()

    try:
        if mode == "authorize":
            from .auth import authorize

            authorize(config.gmail)
            return

        from .auth import load_credentials
        from .connector import PaymentSyncConnector

        connector = PaymentSyncConnector(config, credentials=load_credentials(config.gmail))
        if mode == "poll":
            asyncio.run(connector.run())
        else:
            asyncio.run(connector.run_once())
    except MissingCredentialsError as exc:
        logger.error("authorization_missing", error=str(exc))
        sys.exit(EXIT_MISSING_CREDENTIALS)


if __name__ == "__main__":
    main()
