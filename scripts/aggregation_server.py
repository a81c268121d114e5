#!/usr/bin/env python3
"""Run the weather aggregation server.

Usage
-----
::

    python scripts/aggregation_server.py [--port 4567] [--storage FILE]

Options::

    --host HOST          Interface to bind (default: 0.0.0.0)
    --port PORT          TCP port (default: 4567)
    --storage FILE       Storage file (default: aggregation_server_data.txt)
    --resume-clock       Continue the Lamport clock from persisted data
    --log-file FILE      Also log to a rotating FILE (1 MB x 5)
    --verbose, -v        Enable debug logging

Any option not given falls back to the ``WEATHERAGG_*`` environment
variables read by ``AggregatorConfig.from_env``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import logging.handlers
import signal
import sys
from pathlib import Path
from typing import Any

from weatheragg import AggregationServer, AggregatorConfig, WeatherAggError


def _configure_logging(verbose: bool, log_file: str | None) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.handlers.RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5))
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
    )


async def run(config: AggregatorConfig) -> None:
    async with AggregationServer(config) as server:
        loop = asyncio.get_running_loop()
        serve = asyncio.create_task(server.serve_forever())
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, serve.cancel)
            except NotImplementedError:
                # Not available on every platform; Ctrl+C still raises KeyboardInterrupt.
                pass
        await serve


def main() -> None:
    parser = argparse.ArgumentParser(description="Weather aggregation server.")
    parser.add_argument("--host", help="Interface to bind")
    parser.add_argument("--port", type=int, help="TCP port")
    parser.add_argument("--storage", help="Storage file path")
    parser.add_argument("--resume-clock", action="store_true", help="Continue the Lamport clock from persisted data")
    parser.add_argument("--log-file", help="Also log to a rotating file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    _configure_logging(args.verbose, args.log_file)

    overrides: dict[str, Any] = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.storage is not None:
        overrides["storage_path"] = Path(args.storage)
    if args.resume_clock:
        overrides["resume_clock"] = True

    try:
        config = AggregatorConfig.from_env(**overrides)
    except WeatherAggError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        pass
    except OSError as exc:
        logging.getLogger("aggregation_server").error("Error starting server: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
