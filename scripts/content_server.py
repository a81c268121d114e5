#!/usr/bin/env python3
"""Upload a station file to the aggregation server.

Usage
-----
::

    python scripts/content_server.py http://localhost:4567 IDS60901.txt

The file holds one ``key:value`` pair per line and must contain ``id``.
After every upload the station is read back and compared field by field.

Options::

    --interval SECONDS   Keep re-uploading every SECONDS (default: upload once)
    --attempts N         Attempts per request, counting the first (default: 3)
    --retry-delay S      Seconds between attempts (default: 3)
    --verbose, -v        Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

from weatheragg import ClientConfig, ContentServer, WeatherAggError


async def run(producer: ContentServer, interval: float | None) -> None:
    if interval is None:
        result = await producer.upload()
        print(f"Data uploaded successfully (status {result.status}, {result.put.attempts} attempt(s)).")
        return
    await producer.upload_forever(interval)


def main() -> None:
    parser = argparse.ArgumentParser(description="Upload weather station data to the aggregator.")
    parser.add_argument("server_url", help="Aggregator URL, e.g. http://localhost:4567")
    parser.add_argument("file", help="Station data file (key:value per line)")
    parser.add_argument("--interval", type=float, help="Re-upload every N seconds")
    parser.add_argument("--attempts", type=int, help="Attempts per request")
    parser.add_argument("--retry-delay", type=float, help="Seconds between attempts")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    overrides: dict[str, Any] = {}
    if args.attempts is not None:
        overrides["max_attempts"] = args.attempts
    if args.retry_delay is not None:
        overrides["retry_delay"] = args.retry_delay

    try:
        config = ClientConfig.for_producer(args.server_url, **overrides)
        asyncio.run(run(ContentServer(config, args.file), args.interval))
    except KeyboardInterrupt:
        pass
    except (WeatherAggError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
