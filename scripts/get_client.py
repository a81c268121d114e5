#!/usr/bin/env python3
"""Read weather data from the aggregation server.

Usage
-----
::

    python scripts/get_client.py http://localhost:4567 [STATION_ID]

Without a station id every station is printed, most recent first.

Options::

    --json               Print the decoded records as JSON
    --verbose, -v        Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from weatheragg import ClientConfig, GetClient, StationRecord, WeatherAggError
from weatheragg.client import format_record


async def fetch(client: GetClient, station_id: str | None) -> list[StationRecord]:
    if station_id is None:
        return await client.fetch_all()
    record = await client.fetch_station(station_id)
    return [] if record is None else [record]


def main() -> None:
    parser = argparse.ArgumentParser(description="Fetch weather data from the aggregator.")
    parser.add_argument("server_url", help="Aggregator URL, e.g. http://localhost:4567")
    parser.add_argument("station_id", nargs="?", help="Only fetch this station")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        client = GetClient(ClientConfig.from_env(server_url=args.server_url))
        records = asyncio.run(fetch(client, args.station_id))
    except (WeatherAggError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.json_mode:
        print(json.dumps([r.flat() for r in records], indent=2, ensure_ascii=False))
        return
    if not records:
        if args.station_id is not None:
            print(f"No weather data available for station: {args.station_id}")
        else:
            print("No content available")
        return
    print("\n\n".join(format_record(r) for r in records))


if __name__ == "__main__":
    main()
