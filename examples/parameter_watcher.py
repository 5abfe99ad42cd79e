#!/usr/bin/env python3
"""Advertise an OSCQuery service and print avatar parameters as they sync."""

import asyncio

from oscqsync import OSCQueryServer, OSCQuerySettings, configure_logging


def show_parameters(parameters) -> None:
    print(f"📡 {len(parameters)} parameters")
    for address, value in sorted(parameters.items()):
        print(f"  {address} = {value!r}")


async def main():
    settings = OSCQuerySettings(service_name="Parameter-Watcher", osc_port=9011)
    configure_logging(settings.log_level, debug_scopes=["mdns"])

    async with OSCQueryServer(settings, on_parameters_updated=show_parameters) as server:
        print(f"🚀 Query server at http://{settings.host}:{server.http_port}/")
        print("Waiting for a VRChat client to announce itself (Ctrl+C to stop)")

        # Avatar changes do not re-announce the peer, so poll for them
        while True:
            await asyncio.sleep(15)
            await server.refresh_parameters()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
