#!/usr/bin/env python
"""
Simple example that sets a key, retrieves it again, and shows how the
different kinds of failures are reported.
"""
import asyncio
import logging

import asyncio_resp


async def main():
    # Enable logging
    logging.getLogger().addHandler(logging.StreamHandler())
    logging.getLogger().setLevel(logging.INFO)

    client = await asyncio_resp.Client.create(
        host="localhost", port=6379, connect_timeout=2, read_timeout=5
    )

    try:
        # Convenience command: native strings in and out.
        await client.set("key", "value")
        print("Succeeded", await client.get("key") == "value")

        # Generic entry point: bytes in, reply objects out.
        print(await client.execute("GET", b"key"))
        print(await client.execute("GET", b"missing-key"))

        # Server errors leave the connection usable.
        try:
            await client.execute("LPUSH", b"key", b"item")
        except asyncio_resp.ServerRejectedError as e:
            print("Rejected:", e.kind, e.message)

        print("Still connected:", client.is_connected)
    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(main())
