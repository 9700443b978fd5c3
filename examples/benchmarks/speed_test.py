#!/usr/bin/env python
"""
Benchmark how long it takes to set 10,000 keys in the database.
"""
import asyncio
import logging
import time

import asyncio_resp


async def main():
    # Enable logging
    logging.getLogger().addHandler(logging.StreamHandler())
    logging.getLogger().setLevel(logging.INFO)

    client = await asyncio_resp.Client.create(host="localhost", port=6379)

    try:
        # === Benchmark 1 ==
        print("1. How much time does it take to set 10,000 values in Redis, one by one?")
        print("Starting...")
        start = time.time()

        for i in range(10 * 1000):
            await client.execute("SET", b"key", b"value")  # We wait for every answer.

        print("Done. Duration=", time.time() - start)
        print()

        # === Benchmark 2 ==
        # All the requests are queued at once. They still go over the wire one
        # at a time, but the queueing overhead of the callers overlaps.
        print("2. How much time does it take if 10,000 coroutines share the client?")
        print("Starting...")
        start = time.time()

        await asyncio.gather(
            *[client.execute("SET", b"key", b"value") for x in range(10 * 1000)]
        )

        print("Done. Duration=", time.time() - start)

    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(main())
