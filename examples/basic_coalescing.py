"""
basic_coalescing.py: Minimal lazyflight example.

Fifty concurrent lookups for the same user hit the "database" once.

Usage:
    python examples/basic_coalescing.py
"""

import asyncio
import logging

from lazyflight import InMemoryCoalescerMetrics, RequestCoalescer

db_calls = 0


async def fetch_user(user_id: int) -> dict:
    global db_calls
    db_calls += 1
    await asyncio.sleep(0.1)
    return {"id": user_id, "name": "Alice"}


async def main() -> None:
    metrics = InMemoryCoalescerMetrics()
    users = RequestCoalescer(name="users", metrics=metrics)

    results = await asyncio.gather(
        *(users.get_or_run("user:42", lambda: fetch_user(42)) for _ in range(50))
    )

    print(f"callers={len(results)} db_calls={db_calls} value={results[0]}")
    print(f"stats={users.stats()}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    asyncio.run(main())
