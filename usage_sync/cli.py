from __future__ import annotations

import argparse
import asyncio
import logging
import os

import uvicorn


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the usage-sync API server.")
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3010")))
    parser.add_argument(
        "--sync-once",
        action="store_true",
        help="Run one incremental usage sync from the cached watermark and exit.",
    )

    return parser.parse_args()


async def _sync_once() -> int:
    from usage_sync.core.clients.http import close_http_client, init_http_client
    from usage_sync.db.session import close_db, init_db
    from usage_sync.modules.usage.sync_scheduler import sync_once

    await init_db()
    await init_http_client()
    try:
        records = await sync_once()
    finally:
        try:
            await close_http_client()
        finally:
            await close_db()
    return len(records)


def main() -> None:
    args = _parse_args()

    if args.sync_once:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
        synced = asyncio.run(_sync_once())
        print(f"Synced {synced} usage period(s)")
        return

    uvicorn.run("usage_sync.main:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
