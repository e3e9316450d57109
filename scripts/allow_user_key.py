#!/usr/bin/env python
"""Enable or disable a user key in the Redis allowlist.

Revoking a key invalidates all of its sessions on their next request; the
sessions table is left alone.

Constraints:
- Requires REDIS_URL
- Keys are trimmed; blank keys are refused

Usage:
    cd python && REDIS_URL=redis://localhost:6379/0 python ../scripts/allow_user_key.py alice
    cd python && REDIS_URL=... python ../scripts/allow_user_key.py alice --disable
"""

import argparse
import asyncio
import os
import sys


async def set_flag(redis_url: str, user_key: str, enabled: bool) -> None:
    import redis.asyncio as redis

    from bananapod.kv.credentials import RedisCredentialStore

    client = redis.Redis.from_url(redis_url)
    try:
        await RedisCredentialStore(client).set_enabled(user_key, enabled)
    finally:
        await client.aclose()


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("user_key")
    parser.add_argument("--disable", action="store_true", help="revoke instead of enable")
    args = parser.parse_args()

    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        print("ERROR: REDIS_URL environment variable must be set")
        sys.exit(1)

    user_key = args.user_key.strip()
    if not user_key:
        print("ERROR: user key must not be blank")
        sys.exit(1)

    enabled = not args.disable
    asyncio.run(set_flag(redis_url, user_key, enabled))
    print(f"{'Enabled' if enabled else 'Disabled'} user key {user_key!r}")


if __name__ == "__main__":
    main()
