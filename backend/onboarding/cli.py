"""Management CLI for operators.

Usage:
    python -m onboarding.cli show-config                  # Resolved step layout
    python -m onboarding.cli list-users                   # Registered users
    python -m onboarding.cli clear-progress <session-id>  # Drop a session's saved progress
"""

import asyncio
import sys

from onboarding.middleware.exceptions import BoundaryError
from onboarding.services.api_client import BackendClient
from onboarding.services.config_resolver import ConfigResolver
from onboarding.services.progress_store import ProgressStoreError, RedisProgressStore
from onboarding.utils.connections import close_redis, get_redis

USAGE = "Usage: python -m onboarding.cli [show-config|list-users|clear-progress <session-id>]"


async def show_config(client: BackendClient) -> int:
    config = await ConfigResolver(client).fetch()
    for step in sorted(config.steps):
        groups = ", ".join(g.value for g in config.groups_for(step)) or "(empty)"
        print(f"  Step {step}: {groups}")
    return 0


async def list_users(client: BackendClient) -> int:
    try:
        users = await client.list_users()
    except BoundaryError as e:
        print(f"  FAILED: {e.message}")
        return 1
    if not isinstance(users, list) or not all(isinstance(u, dict) for u in users):
        print("  FAILED: invalid data format received")
        return 1

    for user in users:
        print(f"  {user.get('id', '?'):>5}  {user.get('email', '-')}")
    print(f"\n{len(users)} user(s)")
    return 0


async def clear_progress(session_id: str) -> int:
    store = RedisProgressStore(await get_redis(), session_id)
    try:
        await store.clear()
    except ProgressStoreError as e:
        print(f"  FAILED: {e.message}")
        return 1
    finally:
        await close_redis()
    print(f"  Cleared progress for {session_id}")
    return 0


async def run(argv: list[str], client: BackendClient | None = None) -> int:
    cmd = argv[0] if argv else ""
    client = client or BackendClient()
    try:
        if cmd == "show-config":
            return await show_config(client)
        if cmd == "list-users":
            return await list_users(client)
        if cmd == "clear-progress" and len(argv) == 2:
            return await clear_progress(argv[1])
    finally:
        await client.aclose()

    print(USAGE)
    return 1


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(run(sys.argv[1:] if argv is None else argv))


if __name__ == "__main__":
    sys.exit(main())
