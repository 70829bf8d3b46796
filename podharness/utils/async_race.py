"""
First-settled race between awaitables.

Runs several awaitables concurrently, returns the one that settles first and
cancels (and awaits) every other branch, so no task outlives the race. The
losing branches are also cleaned up when the caller itself is cancelled.
"""

import asyncio
from typing import Any, Awaitable, Dict, Optional, Tuple


async def first_completed(
    branches: Dict[str, Awaitable[Any]],
    timeout: Optional[float] = None
) -> Tuple[Optional[str], Any]:
    """
    Wait for the first branch to settle.

    Args:
        branches: Named awaitables; on ties, declaration order wins
        timeout: Seconds to wait; None waits indefinitely

    Returns:
        (name, result) of the winning branch, or (None, None) on timeout

    Raises:
        Whatever the winning branch raised
    """
    tasks = {name: asyncio.ensure_future(aw) for name, aw in branches.items()}

    try:
        done, _ = await asyncio.wait(
            tasks.values(),
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        pending = [task for task in tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    for name, task in tasks.items():
        if task in done:
            return name, task.result()

    return None, None
