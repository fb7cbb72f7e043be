from __future__ import annotations
import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator

# One lock per challenge id; entries vanish once no coroutine holds or awaits them.
_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


@asynccontextmanager
async def challenge_lock(challenge_id) -> AsyncIterator[None]:
    """Serialize writers of one challenge aggregate within this process."""
    key = str(challenge_id)
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    async with lock:
        yield
