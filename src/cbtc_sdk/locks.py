"""Per-party mutual exclusion for holding selection and submission."""
from __future__ import annotations

import asyncio


class PartyLocks:
    """One ``asyncio.Lock`` per party.

    Selecting holdings and submitting the command that spends them must not
    interleave with another spend by the same party, or both may pick the same
    holdings and one submission will be rejected.

    Usage:
        async with locks.lock_for(party):
            selection = await selector.select_holdings(party, "CBTC", amount)
            await submitter.submit(party, ...)
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, party: str) -> asyncio.Lock:
        lock = self._locks.get(party)
        if lock is None:
            lock = self._locks[party] = asyncio.Lock()
        return lock

    def locked(self, party: str) -> bool:
        lock = self._locks.get(party)
        return lock is not None and lock.locked()
