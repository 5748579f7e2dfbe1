"""Tick producers — lazy async sequences of FeatureSnapshots.

A producer is anything the CoachingSession can ``async for`` over.  Two
are provided:

    SnapshotFeed    push interface for a live capture pipeline.  It holds
                    at most one pending snapshot: when the engine falls
                    behind, the stale snapshot is replaced and counted as
                    dropped rather than queued.
    ReplayProducer  a fixed sequence, for tests and offline replays.

ReplayProducer is restartable: each ``async for`` replays the whole
sequence.  SnapshotFeed is single-use: once closed and drained, any further
iteration ends immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Iterable, Optional

from arousal_engine.domain.snapshot import FeatureSnapshot

logger = logging.getLogger(__name__)


class SnapshotFeed:
    """Latest-wins single-slot feed of snapshots."""

    def __init__(self) -> None:
        self._pending: Optional[FeatureSnapshot] = None
        self._ready = asyncio.Event()
        self._closed = False
        self._dropped = 0
        self._delivered = 0

    def push(self, snapshot: FeatureSnapshot) -> None:
        """Offer a snapshot; replaces any snapshot not yet consumed."""
        if self._closed:
            raise RuntimeError("Cannot push to a closed snapshot feed")
        if self._pending is not None:
            self._dropped += 1
            logger.debug(
                "Dropped stale snapshot tick %d for tick %d",
                self._pending.tick, snapshot.tick,
            )
        self._pending = snapshot
        self._ready.set()

    def close(self) -> None:
        """End iteration once the pending snapshot (if any) is consumed."""
        self._closed = True
        self._ready.set()

    async def __aiter__(self) -> AsyncIterator[FeatureSnapshot]:
        while True:
            if self._pending is None:
                if self._closed:
                    return
                self._ready.clear()
                await self._ready.wait()
                continue
            snapshot, self._pending = self._pending, None
            self._delivered += 1
            yield snapshot

    @property
    def dropped(self) -> int:
        return self._dropped

    @property
    def delivered(self) -> int:
        return self._delivered

    @property
    def closed(self) -> bool:
        return self._closed


class ReplayProducer:
    """Replays a fixed list of snapshots, optionally paced."""

    def __init__(self, snapshots: Iterable[FeatureSnapshot], *, interval: float = 0.0) -> None:
        self._snapshots = list(snapshots)
        self._interval = interval

    async def __aiter__(self) -> AsyncIterator[FeatureSnapshot]:
        for index, snapshot in enumerate(self._snapshots):
            if index and self._interval > 0:
                await asyncio.sleep(self._interval)
            yield snapshot

    def __len__(self) -> int:
        return len(self._snapshots)
