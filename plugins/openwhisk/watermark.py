"""
Watermark and dedup state shared by the poll cycles of one poller.

The platform query window is ``since=<watermark>``. Activations can run for
up to five minutes, so the watermark trails the newest ``end`` seen by that
much and consecutive windows overlap. Identifiers from the previous cycle
suppress the records that the overlap returns a second time.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, FrozenSet, Hashable, Optional, Set

logger = logging.getLogger(__name__)

# actions have a maximum timeout of five minutes
MAX_ACTION_TIME_MS = 5 * 60 * 1000


def now_ms() -> int:
    return int(time.time()) * 1000


def next_since(end_ms: int) -> int:
    """Watermark candidate for an activation that ended at *end_ms*."""
    return end_ms - MAX_ACTION_TIME_MS


def dedup_key(activation_id: Any) -> Optional[Hashable]:
    """Hashable form of an identifier; lists and objects become canonical JSON."""
    if activation_id is None:
        return None
    try:
        hash(activation_id)
    except TypeError:
        return json.dumps(activation_id, sort_keys=True, default=str)
    return activation_id


class CycleScan:
    """What one cycle observed: every identifier plus the watermark candidate."""

    def __init__(self) -> None:
        self.ids: Set[Hashable] = set()
        self.candidate: Optional[int] = None
        self.emitted = 0
        self.skipped = 0

    def observe(self, activation_id: Any, end: Any, novel: bool) -> None:
        key = dedup_key(activation_id)
        if key is not None:
            self.ids.add(key)

        if not novel:
            self.skipped += 1
            return

        if isinstance(end, bool) or not isinstance(end, (int, float)):
            logger.debug(f"Activation {activation_id} has no numeric 'end'; watermark not advanced")
            return
        candidate = next_since(int(end))
        if self.candidate is None or candidate > self.candidate:
            self.candidate = candidate


class WatermarkTracker:
    """Owns the watermark and the previous cycle's identifiers.

    Callers hold ``lock`` for every read made while building a request and
    for a cycle's whole decode-and-commit step.
    """

    def __init__(self, since: Optional[int] = None) -> None:
        self.lock = asyncio.Lock()
        self._since = now_ms() if since is None else since
        self._seen_ids: FrozenSet[Hashable] = frozenset()
        self._closed = False

    @property
    def since(self) -> int:
        return self._since

    @property
    def seen_ids(self) -> FrozenSet[Hashable]:
        return self._seen_ids

    @property
    def closed(self) -> bool:
        return self._closed

    def is_duplicate(self, activation_id: Any) -> bool:
        key = dedup_key(activation_id)
        return key is not None and key in self._seen_ids

    def begin_cycle(self) -> CycleScan:
        return CycleScan()

    def commit(self, scan: CycleScan) -> bool:
        """Replace the seen set with this cycle's ids and raise the watermark."""
        if self._closed:
            logger.debug("Tracker closed; discarding cycle results")
            return False

        self._seen_ids = frozenset(scan.ids)
        if scan.candidate is not None and scan.candidate > self._since:
            self._since = scan.candidate
        return True

    def close(self) -> None:
        self._closed = True
