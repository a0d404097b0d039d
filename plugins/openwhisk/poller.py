"""
OpenWhisk activation poller: one fetch, decode, dedup and emit pass per tick.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional, Set

from core.codecs import CodecError, get_codec
from core.config import PollerConfig
from core.infra.http import HttpClient
from core.interfaces import Codec, Sink
from core.models import HttpFailure, HttpResponse, RequestSpec

from .materializer import EventMaterializer
from .request import construct_request
from .watermark import WatermarkTracker

logger = logging.getLogger(__name__)

ACTIVATION_ID = "activationId"
END = "end"


class ActivationPoller:
    """Drains activation records from one OpenWhisk namespace.

    ``run_once`` only dispatches a cycle: the HTTP call and the handling of
    its outcome run in a background task, so a slow platform never blocks the
    scheduler. Completions may therefore overlap the next cycle's start; the
    tracker lock keeps request building and each cycle's commit atomic.
    """

    def __init__(
        self,
        config: PollerConfig,
        sink: Sink,
        *,
        http: Optional[HttpClient] = None,
        codec: Optional[Codec] = None,
        tracker: Optional[WatermarkTracker] = None,
    ) -> None:
        self.config = config
        self.name = config.name
        self.tracker = tracker or WatermarkTracker()
        self.materializer = EventMaterializer(
            name=config.name,
            hostname=config.host,
            sink=sink,
            target=config.target,
            metadata_target=config.metadata_target,
        )
        self._http = http or HttpClient(timeout=config.request_timeout, max_retries=config.max_retries)
        self._codec = codec or get_codec(config.codec)
        self._inflight: Set[asyncio.Task] = set()
        self._stopped = False

        logger.info(
            f"Registered poller '{self.name}' for {config.host} "
            f"(namespace {config.namespace}, since {self.tracker.since})"
        )

    @property
    def stopped(self) -> bool:
        return self._stopped

    # ------------------------------------------------------------------- #
    async def run_once(self) -> Optional[asyncio.Task]:
        """Start one poll cycle and return its task without awaiting it."""
        if self._stopped:
            return None

        async with self.tracker.lock:
            request = construct_request(self.config, self.tracker.since)

        task = asyncio.create_task(self.request_async(request), name=f"poll-{self.name}")
        self._inflight.add(task)
        task.add_done_callback(self._cycle_done)
        return task

    def _cycle_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Poll cycle '{self.name}' crashed: {error}", exc_info=error)

    async def run_cycle(self) -> None:
        """Run one poll cycle to completion."""
        task = await self.run_once()
        if task is not None:
            await task

    async def request_async(self, request: RequestSpec) -> None:
        logger.debug(f"Fetching URL name={self.name} url={request.url} since={request.options['query']['since']}")
        started = time.monotonic()

        outcome = await self._http.execute(request)
        execution_time = time.monotonic() - started

        if isinstance(outcome, HttpFailure):
            await self.handle_failure(request, outcome, execution_time)
        else:
            await self.handle_success(request, outcome, execution_time)

    # ------------------------------------------------------------------- #
    async def handle_success(self, request: RequestSpec, response: HttpResponse, execution_time: float) -> None:
        if self._stopped:
            logger.debug(f"Poller '{self.name}' stopped; dropping response from {request.url}")
            return

        async with self.tracker.lock:
            scan = self.tracker.begin_cycle()
            committed = False
            try:
                for record in self._codec.decode(response.body):
                    try:
                        activation_id = record.get(ACTIVATION_ID)
                        novel = not self.tracker.is_duplicate(activation_id)
                        scan.observe(activation_id, record.get(END), novel)
                    except Exception as e:
                        logger.error(f"Dropping undeduplicable record from {request.url}: {e}", exc_info=True)
                        continue

                    # ignore results we have previously seen
                    if novel and await self.materializer.materialize_success(
                        record, request, response, execution_time
                    ):
                        scan.emitted += 1
            except CodecError as e:
                logger.error(f"Failed to decode response from {request.url} (code {response.code}): {e}")
                # records already emitted must be remembered, or the next cycle repeats them;
                # with nothing scanned the state stays put and the window is read again
                if scan.ids or scan.emitted:
                    committed = self.tracker.commit(scan)
            else:
                if response.ok:
                    committed = self.tracker.commit(scan)
                else:
                    # an error body carries no activations; replacing the seen set with
                    # its ids would let the next cycle re-emit everything in the overlap
                    logger.warning(f"Poll '{self.name}' got HTTP {response.code} from {request.url}; state kept")

        logger.info(
            f"Poll '{self.name}': {scan.emitted} emitted, {scan.skipped} duplicate(s), "
            f"since={self.tracker.since}{'' if committed else ' (not committed)'}"
        )

    async def handle_failure(self, request: RequestSpec, failure: HttpFailure, execution_time: float) -> None:
        if self._stopped:
            logger.debug(f"Poller '{self.name}' stopped; dropping failure from {request.url}")
            return

        logger.warning(f"Request to {request.url} failed after {execution_time:.2f}s: {failure.message}")
        await self.materializer.materialize_failure(request, failure, execution_time)

    # ------------------------------------------------------------------- #
    def stop(self) -> None:
        """Stop committing and stop tracking in-flight calls (they are not awaited)."""
        if self._stopped:
            return
        self._stopped = True
        self.tracker.close()
        if self._inflight:
            logger.info(f"Poller '{self.name}' abandoning {len(self._inflight)} in-flight request(s)")
        self._inflight.clear()

    async def close(self) -> None:
        self.stop()
        await self._http.close()
