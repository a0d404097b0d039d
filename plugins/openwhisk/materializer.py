"""
Event materialization: decoded activations and request failures become
:class:`~core.models.Event` objects handed to the sink.
"""

from __future__ import annotations

import logging
import socket
from typing import Any, Dict, Mapping, Optional

from core.config import DEFAULT_METADATA_TARGET
from core.interfaces import Sink
from core.models import Event, HttpFailure, HttpResponse, RequestSpec

from .request import structure_request

logger = logging.getLogger(__name__)

FAILURE_TAG = "_http_request_failure"
FAILURE_FIELD = "request_failure"


class EventMaterializer:
    """Builds events for one poller and delivers them to its sink.

    Errors raised while building or delivering a single event are logged and
    swallowed, so one bad record never aborts the rest of a cycle.
    """

    def __init__(
        self,
        *,
        name: str,
        hostname: str,
        sink: Sink,
        target: Optional[str] = None,
        metadata_target: Optional[str] = DEFAULT_METADATA_TARGET,
    ) -> None:
        self.name = name
        self.hostname = hostname
        self.sink = sink
        self.target = target
        self.metadata_target = metadata_target
        self.host = socket.gethostname()

    def event_metadata(
        self,
        request: RequestSpec,
        response: Optional[HttpResponse] = None,
        execution_time: Optional[float] = None,
    ) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "name": self.name,
            "hostname": self.hostname,
            "host": self.host,
            "request": structure_request(request),
            "runtime_seconds": execution_time,
        }

        if response is not None:
            metadata["code"] = response.code
            metadata["response_headers"] = dict(response.headers)
            metadata["response_message"] = response.message
            metadata["times_retried"] = response.times_retried

        return metadata

    def apply_metadata(
        self,
        event: Event,
        request: RequestSpec,
        response: Optional[HttpResponse] = None,
        execution_time: Optional[float] = None,
    ) -> None:
        if not self.metadata_target:
            return
        event.set(self.metadata_target, self.event_metadata(request, response, execution_time))

    def build_event(self, record: Mapping[str, Any]) -> Event:
        if self.target:
            return Event(fields={self.target: dict(record)})
        return Event(fields=dict(record))

    async def materialize_success(
        self,
        record: Mapping[str, Any],
        request: RequestSpec,
        response: HttpResponse,
        execution_time: float,
    ) -> bool:
        """Emit one decoded record. Returns False when it had to be dropped."""
        try:
            event = self.build_event(record)
            self.apply_metadata(event, request, response, execution_time)
            await self.sink.handle(event)
            return True
        except Exception as e:
            logger.error(
                f"Error eventifying response! name={self.name} url={request.url} "
                f"code={response.code}: {e}",
                exc_info=True,
            )
            return False

    async def materialize_failure(
        self,
        request: RequestSpec,
        failure: HttpFailure,
        execution_time: float,
    ) -> bool:
        """Emit the marker event for a request that got no response."""
        try:
            event = Event()
            self.apply_metadata(event, request, None, execution_time)
            event.tag(FAILURE_TAG)

            # Also in the metadata, but metadata is not persisted by default
            event.set(FAILURE_FIELD, {
                "request": structure_request(request),
                "name": self.name,
                "error": failure.message,
                "backtrace": list(failure.backtrace),
                "runtime_seconds": execution_time,
            })

            await self.sink.handle(event)
            return True
        except Exception as e:
            logger.error(
                f"Cannot read URL or send the error as an event! name={self.name} url={request.url}: {e}",
                exc_info=True,
            )
            return False
