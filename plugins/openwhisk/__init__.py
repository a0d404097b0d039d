"""
OpenWhisk plugin - activation-log poller.

* :class:`ActivationPoller` – one fetch, decode, dedup and emit pass per tick
* :class:`WatermarkTracker` – ``since`` watermark and previous-cycle identifiers
* :class:`EventMaterializer` – records and request failures as events
* :func:`construct_request` – the activations query for the current watermark
"""

from .materializer import EventMaterializer, FAILURE_FIELD, FAILURE_TAG
from .poller import ActivationPoller
from .request import construct_request, structure_request
from .watermark import MAX_ACTION_TIME_MS, WatermarkTracker

__all__ = [
    "ActivationPoller",
    "EventMaterializer",
    "FAILURE_FIELD",
    "FAILURE_TAG",
    "MAX_ACTION_TIME_MS",
    "WatermarkTracker",
    "construct_request",
    "structure_request",
]
