#!/usr/bin/env python3
"""
Event materializer tests: metadata, target nesting and failure events.
"""

import asyncio
import socket

from conftest import json_response
from core.models import HttpFailure
from plugins.openwhisk import FAILURE_FIELD, FAILURE_TAG, EventMaterializer, construct_request
from sinks.queue_sink import QueueSink


class BrokenSink(QueueSink):
    name = "BrokenSink"

    async def handle(self, event):
        raise RuntimeError("sink is down")


def _materializer(sink, **kwargs):
    return EventMaterializer(name="openwhisk", hostname="localhost", sink=sink, **kwargs)


def _failure():
    try:
        raise ConnectionRefusedError("Connection refused")
    except ConnectionRefusedError as e:
        return HttpFailure.from_exception(e)


def test_success_event_with_metadata(config):
    sink = QueueSink()
    record = {"activationId": "abc", "end": 1000, "annotations": [{"key": "limits", "value": {"timeout": 60000}}]}
    request = construct_request(config, 0)
    response = json_response([record], times_retried=1)

    ok = asyncio.run(_materializer(sink).materialize_success(record, request, response, 0.25))

    assert ok is True
    [event] = sink.drain()
    assert event.get("activationId") == "abc"
    # fields pass through unchanged
    assert event.get("annotations") == record["annotations"]

    metadata = event.get("@metadata")
    assert metadata["name"] == "openwhisk"
    assert metadata["hostname"] == "localhost"
    assert metadata["host"] == socket.gethostname()
    assert metadata["code"] == 200
    assert metadata["response_message"] == "OK"
    assert metadata["response_headers"] == {"Content-Type": "application/json"}
    assert metadata["runtime_seconds"] == 0.25
    assert metadata["times_retried"] == 1
    assert metadata["request"]["url"] == request.url
    assert metadata["request"]["query"]["since"] == 0
    assert "my_password" not in str(metadata)
    assert event.tags == []


def test_target_nesting_and_custom_metadata_target(config):
    sink = QueueSink()
    record = {"activationId": "abc"}
    materializer = _materializer(sink, target="activation", metadata_target="_openwhisk_metadata")

    asyncio.run(materializer.materialize_success(record, construct_request(config, 0), json_response([record]), 0.1))

    [event] = sink.drain()
    assert event.get("activation") == {"activationId": "abc"}
    assert event.get("activationId") is None
    assert "_openwhisk_metadata" in event.fields
    assert "@metadata" not in event.fields


def test_metadata_disabled(config):
    sink = QueueSink()
    record = {"activationId": "abc"}

    asyncio.run(
        _materializer(sink, metadata_target=None).materialize_success(
            record, construct_request(config, 0), json_response([record]), 0.1
        )
    )

    [event] = sink.drain()
    assert event.fields == {"activationId": "abc"}


def test_failure_event(config):
    sink = QueueSink()
    request = construct_request(config, 0)

    ok = asyncio.run(_materializer(sink).materialize_failure(request, _failure(), 1.5))

    assert ok is True
    [event] = sink.drain()
    assert FAILURE_TAG in event.tags
    details = event.get(FAILURE_FIELD)
    assert details["error"] == "Connection refused"
    assert details["name"] == "openwhisk"
    assert details["runtime_seconds"] == 1.5
    assert details["request"]["url"] == request.url
    assert any("ConnectionRefusedError" in line for line in details["backtrace"])

    metadata = event.get("@metadata")
    assert metadata["runtime_seconds"] == 1.5
    assert "code" not in metadata
    assert "response_headers" not in metadata
    assert event.to_dict()["tags"] == [FAILURE_TAG]


def test_sink_errors_are_swallowed(config, caplog):
    materializer = _materializer(BrokenSink())
    request = construct_request(config, 0)

    ok = asyncio.run(materializer.materialize_success({"activationId": "x"}, request, json_response([]), 0.1))
    failed = asyncio.run(materializer.materialize_failure(request, _failure(), 0.1))

    assert ok is False
    assert failed is False
    assert "sink is down" in caplog.text
