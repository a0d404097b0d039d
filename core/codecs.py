"""
Response-body codecs.

A codec turns one raw body into a lazy stream of records. The ``json`` codec
is the default and mirrors how the activations API answers: a JSON array,
one element per activation.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, Type

from .config import ConfigurationError
from .interfaces import Codec

logger = logging.getLogger(__name__)


class CodecError(ValueError):
    """A response body could not be decoded."""


def _as_record(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return {str(k): v for k, v in value.items()}
    # Scalars are wrapped the same way the plain codec does it
    return {"message": value}


class JsonCodec(Codec):
    """JSON document: an array yields one record per element."""

    name = "json"

    def decode(self, body: bytes) -> Iterator[Dict[str, Any]]:
        try:
            data = json.loads(body or b"null")
        except ValueError as e:
            raise CodecError(f"Invalid JSON body: {e}") from e

        if data is None:
            return
        if isinstance(data, list):
            for element in data:
                yield _as_record(element)
        else:
            yield _as_record(data)


class JsonLinesCodec(Codec):
    """One JSON document per line.

    Blank lines are skipped, and so is a line that is not valid JSON (it is
    logged). Only a body that is not UTF-8 fails as a whole.
    """

    name = "json_lines"

    def decode(self, body: bytes) -> Iterator[Dict[str, Any]]:
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CodecError(f"Body is not UTF-8: {e}") from e

        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                value = json.loads(line)
            except ValueError as e:
                logger.warning(f"Skipping invalid JSON on line {lineno}: {e}")
                continue
            yield _as_record(value)


class PlainCodec(Codec):
    name = "plain"

    def decode(self, body: bytes) -> Iterator[Dict[str, Any]]:
        yield {"message": body.decode("utf-8", errors="replace")}


_CODECS: Dict[str, Type[Codec]] = {
    JsonCodec.name: JsonCodec,
    JsonLinesCodec.name: JsonLinesCodec,
    PlainCodec.name: PlainCodec,
}


def get_codec(name: str) -> Codec:
    """Instantiate a codec by registry name."""
    if name not in _CODECS:
        raise ConfigurationError(f"Unknown codec '{name}'. Available: {sorted(_CODECS)}")
    return _CODECS[name]()
