"""
Stdout sink - one JSON document per event.
"""

import json
import sys
from typing import IO, Optional

from core.interfaces import Sink
from core.models import Event


class StdoutSink(Sink):
    """Writes every event as a JSON line to stdout (or a given stream)."""

    name = "StdoutSink"

    def __init__(self, stream: Optional[IO[str]] = None, pretty: bool = False):
        self.stream = stream or sys.stdout
        self.pretty = pretty

    async def handle(self, event: Event) -> None:
        indent = 2 if self.pretty else None
        self.stream.write(json.dumps(event.to_dict(), default=str, indent=indent, sort_keys=True) + "\n")
        self.stream.flush()
