"""
Core data models for the activation poller.
"""

from __future__ import annotations

import traceback
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RequestSpec(BaseModel):
    """An HTTP request descriptor: method, url and every other request option."""

    model_config = ConfigDict(frozen=True)

    method: str = "get"
    url: str
    options: Dict[str, Any] = Field(default_factory=dict)


class HttpResponse(BaseModel):
    """Structured response handed back by the transport on success."""

    body: bytes = b""
    code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    message: str = ""
    times_retried: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.code < 300


class HttpFailure(BaseModel):
    """Transport failure: the error and its trace. No response was received."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    error: BaseException
    backtrace: List[str] = Field(default_factory=list)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "HttpFailure":
        trace = traceback.format_exception(type(exc), exc, exc.__traceback__)
        return cls(error=exc, backtrace=[line.rstrip("\n") for line in trace])

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__


class Event(BaseModel):
    """An output event: a field mapping plus tags."""

    fields: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self.fields.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.fields[key] = value

    def tag(self, value: str) -> None:
        if value not in self.tags:
            self.tags.append(value)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten into a plain dict, tags included when present."""
        data = dict(self.fields)
        if self.tags:
            data["tags"] = list(self.tags)
        return data
