"""Data structures shared by the capture pipeline.

Descriptors and registry records are plain dataclasses that live only while a
call is outstanding. Entries are pydantic models; listeners only ever see
their ``to_event()`` dict form.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

PROMISE_CALL = "promise-call"
EVENT_DRIVEN_CALL = "event-driven-call"

RequestKind = Literal["promise-call", "event-driven-call"]
SeverityLevel = Literal["low", "medium", "high", "critical"]


# ---------------------------------------------------------------------------
# Request side
# ---------------------------------------------------------------------------


class FormData:
    """Ordered multi-part form payload."""

    def __init__(self, fields: Optional[Iterable[Tuple[str, Any]]] = None):
        self._fields: List[Tuple[str, Any]] = list(fields or [])

    def append(self, key: str, value: Any) -> None:
        self._fields.append((key, value))

    def items(self) -> List[Tuple[str, Any]]:
        return list(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"FormData({self._fields!r})"


@dataclass
class OutboundRequest:
    """A request issued through the promise-call surface."""

    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    timeout: Optional[float] = None


@dataclass(frozen=True)
class RequestDescriptor:
    id: str
    url: str
    method: str
    headers: Dict[str, str]
    body: Any
    kind: RequestKind
    start_time: float


@dataclass
class ActiveRequest:
    """Registry record for a captured call that has not resolved yet."""

    method: str
    url: str
    kind: RequestKind
    start_time: float


@dataclass(frozen=True)
class CaptureMetadata:
    """Recorded on an event-driven request by ``open()``."""

    request_id: str
    method: str
    url: str


@dataclass(frozen=True)
class Timing:
    start: float
    end: float
    url: str
    method: str

    @property
    def duration(self) -> float:
        return self.end - self.start


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


class _EntryModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Severity(BaseModel):
    score: int
    level: SeverityLevel
    factors: List[str] = []


class TimingInfo(_EntryModel):
    start: float
    end: float
    duration: float
    duration_ms: float


class RequestDetails(_EntryModel):
    id: str
    url: str
    method: str
    headers: Dict[str, str]
    body: Optional[str] = None
    type: RequestKind
    timestamp: float


class ResponseDetails(_EntryModel):
    request_id: str
    status: int
    status_text: str
    headers: Dict[str, str]
    body: Optional[str] = None
    url: str
    method: str
    timestamp: float
    response_type: Optional[str] = None


class ErrorDetails(_EntryModel):
    request_id: str
    name: str
    message: str
    type: str
    stack: Optional[str] = None
    url: str
    method: str
    timestamp: float


class EntryMetadata(_EntryModel):
    user_agent: str
    timestamp: int


# Keys dropped from the emitted dict when the entry does not carry them.
OPTIONAL_ENTRY_KEYS = (
    "request",
    "response",
    "error",
    "timing",
    "severity",
    "performance",
    "analysis",
)


class NetworkEntry(_EntryModel):
    id: str
    timestamp: str
    type: Literal["network"] = "network"
    subtype: Literal["request", "response", "error"]
    level: str
    application: Dict[str, Optional[str]]
    request: Optional[RequestDetails] = None
    response: Optional[ResponseDetails] = None
    error: Optional[ErrorDetails] = None
    timing: Optional[TimingInfo] = None
    category: str
    severity: Optional[Severity] = None
    tags: List[str]
    performance: Optional[Dict[str, Any]] = None
    analysis: Optional[Dict[str, Any]] = None
    metadata: EntryMetadata

    @property
    def request_id(self) -> str:
        if self.request is not None:
            return self.request.id
        if self.response is not None:
            return self.response.request_id
        return self.error.request_id

    def to_event(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True)
        for key in OPTIONAL_ENTRY_KEYS:
            if data.get(key) is None:
                data.pop(key, None)
        return data
