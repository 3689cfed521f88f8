"""Span model consumed by the X-Ray translator, with semantic-convention names."""

from __future__ import annotations

import enum
import os
import struct
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

AttributeValue = Union[str, int, float, bool]

# Resource label names.
ATTRIBUTE_CLOUD_PROVIDER = "cloud.provider"
ATTRIBUTE_CLOUD_ACCOUNT = "cloud.account.id"
ATTRIBUTE_CLOUD_REGION = "cloud.region"
ATTRIBUTE_CLOUD_ZONE = "cloud.zone"
ATTRIBUTE_HOST_ID = "host.id"
ATTRIBUTE_HOST_TYPE = "host.type"
ATTRIBUTE_HOST_NAME = "host.name"
ATTRIBUTE_CONTAINER_NAME = "container.name"
ATTRIBUTE_CONTAINER_IMAGE = "container.image.name"
ATTRIBUTE_CONTAINER_TAG = "container.image.tag"
ATTRIBUTE_K8S_CLUSTER = "k8s.cluster.name"
ATTRIBUTE_K8S_NAMESPACE = "k8s.namespace.name"
ATTRIBUTE_K8S_DEPLOYMENT = "k8s.deployment.name"
ATTRIBUTE_K8S_POD = "k8s.pod.name"
ATTRIBUTE_SERVICE_NAME = "service.name"
ATTRIBUTE_SERVICE_NAMESPACE = "service.namespace"
ATTRIBUTE_SERVICE_INSTANCE = "service.instance.id"
ATTRIBUTE_SERVICE_VERSION = "service.version"

# Span attribute names.
ATTRIBUTE_COMPONENT = "component"
ATTRIBUTE_ENDUSER_ID = "enduser.id"
ATTRIBUTE_HTTP_METHOD = "http.method"
ATTRIBUTE_HTTP_URL = "http.url"
ATTRIBUTE_HTTP_TARGET = "http.target"
ATTRIBUTE_HTTP_HOST = "http.host"
ATTRIBUTE_HTTP_SCHEME = "http.scheme"
ATTRIBUTE_HTTP_STATUS_CODE = "http.status_code"
ATTRIBUTE_HTTP_STATUS_TEXT = "http.status_text"
ATTRIBUTE_HTTP_SERVER_NAME = "http.server_name"
ATTRIBUTE_HTTP_HOST_PORT = "host.port"
ATTRIBUTE_HTTP_CLIENT_IP = "http.client_ip"
ATTRIBUTE_HTTP_USER_AGENT = "http.user_agent"
ATTRIBUTE_NET_PEER_NAME = "net.peer.name"
ATTRIBUTE_NET_PEER_IP = "net.peer.ip"
ATTRIBUTE_NET_PEER_PORT = "net.peer.port"
ATTRIBUTE_DB_TYPE = "db.type"
ATTRIBUTE_DB_INSTANCE = "db.instance"
ATTRIBUTE_DB_STATEMENT = "db.statement"
ATTRIBUTE_DB_USER = "db.user"
ATTRIBUTE_DB_URL = "db.url"
ATTRIBUTE_MESSAGE_TYPE = "message.type"
ATTRIBUTE_MESSAGE_ID = "message.id"
ATTRIBUTE_MESSAGE_COMPRESSED_SIZE = "message.compressed_size"
ATTRIBUTE_MESSAGE_UNCOMPRESSED_SIZE = "message.uncompressed_size"

COMPONENT_TYPE_HTTP = "http"
COMPONENT_TYPE_GRPC = "grpc"

# Span status codes (gRPC canonical codes).
STATUS_OK = 0
STATUS_CANCELLED = 1
STATUS_UNKNOWN = 2
STATUS_INVALID_ARGUMENT = 3
STATUS_DEADLINE_EXCEEDED = 4
STATUS_NOT_FOUND = 5
STATUS_ALREADY_EXISTS = 6
STATUS_PERMISSION_DENIED = 7
STATUS_RESOURCE_EXHAUSTED = 8
STATUS_FAILED_PRECONDITION = 9
STATUS_ABORTED = 10
STATUS_OUT_OF_RANGE = 11
STATUS_UNIMPLEMENTED = 12
STATUS_INTERNAL = 13
STATUS_UNAVAILABLE = 14
STATUS_DATA_LOSS = 15
STATUS_UNAUTHENTICATED = 16

_HTTP_STATUS_BY_CODE = {
    STATUS_OK: 200,
    STATUS_CANCELLED: 499,
    STATUS_UNKNOWN: 500,
    STATUS_INVALID_ARGUMENT: 400,
    STATUS_DEADLINE_EXCEEDED: 504,
    STATUS_NOT_FOUND: 404,
    STATUS_ALREADY_EXISTS: 409,
    STATUS_PERMISSION_DENIED: 403,
    STATUS_RESOURCE_EXHAUSTED: 429,
    STATUS_FAILED_PRECONDITION: 400,
    STATUS_ABORTED: 409,
    STATUS_OUT_OF_RANGE: 400,
    STATUS_UNIMPLEMENTED: 501,
    STATUS_INTERNAL: 500,
    STATUS_UNAVAILABLE: 503,
    STATUS_DATA_LOSS: 500,
    STATUS_UNAUTHENTICATED: 401,
}


def http_status_from_status_code(code: int) -> int:
    """Map a span status code to the closest HTTP status; unknown codes give 500."""
    return _HTTP_STATUS_BY_CODE.get(code, 500)


def new_trace_id() -> bytes:
    """Return a 16-byte trace id whose first four bytes hold the current epoch."""
    epoch = int(time.time()) & 0xFFFFFFFF
    return struct.pack(">I", epoch) + os.urandom(12)


def new_segment_id() -> bytes:
    """Return a random 8-byte segment id."""
    return os.urandom(8)


class SpanKind(enum.IntEnum):
    UNSPECIFIED = 0
    SERVER = 1
    CLIENT = 2


@dataclass
class Status:
    code: int = STATUS_OK
    message: str = ""


@dataclass
class Resource:
    type: str = ""
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Timestamp:
    seconds: int
    nanos: int = 0

    @classmethod
    def from_nanos(cls, nanos: int) -> "Timestamp":
        seconds, rest = divmod(nanos, 1_000_000_000)
        return cls(seconds, rest)

    @classmethod
    def now(cls) -> "Timestamp":
        return cls.from_nanos(time.time_ns())

    def to_nanos(self) -> int:
        return self.seconds * 1_000_000_000 + self.nanos


@dataclass
class TimeEvent:
    """A timed event; ``annotation`` holds its attributes when it is an annotation."""

    time: Optional[Timestamp] = None
    annotation: Optional[Dict[str, AttributeValue]] = None


@dataclass
class Span:
    trace_id: bytes = field(default_factory=new_trace_id)
    span_id: bytes = field(default_factory=new_segment_id)
    parent_span_id: Optional[bytes] = None
    name: Optional[str] = None
    kind: SpanKind = SpanKind.UNSPECIFIED
    start_time: Optional[Timestamp] = None
    end_time: Optional[Timestamp] = None
    status: Status = field(default_factory=Status)
    attributes: Dict[str, Any] = field(default_factory=dict)
    resource: Optional[Resource] = None
    time_events: List[TimeEvent] = field(default_factory=list)