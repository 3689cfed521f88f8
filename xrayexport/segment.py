"""Conversion of spans into X-Ray segment documents."""

from __future__ import annotations

import json
import re
import struct
import time
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from xrayexport.aws import ORIGIN_EC2, ORIGIN_ECS, AWSData, make_aws
from xrayexport.cause import CauseData, make_cause
from xrayexport.httpdata import HTTPData, make_http
from xrayexport.service import ServiceData, make_service
from xrayexport.spans import (
    ATTRIBUTE_COMPONENT,
    ATTRIBUTE_CONTAINER_NAME,
    ATTRIBUTE_ENDUSER_ID,
    STATUS_RESOURCE_EXHAUSTED,
    Resource,
    Span,
    Timestamp,
)
from xrayexport.sql import SQLData, make_sql

DEFAULT_SEGMENT_NAME = "span"
MAX_SEGMENT_NAME_LENGTH = 200

TRACE_ID_LENGTH = 35
IDENTIFIER_OFFSET = 11

# Trace ids older than 28 days or more than 5 minutes ahead get a fresh epoch.
_MAX_AGE = 60 * 60 * 24 * 28
_MAX_SKEW = 60 * 5

_ZERO_SPAN_ID = bytes(16)
_VALID_NAME_PUNCTUATION = frozenset(" 0123456789N_.:/%&#=+,-@")
_INVALID_ANNOTATION_CHARACTERS = re.compile(r"[^a-zA-Z0-9_]")

_ALWAYS_PRESENT = frozenset({"id", "name", "start_time"})
_OPTIONAL_OBJECTS = frozenset({"cause", "http", "aws", "service", "sql"})

_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}
_HTML_ESCAPE_RE = re.compile("[<>&\u2028\u2029]")


@dataclass
class Segment:
    """An X-Ray segment document."""

    id: str = ""
    name: str = ""
    start_time: float = 0.0
    trace_id: str = ""
    end_time: float = 0.0
    in_progress: bool = False
    parent_id: str = ""
    fault: bool = False
    error: bool = False
    throttle: bool = False
    cause: Optional[CauseData] = None
    resource_arn: str = ""
    origin: str = ""
    type: str = ""
    namespace: str = ""
    user: str = ""
    precursor_ids: List[str] = field(default_factory=list)
    http: Optional[HTTPData] = None
    aws: Optional[AWSData] = None
    service: Optional[ServiceData] = None
    sql: Optional[SQLData] = None
    annotations: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Dict[str, Any]]] = None

    def to_dict(self) -> Dict[str, Any]:
        def nested(value: Any) -> Any:
            return None if value is None else value.to_dict()

        data: Dict[str, Any] = {
            "trace_id": self.trace_id,
            "id": self.id,
            "name": self.name,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "in_progress": self.in_progress,
            "parent_id": self.parent_id,
            "fault": self.fault,
            "error": self.error,
            "throttle": self.throttle,
            "cause": nested(self.cause),
            "resource_arn": self.resource_arn,
            "origin": self.origin,
            "type": self.type,
            "namespace": self.namespace,
            "user": self.user,
            "precursor_ids": list(self.precursor_ids),
            "http": nested(self.http),
            "aws": nested(self.aws),
            "service": nested(self.service),
            "sql": nested(self.sql),
            "annotations": dict(sorted((self.annotations or {}).items())),
            "metadata": {
                namespace: dict(sorted(values.items()))
                for namespace, values in sorted((self.metadata or {}).items())
            },
        }
        result: Dict[str, Any] = {}
        for key, value in data.items():
            if key in _ALWAYS_PRESENT:
                result[key] = value
            elif key in _OPTIONAL_OBJECTS:
                if value is not None:
                    result[key] = value
            elif value:
                result[key] = value
        return result


def encode_document(value: Any) -> str:
    """Encode a document (or anything with ``to_dict``) as one line of compact JSON."""
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    return _HTML_ESCAPE_RE.sub(lambda match: _HTML_ESCAPES[match.group(0)], text) + "\n"


def make_segment_document(name: str, span: Span) -> str:
    """Convert a span into a serialized X-Ray segment document."""
    return encode_document(make_segment(name, span))


def make_segment(name: str, span: Span) -> Segment:
    """Convert a span into an X-Ray segment."""
    trace_id = convert_to_amazon_trace_id(span.trace_id)
    start_time = timestamp_to_float_seconds(span.start_time, span.start_time)
    end_time = timestamp_to_float_seconds(span.end_time, span.start_time)
    http_filtered, http = make_http(span)
    is_error, is_fault, cause_filtered, cause = make_cause(span.status, http_filtered)
    is_throttled = span.status is not None and span.status.code == STATUS_RESOURCE_EXHAUSTED
    origin = determine_aws_origin(span.resource)
    aws_filtered, aws = make_aws(cause_filtered, span.resource)
    service = make_service(span.resource)
    sql_filtered, sql = make_sql(aws_filtered)
    user, annotations = make_annotations(sql_filtered)

    if not name:
        name = fix_segment_name(span.name or "")
    namespace = "remote" if span.parent_span_id is not None else ""

    return Segment(
        id=convert_to_amazon_span_id(span.span_id),
        trace_id=trace_id,
        name=name,
        start_time=start_time,
        end_time=end_time,
        parent_id=convert_to_amazon_span_id(span.parent_span_id),
        fault=is_fault,
        error=is_error,
        throttle=is_throttled,
        cause=cause,
        origin=origin,
        namespace=namespace,
        user=user,
        http=http,
        aws=aws,
        service=service,
        sql=sql,
        annotations=annotations,
        metadata=None,
    )


def determine_aws_origin(resource: Optional[Resource]) -> str:
    """Return the ECS origin for container resources and the EC2 origin otherwise."""
    if resource is not None and ATTRIBUTE_CONTAINER_NAME in resource.labels:
        return ORIGIN_ECS
    return ORIGIN_EC2


def convert_to_amazon_trace_id(trace_id: bytes, now: Optional[int] = None) -> str:
    """Format a 16-byte trace id as ``1-<epoch>-<identifier>``.

    An epoch outside the range X-Ray accepts is replaced by ``now``.
    """
    if len(trace_id) < 16:
        raise ValueError("trace id must be 16 bytes long")
    epoch_now = int(time.time()) if now is None else now
    (epoch,) = struct.unpack(">I", bytes(trace_id[0:4]))
    delta = epoch_now - epoch
    if delta > _MAX_AGE or delta < -_MAX_SKEW:
        epoch = epoch_now
    epoch_hex = struct.pack(">I", epoch & 0xFFFFFFFF).hex()
    return f"1-{epoch_hex}-{bytes(trace_id[4:16]).hex()}"


def convert_to_amazon_span_id(span_id: Optional[bytes]) -> str:
    """Format a span id as 16 hex digits; missing or all-zero ids give ""."""
    if not span_id or bytes(span_id) == _ZERO_SPAN_ID:
        return ""
    if len(span_id) < 8:
        raise ValueError("span id must be at least 8 bytes long")
    return bytes(span_id[0:8]).hex()


def timestamp_to_float_seconds(
    ts: Optional[Timestamp], start_ts: Optional[Timestamp]
) -> float:
    """Return seconds since the epoch; the seconds come from ``start_ts`` when given."""
    if ts is None:
        nanos = time.time_ns()
    elif start_ts is None:
        nanos = ts.seconds * 1_000_000_000 + ts.nanos
    else:
        nanos = start_ts.seconds * 1_000_000_000 + ts.nanos
    return float(nanos) / 1e9


def make_annotations(attributes: Dict[str, str]) -> Tuple[str, Optional[Dict[str, Any]]]:
    """Return the end user and the remaining attributes as sanitized annotations."""
    remaining = {key: value for key, value in attributes.items() if key != ATTRIBUTE_COMPONENT}
    user = remaining.pop(ATTRIBUTE_ENDUSER_ID, "")
    annotations: Dict[str, Any] = {
        fix_annotation_key(key): value for key, value in remaining.items()
    }
    return user, (annotations or None)


def _is_valid_name_character(char: str) -> bool:
    return char in _VALID_NAME_PUNCTUATION or unicodedata.category(char).startswith("L")


def fix_segment_name(name: str) -> str:
    """Drop characters X-Ray rejects in segment names and bound the length."""
    name = "".join(char for char in name if _is_valid_name_character(char))
    encoded = name.encode("utf-8")
    if len(encoded) > MAX_SEGMENT_NAME_LENGTH:
        return encoded[:MAX_SEGMENT_NAME_LENGTH].decode("utf-8", errors="replace")
    if not encoded:
        return DEFAULT_SEGMENT_NAME
    return name


def fix_annotation_key(key: str) -> str:
    """Replace characters X-Ray rejects in annotation keys with underscores."""
    return _INVALID_ANNOTATION_CHARACTERS.sub("_", key)