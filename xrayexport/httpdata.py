"""HTTP section of an X-Ray segment."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from xrayexport.spans import (
    ATTRIBUTE_COMPONENT,
    ATTRIBUTE_HOST_NAME,
    ATTRIBUTE_HTTP_CLIENT_IP,
    ATTRIBUTE_HTTP_HOST,
    ATTRIBUTE_HTTP_HOST_PORT,
    ATTRIBUTE_HTTP_METHOD,
    ATTRIBUTE_HTTP_SCHEME,
    ATTRIBUTE_HTTP_SERVER_NAME,
    ATTRIBUTE_HTTP_STATUS_CODE,
    ATTRIBUTE_HTTP_TARGET,
    ATTRIBUTE_HTTP_URL,
    ATTRIBUTE_HTTP_USER_AGENT,
    ATTRIBUTE_MESSAGE_TYPE,
    ATTRIBUTE_MESSAGE_UNCOMPRESSED_SIZE,
    ATTRIBUTE_NET_PEER_IP,
    ATTRIBUTE_NET_PEER_NAME,
    ATTRIBUTE_NET_PEER_PORT,
    COMPONENT_TYPE_GRPC,
    COMPONENT_TYPE_HTTP,
    Span,
    SpanKind,
    http_status_from_status_code,
)

_URL_PART_KEYS = {
    ATTRIBUTE_HTTP_URL,
    ATTRIBUTE_HTTP_SCHEME,
    ATTRIBUTE_HTTP_HOST,
    ATTRIBUTE_HTTP_TARGET,
    ATTRIBUTE_HTTP_SERVER_NAME,
    ATTRIBUTE_HOST_NAME,
    ATTRIBUTE_NET_PEER_NAME,
    ATTRIBUTE_NET_PEER_IP,
}
_PORT_KEYS = {ATTRIBUTE_HTTP_HOST_PORT, ATTRIBUTE_NET_PEER_PORT}


def _string_value(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _int_value(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


@dataclass
class RequestData:
    method: str = ""
    url: str = ""
    client_ip: str = ""
    user_agent: str = ""
    x_forwarded_for: bool = False
    traced: bool = False

    def to_dict(self) -> Dict[str, Any]:
        items: Dict[str, Any] = {
            "method": self.method,
            "url": self.url,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "x_forwarded_for": self.x_forwarded_for,
            "traced": self.traced,
        }
        return {key: value for key, value in items.items() if value}


@dataclass
class ResponseData:
    status: int = 0
    content_length: int = 0

    def to_dict(self) -> Dict[str, int]:
        items = {"status": self.status, "content_length": self.content_length}
        return {key: value for key, value in items.items() if value}


@dataclass
class HTTPData:
    request: RequestData = field(default_factory=RequestData)
    response: ResponseData = field(default_factory=ResponseData)

    def to_dict(self) -> Dict[str, Any]:
        return {"request": self.request.to_dict(), "response": self.response.to_dict()}


def make_http(span: Span) -> Tuple[Dict[str, str], Optional[HTTPData]]:
    """Split HTTP attributes off a span and build HTTP data for HTTP or gRPC spans."""
    info = HTTPData()
    filtered: Dict[str, str] = {}
    url_parts: Dict[str, str] = {}
    component = ""

    for key, value in span.attributes.items():
        if key == ATTRIBUTE_COMPONENT:
            component = _string_value(value)
            filtered[key] = component
        elif key == ATTRIBUTE_HTTP_METHOD:
            info.request.method = _string_value(value)
        elif key == ATTRIBUTE_HTTP_CLIENT_IP:
            info.request.client_ip = _string_value(value)
            info.request.x_forwarded_for = True
        elif key == ATTRIBUTE_HTTP_USER_AGENT:
            info.request.user_agent = _string_value(value)
        elif key == ATTRIBUTE_HTTP_STATUS_CODE:
            info.response.status = _int_value(value)
        elif key in _URL_PART_KEYS:
            url_parts[key] = _string_value(value)
        elif key in _PORT_KEYS:
            url_parts[key] = _string_value(value) or str(_int_value(value))
        else:
            filtered[key] = _string_value(value)

    if component not in (COMPONENT_TYPE_HTTP, COMPONENT_TYPE_GRPC) or not info.request.method:
        return filtered, None

    if span.kind == SpanKind.SERVER:
        info.request.url = construct_server_url(component, url_parts)
    else:
        info.request.url = construct_client_url(component, url_parts)

    if info.response.status == 0:
        info.response.status = http_status_from_status_code(span.status.code)

    info.response.content_length = extract_response_size(span)
    return filtered, info


def extract_response_size(span: Span) -> int:
    """Return the uncompressed size of the last RECEIVED message event, or 0."""
    size = 0
    for event in span.time_events:
        annotation = event.annotation
        if annotation is None:
            continue
        type_value = annotation.get(ATTRIBUTE_MESSAGE_TYPE)
        if type_value is None or _string_value(type_value) != "RECEIVED":
            continue
        size_value = annotation.get(ATTRIBUTE_MESSAGE_UNCOMPRESSED_SIZE)
        if size_value is not None:
            size = _int_value(size_value)
    return size


def _default_scheme(component: str) -> str:
    return "dns" if component == COMPONENT_TYPE_GRPC else "http"


def _assemble_url(scheme: str, host: str, port: str, url_parts: Dict[str, str]) -> str:
    url = f"{scheme}://{host}"
    default_port = (scheme == "http" and port == "80") or (scheme == "https" and port == "443")
    if port and not default_port:
        url += ":" + port
    return url + url_parts.get(ATTRIBUTE_HTTP_TARGET, "/")


def construct_client_url(component: str, url_parts: Dict[str, str]) -> str:
    """Build the URL of a client span from its URL-related attributes."""
    if ATTRIBUTE_HTTP_URL in url_parts:
        return url_parts[ATTRIBUTE_HTTP_URL]
    scheme = url_parts.get(ATTRIBUTE_HTTP_SCHEME, _default_scheme(component))
    port = ""
    if ATTRIBUTE_HTTP_HOST in url_parts:
        host = url_parts[ATTRIBUTE_HTTP_HOST]
    else:
        if ATTRIBUTE_NET_PEER_NAME in url_parts:
            host = url_parts[ATTRIBUTE_NET_PEER_NAME]
        else:
            host = url_parts.get(ATTRIBUTE_NET_PEER_IP, "")
        port = url_parts.get(ATTRIBUTE_NET_PEER_PORT, "")
    return _assemble_url(scheme, host, port, url_parts)


def construct_server_url(component: str, url_parts: Dict[str, str]) -> str:
    """Build the URL of a server span from its URL-related attributes."""
    if ATTRIBUTE_HTTP_URL in url_parts:
        return url_parts[ATTRIBUTE_HTTP_URL]
    scheme = url_parts.get(ATTRIBUTE_HTTP_SCHEME, _default_scheme(component))
    port = ""
    if ATTRIBUTE_HTTP_HOST in url_parts:
        host = url_parts[ATTRIBUTE_HTTP_HOST]
    else:
        if ATTRIBUTE_HTTP_SERVER_NAME in url_parts:
            host = url_parts[ATTRIBUTE_HTTP_SERVER_NAME]
        else:
            host = url_parts.get(ATTRIBUTE_HOST_NAME, "")
        port = url_parts.get(ATTRIBUTE_HTTP_HOST_PORT, "")
    return _assemble_url(scheme, host, port, url_parts)