"""Trace exporter that sends X-Ray segment documents through a PutTraceSegments client."""

from __future__ import annotations

import abc
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from xrayexport.config import TYPE_STR, Config
from xrayexport.conn import AWSSettings, ConnAttr, get_aws_config_session
from xrayexport.segment import make_segment_document
from xrayexport.spans import Span

logger = logging.getLogger(__name__)

XRAY_TIMESTAMP_HEADER = "X-Amzn-Xray-Timestamp"


@dataclass
class PutTraceSegmentsRequest:
    """Segment documents for one PutTraceSegments call; dropped spans hold ``None``."""

    trace_segment_documents: List[Optional[str]] = field(default_factory=list)


@dataclass
class PutTraceSegmentsResult:
    """Answer of a PutTraceSegments call."""

    unprocessed_trace_segments: List[Any] = field(default_factory=list)


class DataTypeNotSupportedError(Exception):
    """Raised when an exporter is asked for a data type it does not handle."""


class XRayClient(abc.ABC):
    """Client able to post segment documents to X-Ray."""

    @abc.abstractmethod
    def put_trace_segments(self, request: PutTraceSegmentsRequest) -> PutTraceSegmentsResult:
        """Post the documents and return what X-Ray left unprocessed."""


def xray_timestamp_header(now: Optional[int] = None) -> Dict[str, str]:
    """Return the X-Ray timestamp header for ``now`` (nanoseconds since the epoch)."""
    nanos = time.time_ns() if now is None else now
    return {XRAY_TIMESTAMP_HEADER: f"{float(nanos) / 1e9:.9f}"}


def is_timeout_error(error: BaseException) -> bool:
    """Tell whether an error reports a cancelled or timed-out request."""
    if isinstance(error, TimeoutError):
        return True
    return isinstance(error, Exception) and "net/http: request canceled" in str(error)


def assemble_request(spans: Sequence[Optional[Span]]) -> Tuple[int, PutTraceSegmentsRequest]:
    """Convert spans to segment documents; return the dropped count and the request."""
    documents: List[Optional[str]] = []
    dropped = 0
    for span in spans:
        if span is None or span.name is None:
            dropped += 1
            documents.append(None)
            continue
        try:
            document = make_segment_document(span.name, span)
        except (ValueError, TypeError) as error:
            dropped += 1
            logger.warning("Unable to convert span: %s", error)
            document = ""
        logger.debug("%s", document)
        documents.append(document)
    return dropped, PutTraceSegmentsRequest(trace_segment_documents=documents)


class TraceExporter:
    """Exports spans to X-Ray as segment documents."""

    def __init__(
        self,
        config: Config,
        client: XRayClient,
        aws_settings: Optional[AWSSettings] = None,
        session: Any = None,
    ) -> None:
        self.config = config
        self.client = client
        self.aws_settings = aws_settings
        self.session = session

    def consume_trace_data(self, spans: Iterable[Optional[Span]]) -> int:
        """Send spans to X-Ray and return how many were dropped.

        Errors from the client propagate unless the exporter runs in local mode.
        """
        spans = list(spans)
        logger.debug(
            "TraceExporter type=%s name=%s #spans=%d",
            self.config.type,
            self.config.name,
            len(spans),
        )
        dropped, request = assemble_request(spans)
        logger.debug("request: %s", request)
        try:
            result: Optional[PutTraceSegmentsResult] = self.client.put_trace_segments(request)
        except Exception:
            if not self.config.local_mode:
                raise
            result = None
        logger.debug("response: %s", result)
        if result is not None and result.unprocessed_trace_segments:
            dropped += len(result.unprocessed_trace_segments)
        return dropped


class Factory:
    """Creates X-Ray exporter configurations and exporters."""

    type = TYPE_STR

    def create_default_config(self) -> Config:
        """Return the default exporter configuration."""
        return Config()

    def create_trace_exporter(
        self, config: Config, client: XRayClient, conn: ConnAttr
    ) -> TraceExporter:
        """Resolve the AWS settings for ``config`` and return a trace exporter."""
        aws_settings, session = get_aws_config_session(config, conn)
        return TraceExporter(config, client, aws_settings=aws_settings, session=session)

    def create_metrics_exporter(self, config: Config) -> Any:
        """Metrics are not supported by this exporter."""
        raise DataTypeNotSupportedError("metrics are not supported by the awsxray exporter")